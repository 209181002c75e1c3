"""Required-property schema for the configuration document."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

PropertyTypes = Mapping[str, type | tuple[type, ...]]

REQUIRED_PROPERTIES: dict[str, type | tuple[type, ...]] = {
    "features": list,
    "net": str,
    "gatekeeper_apiport": int,
    "gatekeeper_cns": str,
    "gatekeeper_clientkeyspassword": str,
    "gatekeeper_datapath": str,
    "traefik_http_port": int,
    "traefik_https_port": int,
    "traefik_datapath": str,
    "proxy_datapath": str,
    "bitcoin_rpcuser": str,
    "bitcoin_rpcpassword": str,
    "bitcoin_uacomment": str,
    "bitcoin_prune": bool,
    "bitcoin_datapath": str,
    "docker_mode": str,
    "run_as_different_user": bool,
}

FEATURE_PROPERTIES: dict[str, dict[str, type | tuple[type, ...]]] = {
    "lightning": {
        "lightning_nodename": str,
        "lightning_nodecolor": str,
        "lightning_announce": bool,
        "lightning_external_ip": str,
        "lightning_datapath": str,
    },
    "otsclient": {
        "otsclient_datapath": str,
    },
}


@dataclass(frozen=True)
class SchemaReport:
    """Result of checking a document against the schema."""

    missing: tuple[str, ...] = ()
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def complete(self) -> bool:
        """Return True when no required property is missing."""
        return not self.missing


def required_properties(properties: Mapping[str, object]) -> dict[str, type | tuple[type, ...]]:
    """Return the properties required for *properties*, including enabled features."""
    required = dict(REQUIRED_PROPERTIES)
    features = properties.get("features")
    if isinstance(features, list):
        for feature, extra in FEATURE_PROPERTIES.items():
            if feature in features:
                required.update(extra)
    return required


def check(properties: Mapping[str, object]) -> SchemaReport:
    """Return the missing required property names and type warnings."""
    missing: list[str] = []
    warnings: list[str] = []
    for name, expected in required_properties(properties).items():
        if name not in properties:
            missing.append(name)
            continue
        value = properties[name]
        if not _matches(value, expected):
            warnings.append(
                f"Property '{name}' has type {type(value).__name__}; "
                f"expected {_type_label(expected)}."
            )
    return SchemaReport(missing=tuple(missing), warnings=tuple(warnings))


def _matches(value: object, expected: type | tuple[type, ...]) -> bool:
    # bool is a subclass of int; keep them apart.
    if isinstance(value, bool) and expected is int:
        return False
    return isinstance(value, expected)


def _type_label(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(item.__name__ for item in expected)
    return expected.__name__


__all__ = [
    "FEATURE_PROPERTIES",
    "REQUIRED_PROPERTIES",
    "SchemaReport",
    "check",
    "required_properties",
]
