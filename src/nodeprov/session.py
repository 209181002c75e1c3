"""Process-lifetime session values.

Nothing in :class:`SessionContext` is ever written into the configuration
document. Templates see the render-only view returned by
:meth:`SessionContext.render_values`, layered over the document properties.
"""
from __future__ import annotations

import colorsys
import os
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

SERVICE_VERSION_ENV: dict[str, str] = {
    "gatekeeper": "GATEKEEPER_VERSION",
    "proxy": "PROXY_VERSION",
    "proxycron": "PROXYCRON_VERSION",
    "pycoin": "PYCOIN_VERSION",
    "otsclient": "OTSCLIENT_VERSION",
    "bitcoin": "BITCOIN_VERSION",
    "lightning": "LIGHTNING_VERSION",
    "traefik": "TRAEFIK_VERSION",
}
LATEST_TAG = "latest"
PASSWORD_ENV = "CFG_PASSWORD"

_NAME_ADJECTIVES = (
    "amber", "brave", "calm", "daring", "eager", "fuzzy", "gentle", "hidden",
    "jolly", "keen", "lucky", "mellow", "nimble", "quiet", "rapid", "silent",
    "steady", "swift", "tidy", "vivid", "wise", "zesty",
)
_NAME_NOUNS = (
    "badger", "comet", "falcon", "harbor", "island", "lantern", "meadow", "otter",
    "pebble", "quasar", "raven", "summit", "tiger", "valley", "walrus", "yak",
)


def generate_node_name() -> str:
    """Return a random, human-friendly node name."""
    return f"{secrets.choice(_NAME_ADJECTIVES)}-{secrets.choice(_NAME_NOUNS)}"


def random_color() -> str:
    """Return a random mid-saturation colour as six hex digits (no ``#``)."""
    hue = secrets.randbelow(360) / 360.0
    red, green, blue = colorsys.hls_to_rgb(hue, 0.5, 0.5)
    return f"{round(red * 255):02x}{round(green * 255):02x}{round(blue * 255):02x}"


def _is_true(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class SessionContext:
    """Ephemeral values owned by the controller for one run."""

    default_datadir_base: str
    setup_dir: str
    default_username: str = ""
    versions: dict[str, str] = field(default_factory=dict)
    devmode: bool = False
    password_override: str | None = None
    generated_nodename: str = field(default_factory=generate_node_name)
    generated_color: str = field(default_factory=random_color)
    installer_cleanup: bool = False
    configuration_password: str | None = None
    clientkeyspassword_snapshot: object | None = None
    mark_properties: tuple[str, ...] = ()
    cns: tuple[str, ...] = ()

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SessionContext:
        """Build a session from environment variables."""
        resolved = dict(os.environ if env is None else env)
        home = resolved.get("HOME") or str(Path.home())

        versions = {
            service: resolved.get(variable) or LATEST_TAG
            for service, variable in SERVICE_VERSION_ENV.items()
        }
        if resolved.get("VERSION_OVERRIDE") == "true":
            versions = {service: LATEST_TAG for service in versions}

        return cls(
            default_datadir_base=resolved.get("DEFAULT_DATADIR_BASE") or home,
            setup_dir=resolved.get("SETUP_DIR") or str(Path(home) / "nodeprov"),
            default_username=resolved.get("DEFAULT_USER", ""),
            versions=versions,
            devmode=_is_true(resolved.get("DEVMODE")),
            password_override=resolved.get(PASSWORD_ENV) or None,
        )

    def render_values(self) -> dict[str, object]:
        """Return the render-only values merged over document properties."""
        values: dict[str, object] = {
            "default_datadir_base": self.default_datadir_base,
            "setup_dir": self.setup_dir,
            "default_username": self.default_username,
            "devmode": self.devmode,
            "generated_nodename": self.generated_nodename,
            "generated_color": self.generated_color,
            "installer_cleanup": self.installer_cleanup,
            "cns": list(self.cns),
        }
        for service, version in self.versions.items():
            values[f"{service}_version"] = version
        return values

    def lookup(self, name: str) -> object | None:
        """Return the render value called *name*, or None."""
        return self.render_values().get(name)


__all__ = [
    "LATEST_TAG",
    "PASSWORD_ENV",
    "SERVICE_VERSION_ENV",
    "SessionContext",
    "generate_node_name",
    "random_color",
]
