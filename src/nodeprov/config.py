"""Settings loader for nodeprov.

This module centralises the logic for reading tool settings from multiple
sources:

1. Built-in defaults.
2. ``/etc/nodeprov/config.yml`` (or an override path).
3. Environment variables prefixed with ``NODEPROV_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export NODEPROV_DESTINATION_ROOT=/srv/node
    export NODEPROV_CERTIFICATE__KEY_SIZE=2048

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting settings are exposed as immutable
``dataclasses``.

These are settings of the tool itself. The provisioned node configuration
lives in the encrypted archive handled by :mod:`nodeprov.store`.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load nodeprov settings. Install with "
        "`pip install nodeprov` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "NODEPROV_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}

MIN_KEY_SIZE = 2048


class ConfigError(RuntimeError):
    """Raised when settings parsing fails."""


@dataclass(frozen=True)
class CryptoSettings:
    """Key derivation and hashing parameters."""

    kdf_iterations: int = 390_000
    admin_hash_rounds: int = 12

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "kdf_iterations": self.kdf_iterations,
            "admin_hash_rounds": self.admin_hash_rounds,
        }


@dataclass(frozen=True)
class CertificateSettings:
    """Parameters for the generated gatekeeper certificate."""

    key_size: int = 4096
    valid_days: int = 3650
    default_names: tuple[str, ...] = ("localhost", "127.0.0.1", "gatekeeper")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "key_size": self.key_size,
            "valid_days": self.valid_days,
            "default_names": list(self.default_names),
        }


@dataclass(frozen=True)
class AppSettings:
    """Resolved settings values for nodeprov."""

    config_file: Path
    destination_root: Path
    templates_dir: Path | None
    logs_dir: Path
    config_archive: str
    client_archive: str
    status_file: str
    crypto: CryptoSettings
    certificate: CertificateSettings

    @property
    def config_archive_path(self) -> Path:
        """Return the full path of the configuration archive."""
        return self.destination_root / self.config_archive

    @property
    def client_archive_path(self) -> Path:
        """Return the full path of the client key archive."""
        return self.destination_root / self.client_archive

    @property
    def status_path(self) -> Path:
        """Return the full path of the status sentinel file."""
        return self.destination_root / self.status_file

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the settings."""
        return {
            "config_file": str(self.config_file),
            "destination_root": str(self.destination_root),
            "templates_dir": str(self.templates_dir) if self.templates_dir else None,
            "logs_dir": str(self.logs_dir),
            "config_archive": self.config_archive,
            "client_archive": self.client_archive,
            "status_file": self.status_file,
            "crypto": self.crypto.to_dict(),
            "certificate": self.certificate.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/nodeprov/config.yml",
    "destination_root": "/data",
    "templates_dir": None,  # built-in templates only
    "logs_dir": None,  # derived from destination_root when absent
    "config_archive": "config.enc",
    "client_archive": "client.enc",
    "status_file": "exitStatus.sh",
    "crypto": {
        "kdf_iterations": 390_000,
        "admin_hash_rounds": 12,
    },
    "certificate": {
        "key_size": 4096,
        "valid_days": 3650,
        "default_names": ["localhost", "127.0.0.1", "gatekeeper"],
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())


def load_settings(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppSettings:
    """Load and merge settings sources into an :class:`AppSettings`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, {key: value for key, value in overrides.items() if value is not None})

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_settings(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for key in ("config_archive", "client_archive", "status_file"):
        value = raw.get(key)
        if value is None:
            continue
        name = _expect_str(value, key).strip()
        if not name or "/" in name or name in {".", ".."}:
            raise ConfigError(f"{key} must be a plain file name. Got {value!r}.")

    crypto = raw.get("crypto")
    if crypto is not None:
        crypto_map = _as_dict(crypto, "crypto")
        unknown = set(crypto_map.keys()) - {"kdf_iterations", "admin_hash_rounds"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown crypto configuration keys: {joined}.")
        rounds = crypto_map.get("admin_hash_rounds")
        if rounds is not None:
            parsed_rounds = _expect_int(rounds, "crypto.admin_hash_rounds", default=12)
            if not 4 <= parsed_rounds <= 31:
                raise ConfigError("crypto.admin_hash_rounds must be between 4 and 31.")

    certificate = raw.get("certificate")
    if certificate is not None:
        certificate_map = _as_dict(certificate, "certificate")
        unknown = set(certificate_map.keys()) - {"key_size", "valid_days", "default_names"}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown certificate configuration keys: {joined}.")
        key_size = certificate_map.get("key_size")
        if key_size is not None:
            parsed_size = _expect_int(key_size, "certificate.key_size", default=4096)
            if parsed_size < MIN_KEY_SIZE:
                raise ConfigError(
                    f"certificate.key_size must be at least {MIN_KEY_SIZE}. Got {parsed_size}."
                )
        names = certificate_map.get("default_names")
        if names is not None:
            for index, entry in enumerate(_as_sequence(names, "certificate.default_names")):
                if not isinstance(entry, str) or not entry.strip():
                    raise ConfigError(
                        f"certificate.default_names[{index}] must be a non-empty string."
                    )


def _build_settings(raw: Mapping[str, object]) -> AppSettings:
    config_file = _to_path(raw.get("config_file"))
    destination_root = _to_path(raw.get("destination_root"))

    templates_value = raw.get("templates_dir")
    templates_dir: Path | None = None
    if isinstance(templates_value, (str, Path)):
        if str(templates_value).strip():
            templates_dir = _to_path(templates_value)
    elif templates_value is not None:
        raise ConfigError("templates_dir must be a string, Path, or null.")

    logs_value = raw.get("logs_dir")
    logs_dir = _to_path(logs_value) if logs_value else destination_root / "logs"

    crypto_mapping = _as_dict(raw.get("crypto"), "crypto")
    crypto = CryptoSettings(
        kdf_iterations=_expect_positive_int(
            crypto_mapping.get("kdf_iterations"),
            "crypto.kdf_iterations",
            default=390_000,
        ),
        admin_hash_rounds=_expect_int(
            crypto_mapping.get("admin_hash_rounds"),
            "crypto.admin_hash_rounds",
            default=12,
        ),
    )

    certificate_mapping = _as_dict(raw.get("certificate"), "certificate")
    default_certificate = CertificateSettings()
    names_raw = certificate_mapping.get("default_names")
    if names_raw is None:
        default_names = default_certificate.default_names
    else:
        default_names = tuple(
            str(name).strip()
            for name in _as_sequence(names_raw, "certificate.default_names")
        )
    certificate = CertificateSettings(
        key_size=_expect_int(
            certificate_mapping.get("key_size"),
            "certificate.key_size",
            default=default_certificate.key_size,
        ),
        valid_days=_expect_positive_int(
            certificate_mapping.get("valid_days"),
            "certificate.valid_days",
            default=default_certificate.valid_days,
        ),
        default_names=default_names,
    )

    return AppSettings(
        config_file=config_file,
        destination_root=destination_root,
        templates_dir=templates_dir,
        logs_dir=logs_dir,
        config_archive=str(raw.get("config_archive", "config.enc")).strip(),
        client_archive=str(raw.get("client_archive", "client.enc")).strip(),
        status_file=str(raw.get("status_file", "exitStatus.sh")).strip(),
        crypto=crypto,
        certificate=certificate,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_positive_int(value: object | None, label: str, *, default: int) -> int:
    parsed = _expect_int(value, label, default=default)
    if parsed <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {parsed}.")
    return parsed


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppSettings",
    "CertificateSettings",
    "ConfigError",
    "CryptoSettings",
    "load_settings",
]
