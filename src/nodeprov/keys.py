"""Role-scoped API key hierarchy for the gatekeeper."""
from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

KEYS_PROPERTY = "gatekeeper_keys"
RECREATE_FLAG = "gatekeeper_recreatekeys"
SECRET_BYTES = 32

KEY_HIERARCHY: dict[str, tuple[str, ...]] = {
    "000": ("stats",),
    "001": ("stats", "watcher"),
    "002": ("stats", "watcher", "spender"),
    "003": ("stats", "watcher", "spender", "admin"),
}


@dataclass(frozen=True, slots=True)
class ApiKey:
    """One tier of the key hierarchy with its secret."""

    id: str
    groups: tuple[str, ...]
    secret: str

    @property
    def group_list(self) -> str:
        """Return the groups as a comma-separated string."""
        return ",".join(self.groups)

    def config_entry(self) -> str:
        """Return the line stored in the gatekeeper key configuration."""
        return (
            f'kapi_id="{self.id}";kapi_key="{self.secret}";kapi_groups="{self.group_list}";'
            "eval ugroups_${kapi_id}=${kapi_groups};eval ukey_${kapi_id}=${kapi_key}"
        )

    def client_information(self) -> str:
        """Return the line handed out to API clients."""
        return f"kapi_id={self.id};kapi_key={self.secret};kapi_groups={self.group_list}"


@dataclass(frozen=True, slots=True)
class KeyBatch:
    """A complete, freshly generated hierarchy."""

    keys: tuple[ApiKey, ...]

    @property
    def config_entries(self) -> list[str]:
        """Return the config entry of each key, in hierarchy order."""
        return [key.config_entry() for key in self.keys]

    @property
    def client_information(self) -> list[str]:
        """Return the client information of each key, in hierarchy order."""
        return [key.client_information() for key in self.keys]

    def to_property(self) -> dict[str, list[str]]:
        """Return the value stored under ``gatekeeper_keys``."""
        return {
            "config_entries": self.config_entries,
            "client_information": self.client_information,
        }


class KeyProvisioner:
    """Decide when to regenerate the key hierarchy and store it in the document."""

    def __init__(self, hierarchy: Mapping[str, tuple[str, ...]] | None = None) -> None:
        """Use *hierarchy* instead of :data:`KEY_HIERARCHY` when given."""
        self._hierarchy = dict(hierarchy or KEY_HIERARCHY)

    def should_regenerate(self, document: Mapping[str, object]) -> bool:
        """Return True when the recreate flag is set or no keys are stored."""
        if document.get(RECREATE_FLAG):
            return True
        return not stored_config_entries(document)

    def regenerate_all(self) -> KeyBatch:
        """Generate a new secret for every identifier of the hierarchy."""
        keys = tuple(
            ApiKey(id=key_id, groups=tuple(groups), secret=secrets.token_hex(SECRET_BYTES))
            for key_id, groups in self._hierarchy.items()
        )
        return KeyBatch(keys=keys)

    def provision(self, document: MutableMapping[str, object]) -> bool:
        """Regenerate and store the hierarchy when required; return whether it did."""
        if not self.should_regenerate(document):
            LOGGER.debug("Keeping the stored API key hierarchy.")
            return False
        document.pop(RECREATE_FLAG, None)
        batch = self.regenerate_all()
        document[KEYS_PROPERTY] = batch.to_property()
        LOGGER.info("Generated %d API keys.", len(batch.keys))
        return True


def stored_config_entries(document: Mapping[str, object]) -> list[str]:
    """Return the persisted key config entries, or an empty list."""
    value = document.get(KEYS_PROPERTY)
    if not isinstance(value, Mapping):
        return []
    entries = value.get("config_entries")
    if not isinstance(entries, list):
        return []
    return [str(entry) for entry in entries]


def stored_client_information(document: Mapping[str, object]) -> list[str]:
    """Return the persisted client information lines, or an empty list."""
    value = document.get(KEYS_PROPERTY)
    if not isinstance(value, Mapping):
        return []
    entries = value.get("client_information")
    if not isinstance(entries, list):
        return []
    return [str(entry) for entry in entries]


__all__ = [
    "KEYS_PROPERTY",
    "KEY_HIERARCHY",
    "RECREATE_FLAG",
    "ApiKey",
    "KeyBatch",
    "KeyProvisioner",
    "stored_client_information",
    "stored_config_entries",
]
