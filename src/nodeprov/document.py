"""The persisted configuration document and its merge rules."""
from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Mapping, MutableMapping

ADMIN_HASH_KEY = "adminhash"
CUSTOM_PATH_SENTINEL = "_custom"
CUSTOM_SUFFIX = "_custom"


class ConfigurationDocument(MutableMapping[str, object]):
    """Mapping of property name to value stored in the configuration archive."""

    def __init__(self, data: Mapping[str, object] | None = None) -> None:
        """Create a document holding a deep copy of *data*."""
        self._data: dict[str, object] = copy.deepcopy(dict(data or {}))

    def __getitem__(self, key: str) -> object:
        return self._data[key]

    def __setitem__(self, key: str, value: object) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ConfigurationDocument(keys={sorted(self._data)!r})"

    @property
    def admin_hash(self) -> str | None:
        """Return the stored admin credential hash, if any."""
        value = self._data.get(ADMIN_HASH_KEY)
        return value if isinstance(value, str) else None

    @admin_hash.setter
    def admin_hash(self, value: str) -> None:
        self._data[ADMIN_HASH_KEY] = value

    def to_dict(self) -> dict[str, object]:
        """Return a deep copy of the properties."""
        return copy.deepcopy(self._data)


def merge_answers(
    document: MutableMapping[str, object],
    answers: Iterable[tuple[str, object]],
) -> MutableMapping[str, object]:
    """Fold ``(name, value)`` pairs into *document* in order.

    Pairs are applied left to right, so when two contributors answer the same
    property the later one wins.
    """
    for name, value in answers:
        document[name] = value
    return document


def resolve_custom_paths(
    properties: Mapping[str, object],
    path_properties: Iterable[str],
) -> dict[str, object]:
    """Return a copy of *properties* with ``_custom`` path choices resolved.

    A path property whose value is the custom sentinel is replaced by its
    ``<name>_custom`` companion, or an empty string when that is absent.
    """
    resolved = copy.deepcopy(dict(properties))
    for name in path_properties:
        if resolved.get(name) == CUSTOM_PATH_SENTINEL:
            custom = resolved.get(f"{name}{CUSTOM_SUFFIX}")
            resolved[name] = custom or ""
    return resolved


__all__ = [
    "ADMIN_HASH_KEY",
    "CUSTOM_PATH_SENTINEL",
    "ConfigurationDocument",
    "merge_answers",
    "resolve_custom_paths",
]
