"""Tests for the configuration store."""
from __future__ import annotations

from pathlib import Path

import bcrypt
import pytest
from conftest import ScriptedPrompter

from nodeprov.archive import EncryptedArchive
from nodeprov.document import ConfigurationDocument
from nodeprov.errors import CorruptArchiveError, WrongPasswordError
from nodeprov.store import CONFIG_ENTRY, ConfigStore


def test_exists_reflects_archive_presence(store: ConfigStore) -> None:
    """exists() is False until the first serialize."""
    assert store.exists() is False

    assert store.serialize("pw", ConfigurationDocument({"net": "testnet"})) is True

    assert store.exists() is True


def test_serialize_then_decrypt_returns_same_properties(store: ConfigStore) -> None:
    """A decrypted document holds the serialized properties."""
    document = ConfigurationDocument(
        {"features": ["lightning"], "gatekeeper_apiport": 2009, "bitcoin_prune": False}
    )
    store.serialize("pw", document)

    loaded = store.decrypt("pw")

    assert loaded.to_dict() == document.to_dict()


def test_decrypt_with_wrong_password_fails(store: ConfigStore) -> None:
    """A wrong password raises WrongPasswordError."""
    store.serialize("pw", ConfigurationDocument({"net": "testnet"}))

    with pytest.raises(WrongPasswordError):
        store.decrypt("nope")


def test_decrypt_rejects_non_mapping_payload(store: ConfigStore) -> None:
    """A config entry that is not a mapping is corrupt."""
    EncryptedArchive(store.path, "pw", iterations=store.iterations).rewrite(
        {CONFIG_ENTRY: "- a\n- b\n"}
    )

    with pytest.raises(CorruptArchiveError, match="not a mapping"):
        store.decrypt("pw")


def test_serialize_failure_is_reported_not_raised(
    store: ConfigStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Write errors are logged and reported as False."""

    def fail(*_args: object, **_kwargs: object) -> None:
        raise OSError("read-only file system")

    monkeypatch.setattr("nodeprov.archive.EncryptedArchive.rewrite", fail)

    assert store.serialize("pw", ConfigurationDocument()) is False


def test_create_with_new_password_repeats_until_pair_matches(store: ConfigStore) -> None:
    """Mismatched and empty pairs are asked again."""
    prompter = ScriptedPrompter()
    prompter.script_sequence("password0", ["abc123", "", "abc123 "])
    prompter.script_sequence("password1", ["abc124", "abc123", " abc123"])

    document, password = store.create_with_new_password(prompter)

    assert password == "abc123"
    assert len(document) == 0
    assert prompter.notifications == ["Passwords do not match"]
    assert prompter.asked_names.count("password0") == 3


def test_resolve_password_prefers_override(store: ConfigStore) -> None:
    """The environment override is used verbatim without prompting."""
    prompter = ScriptedPrompter()

    assert store.resolve_password(prompter, " from-env ") == " from-env "
    assert prompter.asked == []


def test_resolve_password_prompts_until_non_empty(store: ConfigStore) -> None:
    """Empty answers are asked again."""
    prompter = ScriptedPrompter()
    prompter.script_sequence("password", ["  ", "abc123"])

    assert store.resolve_password(prompter, None) == "abc123"
    assert prompter.asked_names == ["password", "password"]


def test_apply_admin_hash_stores_verifiable_bcrypt_hash(store: ConfigStore) -> None:
    """The stored hash verifies against the password."""
    document = ConfigurationDocument()

    hashed = store.apply_admin_hash(document, "abc123")

    assert document["adminhash"] == hashed
    assert bcrypt.checkpw(b"abc123", hashed.encode("utf-8"))


def test_apply_admin_hash_is_stable_for_same_password(store: ConfigStore) -> None:
    """A hash that still matches is kept; a different password replaces it."""
    document = ConfigurationDocument()
    first = store.apply_admin_hash(document, "abc123")

    assert store.apply_admin_hash(document, "abc123") == first

    replaced = store.apply_admin_hash(document, "other")
    assert replaced != first
    assert bcrypt.checkpw(b"other", replaced.encode("utf-8"))


def test_apply_admin_hash_replaces_garbage(store: ConfigStore) -> None:
    """A stored value that is not a bcrypt hash is replaced."""
    document = ConfigurationDocument({"adminhash": "not-a-hash"})

    hashed = store.apply_admin_hash(document, "abc123")

    assert hashed.startswith("$2")


def test_store_path_is_plain_path(tmp_path: Path) -> None:
    """ConfigStore keeps the path it was given."""
    store = ConfigStore(tmp_path / "config.enc", iterations=1000, hash_rounds=4)
    assert store.path == tmp_path / "config.enc"
