"""Password-protected archive files.

An archive is a small JSON envelope holding named entries, each encrypted with
a Fernet key derived from the archive password (PBKDF2-SHA256 with a per-file
salt)::

    {
      "format": 1,
      "kdf": {"algorithm": "pbkdf2-sha256", "iterations": 390000, "salt": "..."},
      "check": "<token of a fixed marker>",
      "entries": {"keys.txt": "<token>", "cacert.pem": "<token>"}
    }

The ``check`` token lets readers tell a wrong password apart from a damaged
entry. Both the configuration archive and the client key archive use this
format.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from .errors import CorruptArchiveError, WrongPasswordError

LOGGER = logging.getLogger(__name__)

ARCHIVE_FORMAT = 1
KDF_ALGORITHM = "pbkdf2-sha256"
DEFAULT_ITERATIONS = 390_000
SALT_SIZE = 16
_CHECK_MARKER = b"nodeprov-archive"


def derive_key(password: str, salt: bytes, *, iterations: int) -> bytes:
    """Derive a Fernet key from *password* and *salt*."""
    key = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations, dklen=32)
    return base64.urlsafe_b64encode(key)


class EncryptedArchive:
    """Read and write entries of a password-protected archive file."""

    def __init__(
        self,
        path: Path,
        password: str,
        *,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> None:
        """Bind the archive at *path* to *password*."""
        self.path = path
        self._password = password
        self._iterations = iterations

    def exists(self) -> bool:
        """Return True when the archive file is present."""
        return self.path.exists()

    def remove(self) -> bool:
        """Delete the archive file; return True when a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        LOGGER.debug("Removed archive %s", self.path)
        return True

    def entries(self) -> list[str]:
        """Return the entry names stored in the archive."""
        envelope, _ = self._open()
        return sorted(_entries_of(envelope, self.path))

    def read_entry(self, name: str) -> str:
        """Return the decrypted text of entry *name*."""
        envelope, fernet = self._open()
        tokens = _entries_of(envelope, self.path)
        if name not in tokens:
            raise CorruptArchiveError(f"Archive {self.path} has no entry named '{name}'.")
        try:
            payload = fernet.decrypt(tokens[name].encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise CorruptArchiveError(
                f"Entry '{name}' of archive {self.path} is damaged."
            ) from exc
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptArchiveError(
                f"Entry '{name}' of archive {self.path} is not valid UTF-8."
            ) from exc

    def read_all(self) -> dict[str, str]:
        """Return every entry, decrypted."""
        return {name: self.read_entry(name) for name in self.entries()}

    def write_entry(self, name: str, content: str) -> None:
        """Add or replace entry *name*, keeping the other entries in place."""
        if self.exists():
            envelope, fernet = self._open()
            tokens = dict(_entries_of(envelope, self.path))
        else:
            envelope, fernet = self._new_envelope()
            tokens = {}
        tokens[name] = fernet.encrypt(content.encode("utf-8")).decode("ascii")
        envelope["entries"] = tokens
        self._store(envelope)

    def rewrite(self, entries: Mapping[str, str]) -> None:
        """Replace the whole archive with *entries* under a fresh salt."""
        envelope, fernet = self._new_envelope()
        envelope["entries"] = {
            name: fernet.encrypt(content.encode("utf-8")).decode("ascii")
            for name, content in entries.items()
        }
        self._store(envelope)

    # ------------------------------------------------------------------
    def _new_envelope(self) -> tuple[dict[str, object], Fernet]:
        salt = os.urandom(SALT_SIZE)
        fernet = Fernet(derive_key(self._password, salt, iterations=self._iterations))
        envelope: dict[str, object] = {
            "format": ARCHIVE_FORMAT,
            "kdf": {
                "algorithm": KDF_ALGORITHM,
                "iterations": self._iterations,
                "salt": base64.b64encode(salt).decode("ascii"),
            },
            "check": fernet.encrypt(_CHECK_MARKER).decode("ascii"),
            "entries": {},
        }
        return envelope, fernet

    def _open(self) -> tuple[dict[str, object], Fernet]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise CorruptArchiveError(f"Archive {self.path} does not exist.") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise CorruptArchiveError(f"Archive {self.path} cannot be read: {exc}") from exc
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptArchiveError(f"Archive {self.path} is corrupt.") from exc
        if not isinstance(envelope, dict) or envelope.get("format") != ARCHIVE_FORMAT:
            raise CorruptArchiveError(f"Archive {self.path} has an unsupported format.")

        kdf = envelope.get("kdf")
        if not isinstance(kdf, dict) or kdf.get("algorithm") != KDF_ALGORITHM:
            raise CorruptArchiveError(f"Archive {self.path} has an unsupported key derivation.")
        iterations = kdf.get("iterations")
        if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations <= 0:
            raise CorruptArchiveError(f"Archive {self.path} records invalid KDF iterations.")
        try:
            salt = base64.b64decode(str(kdf.get("salt", "")), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CorruptArchiveError(f"Archive {self.path} records an invalid salt.") from exc
        if not salt:
            raise CorruptArchiveError(f"Archive {self.path} records an empty salt.")

        fernet = Fernet(derive_key(self._password, salt, iterations=iterations))
        check = envelope.get("check")
        if not isinstance(check, str):
            raise CorruptArchiveError(f"Archive {self.path} is missing its password check.")
        try:
            marker = fernet.decrypt(check.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise WrongPasswordError(
                f"The password does not open {self.path.name}."
            ) from exc
        if marker != _CHECK_MARKER:
            raise CorruptArchiveError(f"Archive {self.path} failed its integrity check.")
        return envelope, fernet

    def _store(self, envelope: Mapping[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                json.dump(envelope, handle, indent=2, sort_keys=True)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        finally:
            tmp_path.unlink(missing_ok=True)


def _entries_of(envelope: Mapping[str, object], path: Path) -> dict[str, str]:
    entries = envelope.get("entries")
    if not isinstance(entries, dict):
        raise CorruptArchiveError(f"Archive {path} has no entry table.")
    result: dict[str, str] = {}
    for name, token in entries.items():
        if not isinstance(name, str) or not isinstance(token, str):
            raise CorruptArchiveError(f"Archive {path} has a malformed entry table.")
        result[name] = token
    return result


__all__ = ["DEFAULT_ITERATIONS", "EncryptedArchive", "derive_key"]
