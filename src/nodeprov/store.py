"""Encrypted persistence of the configuration document."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import bcrypt
import yaml

from .archive import DEFAULT_ITERATIONS, EncryptedArchive
from .document import ConfigurationDocument
from .errors import CorruptArchiveError, PasswordMismatch
from .prompts import PROMPT_PREFIX, Prompter, PromptSpec
from .validators import trim_filter

LOGGER = logging.getLogger(__name__)

CONFIG_ENTRY = "config.yml"


@dataclass(slots=True)
class ConfigStore:
    """Load, create and save the password-protected configuration archive."""

    path: Path
    iterations: int = DEFAULT_ITERATIONS
    hash_rounds: int = 12

    def exists(self) -> bool:
        """Return True when the configuration archive is present."""
        return self.path.exists()

    def create_with_new_password(
        self,
        prompter: Prompter,
    ) -> tuple[ConfigurationDocument, str]:
        """Ask for a new password twice and return an empty document bound to it."""
        specs = [
            PromptSpec(
                name="password0",
                message=f"{PROMPT_PREFIX}Choose your configuration password",
                kind="password",
                filter=trim_filter,
            ),
            PromptSpec(
                name="password1",
                message=f"{PROMPT_PREFIX}Confirm your configuration password",
                kind="password",
                filter=trim_filter,
            ),
        ]
        while True:
            answers = dict(prompter.ask(specs))
            first = str(answers.get("password0") or "")
            second = str(answers.get("password1") or "")
            try:
                password = _matching_password(first, second)
            except PasswordMismatch as exc:
                prompter.notify(str(exc))
                continue
            if password:
                return ConfigurationDocument(), password

    def resolve_password(self, prompter: Prompter, env_override: str | None = None) -> str:
        """Return *env_override* verbatim, or prompt until a password is entered."""
        if env_override:
            return env_override
        spec = PromptSpec(
            name="password",
            message=f"{PROMPT_PREFIX}Enter your configuration password",
            kind="password",
            filter=trim_filter,
        )
        while True:
            password = str(prompter.ask_one(spec) or "")
            if password:
                return password

    def decrypt(self, password: str) -> ConfigurationDocument:
        """Decrypt the archive; raise :class:`DecryptionFailure` on any problem."""
        archive = EncryptedArchive(self.path, password, iterations=self.iterations)
        text = archive.read_entry(CONFIG_ENTRY)
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise CorruptArchiveError(
                f"Configuration in {self.path.name} cannot be parsed."
            ) from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise CorruptArchiveError(
                f"Configuration in {self.path.name} is not a mapping."
            )
        return ConfigurationDocument(data)

    def serialize(self, password: str, document: ConfigurationDocument) -> bool:
        """Encrypt and write the full document; return False on failure."""
        archive = EncryptedArchive(self.path, password, iterations=self.iterations)
        try:
            payload = yaml.safe_dump(document.to_dict(), sort_keys=True, allow_unicode=True)
            archive.rewrite({CONFIG_ENTRY: payload})
        except (OSError, yaml.YAMLError) as exc:
            LOGGER.error("Config archive %s was not written: %s", self.path, exc)
            return False
        return True

    def apply_admin_hash(self, document: ConfigurationDocument, password: str) -> str:
        """Store a bcrypt hash of *password* in *document* and return it.

        A stored hash that still verifies against *password* is kept as is.
        """
        existing = document.admin_hash
        if existing and _hash_matches(password, existing):
            return existing
        salt = bcrypt.gensalt(rounds=self.hash_rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")
        document.admin_hash = hashed
        return hashed


def _matching_password(first: str, second: str) -> str:
    if first and second and first != second:
        raise PasswordMismatch()
    if first and second:
        return first
    return ""


def _hash_matches(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


__all__ = ["CONFIG_ENTRY", "ConfigStore"]
