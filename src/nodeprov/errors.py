"""Error taxonomy for provisioning runs.

Two families of errors:

* :class:`ValidationError` covers a single answer that a validator rejected.
  The prompting layer catches it and asks the same question again.
* :class:`FatalProvisioningError` ends the run. Each subclass carries the
  process exit code the CLI should use.

Failures that are logged and absorbed mid-run (certificate generation, final
writes) derive from :class:`RecoverableProvisioningError`.
"""
from __future__ import annotations

from collections.abc import Sequence

from .exit_codes import ExitCode


class ValidationError(ValueError):
    """Raised by a field validator; the field is asked again."""


class PasswordMismatch(ValidationError):
    """Raised when the two entries of a new password differ."""

    def __init__(self) -> None:
        """Initialise with the operator-facing message."""
        super().__init__("Passwords do not match")


class FatalProvisioningError(RuntimeError):
    """Base class for errors that terminate the run."""

    exit_code: ExitCode = ExitCode.PROVIDER


class DecryptionFailure(FatalProvisioningError):
    """Raised when the configuration archive cannot be decrypted."""

    exit_code = ExitCode.CREDENTIALS


class WrongPasswordError(DecryptionFailure):
    """The archive is intact but the password does not open it."""


class CorruptArchiveError(DecryptionFailure):
    """The archive envelope or one of its entries is damaged."""


class PasswordUnavailable(FatalProvisioningError):
    """Raised when an unattended run has no way to obtain the password."""

    exit_code = ExitCode.VALIDATION


class MissingRequiredPropertyUnattended(FatalProvisioningError):
    """Raised when an unattended run finds required properties missing."""

    exit_code = ExitCode.VALIDATION

    def __init__(self, missing: Sequence[str]) -> None:
        """Record the missing property names."""
        self.missing = tuple(missing)
        joined = ", ".join(self.missing)
        super().__init__(
            "Unable to update the configuration non-interactively; missing required "
            f"properties: {joined}. Rerun without --unattended."
        )


class TemplateRenderError(FatalProvisioningError):
    """Raised when a contributor template cannot be rendered."""


class RecoverableProvisioningError(RuntimeError):
    """Base class for failures that are reported without stopping the run."""


class CertGenerationFailure(RecoverableProvisioningError):
    """Raised when certificate generation returns a non-zero code or fails."""


class ConfigWriteFailure(RecoverableProvisioningError):
    """Raised when the configuration archive could not be written."""


class ClientArchiveEntryWriteFailure(RecoverableProvisioningError):
    """Raised when an entry of the client key archive could not be written."""

    def __init__(self, entry: str, reason: str) -> None:
        """Record the entry name alongside the failure reason."""
        self.entry = entry
        super().__init__(f"{entry}: {reason}")


__all__ = [
    "CertGenerationFailure",
    "ClientArchiveEntryWriteFailure",
    "ConfigWriteFailure",
    "CorruptArchiveError",
    "DecryptionFailure",
    "FatalProvisioningError",
    "MissingRequiredPropertyUnattended",
    "PasswordMismatch",
    "PasswordUnavailable",
    "RecoverableProvisioningError",
    "TemplateRenderError",
    "ValidationError",
    "WrongPasswordError",
]
