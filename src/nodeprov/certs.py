"""Self-signed TLS certificate provisioning for the gatekeeper."""
from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol, cast

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .config import CertificateSettings
from .errors import CertGenerationFailure
from .logging import OperationScope

LOGGER = logging.getLogger(__name__)

KEY_PROPERTY = "gatekeeper_sslkey"
CERT_PROPERTY = "gatekeeper_sslcert"
CNS_PROPERTY = "gatekeeper_cns"
RECREATE_FLAG = "gatekeeper_recreatecert"
MAX_COMMON_NAME = 64


class CertStatus(Enum):
    """Outcome of the certificate gate for one run."""

    KEPT = "kept"
    GENERATED = "generated"
    FAILED = "failed"


@dataclass(frozen=True)
class CertResult:
    """Return value of :meth:`CertProvisioner.generate`; ``code`` 0 means success."""

    code: int
    key: str = ""
    cert: str = ""
    error: str = ""


@dataclass(frozen=True)
class CertificateInfo:
    """Summary of the certificate stored in the document."""

    subject: str
    names: tuple[str, ...]
    not_valid_before: datetime
    not_valid_after: datetime
    key_matches: bool

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "subject": self.subject,
            "names": list(self.names),
            "not_valid_before": self.not_valid_before.isoformat(),
            "not_valid_after": self.not_valid_after.isoformat(),
            "key_matches": self.key_matches,
        }


class PublicKeyProtocol(Protocol):
    """Protocol covering public keys exposing ``public_bytes``."""

    def public_bytes(
        self,
        *,
        encoding: serialization.Encoding,
        format: serialization.PublicFormat,
    ) -> bytes:
        """Return the public key bytes in the requested encoding/format."""


class PrivateKeyProtocol(Protocol):
    """Protocol for private keys that can provide a matching public key."""

    def public_key(self) -> PublicKeyProtocol:
        """Return the associated public key object."""


def common_names(
    document: Mapping[str, object],
    defaults: Iterable[str] = ("localhost", "127.0.0.1", "gatekeeper"),
) -> list[str]:
    """Return the certificate names: *defaults* then ``gatekeeper_cns`` entries.

    Names are lowercased and trimmed; empty entries and repeats are dropped
    while keeping first-seen order.
    """
    raw = document.get(CNS_PROPERTY)
    configured: list[str]
    if isinstance(raw, str):
        configured = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        configured = [str(item) for item in raw]
    else:
        configured = []

    names: list[str] = []
    for candidate in [*defaults, *configured]:
        name = candidate.strip().lower()
        if name and name not in names:
            names.append(name)
    return names


class CertProvisioner:
    """Generate and inspect the gatekeeper certificate."""

    def __init__(self, settings: CertificateSettings | None = None) -> None:
        """Use *settings* for key size, validity and default names."""
        self._settings = settings or CertificateSettings()

    @property
    def settings(self) -> CertificateSettings:
        """Return the certificate settings in use."""
        return self._settings

    def common_names(self, document: Mapping[str, object]) -> list[str]:
        """Return the names for *document* using the configured defaults."""
        return common_names(document, self._settings.default_names)

    def should_regenerate(self, document: Mapping[str, object]) -> bool:
        """Return True when the recreate flag is set or key or cert is missing."""
        if document.get(RECREATE_FLAG):
            return True
        return not document.get(KEY_PROPERTY) or not document.get(CERT_PROPERTY)

    def generate(self, names: Sequence[str]) -> CertResult:
        """Create an RSA key and a self-signed certificate covering *names*."""
        if not names:
            return CertResult(code=1, error="No common names to certify.")
        invalid = [name for name in names if not _usable_name(name)]
        if invalid:
            return CertResult(code=2, error=f"Unusable names: {', '.join(invalid)}")
        if len(names[0]) > MAX_COMMON_NAME:
            return CertResult(
                code=3,
                error=f"Common name '{names[0]}' is longer than {MAX_COMMON_NAME} characters.",
            )

        key = rsa.generate_private_key(public_exponent=65537, key_size=self._settings.key_size)
        subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, names[0])])
        now = datetime.now(UTC)
        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=self._settings.valid_days))
            .add_extension(x509.SubjectAlternativeName(_san_entries(names)), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(key, hashes.SHA256())
        )
        key_pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")
        cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
        return CertResult(code=0, key=key_pem, cert=cert_pem)

    def provision(
        self,
        document: MutableMapping[str, object],
        names: Sequence[str],
        op: OperationScope | None = None,
    ) -> CertStatus:
        """Apply the regeneration gate and store new material on success.

        The recreate flag is consumed before the attempt. On failure the
        previous key and certificate stay in *document*.
        """
        if not self.should_regenerate(document):
            LOGGER.debug("Keeping the stored certificate.")
            return CertStatus.KEPT

        document.pop(RECREATE_FLAG, None)
        try:
            result = self._attempt(names)
        except CertGenerationFailure as exc:
            LOGGER.error("%s", exc)
            if op is not None:
                op.add_step("certificate.generate", status="failed", detail=str(exc))
            return CertStatus.FAILED

        document[KEY_PROPERTY] = result.key
        document[CERT_PROPERTY] = result.cert
        if op is not None:
            op.add_step("certificate.generate", detail=", ".join(names))
        return CertStatus.GENERATED

    def _attempt(self, names: Sequence[str]) -> CertResult:
        try:
            result = self.generate(names)
        except Exception as exc:  # noqa: BLE001 - reported as a recoverable failure
            raise CertGenerationFailure(f"Certificate generation failed: {exc}") from exc
        if result.code != 0:
            raise CertGenerationFailure(
                f"Certificate generation returned code {result.code}: {result.error}"
            )
        return result

    def inspect(self, document: Mapping[str, object]) -> CertificateInfo | None:
        """Decode the stored material; return None when absent or unreadable."""
        cert_pem = document.get(CERT_PROPERTY)
        if not isinstance(cert_pem, str) or not cert_pem:
            return None
        try:
            cert = x509.load_pem_x509_certificate(cert_pem.encode("ascii"))
        except ValueError:
            LOGGER.warning("Stored certificate cannot be decoded.")
            return None

        names: list[str] = []
        try:
            san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        except x509.ExtensionNotFound:
            san = None
        if san is not None:
            names.extend(san.get_values_for_type(x509.DNSName))
            names.extend(str(ip) for ip in san.get_values_for_type(x509.IPAddress))

        key_matches = False
        key_pem = document.get(KEY_PROPERTY)
        if isinstance(key_pem, str) and key_pem:
            try:
                private_key = serialization.load_pem_private_key(
                    key_pem.encode("ascii"), password=None
                )
            except (TypeError, ValueError):
                LOGGER.warning("Stored private key cannot be decoded.")
            else:
                key_matches = _public_keys_match(cert, cast(PrivateKeyProtocol, private_key))

        return CertificateInfo(
            subject=cert.subject.rfc4514_string(),
            names=tuple(names),
            not_valid_before=cert.not_valid_before_utc,
            not_valid_after=cert.not_valid_after_utc,
            key_matches=key_matches,
        )


def _usable_name(name: str) -> bool:
    if not name or not name.isascii():
        return False
    return not any(char.isspace() for char in name)


def _san_entries(names: Sequence[str]) -> list[x509.GeneralName]:
    entries: list[x509.GeneralName] = []
    for name in names:
        try:
            entries.append(x509.IPAddress(ipaddress.ip_address(name)))
        except ValueError:
            entries.append(x509.DNSName(name))
    return entries


def _public_keys_match(cert: x509.Certificate, private_key: PrivateKeyProtocol) -> bool:
    cert_bytes = cert.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return cert_bytes == key_bytes


__all__ = [
    "CERT_PROPERTY",
    "CNS_PROPERTY",
    "KEY_PROPERTY",
    "RECREATE_FLAG",
    "CertProvisioner",
    "CertResult",
    "CertStatus",
    "CertificateInfo",
    "common_names",
]
