"""Final persistence step of a provisioning run."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .archive import EncryptedArchive
from .certs import CERT_PROPERTY
from .contributors import ContributorRegistry
from .document import ConfigurationDocument
from .errors import ClientArchiveEntryWriteFailure, ConfigWriteFailure, DecryptionFailure
from .keys import stored_client_information
from .logging import OperationScope
from .store import ConfigStore
from .templates import TemplateEngine

LOGGER = logging.getLogger(__name__)

CLIENT_PASSWORD_PROPERTY = "gatekeeper_clientkeyspassword"
KEYS_ENTRY = "keys.txt"
CACERT_ENTRY = "cacert.pem"
STATUS_CONTENT = "EXIT_STATUS=0"
PRIVATE_DIRS = frozenset({"private"})


@dataclass
class WriteReport:
    """What the writer produced and which recoverable failures it absorbed."""

    config_written: bool = False
    rendered: list[Path] = field(default_factory=list)
    changed: list[Path] = field(default_factory=list)
    client_entries: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    status_written: bool = False


class ArtifactWriter:
    """Persist the document, render contributor templates and the client archive."""

    def __init__(
        self,
        *,
        store: ConfigStore,
        registry: ContributorRegistry,
        engine: TemplateEngine,
        destination_root: Path,
        client_archive_path: Path,
        status_path: Path,
        kdf_iterations: int,
    ) -> None:
        """Bind the writer to its collaborators and output locations."""
        self._store = store
        self._registry = registry
        self._engine = engine
        self._destination_root = destination_root
        self._client_archive_path = client_archive_path
        self._status_path = status_path
        self._kdf_iterations = kdf_iterations

    def clear_status(self) -> bool:
        """Remove a status sentinel left by an earlier run; return True if one existed."""
        try:
            self._status_path.unlink()
        except FileNotFoundError:
            return False
        LOGGER.debug("Removed stale status file %s", self._status_path)
        return True

    def write(
        self,
        *,
        password: str,
        document: ConfigurationDocument,
        render_properties: Mapping[str, object],
        session_values: Mapping[str, object],
        clientkeyspassword_snapshot: object | None,
        op: OperationScope | None = None,
    ) -> WriteReport:
        """Write every artifact of the run.

        ``render_properties`` is the document with path choices resolved;
        session values are layered over it for rendering. Template failures
        raise :class:`~nodeprov.errors.TemplateRenderError`; archive write
        failures are recorded in the report and the run continues.
        """
        report = WriteReport()

        report.config_written = self._store.serialize(password, document)
        if not report.config_written:
            failure = ConfigWriteFailure(f"Config archive {self._store.path} was not written.")
            report.failures.append(str(failure))
        _record(op, "write.config", report.config_written, str(self._store.path))

        context = {**dict(render_properties), **dict(session_values)}
        for contributor in self._registry:
            for relative in contributor.templates(render_properties):
                destination = self._destination_root / contributor.name / relative
                template = self._engine.template_name(contributor.name, relative)
                mode = 0o600 if PRIVATE_DIRS.intersection(Path(relative).parts) else 0o644
                changed = self._engine.render_to_path(template, destination, context, mode=mode)
                report.rendered.append(destination)
                if changed:
                    report.changed.append(destination)
        _record(op, "write.templates", True, f"{len(report.rendered)} files")

        self._write_client_archive(document, clientkeyspassword_snapshot, report, op)

        self._status_path.parent.mkdir(parents=True, exist_ok=True)
        self._status_path.write_text(STATUS_CONTENT, encoding="utf-8")
        report.status_written = True
        _record(op, "write.status", True, str(self._status_path))
        return report

    def _write_client_archive(
        self,
        document: ConfigurationDocument,
        snapshot: object | None,
        report: WriteReport,
        op: OperationScope | None,
    ) -> None:
        client_information = stored_client_information(document)
        if not client_information:
            return

        current = document.get(CLIENT_PASSWORD_PROPERTY)
        archive = EncryptedArchive(
            self._client_archive_path,
            str(current or ""),
            iterations=self._kdf_iterations,
        )
        if current != snapshot and archive.remove():
            LOGGER.info("Client key password changed; replaced %s", self._client_archive_path)

        entries = {
            KEYS_ENTRY: "\n".join(client_information),
            CACERT_ENTRY: str(document.get(CERT_PROPERTY) or ""),
        }
        for name, content in entries.items():
            try:
                archive.write_entry(name, content)
            except (OSError, DecryptionFailure) as exc:
                failure = ClientArchiveEntryWriteFailure(name, str(exc))
                LOGGER.error("Client key archive was not written: %s", failure)
                report.failures.append(str(failure))
                _record(op, f"write.client.{name}", False, str(failure))
                continue
            report.client_entries.append(name)
            _record(op, f"write.client.{name}", True, str(self._client_archive_path))


def _record(op: OperationScope | None, name: str, ok: bool, detail: str) -> None:
    if op is not None:
        op.add_step(name, status="success" if ok else "failed", detail=detail)


__all__ = ["ArtifactWriter", "WriteReport"]
