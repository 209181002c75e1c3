"""The provisioning state machine.

A run moves through these states, each recorded as a step of the operation
log::

    init -> password -> document -> schema -> wizard | passthrough
         -> secrets -> write

Fatal errors (:class:`~nodeprov.errors.FatalProvisioningError`) propagate to
the caller before anything is written. Recoverable failures are absorbed and
reported in the :class:`RunResult`.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from rich.console import Console

from . import schema
from .certs import CertProvisioner, CertStatus
from .contributors import ContributorRegistry, WizardContext
from .document import ConfigurationDocument, merge_answers, resolve_custom_paths
from .errors import MissingRequiredPropertyUnattended, PasswordUnavailable
from .help import DISABLED, HelpContent
from .keys import KeyProvisioner
from .logging import OperationScope
from .prompts import Prompter, PromptSpec
from .session import PASSWORD_ENV, SessionContext
from .store import ConfigStore
from .writer import CLIENT_PASSWORD_PROPERTY, ArtifactWriter, WriteReport

LOGGER = logging.getLogger(__name__)

NEW_OPTION_MARKER = " (⚠ new option ⚠)"
ENABLE_HELP = "enablehelp"

HelpLoader = Callable[[], HelpContent]


@dataclass
class RunResult:
    """Outcome of a completed run."""

    created: bool
    unattended: bool
    missing: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    keys_regenerated: bool = False
    cert_status: CertStatus = CertStatus.KEPT
    report: WriteReport = field(default_factory=WriteReport)


class ProvisioningController:
    """Drive one provisioning run from password resolution to written artifacts."""

    def __init__(
        self,
        *,
        store: ConfigStore,
        keys: KeyProvisioner,
        certs: CertProvisioner,
        registry: ContributorRegistry,
        writer: ArtifactWriter,
        prompter: Prompter,
        session: SessionContext,
        help_loader: HelpLoader | None = None,
        console: Console | None = None,
    ) -> None:
        """Wire the controller to its collaborators."""
        self._store = store
        self._keys = keys
        self._certs = certs
        self._registry = registry
        self._writer = writer
        self._prompter = prompter
        self._session = session
        self._help_loader = help_loader or HelpContent.load_builtin
        self._console = console

    @property
    def session(self) -> SessionContext:
        """Return the session of this run."""
        return self._session

    def run(self, *, unattended: bool = False, op: OperationScope | None = None) -> RunResult:
        """Execute the full run; raise a fatal error before any write on failure."""
        if self._writer.clear_status():
            _step(op, "init", "removed stale status file")
        else:
            _step(op, "init")

        created = not self._store.exists()
        document, password = self._obtain_document(created=created, unattended=unattended)
        _step(op, "password", "new archive" if created else "existing archive")

        self._session.configuration_password = password
        self._store.apply_admin_hash(document, password)
        _step(op, "document", f"{len(document)} properties")

        report = schema.check(document)
        for warning in report.warnings:
            LOGGER.warning(warning)
        _step(op, "schema", f"{len(report.missing)} missing")

        if unattended and report.missing:
            _step(op, "unattended", ", ".join(report.missing), status="failed")
            raise MissingRequiredPropertyUnattended(report.missing)

        self._session.clientkeyspassword_snapshot = document.get(CLIENT_PASSWORD_PROPERTY)
        if unattended:
            _step(op, "passthrough")
        else:
            self._session.mark_properties = report.missing
            asked = self._run_wizard(document)
            _step(op, "wizard", f"{asked} answers")

        keys_regenerated = self._keys.provision(document)
        _step(op, "keys", "regenerated" if keys_regenerated else "kept")

        self._session.cns = tuple(self._certs.common_names(document))
        if self._certs.should_regenerate(document):
            self._say("[bold green]Generating gatekeeper cert. This may take a while.[/bold green]")
        cert_status = self._certs.provision(document, list(self._session.cns), op)
        if cert_status is CertStatus.FAILED:
            self._say("[bold red]error! Gatekeeper cert was not created[/bold red]")
        _step(op, "certificate", cert_status.value)

        render_properties = resolve_custom_paths(document, self._registry.path_properties())
        write_report = self._writer.write(
            password=password,
            document=document,
            render_properties=render_properties,
            session_values=self._session.render_values(),
            clientkeyspassword_snapshot=self._session.clientkeyspassword_snapshot,
            op=op,
        )
        for failure in write_report.failures:
            self._say(f"[bold red]error! {failure}[/bold red]")

        return RunResult(
            created=created,
            unattended=unattended,
            missing=report.missing,
            warnings=report.warnings,
            keys_regenerated=keys_regenerated,
            cert_status=cert_status,
            report=write_report,
        )

    def _obtain_document(
        self, *, created: bool, unattended: bool
    ) -> tuple[ConfigurationDocument, str]:
        if created:
            if unattended:
                missing = schema.check({}).missing
                raise MissingRequiredPropertyUnattended(missing)
            return self._store.create_with_new_password(self._prompter)

        override = self._session.password_override
        if unattended and not override:
            raise PasswordUnavailable(
                f"No configuration password available; set {PASSWORD_ENV} or run interactively."
            )
        password = self._store.resolve_password(self._prompter, override)
        return self._store.decrypt(password), password

    def _run_wizard(self, document: ConfigurationDocument) -> int:
        context = WizardContext(document=document, session=self._session)
        enable_help = self._prompter.ask_one(
            PromptSpec(
                name=ENABLE_HELP,
                message=context.message("Enable help?", ENABLE_HELP),
                kind="confirm",
                default=context.default_or(ENABLE_HELP, True),
            )
        )
        document[ENABLE_HELP] = bool(enable_help)
        context.help = self._help_loader() if document[ENABLE_HELP] else DISABLED

        marked = set(self._session.mark_properties)
        specs: list[PromptSpec] = []
        for _contributor, contributed in self._registry.prompts(context):
            for spec in contributed:
                if spec.name in marked:
                    spec = spec.with_message(spec.message + NEW_OPTION_MARKER)
                specs.append(spec)

        answers = self._prompter.ask(specs)
        merge_answers(document, answers)
        return len(answers)

    def _say(self, message: str) -> None:
        if self._console is not None:
            self._console.print(message)


def _step(
    op: OperationScope | None, name: str, detail: str | None = None, *, status: str = "success"
) -> None:
    if op is not None:
        op.add_step(name, status=status, detail=detail)


__all__ = ["NEW_OPTION_MARKER", "ProvisioningController", "RunResult"]
