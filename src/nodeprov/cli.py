"""Typer-powered command line interface for ``nodeprov``.

``nodeprov run`` performs a provisioning run: it opens (or creates) the
encrypted configuration archive, walks the operator through the contributor
wizard, provisions API keys and the gatekeeper certificate, and writes every
artifact below the destination root. ``nodeprov show`` prints a masked
summary of the stored configuration.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .certs import CERT_PROPERTY, CertProvisioner
from .config import AppSettings, ConfigError, load_settings
from .contributors import ContributorRegistry, default_registry
from .controller import ProvisioningController
from .errors import FatalProvisioningError
from .exit_codes import ExitCode
from .keys import KeyProvisioner
from .logging import OperationScope, StructuredLogger
from .prompts import TyperPrompter
from .session import SessionContext
from .store import ConfigStore
from .templates import TemplateEngine
from .writer import ArtifactWriter

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to nodeprov's YAML settings file.",
)

MASKED = "***"
_SECRET_MARKERS = ("password", "adminhash", "sslkey", "_keys", "secret")

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Node provisioning CLI.

        Maintains the encrypted configuration archive, the gatekeeper API keys
        and certificate, and renders the configuration of every service.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    settings: AppSettings
    logger: StructuredLogger
    templates: TemplateEngine
    store: ConfigStore
    registry: ContributorRegistry
    keys: KeyProvisioner
    certs: CertProvisioner
    writer: ArtifactWriter


def _build_runtime(
    config_file: Path | None,
    overrides: Mapping[str, object] | None = None,
) -> RuntimeContext:
    try:
        settings = load_settings(config_file=config_file, overrides=overrides)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=int(ExitCode.ENVIRONMENT)) from exc

    logger = StructuredLogger(settings.logs_dir)
    templates = TemplateEngine.with_overrides(settings.templates_dir)
    store = ConfigStore(
        settings.config_archive_path,
        iterations=settings.crypto.kdf_iterations,
        hash_rounds=settings.crypto.admin_hash_rounds,
    )
    registry = default_registry()
    writer = ArtifactWriter(
        store=store,
        registry=registry,
        engine=templates,
        destination_root=settings.destination_root,
        client_archive_path=settings.client_archive_path,
        status_path=settings.status_path,
        kdf_iterations=settings.crypto.kdf_iterations,
    )
    return RuntimeContext(
        settings=settings,
        logger=logger,
        templates=templates,
        store=store,
        registry=registry,
        keys=KeyProvisioner(),
        certs=CertProvisioner(settings.certificate),
        writer=writer,
    )


def _ensure_runtime(
    ctx: typer.Context,
    config_file: Path | None,
    overrides: Mapping[str, object] | None = None,
) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext) and not overrides:
        return runtime
    if config_file is None:
        config_file = ctx.meta.get("nodeprov.config_file")
    runtime = _build_runtime(config_file, overrides)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the nodeprov version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    ctx.meta["nodeprov.config_file"] = config_file
    if version:
        console.print(f"nodeprov {__version__}")
        raise typer.Exit(code=0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = 2,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[bold red]{message}[/bold red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _relative(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


@app.command()
def run(
    ctx: typer.Context,
    unattended: bool = typer.Option(
        False,
        "--unattended",
        "-r",
        help="Skip the wizard; fail instead of prompting when input is required.",
    ),
    destination: Path | None = typer.Option(
        None,
        "--destination",
        file_okay=False,
        help="Override the destination root for archives and rendered files.",
    ),
    templates_dir: Path | None = typer.Option(
        None,
        "--templates-dir",
        file_okay=False,
        help="Directory whose templates shadow the built-in ones.",
    ),
) -> None:
    """Run the provisioning wizard and write every artifact."""
    overrides: dict[str, object] = {}
    if destination is not None:
        overrides["destination_root"] = str(destination)
    if templates_dir is not None:
        overrides["templates_dir"] = str(templates_dir)
    runtime = _ensure_runtime(ctx, None, overrides)
    settings = runtime.settings

    session = SessionContext.from_env()
    controller = ProvisioningController(
        store=runtime.store,
        keys=runtime.keys,
        certs=runtime.certs,
        registry=runtime.registry,
        writer=runtime.writer,
        prompter=TyperPrompter(console),
        session=session,
        console=console,
    )

    with runtime.logger.operation(
        "run",
        args={"unattended": unattended, "destination": destination},
        target={"kind": "config", "path": settings.config_archive_path},
    ) as op:
        try:
            result = controller.run(unattended=unattended, op=op)
        except FatalProvisioningError as exc:
            _command_error(op, str(exc), rc=int(exc.exit_code))

        root = settings.destination_root
        console.print(f"[green]   create[/green] {_relative(settings.config_archive_path, root)}")
        for path in result.report.rendered:
            console.print(f"[green]   create[/green] {_relative(path, root)}")
        if result.report.client_entries:
            console.print(
                f"[green]   create[/green] {_relative(settings.client_archive_path, root)}"
            )

        context = {
            "created": result.created,
            "keys_regenerated": result.keys_regenerated,
            "certificate": result.cert_status.value,
            "rendered": len(result.report.rendered),
        }
        warnings = [*result.warnings, *result.report.failures]
        if result.report.failures:
            op.warning(
                "Provisioning completed with failures.",
                warnings=warnings,
                errors=result.report.failures,
                changed=len(result.report.changed),
                context=context,
            )
        else:
            op.success(
                "Provisioning complete.",
                changed=len(result.report.changed),
                warnings=warnings,
                context=context,
            )


@app.command()
def show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit the summary as JSON instead of a table.",
    ),
) -> None:
    """Display the stored configuration with secrets masked."""
    runtime = _get_runtime(ctx)
    store = runtime.store

    with runtime.logger.operation(
        "show",
        args={"json": json_output},
        target={"kind": "config", "path": store.path},
    ) as op:
        if not store.exists():
            _command_error(
                op,
                f"No configuration archive at {store.path}; run 'nodeprov run' first.",
                rc=int(ExitCode.ENVIRONMENT),
            )
        session = SessionContext.from_env()
        try:
            password = store.resolve_password(TyperPrompter(console), session.password_override)
            document = store.decrypt(password)
        except FatalProvisioningError as exc:
            _command_error(op, str(exc), rc=int(exc.exit_code))
        op.add_step("decrypt", detail=f"{len(document)} properties")

        properties = {key: _mask(key, document[key]) for key in sorted(document)}
        info = runtime.certs.inspect(document)
        certificate = info.to_dict() if info is not None else None

        if json_output:
            console.print_json(data={"properties": properties, "certificate": certificate})
            op.success("Reported configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Property", style="bold")
        table.add_column("Value")
        for key, value in properties.items():
            if key == CERT_PROPERTY:
                continue
            if isinstance(value, (dict, list)):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)
        console.print(table)

        if certificate is not None:
            cert_table = Table(show_header=True, header_style="bold magenta")
            cert_table.add_column("Certificate", style="bold")
            cert_table.add_column("Value")
            cert_table.add_row("subject", str(certificate["subject"]))
            cert_table.add_row("names", ", ".join(certificate["names"]))  # type: ignore[arg-type]
            cert_table.add_row("not valid after", str(certificate["not_valid_after"]))
            cert_table.add_row("key matches", "yes" if certificate["key_matches"] else "no")
            console.print(cert_table)
        op.success("Rendered configuration table.", changed=0)


def _mask(key: str, value: object) -> object:
    if any(marker in key.lower() for marker in _SECRET_MARKERS) and value not in (None, ""):
        return MASKED
    return value


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
