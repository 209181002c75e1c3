"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from nodeprov.certs import CertProvisioner
from nodeprov.config import AppSettings, load_settings
from nodeprov.contributors import default_registry
from nodeprov.controller import ProvisioningController
from nodeprov.help import HelpContent
from nodeprov.keys import KeyProvisioner
from nodeprov.prompts import Choice, Prompter, PromptSpec
from nodeprov.session import SessionContext
from nodeprov.store import ConfigStore
from nodeprov.templates import TemplateEngine
from nodeprov.writer import ArtifactWriter

PASSWORD = "abc123"

# Answers for a complete first wizard run; everything else takes its default.
FIRST_RUN_ANSWERS: dict[str, object] = {
    "password0": PASSWORD,
    "password1": PASSWORD,
    "enablehelp": False,
    "gatekeeper_clientkeyspassword": "clientsecret",
    "bitcoin_rpcpassword": "rpcsecret",
}


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


class ScriptedPrompter(Prompter):
    """Prompter answering from a script; unscripted fields take their default.

    A scripted value that is a list of answers is consumed one answer per ask,
    except for checkbox fields where a list is the answer itself. Password
    fields without a stored default must be scripted.
    """

    def __init__(self, answers: Mapping[str, object] | None = None) -> None:
        self._answers: dict[str, list[object]] = {}
        for name, value in (answers or {}).items():
            self.script(name, value)
        self.asked: list[PromptSpec] = []
        self.notifications: list[str] = []

    def script(self, name: str, value: object) -> None:
        """Queue *value* as the next answer for *name*."""
        self._answers.setdefault(name, []).append(value)

    def script_sequence(self, name: str, values: Sequence[object]) -> None:
        """Queue several answers for *name*, asked in turn."""
        for value in values:
            self.script(name, value)

    @property
    def asked_names(self) -> list[str]:
        return [spec.name for spec in self.asked]

    def message_for(self, name: str) -> str:
        for spec in self.asked:
            if spec.name == name:
                return spec.message
        raise KeyError(name)

    def notify(self, message: str) -> None:
        self.notifications.append(message)

    def read(self, spec: PromptSpec, default: object, choices: Sequence[Choice]) -> object:
        self.asked.append(spec)
        queued = self._answers.get(spec.name)
        if queued:
            return queued.pop(0) if len(queued) > 1 else queued[0]
        if spec.kind == "password" and not default:
            raise AssertionError(f"Password prompt '{spec.name}' was not scripted.")
        if spec.kind == "checkbox":
            return [choice.value for choice in choices if choice.checked]
        if spec.kind == "confirm":
            return bool(default)
        if spec.kind == "list" and default is None and choices:
            return choices[0].value
        return "" if default is None else default


class SilentPrompter(Prompter):
    """Prompter that fails the test when anything is asked."""

    def notify(self, message: str) -> None:
        raise AssertionError(f"Unexpected notification: {message}")

    def read(self, spec: PromptSpec, default: object, choices: Sequence[Choice]) -> object:
        raise AssertionError(f"Unexpected prompt: {spec.name}")


@pytest.fixture()
def settings(tmp_path: Path) -> AppSettings:
    """Settings rooted in a temporary directory with cheap crypto parameters."""
    return load_settings(
        config_file=tmp_path / "missing.yml",
        env={},
        overrides={
            "destination_root": str(tmp_path / "data"),
            "crypto": {"kdf_iterations": 1000, "admin_hash_rounds": 4},
            "certificate": {"key_size": 2048, "valid_days": 30},
        },
    )


@pytest.fixture()
def store(settings: AppSettings) -> ConfigStore:
    """Config store bound to the temporary destination root."""
    return ConfigStore(
        settings.config_archive_path,
        iterations=settings.crypto.kdf_iterations,
        hash_rounds=settings.crypto.admin_hash_rounds,
    )


@pytest.fixture()
def session_env(tmp_path: Path) -> dict[str, str]:
    """Environment used to build session contexts."""
    return {"HOME": str(tmp_path / "home"), "DEFAULT_USER": "satoshi"}


ControllerFactory = Callable[..., ProvisioningController]


@pytest.fixture()
def make_controller(
    settings: AppSettings,
    store: ConfigStore,
    session_env: dict[str, str],
) -> ControllerFactory:
    """Return a factory building a controller around the given prompter."""

    def _factory(
        prompter: Prompter,
        *,
        env: Mapping[str, str] | None = None,
        help_loader: Callable[[], HelpContent] | None = None,
        certs: CertProvisioner | None = None,
        templates_dir: Path | None = None,
    ) -> ProvisioningController:
        registry = default_registry()
        writer = ArtifactWriter(
            store=store,
            registry=registry,
            engine=TemplateEngine.with_overrides(templates_dir),
            destination_root=settings.destination_root,
            client_archive_path=settings.client_archive_path,
            status_path=settings.status_path,
            kdf_iterations=settings.crypto.kdf_iterations,
        )
        return ProvisioningController(
            store=store,
            keys=KeyProvisioner(),
            certs=certs or CertProvisioner(settings.certificate),
            registry=registry,
            writer=writer,
            prompter=prompter,
            session=SessionContext.from_env({**session_env, **dict(env or {})}),
            help_loader=help_loader,
        )

    return _factory
