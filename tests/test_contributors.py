"""Tests for the contributor registry and the built-in contributors."""
from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import pytest
from conftest import ScriptedPrompter

from nodeprov.contributors import (
    Contributor,
    ContributorRegistry,
    GatekeeperContributor,
    InstallerContributor,
    LightningContributor,
    OtsclientContributor,
    WizardContext,
    default_registry,
)
from nodeprov.help import HelpContent
from nodeprov.prompts import PROMPT_PREFIX, PromptSpec
from nodeprov.session import SessionContext


class _Stub(Contributor):
    def __init__(self, identifier: str, name: str, paths: tuple[str, ...] = ()) -> None:
        self.identifier = identifier
        self.name = name
        self.path_properties = paths

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        return [PromptSpec(name=f"{self.name}_value", message=self.name)]

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        return []


@pytest.fixture()
def session(tmp_path: Path) -> SessionContext:
    """Session with predictable directories."""
    return SessionContext.from_env(
        {
            "HOME": str(tmp_path / "home"),
            "SETUP_DIR": "/opt/setup",
            "DEFAULT_DATADIR_BASE": "/data",
            "DEFAULT_USER": "satoshi",
        }
    )


def _names(specs: list[PromptSpec]) -> list[str]:
    return [spec.name for spec in specs]


def test_registry_iterates_by_identifier() -> None:
    """Contributors run in identifier order regardless of registration order."""
    registry = ContributorRegistry([_Stub("030-c", "c"), _Stub("010-a", "a"), _Stub("020-b", "b")])

    assert registry.names == ["a", "b", "c"]
    assert len(registry) == 3


@pytest.mark.parametrize(
    "duplicate",
    [_Stub("010-a", "other"), _Stub("099-z", "a"), _Stub("", "nameless"), _Stub("050-x", "")],
)
def test_registry_rejects_conflicting_contributors(duplicate: Contributor) -> None:
    """Duplicate identifiers or names and blank fields are rejected."""
    registry = ContributorRegistry([_Stub("010-a", "a")])

    with pytest.raises(ValueError):
        registry.register(duplicate)


def test_registry_collects_path_properties_once() -> None:
    """Path properties are gathered in registry order without duplicates."""
    registry = ContributorRegistry(
        [_Stub("020-b", "b", ("b_datapath", "shared")), _Stub("010-a", "a", ("shared",))]
    )

    assert registry.path_properties() == ["shared", "b_datapath"]


def test_default_registry_order() -> None:
    """Built-in contributors are ordered with the installer last."""
    registry = default_registry()

    assert registry.names == [
        "features",
        "gatekeeper",
        "traefik",
        "proxy",
        "bitcoin",
        "lightning",
        "otsclient",
        "installer",
    ]


def test_get_default_prefers_document_over_session(session: SessionContext) -> None:
    """Stored properties win over session values of the same name."""
    context = WizardContext(document={"setup_dir": "/stored"}, session=session)

    assert context.get_default("setup_dir") == "/stored"
    assert context.get_default("default_username") == "satoshi"
    assert context.get_default("unknown") is None
    assert context.default_or("unknown", 7) == 7


def test_feature_choices_reflect_stored_selection(session: SessionContext) -> None:
    """Stored features are pre-checked."""
    context = WizardContext(document={"features": ["otsclient"]}, session=session)

    checked = {choice.value: choice.checked for choice in context.feature_choices()}

    assert checked == {"lightning": False, "otsclient": True}
    assert context.is_checked("features", "otsclient") is True
    assert context.is_checked("net", "otsclient") is False


def test_message_appends_help_when_enabled(session: SessionContext) -> None:
    """Messages carry the prompt prefix and, when enabled, the topic help."""
    help_content = HelpContent({"net": "Pick one."}, enabled=True)
    context = WizardContext(document={}, session=session, help=help_content)

    assert context.message("Network?", "net") == f"{PROMPT_PREFIX}Network?\n\nPick one.\n\n"
    assert WizardContext(document={}, session=session).message("Network?", "net") == (
        f"{PROMPT_PREFIX}Network?"
    )


def test_datapath_choices_and_custom_follow_up(session: SessionContext) -> None:
    """A custom data path choice triggers the follow-up prompt."""
    context = WizardContext(document={}, session=session)
    specs = OtsclientContributor().prompts(context)
    prompter = ScriptedPrompter(
        {
            "features": ["otsclient"],
            "otsclient_datapath": "_custom",
            "otsclient_datapath_custom": " /mnt/ots ",
        }
    )

    answers = dict(prompter.ask([*default_registry().prompts(context)[0][1], *specs]))

    choices = [choice.value for choice in specs[0].resolve_choices({})]
    assert choices == ["/opt/setup/otsclient", "/data/.nodeprov/otsclient", "_custom"]
    assert answers["otsclient_datapath"] == "_custom"
    assert answers["otsclient_datapath_custom"] == "/mnt/ots"


def test_feature_prompts_skipped_when_feature_not_selected(session: SessionContext) -> None:
    """Lightning questions are elided unless the feature is selected."""
    context = WizardContext(document={}, session=session)
    specs = LightningContributor().prompts(context)

    assert ScriptedPrompter().ask(specs) == []

    features = default_registry().prompts(context)[0][1]
    answers = dict(ScriptedPrompter({"features": ["lightning"]}).ask([*features, *specs]))
    assert answers["lightning_nodename"] == session.generated_nodename
    assert answers["lightning_nodecolor"] == session.generated_color
    assert answers["lightning_datapath"] == "/opt/setup/lightning"
    assert "lightning_datapath_custom" not in answers


def test_feature_gating_uses_stored_features(session: SessionContext) -> None:
    """A feature selected in an earlier run enables its prompts without a new answer."""
    context = WizardContext(document={"features": ["lightning"]}, session=session)

    answered = [name for name, _ in ScriptedPrompter().ask(LightningContributor().prompts(context))]

    assert answered[:2] == ["lightning_nodename", "lightning_nodecolor"]


def test_gatekeeper_recreate_prompts_need_existing_material(session: SessionContext) -> None:
    """Recreate confirmations appear only when keys or certificate exist."""
    empty = _names(GatekeeperContributor().prompts(WizardContext(document={}, session=session)))
    stored = _names(
        GatekeeperContributor().prompts(
            WizardContext(
                document={
                    "gatekeeper_keys": {"config_entries": ["entry"]},
                    "gatekeeper_sslkey": "KEY",
                    "gatekeeper_sslcert": "CERT",
                },
                session=session,
            )
        )
    )

    assert "gatekeeper_recreatekeys" not in empty
    assert "gatekeeper_recreatecert" not in empty
    assert "gatekeeper_recreatekeys" in stored
    assert "gatekeeper_recreatecert" in stored


def test_gatekeeper_templates_include_certificate_files_when_present() -> None:
    """Certificate and key files are rendered only once both exist."""
    contributor = GatekeeperContributor()

    assert "certs/cert.pem" not in contributor.templates({})
    assert contributor.templates({"gatekeeper_sslkey": "K", "gatekeeper_sslcert": "C"})[-2:] == [
        "certs/cert.pem",
        "private/key.pem",
    ]


def test_gatekeeper_port_prompt_reasks_invalid_values(session: SessionContext) -> None:
    """An invalid port is reported and asked again."""
    context = WizardContext(document={}, session=session)
    spec = GatekeeperContributor().prompts(context)[0]
    prompter = ScriptedPrompter()
    prompter.script_sequence("gatekeeper_apiport", ["0", "8080"])

    assert prompter.ask_one(spec) == 8080
    assert prompter.notifications == ["Port must be between 1 and 65535"]


def test_installer_username_only_for_different_user(session: SessionContext) -> None:
    """The service user is asked only when running as a different user."""
    context = WizardContext(document={}, session=session)
    specs = InstallerContributor().prompts(context)

    same_user = dict(ScriptedPrompter({"run_as_different_user": False}).ask(specs))
    other_user = dict(ScriptedPrompter().ask(specs))

    assert "username" not in same_user
    assert other_user["username"] == "satoshi"
    assert other_user["docker_mode"] == "compose"


def test_feature_templates_follow_selection() -> None:
    """Feature contributors render nothing unless selected."""
    assert LightningContributor().templates({"features": []}) == []
    assert LightningContributor().templates({"features": ["lightning"]}) == ["config"]
    assert OtsclientContributor().templates({}) == []
    assert OtsclientContributor().templates({"features": ["otsclient"]}) == ["env.properties"]
