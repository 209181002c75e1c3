"""Tests for the nodeprov CLI."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import FIRST_RUN_ANSWERS, PASSWORD, ControllerFactory, ScriptedPrompter
from typer.testing import CliRunner, Result

from nodeprov import __version__
from nodeprov.cli import MASKED, app
from nodeprov.config import AppSettings
from nodeprov.exit_codes import ExitCode

pytestmark = pytest.mark.mutation_timeout

runner = CliRunner()


@pytest.fixture()
def cli_env(tmp_path: Path, settings: AppSettings) -> dict[str, str | None]:
    """Environment pointing the CLI at the same locations as the settings fixture."""
    return {
        "NODEPROV_CONFIG_FILE": str(tmp_path / "missing.yml"),
        "NODEPROV_DESTINATION_ROOT": str(settings.destination_root),
        "NODEPROV_CRYPTO__KDF_ITERATIONS": str(settings.crypto.kdf_iterations),
        "NODEPROV_CRYPTO__ADMIN_HASH_ROUNDS": str(settings.crypto.admin_hash_rounds),
        "NODEPROV_CERTIFICATE__KEY_SIZE": str(settings.certificate.key_size),
        "HOME": str(tmp_path / "home"),
        "DEFAULT_USER": "satoshi",
        "CFG_PASSWORD": None,
    }


@pytest.fixture()
def provisioned(make_controller: ControllerFactory) -> None:
    """Run the wizard once so that an archive exists."""
    make_controller(ScriptedPrompter(FIRST_RUN_ANSWERS)).run()


def _invoke(args: list[str], env: dict[str, str | None], **extra: str | None) -> Result:
    return runner.invoke(app, args, env={**env, **extra})


def _records(settings: AppSettings) -> list[dict[str, object]]:
    path = settings.logs_dir / "operations.jsonl"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_version_flag_reports_version() -> None:
    """--version prints the package version."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"nodeprov {__version__}" in result.stdout


def test_no_command_prints_help() -> None:
    """Invoking without a command shows the help text."""
    result = runner.invoke(app, [])

    assert result.exit_code == 0
    assert "run" in result.stdout
    assert "show" in result.stdout


def test_unattended_without_archive_exits_with_validation_code(
    cli_env: dict[str, str | None], settings: AppSettings
) -> None:
    """An unattended first run cannot ask anything and fails."""
    result = _invoke(["run", "--unattended"], cli_env, CFG_PASSWORD=PASSWORD)

    assert result.exit_code == int(ExitCode.VALIDATION)
    assert "missing required" in result.stdout
    record = _records(settings)[-1]
    assert record["command"] == "run"
    assert record["result"]["status"] == "error"  # type: ignore[index]


@pytest.mark.usefixtures("provisioned")
def test_unattended_rerun_succeeds(cli_env: dict[str, str | None], settings: AppSettings) -> None:
    """An unattended run with the password in the environment completes."""
    settings.status_path.unlink()

    result = _invoke(["run", "-r"], cli_env, CFG_PASSWORD=PASSWORD)

    assert result.exit_code == 0, result.stdout
    assert "create" in result.stdout
    assert "bitcoin/bitcoin.conf" in result.stdout
    assert settings.status_path.exists()
    record = _records(settings)[-1]
    assert record["result"]["status"] == "success"  # type: ignore[index]
    assert record["args"] == {"unattended": True, "destination": None}


@pytest.mark.usefixtures("provisioned")
def test_unattended_without_password_exits_with_validation_code(
    cli_env: dict[str, str | None],
) -> None:
    """Without CFG_PASSWORD an unattended run stops before decrypting."""
    result = _invoke(["run", "--unattended"], cli_env)

    assert result.exit_code == int(ExitCode.VALIDATION)
    assert "CFG_PASSWORD" in result.stdout


@pytest.mark.usefixtures("provisioned")
def test_wrong_password_exits_with_credentials_code(cli_env: dict[str, str | None]) -> None:
    """A password that does not open the archive fails with the credentials code."""
    result = _invoke(["run", "--unattended"], cli_env, CFG_PASSWORD="wrong")

    assert result.exit_code == int(ExitCode.CREDENTIALS)


@pytest.mark.usefixtures("provisioned")
def test_show_json_masks_secrets(cli_env: dict[str, str | None]) -> None:
    """show --json masks credentials and summarises the certificate."""
    result = _invoke(["show", "--json"], cli_env, CFG_PASSWORD=PASSWORD)

    assert result.exit_code == 0, result.stdout
    payload = json.loads(result.stdout)
    properties = payload["properties"]
    assert properties["net"] == "testnet"
    assert properties["gatekeeper_clientkeyspassword"] == MASKED
    assert properties["bitcoin_rpcpassword"] == MASKED
    assert properties["adminhash"] == MASKED
    assert properties["gatekeeper_keys"] == MASKED
    assert properties["gatekeeper_sslkey"] == MASKED
    assert "localhost" in payload["certificate"]["names"]
    assert payload["certificate"]["key_matches"] is True


@pytest.mark.usefixtures("provisioned")
def test_show_table_lists_properties(cli_env: dict[str, str | None]) -> None:
    """show renders the properties as a table."""
    result = _invoke(["show"], cli_env, CFG_PASSWORD=PASSWORD)

    assert result.exit_code == 0, result.stdout
    assert "gatekeeper_apiport" in result.stdout
    assert "clientsecret" not in result.stdout


def test_show_without_archive_fails(cli_env: dict[str, str | None]) -> None:
    """show needs an existing archive."""
    result = _invoke(["show"], cli_env, CFG_PASSWORD=PASSWORD)

    assert result.exit_code == int(ExitCode.ENVIRONMENT)
    assert "No configuration archive" in result.stdout


def test_invalid_settings_exit_with_environment_code(cli_env: dict[str, str | None]) -> None:
    """Unusable tool settings are reported before anything runs."""
    result = _invoke(["run", "--unattended"], cli_env, NODEPROV_CERTIFICATE__KEY_SIZE="1024")

    assert result.exit_code == int(ExitCode.ENVIRONMENT)


def test_destination_option_overrides_settings(
    cli_env: dict[str, str | None], tmp_path: Path
) -> None:
    """--destination relocates archives and logs."""
    destination = tmp_path / "elsewhere"

    result = _invoke(
        ["run", "--unattended", "--destination", str(destination)],
        cli_env,
        CFG_PASSWORD=PASSWORD,
    )

    assert result.exit_code == int(ExitCode.VALIDATION)
    assert (destination / "logs" / "operations.jsonl").exists()
