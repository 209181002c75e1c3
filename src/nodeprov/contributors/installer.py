"""Installer: container orchestration mode, service user and start scripts."""
from __future__ import annotations

from collections.abc import Mapping

from ..prompts import Answers, Choice, PromptSpec
from ..validators import trim_filter, username
from .base import Contributor, WizardContext

DOCKER_MODES = (
    Choice("compose", "docker compose"),
    Choice("swarm", "docker swarm"),
)


class InstallerContributor(Contributor):
    """Produces the compose file and the start and stop scripts."""

    identifier = "900-installer"
    name = "installer"

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        def different_user(answers: Answers) -> bool:
            return bool(answers.get("run_as_different_user"))

        return [
            PromptSpec(
                name="docker_mode",
                message=context.message(
                    "What docker mode: docker swarm or docker compose?", "docker_mode"
                ),
                kind="list",
                default=context.default_or("docker_mode", "compose"),
                choices=DOCKER_MODES,
            ),
            PromptSpec(
                name="run_as_different_user",
                message=context.message("Run as a different user?", "run_as_different_user"),
                kind="confirm",
                default=context.default_or("run_as_different_user", True),
            ),
            PromptSpec(
                name="username",
                message=context.message("What username will the services run under?", "username"),
                default=context.default_or(
                    "username", context.session.default_username or "nodeprov"
                ),
                filter=trim_filter,
                validate=username,
                when=different_user,
            ),
        ]

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        return ["docker-compose.yaml", "start.sh", "stop.sh"]


__all__ = ["DOCKER_MODES", "InstallerContributor"]
