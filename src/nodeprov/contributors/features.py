"""Optional service selection and network choice."""
from __future__ import annotations

from collections.abc import Mapping

from ..prompts import Choice, PromptSpec
from .base import Contributor, WizardContext

NETWORKS = (
    Choice("mainnet", "Main network"),
    Choice("testnet", "Test network"),
    Choice("regtest", "Regression test network"),
)


class FeaturesContributor(Contributor):
    """Ask which optional services to run and on which network."""

    identifier = "010-features"
    name = "features"

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        return [
            PromptSpec(
                name="features",
                message=context.message("What features do you want to add?", "features"),
                kind="checkbox",
                choices=context.feature_choices(),
            ),
            PromptSpec(
                name="net",
                message=context.message("Which network do you want to use?", "net"),
                kind="list",
                default=context.default_or("net", "testnet"),
                choices=NETWORKS,
            ),
        ]

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        return []


__all__ = ["NETWORKS", "FeaturesContributor"]
