"""OpenTimestamps client, asked only when the feature is selected."""
from __future__ import annotations

from collections.abc import Mapping

from ..prompts import Answers, PromptSpec
from .base import Contributor, WizardContext, datapath_prompts

FEATURE = "otsclient"


class OtsclientContributor(Contributor):
    """Data path and environment of the timestamping client."""

    identifier = "070-otsclient"
    name = "otsclient"
    path_properties = ("otsclient_datapath",)

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        def enabled(answers: Answers) -> bool:
            return context.feature_enabled(answers, FEATURE)

        return datapath_prompts(
            context, "otsclient_datapath", "otsclient", "timestamping client", when=enabled
        )

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        features = properties.get("features")
        if isinstance(features, list) and FEATURE in features:
            return ["env.properties"]
        return []


__all__ = ["OtsclientContributor"]
