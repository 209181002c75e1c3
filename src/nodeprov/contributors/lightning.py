"""Lightning node, asked only when the feature is selected."""
from __future__ import annotations

from collections.abc import Mapping

from ..prompts import Answers, PromptSpec
from ..validators import color, ip_or_fqdn, node_name, optional, trim_filter
from .base import Contributor, WizardContext, datapath_prompts

FEATURE = "lightning"


class LightningContributor(Contributor):
    """Node alias, colour, announcement and data path of the lightning node."""

    identifier = "060-lightning"
    name = "lightning"
    path_properties = ("lightning_datapath",)

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        def enabled(answers: Answers) -> bool:
            return context.feature_enabled(answers, FEATURE)

        return [
            PromptSpec(
                name="lightning_nodename",
                message=context.message("What name has your lightning node?", "lightning_nodename"),
                default=context.default_or(
                    "lightning_nodename", context.session.generated_nodename
                ),
                filter=trim_filter,
                validate=node_name,
                when=enabled,
            ),
            PromptSpec(
                name="lightning_nodecolor",
                message=context.message(
                    "What color has your lightning node?", "lightning_nodecolor"
                ),
                default=context.default_or(
                    "lightning_nodecolor", context.session.generated_color
                ),
                filter=trim_filter,
                validate=color,
                when=enabled,
            ),
            PromptSpec(
                name="lightning_announce",
                message=context.message(
                    "Announce your lightning node to the network?", "lightning_announce"
                ),
                kind="confirm",
                default=context.default_or("lightning_announce", False),
                when=enabled,
            ),
            PromptSpec(
                name="lightning_external_ip",
                message=context.message(
                    "External IP address or domain of your lightning node", "lightning_external_ip"
                ),
                default=context.default_or("lightning_external_ip", ""),
                filter=trim_filter,
                validate=optional(ip_or_fqdn),
                when=enabled,
            ),
            *datapath_prompts(
                context, "lightning_datapath", "lightning", "lightning", when=enabled
            ),
        ]

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        features = properties.get("features")
        if isinstance(features, list) and FEATURE in features:
            return ["config"]
        return []


__all__ = ["LightningContributor"]
