"""Proxy service holding the node database."""
from __future__ import annotations

from collections.abc import Mapping

from ..prompts import PromptSpec
from .base import Contributor, WizardContext, datapath_prompts


class ProxyContributor(Contributor):
    """Data path and environment of the proxy."""

    identifier = "040-proxy"
    name = "proxy"
    path_properties = ("proxy_datapath",)

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        return datapath_prompts(context, "proxy_datapath", "proxy", "proxy")

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        return ["env.properties"]


__all__ = ["ProxyContributor"]
