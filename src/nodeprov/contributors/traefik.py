"""Reverse proxy in front of the gatekeeper."""
from __future__ import annotations

from collections.abc import Mapping

from ..prompts import PromptSpec
from ..validators import int_filter, port
from .base import Contributor, WizardContext, datapath_prompts


class TraefikContributor(Contributor):
    """Prompts and templates for the reverse proxy."""

    identifier = "030-traefik"
    name = "traefik"
    path_properties = ("traefik_datapath",)

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        return [
            PromptSpec(
                name="traefik_http_port",
                message=context.message("HTTP port of the reverse proxy", "traefik_http_port"),
                default=context.default_or("traefik_http_port", 80),
                filter=int_filter,
                validate=port,
            ),
            PromptSpec(
                name="traefik_https_port",
                message=context.message("HTTPS port of the reverse proxy", "traefik_https_port"),
                default=context.default_or("traefik_https_port", 443),
                filter=int_filter,
                validate=port,
            ),
            *datapath_prompts(context, "traefik_datapath", "traefik", "reverse proxy"),
        ]

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        return ["traefik.toml", "htpasswd"]


__all__ = ["TraefikContributor"]
