"""Gatekeeper: API port, certificate names, client key password and data path."""
from __future__ import annotations

from collections.abc import Mapping

from ..certs import CERT_PROPERTY, KEY_PROPERTY
from ..keys import stored_config_entries
from ..prompts import PromptSpec
from ..validators import hostname_list, int_filter, not_empty, port, trim_filter
from .base import Contributor, WizardContext, datapath_prompts

DEFAULT_API_PORT = 2009


class GatekeeperContributor(Contributor):
    """Prompts and templates for the API gatekeeper."""

    identifier = "020-gatekeeper"
    name = "gatekeeper"
    path_properties = ("gatekeeper_datapath",)

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        prompts = [
            PromptSpec(
                name="gatekeeper_apiport",
                message=context.message("Gatekeeper port", "gatekeeper_apiport"),
                default=context.default_or("gatekeeper_apiport", DEFAULT_API_PORT),
                filter=int_filter,
                validate=port,
            ),
            PromptSpec(
                name="gatekeeper_cns",
                message=context.message(
                    "Gatekeeper cert CNs (comma-separated host names or IPs)", "gatekeeper_cns"
                ),
                default=context.default_or("gatekeeper_cns", ""),
                filter=trim_filter,
                validate=hostname_list,
            ),
            PromptSpec(
                name="gatekeeper_clientkeyspassword",
                message=context.message(
                    "Password for the client key archive", "gatekeeper_clientkeyspassword"
                ),
                kind="password",
                default=context.get_default("gatekeeper_clientkeyspassword"),
                filter=trim_filter,
                validate=not_empty,
            ),
        ]
        if stored_config_entries(context.document):
            prompts.append(
                PromptSpec(
                    name="gatekeeper_recreatekeys",
                    message=context.message(
                        "Recreate all gatekeeper API keys?", "gatekeeper_recreatekeys"
                    ),
                    kind="confirm",
                    default=False,
                )
            )
        if context.document.get(KEY_PROPERTY) and context.document.get(CERT_PROPERTY):
            prompts.append(
                PromptSpec(
                    name="gatekeeper_recreatecert",
                    message=context.message(
                        "Recreate the gatekeeper certificate?", "gatekeeper_recreatecert"
                    ),
                    kind="confirm",
                    default=False,
                )
            )
        prompts.extend(
            datapath_prompts(context, "gatekeeper_datapath", "gatekeeper", "gatekeeper")
        )
        return prompts

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        paths = ["keys.properties", "api.properties", "default.conf", "htpasswd"]
        if properties.get(KEY_PROPERTY) and properties.get(CERT_PROPERTY):
            paths.extend(["certs/cert.pem", "private/key.pem"])
        return paths


__all__ = ["DEFAULT_API_PORT", "GatekeeperContributor"]
