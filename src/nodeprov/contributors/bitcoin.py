"""Bitcoin node settings."""
from __future__ import annotations

from collections.abc import Mapping

from ..prompts import PromptSpec
from ..validators import not_empty, optional, trim_filter, ua_comment, username
from .base import Contributor, WizardContext, datapath_prompts


class BitcoinContributor(Contributor):
    """RPC credentials, pruning and data path of the bitcoin node."""

    identifier = "050-bitcoin"
    name = "bitcoin"
    path_properties = ("bitcoin_datapath",)

    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        return [
            PromptSpec(
                name="bitcoin_rpcuser",
                message=context.message("Name of bitcoin rpc user?", "bitcoin_rpcuser"),
                default=context.default_or("bitcoin_rpcuser", "bitcoin"),
                filter=trim_filter,
                validate=username,
            ),
            PromptSpec(
                name="bitcoin_rpcpassword",
                message=context.message("Password of bitcoin rpc user?", "bitcoin_rpcpassword"),
                kind="password",
                default=context.get_default("bitcoin_rpcpassword"),
                filter=trim_filter,
                validate=not_empty,
            ),
            PromptSpec(
                name="bitcoin_uacomment",
                message=context.message("Any UA comment?", "bitcoin_uacomment"),
                default=context.default_or("bitcoin_uacomment", ""),
                filter=trim_filter,
                validate=optional(ua_comment),
            ),
            PromptSpec(
                name="bitcoin_prune",
                message=context.message("Run bitcoin node in prune mode?", "bitcoin_prune"),
                kind="confirm",
                default=context.default_or("bitcoin_prune", False),
            ),
            *datapath_prompts(context, "bitcoin_datapath", "bitcoin", "bitcoin"),
        ]

    def templates(self, properties: Mapping[str, object]) -> list[str]:
        return ["bitcoin.conf"]


__all__ = ["BitcoinContributor"]
