"""Service contributors and the built-in registry."""
from __future__ import annotations

from .base import (
    FEATURE_CHOICES,
    Contributor,
    ContributorRegistry,
    WizardContext,
    datapath_prompts,
)
from .bitcoin import BitcoinContributor
from .features import FeaturesContributor
from .gatekeeper import GatekeeperContributor
from .installer import InstallerContributor
from .lightning import LightningContributor
from .otsclient import OtsclientContributor
from .proxy import ProxyContributor
from .traefik import TraefikContributor


def default_registry() -> ContributorRegistry:
    """Return a registry holding every built-in contributor."""
    return ContributorRegistry(
        [
            FeaturesContributor(),
            GatekeeperContributor(),
            TraefikContributor(),
            ProxyContributor(),
            BitcoinContributor(),
            LightningContributor(),
            OtsclientContributor(),
            InstallerContributor(),
        ]
    )


__all__ = [
    "FEATURE_CHOICES",
    "BitcoinContributor",
    "Contributor",
    "ContributorRegistry",
    "FeaturesContributor",
    "GatekeeperContributor",
    "InstallerContributor",
    "LightningContributor",
    "OtsclientContributor",
    "ProxyContributor",
    "TraefikContributor",
    "WizardContext",
    "datapath_prompts",
    "default_registry",
]
