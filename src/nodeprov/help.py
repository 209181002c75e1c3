"""Optional help text shown under wizard questions."""
from __future__ import annotations

import textwrap
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources

import yaml

DEFAULT_TOPIC = "__default__"
WRAP_WIDTH = 82


@dataclass(frozen=True)
class HelpContent:
    """Topic to text mapping with a ``__default__`` fallback."""

    topics: Mapping[str, str] = field(default_factory=dict)
    enabled: bool = False

    @classmethod
    def load_builtin(cls, *, enabled: bool = True) -> HelpContent:
        """Load the help topics shipped with the package."""
        source = resources.files("nodeprov").joinpath("resources", "help.yml")
        data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
        if not isinstance(data, Mapping):
            raise ValueError("Help content must be a mapping of topic to text.")
        topics = {str(key): str(value or "") for key, value in data.items()}
        return cls(topics=topics, enabled=enabled)

    def text(self, topic: str) -> str:
        """Return the wrapped text for *topic*, or an empty string when disabled."""
        if not self.enabled:
            return ""
        raw = self.topics.get(topic) or self.topics.get(DEFAULT_TOPIC) or ""
        if not raw.strip():
            return ""
        paragraphs = [
            textwrap.fill(" ".join(paragraph.split()), width=WRAP_WIDTH)
            for paragraph in raw.strip().split("\n\n")
        ]
        return "\n\n" + "\n\n".join(paragraphs) + "\n\n"


DISABLED = HelpContent()

__all__ = ["DEFAULT_TOPIC", "DISABLED", "HelpContent", "WRAP_WIDTH"]
