"""Template rendering for contributor artifacts.

Templates live under ``<namespace>/<relative path>.j2``. Built-in templates
ship in ``nodeprov/resources/templates``; an override directory, when given,
shadows them file by file. Rendering uses strict undefined variables so a
template that references an unknown property fails loudly instead of writing
an empty value.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, StrictUndefined, TemplateError

from .errors import TemplateRenderError

BUILTIN_TEMPLATES = Path(__file__).resolve().parent / "resources" / "templates"
TEMPLATE_SUFFIX = ".j2"


@dataclass(slots=True)
class TemplateEngine:
    """Thin wrapper around a Jinja2 environment."""

    environment: Environment

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers *override_dir* over built-in templates."""
        search_path: list[FileSystemLoader] = []
        if override_dir is not None and override_dir.is_dir():
            search_path.append(FileSystemLoader(str(override_dir)))
        search_path.append(FileSystemLoader(str(BUILTIN_TEMPLATES)))
        environment = Environment(
            loader=ChoiceLoader(search_path),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,  # noqa: S701 - renders config files, not HTML
        )
        return cls(environment=environment)

    @staticmethod
    def template_name(namespace: str, relative_path: str) -> str:
        """Return the template name for a contributor-relative path."""
        return f"{namespace}/{relative_path}{TEMPLATE_SUFFIX}"

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render *template_name* with *context* and return the text."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**dict(context))
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render {template_name}: {exc}") from exc

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render to *destination*, overwriting it; return True when content changed."""
        rendered = self.render_to_string(template_name, context)
        destination.parent.mkdir(parents=True, exist_ok=True)

        previous: str | None = None
        if destination.exists():
            try:
                previous = destination.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                previous = None

        tmp_fd, tmp_name = tempfile.mkstemp(
            dir=str(destination.parent),
            prefix=f".{destination.name}.",
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
                handle.write(rendered)
            os.replace(tmp_path, destination)
            os.chmod(destination, mode)
        finally:
            tmp_path.unlink(missing_ok=True)
        return previous != rendered


__all__ = ["BUILTIN_TEMPLATES", "TemplateEngine"]
