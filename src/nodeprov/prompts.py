"""Prompt specifications and the prompting layer.

Contributors describe questions as :class:`PromptSpec` values. A
:class:`Prompter` asks them in order and returns the answers as an ordered
list of ``(name, value)`` pairs. Validation failures are handled one field at
a time: the prompter reports the message and asks the same field again.
"""
from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import typer
from rich.console import Console

from .errors import ValidationError

Answers = Mapping[str, object]
PROMPT_PREFIX = "nodeprov: "
PROMPT_KINDS = frozenset({"input", "password", "confirm", "list", "checkbox"})


@dataclass(frozen=True)
class Choice:
    """A selectable value for ``list`` and ``checkbox`` prompts."""

    value: str
    label: str = ""
    checked: bool = False

    @property
    def display(self) -> str:
        """Return the label shown to the operator."""
        return self.label or self.value


@dataclass(frozen=True)
class PromptSpec:
    """A single question contributed to the wizard.

    ``default`` and ``choices`` may be callables receiving the answers given
    so far in this run. ``when`` elides the prompt when it returns False.
    ``filter`` runs before ``validate``; the filtered value is what gets
    stored.
    """

    name: str
    message: str
    kind: str = "input"
    default: object | Callable[[Answers], object] = None
    choices: Sequence[Choice] | Callable[[Answers], Sequence[Choice]] = ()
    validate: Callable[[Any], object] | None = None
    filter: Callable[[Any], Any] | None = None
    when: Callable[[Answers], bool] | None = None

    def __post_init__(self) -> None:
        """Reject unknown prompt kinds early."""
        if self.kind not in PROMPT_KINDS:
            raise ValueError(f"Unknown prompt kind '{self.kind}' for '{self.name}'.")

    def with_message(self, message: str) -> PromptSpec:
        """Return a copy with a different message."""
        return dataclasses.replace(self, message=message)

    def resolve_default(self, answers: Answers) -> object:
        """Return the default value for this run."""
        if callable(self.default):
            return self.default(answers)
        return self.default

    def resolve_choices(self, answers: Answers) -> list[Choice]:
        """Return the choices for this run."""
        if callable(self.choices):
            return list(self.choices(answers))
        return list(self.choices)

    def is_active(self, answers: Answers) -> bool:
        """Return False when the contributor elides this prompt."""
        return self.when is None or bool(self.when(answers))


class Prompter(ABC):
    """Ask prompt specifications in order, re-asking fields that fail validation."""

    def ask(self, specs: Sequence[PromptSpec]) -> list[tuple[str, object]]:
        """Ask each active spec and return the ordered answers."""
        answered: list[tuple[str, object]] = []
        answers: dict[str, object] = {}
        for spec in specs:
            if not spec.is_active(answers):
                continue
            value = self._ask_one(spec, answers)
            answered.append((spec.name, value))
            answers[spec.name] = value
        return answered

    def ask_one(self, spec: PromptSpec) -> object:
        """Ask a single spec with no prior answers."""
        return self._ask_one(spec, {})

    @abstractmethod
    def notify(self, message: str) -> None:
        """Show an error message to the operator."""

    @abstractmethod
    def read(self, spec: PromptSpec, default: object, choices: Sequence[Choice]) -> object:
        """Return the raw answer for *spec*.

        *default* is what pressing Enter yields, including for password prompts.
        """

    def _ask_one(self, spec: PromptSpec, answers: Answers) -> object:
        default = spec.resolve_default(answers)
        choices = spec.resolve_choices(answers)
        while True:
            value = self.read(spec, default, choices)
            if spec.filter is not None:
                value = spec.filter(value)
            if spec.validate is None:
                return value
            try:
                spec.validate(value)
            except ValidationError as exc:
                self.notify(str(exc))
                continue
            return value


class TyperPrompter(Prompter):
    """Interactive prompter backed by ``typer.prompt`` and ``typer.confirm``."""

    def __init__(self, console: Console | None = None) -> None:
        """Use *console* for error messages."""
        self._console = console or Console()

    def notify(self, message: str) -> None:
        """Print *message* as an error."""
        self._console.print(f"[bold red]{message}[/bold red]")

    def read(self, spec: PromptSpec, default: object, choices: Sequence[Choice]) -> object:
        """Read one answer from the terminal."""
        if spec.kind == "confirm":
            return typer.confirm(spec.message, default=bool(default))
        if spec.kind == "password":
            return typer.prompt(
                spec.message,
                default=str(default or ""),
                hide_input=True,
                show_default=False,
            )
        if spec.kind == "list":
            return self._read_list(spec, default, choices)
        if spec.kind == "checkbox":
            return self._read_checkbox(spec, choices)
        return typer.prompt(
            spec.message,
            default="" if default is None else str(default),
            show_default=default not in (None, ""),
        )

    def _read_list(self, spec: PromptSpec, default: object, choices: Sequence[Choice]) -> str:
        for index, choice in enumerate(choices, start=1):
            self._console.print(f"  {index}) {choice.display}")
        values = [choice.value for choice in choices]
        default_index = values.index(default) + 1 if default in values else 1
        while True:
            raw = typer.prompt(spec.message, default=str(default_index))
            try:
                position = int(str(raw).strip())
            except ValueError:
                position = 0
            if 1 <= position <= len(values):
                return values[position - 1]
            self.notify(f"Choose a number between 1 and {len(values)}")

    def _read_checkbox(self, spec: PromptSpec, choices: Sequence[Choice]) -> list[str]:
        for index, choice in enumerate(choices, start=1):
            marker = "x" if choice.checked else " "
            self._console.print(f"  [{marker}] {index}) {choice.display}")
        preselected = ",".join(
            str(index) for index, choice in enumerate(choices, start=1) if choice.checked
        )
        while True:
            raw = typer.prompt(
                f"{spec.message} (comma-separated numbers, '-' for none)",
                default=preselected or "-",
            )
            text = str(raw).strip()
            if text in {"", "-"}:
                return []
            try:
                positions = [int(part) for part in text.split(",") if part.strip()]
            except ValueError:
                positions = [0]
            if all(1 <= position <= len(choices) for position in positions):
                selected = {choices[position - 1].value for position in positions}
                return [choice.value for choice in choices if choice.value in selected]
            self.notify(f"Choose numbers between 1 and {len(choices)}")


__all__ = ["PROMPT_PREFIX", "Answers", "Choice", "PromptSpec", "Prompter", "TyperPrompter"]
