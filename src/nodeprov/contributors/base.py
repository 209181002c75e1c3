"""Contributor contract, wizard context and the contributor registry."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from ..document import CUSTOM_PATH_SENTINEL
from ..help import DISABLED, HelpContent
from ..prompts import PROMPT_PREFIX, Answers, Choice, PromptSpec
from ..session import SessionContext
from ..validators import path as path_validator
from ..validators import trim_filter

FEATURE_CHOICES: tuple[Choice, ...] = (
    Choice("lightning", "Lightning node"),
    Choice("otsclient", "OpenTimestamps client"),
)


@dataclass
class WizardContext:
    """Read-only view handed to contributors while they build prompts."""

    document: Mapping[str, object]
    session: SessionContext
    help: HelpContent = field(default_factory=lambda: DISABLED)

    def get_default(self, name: str) -> object | None:
        """Return the stored value of *name*, else the session value, else None."""
        if name in self.document:
            return self.document[name]
        return self.session.lookup(name)

    def default_or(self, name: str, fallback: object) -> object:
        """Return :meth:`get_default` for *name*, or *fallback* when it is None."""
        value = self.get_default(name)
        return fallback if value is None else value

    def is_checked(self, name: str, value: str) -> bool:
        """Return True when list property *name* contains *value*."""
        current = self.document.get(name)
        return isinstance(current, (list, tuple)) and value in current

    def feature_choices(self) -> list[Choice]:
        """Return the optional services, checked when already selected."""
        return [
            Choice(choice.value, choice.label, self.is_checked("features", choice.value))
            for choice in FEATURE_CHOICES
        ]

    def help_for(self, topic: str) -> str:
        """Return help text for *topic*, empty when help is disabled."""
        return self.help.text(topic)

    def message(self, text: str, topic: str) -> str:
        """Return a prefixed prompt message followed by the help for *topic*."""
        return f"{PROMPT_PREFIX}{text}{self.help_for(topic)}"

    def feature_enabled(self, answers: Answers, feature: str) -> bool:
        """Return True when *feature* is selected in this run or the stored document."""
        selected = answers.get("features", self.document.get("features"))
        return isinstance(selected, (list, tuple)) and feature in selected


class Contributor(ABC):
    """An independently authored service module adding prompts and templates.

    ``name`` is both the template namespace and the destination subdirectory.
    ``path_properties`` lists the properties whose ``_custom`` sentinel is
    resolved before rendering.
    """

    identifier: str = ""
    name: str = ""
    path_properties: tuple[str, ...] = ()

    @abstractmethod
    def prompts(self, context: WizardContext) -> list[PromptSpec]:
        """Return the questions for this service, in the order they are asked."""

    @abstractmethod
    def templates(self, properties: Mapping[str, object]) -> list[str]:
        """Return template paths relative to the contributor namespace."""


def datapath_prompts(
    context: WizardContext,
    property_name: str,
    service: str,
    label: str,
    *,
    when: Callable[[Answers], bool] | None = None,
) -> list[PromptSpec]:
    """Return the data directory choice and its custom-path follow-up."""
    setup_dir = context.session.setup_dir.rstrip("/")
    base = context.session.default_datadir_base.rstrip("/")
    choices = (
        Choice(f"{setup_dir}/{service}", f"{setup_dir}/{service}"),
        Choice(f"{base}/.nodeprov/{service}", f"{base}/.nodeprov/{service}"),
        Choice(CUSTOM_PATH_SENTINEL, "Custom path"),
    )
    custom_name = f"{property_name}_custom"

    def _custom_active(answers: Answers) -> bool:
        if when is not None and not when(answers):
            return False
        return answers.get(property_name) == CUSTOM_PATH_SENTINEL

    return [
        PromptSpec(
            name=property_name,
            message=context.message(
                f"Where do you want to store the {label} data?", property_name
            ),
            kind="list",
            default=context.default_or(property_name, choices[0].value),
            choices=choices,
            when=when,
        ),
        PromptSpec(
            name=custom_name,
            message=context.message(f"Custom {label} data path", property_name),
            default=context.default_or(custom_name, ""),
            validate=path_validator,
            filter=trim_filter,
            when=_custom_active,
        ),
    ]


class ContributorRegistry:
    """Explicit, identifier-ordered collection of contributors."""

    def __init__(self, contributors: Iterable[Contributor] = ()) -> None:
        """Register each of *contributors*."""
        self._contributors: dict[str, Contributor] = {}
        for contributor in contributors:
            self.register(contributor)

    def register(self, contributor: Contributor) -> None:
        """Add *contributor*; identifiers and names must be unique."""
        if not contributor.identifier or not contributor.name:
            raise ValueError(f"Contributor {contributor!r} needs an identifier and a name.")
        if contributor.identifier in self._contributors:
            raise ValueError(f"Duplicate contributor identifier '{contributor.identifier}'.")
        if any(existing.name == contributor.name for existing in self._contributors.values()):
            raise ValueError(f"Duplicate contributor name '{contributor.name}'.")
        self._contributors[contributor.identifier] = contributor

    def __iter__(self) -> Iterator[Contributor]:
        for identifier in sorted(self._contributors):
            yield self._contributors[identifier]

    def __len__(self) -> int:
        return len(self._contributors)

    @property
    def names(self) -> list[str]:
        """Return contributor names in registry order."""
        return [contributor.name for contributor in self]

    def path_properties(self) -> list[str]:
        """Return every path-valued property declared by a contributor."""
        collected: list[str] = []
        for contributor in self:
            for name in contributor.path_properties:
                if name not in collected:
                    collected.append(name)
        return collected

    def prompts(self, context: WizardContext) -> list[tuple[Contributor, Sequence[PromptSpec]]]:
        """Return each contributor with its prompts, in registry order."""
        return [(contributor, contributor.prompts(context)) for contributor in self]


__all__ = [
    "FEATURE_CHOICES",
    "Contributor",
    "ContributorRegistry",
    "WizardContext",
    "datapath_prompts",
]
