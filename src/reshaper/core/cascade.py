"""Ordered decision cascades: explicit (predicate, tag) tables.

A payload shape can satisfy several category definitions at once, so
classification is never a dict lookup. Each cascade is an ordered list of
rules evaluated top to bottom; the first predicate that returns True
decides the tag. Priority is data, so it can be inspected and tested.

Predicates must be pure. An exception raised inside one is NOT swallowed:
it propagates to the ingestion boundary, which reports the delivery as
degraded instead of guessing a tag.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Rule(Generic[T]):
    """One row of a cascade.

    Attributes:
        name: Stable identifier, used in logs and priority tests.
        predicate: Pure function of the subject.
        tag: Result when the predicate matches.
    """

    name: str
    predicate: Callable[[Any], bool]
    tag: T


class Cascade(Generic[T]):
    """First-match-wins evaluation over an immutable rule list.

    Args:
        name: Cascade identifier for logging.
        rules: Rules in priority order.
        default: Returned by resolve() when nothing matches.

    Usage:
        cascade = Cascade("disposition", [Rule("vm", lambda s: "vm" in s, "voicemail")], default="unknown")
        cascade.resolve("lvm 3pm")   # -> "voicemail"
        cascade.resolve("spoke")     # -> "unknown"
    """

    def __init__(self, name: str, rules: Iterable[Rule[T]], default: T | None = None) -> None:
        self.name = name
        self._rules: tuple[Rule[T], ...] = tuple(rules)
        self.default = default
        names = [rule.name for rule in self._rules]
        if len(names) != len(set(names)):
            msg = f"cascade '{name}' has duplicate rule names: {names}"
            raise ValueError(msg)

    @property
    def rules(self) -> Sequence[Rule[T]]:
        return self._rules

    @property
    def tags(self) -> list[T]:
        """Distinct tags in first-appearance order."""
        seen: list[T] = []
        for rule in self._rules:
            if rule.tag not in seen:
                seen.append(rule.tag)
        return seen

    def first_match(self, subject: Any) -> Rule[T] | None:
        """Return the winning rule, or None."""
        for rule in self._rules:
            if rule.predicate(subject):
                return rule
        return None

    def resolve(self, subject: Any) -> T | None:
        """Return the tag of the first matching rule, else the default."""
        rule = self.first_match(subject)
        return rule.tag if rule is not None else self.default

    def matching(self, subject: Any) -> list[str]:
        """Names of EVERY rule whose predicate matches, in priority order.

        Diagnostic only: shows which lower-priority rules a payload would
        also have satisfied.
        """
        return [rule.name for rule in self._rules if rule.predicate(subject)]

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"Cascade({self.name!r}, rules={[r.name for r in self._rules]})"
