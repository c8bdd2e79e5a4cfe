"""Permission rules and the precedence resolver.

A rule grants or denies one action on one subject type, optionally only for
instances satisfying a field condition. An ability is the ordered tuple of
rules built for one caller. Later rules take precedence over earlier ones:
``resolve`` scans from the end and the first matching rule decides.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

ALL_SUBJECTS = "all"


class Action(str, Enum):
    """Actions a rule can cover. ``manage`` covers every action."""

    manage = "manage"
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"


class Effect(str, Enum):
    """Outcome of a rule or of a resolution."""

    allow = "allow"
    deny = "deny"


class ConditionOp(str, Enum):
    """Comparison operators supported in rule conditions."""

    eq = "eq"
    ne = "ne"


@dataclass(frozen=True)
class Condition:
    """Predicate over a single instance field, e.g. ``author_id == 5``."""

    field: str
    op: ConditionOp
    value: Any

    def matches(self, instance: Any) -> bool:
        actual = field_value(instance, self.field)
        if self.op is ConditionOp.eq:
            return bool(actual == self.value)
        return bool(actual != self.value)


@dataclass(frozen=True)
class Rule:
    """Single allow/deny statement."""

    effect: Effect
    action: Action
    subject_type: str
    condition: Condition | None = None

    def covers(self, action: Action, subject_type: str) -> bool:
        """Whether the rule applies to the action and subject type, ignoring conditions."""
        action_ok = self.action is Action.manage or self.action is action
        subject_ok = self.subject_type == ALL_SUBJECTS or self.subject_type == subject_type
        return action_ok and subject_ok

    def matches_instance(self, instance: Any | None) -> bool:
        """Whether the rule's condition holds for ``instance``.

        Without an instance this is a type-level check: a conditional allow
        still matches (some instance may qualify) while a conditional deny
        does not (it cannot deny the type as a whole).
        """
        if self.condition is None:
            return True
        if instance is None:
            return self.effect is Effect.allow
        return self.condition.matches(instance)


@dataclass(frozen=True)
class Ability:
    """Ordered, immutable rule set for one caller."""

    rules: tuple[Rule, ...] = field(default_factory=tuple)

    @classmethod
    def deny_all(cls) -> "Ability":
        return cls(rules=())

    def rules_for(self, action: Action, subject_type: str) -> Iterator[Rule]:
        """Rules covering the pair, in definition order."""
        return (rule for rule in self.rules if rule.covers(action, subject_type))

    def can(self, action: Action, subject: Any) -> bool:
        """Check an action against a subject type tag or a live instance."""
        if isinstance(subject, str):
            return resolve(self, action, subject) is Effect.allow
        return resolve(self, action, detect_subject_type(subject), subject) is Effect.allow

    def cannot(self, action: Action, subject: Any) -> bool:
        return not self.can(action, subject)


def resolve(
    ability: Ability,
    action: Action,
    subject_type: str,
    instance: Any | None = None,
) -> Effect:
    """Resolve allow/deny for an action on a subject type or instance.

    Scans rules in reverse definition order; the first rule covering the
    action and subject type whose condition holds decides. No match denies.
    """
    for rule in reversed(ability.rules):
        if rule.covers(action, subject_type) and rule.matches_instance(instance):
            return rule.effect
    return Effect.deny


def detect_subject_type(instance: Any) -> str:
    """Subject type tag of a live instance: its class name."""
    return type(instance).__name__


def field_value(instance: Any, name: str) -> Any:
    if isinstance(instance, Mapping):
        return instance.get(name)
    return getattr(instance, name, None)
