"""Translate an ability into SQLAlchemy WHERE criteria."""

from typing import Any

from sqlalchemy import ColumnElement, and_, false, not_, or_, true

from backend.app.authz.errors import PolicyConstructionFailure
from backend.app.authz.rules import Ability, Action, Condition, ConditionOp, Effect
from backend.app.db.models import Base


def synthesize_filter(
    ability: Ability,
    action: Action,
    subject_type: str,
    model: type[Any] | None = None,
) -> ColumnElement[bool]:
    """Build the row filter matching exactly the rows ``resolve`` would allow.

    Rules covering the pair are folded in definition order, each later rule
    wrapping the clause built so far: a conditional allow gives
    ``cond OR rest``, a conditional deny gives ``NOT cond AND rest``, and an
    unconditional rule replaces ``rest`` with ``true()`` or ``false()``. With
    no covering allow rule the result is ``false()``.

    Args:
        ability: Ability to translate
        action: Requested action
        subject_type: Subject type tag
        model: Mapped class for ``subject_type`` (looked up when omitted)

    Returns:
        Boolean SQL expression to AND into the operation's own filter
    """
    if model is None:
        model = subject_model(subject_type)

    clause: ColumnElement[bool] = false()
    for rule in ability.rules_for(action, subject_type):
        if rule.condition is None:
            clause = true() if rule.effect is Effect.allow else false()
        elif rule.effect is Effect.allow:
            clause = or_(render_condition(rule.condition, model), clause)
        else:
            clause = and_(not_(render_condition(rule.condition, model)), clause)
    return clause


def render_condition(condition: Condition, model: type[Any]) -> ColumnElement[bool]:
    """Render a rule condition against a mapped class's column."""
    column = getattr(model, condition.field, None)
    if column is None:
        raise PolicyConstructionFailure(
            f"{model.__name__} has no attribute {condition.field!r} for rule condition"
        )
    if condition.op is ConditionOp.eq:
        return column == condition.value
    return column != condition.value


def subject_model(subject_type: str) -> type[Any]:
    """Mapped class registered under a subject type tag."""
    for mapper in Base.registry.mappers:
        if mapper.class_.__name__ == subject_type:
            return mapper.class_
    raise KeyError(f"No mapped model for subject type {subject_type!r}")


def subject_models() -> list[type[Any]]:
    """All mapped classes that can be authorization subjects."""
    return [mapper.class_ for mapper in Base.registry.mappers]
