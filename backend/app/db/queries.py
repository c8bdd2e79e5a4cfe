"""Ability-scoped query helpers."""

from typing import Any

from sqlalchemy import ColumnElement, Select, select

from backend.app.authz.filters import synthesize_filter
from backend.app.authz.interception import active_ability
from backend.app.authz.rules import Action


def accessible_by(model: type[Any], action: Action = Action.read) -> ColumnElement[bool]:
    """Row filter for ``action`` on ``model`` under the installed ability.

    Args:
        model: Mapped class
        action: Requested action

    Returns:
        Boolean SQL expression selecting the rows the caller may act on
    """
    ability, _ = active_ability(f"{action.value} {model.__name__}")
    return synthesize_filter(ability, action, model.__name__, model)


def select_accessible(model: type[Any], action: Action) -> Select[Any]:
    """SELECT over ``model`` narrowed to rows the caller may ``action``.

    Reads are already scoped by the session; this narrows further for
    listings such as "posts I may delete".

    Args:
        model: Mapped class
        action: Requested action

    Returns:
        Select statement filtered by the action's criteria
    """
    return select(model).where(accessible_by(model, action))
