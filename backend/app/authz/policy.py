"""Fixed permission policy: builds an ability from a caller."""

from backend.app.authz.errors import PolicyConstructionFailure
from backend.app.authz.rules import (
    ALL_SUBJECTS,
    Ability,
    Action,
    Condition,
    ConditionOp,
    Effect,
    Rule,
)
from backend.app.config import get_settings
from backend.app.db.context import Caller

POST = "Post"


def build_ability(caller: Caller | None, admin_role: str | None = None) -> Ability:
    """Build the ordered rule set for a caller.

    Administrators get a single ``manage all`` rule. Everyone else, anonymous
    callers included, may read every subject. Authenticated callers may also
    create posts and manage their own, and are explicitly denied deleting
    posts they do not own. Rule order is significant.

    Args:
        caller: Acting identity, or None for anonymous requests
        admin_role: Administrator role tag (defaults to settings)

    Returns:
        Ability for the caller

    Raises:
        PolicyConstructionFailure: If the caller's attributes are malformed
    """
    if caller is not None:
        _validate_caller(caller)

    if admin_role is None:
        admin_role = get_settings().admin_role

    if caller is not None and caller.role == admin_role:
        return Ability(rules=(Rule(Effect.allow, Action.manage, ALL_SUBJECTS),))

    rules = [Rule(Effect.allow, Action.read, ALL_SUBJECTS)]

    if caller is not None:
        rules.extend(
            [
                Rule(Effect.allow, Action.create, POST),
                Rule(
                    Effect.allow,
                    Action.manage,
                    POST,
                    Condition("author_id", ConditionOp.eq, caller.id),
                ),
                Rule(
                    Effect.deny,
                    Action.delete,
                    POST,
                    Condition("author_id", ConditionOp.ne, caller.id),
                ),
            ]
        )

    return Ability(rules=tuple(rules))


def _validate_caller(caller: Caller) -> None:
    # bool is an int subclass but never a valid identifier
    if not isinstance(caller.id, int) or isinstance(caller.id, bool):
        raise PolicyConstructionFailure(f"Caller id must be an integer, got {caller.id!r}")
    if not isinstance(caller.role, str) or not caller.role:
        raise PolicyConstructionFailure(f"Caller role must be a non-empty string, got {caller.role!r}")
