"""Query interception: scopes every ORM data access by the installed ability.

``AuthorizedSession`` is the sync Session class behind every request
AsyncSession. Two listeners enforce authorization on it:

- ``do_orm_execute`` narrows SELECTs with read criteria and bulk
  UPDATE/DELETE statements with update/delete criteria, always ANDed with
  the statement's own WHERE clause.
- ``before_flush`` checks each pending insert, update and delete of the unit
  of work against the concrete instance.

Both read the ability from the request context on every call. Without an
installed context the anonymous rule set applies. Lookups by key that
authorize their result explicitly (``fetch_authorized``) skip the read filter.
"""

from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import ORMExecuteState, Session, UOWTransaction, with_loader_criteria

from backend.app.authz.context import get_current_context
from backend.app.authz.errors import AuthorizationDenied, RecordNotFound
from backend.app.authz.filters import synthesize_filter, subject_models
from backend.app.authz.policy import build_ability
from backend.app.authz.rules import Ability, Action, Effect, detect_subject_type, resolve
from backend.app.utils.logging import StructuredAuthzLogger
from backend.app.utils.metrics import PrometheusAuthzMetrics

_logger = StructuredAuthzLogger()
_metrics = PrometheusAuthzMetrics()

# Execution option: load without the read filter. Only for lookups whose
# result is authorized explicitly before it is returned.
UNSCOPED_LOAD = "authz_unscoped_load"


class AuthorizedSession(Session):
    """Session whose statements and flushes are scoped by the installed ability."""

    pass


def active_ability(operation: str) -> tuple[Ability, int | None]:
    """Ability to enforce for one data-access call, plus the caller id for logs."""
    ctx = get_current_context()
    if ctx is None:
        _logger.log_context_missing(operation)
        _metrics.inc_context_missing()
        return build_ability(None), None
    return ctx.ability, ctx.caller.id if ctx.caller is not None else None


def authorize(instance: Any, action: Action, values: Any | None = None) -> None:
    """Check an action against a concrete instance.

    Args:
        instance: Mapped instance the action targets
        action: Requested action
        values: Field values to evaluate conditions against (defaults to the instance)

    Raises:
        AuthorizationDenied: If the installed ability denies the action
    """
    subject_type = detect_subject_type(instance)
    ability, caller_id = active_ability(f"{action.value} {subject_type}")
    effect = resolve(ability, action, subject_type, instance if values is None else values)
    _record(action, subject_type, effect, caller_id, getattr(instance, "id", None))
    if effect is Effect.deny:
        raise AuthorizationDenied(action.value, subject_type)


def authorize_type(action: Action, subject_type: str) -> None:
    """Type-level check: may the caller perform ``action`` on some ``subject_type``?

    Raises:
        AuthorizationDenied: If no rule could allow it
    """
    ability, caller_id = active_ability(f"{action.value} {subject_type}")
    effect = resolve(ability, action, subject_type)
    _record(action, subject_type, effect, caller_id)
    if effect is Effect.deny:
        raise AuthorizationDenied(action.value, subject_type)


async def fetch_authorized(
    session: AsyncSession, model: type[Any], ident: Any, action: Action
) -> Any:
    """Fetch a record by primary key, then authorize ``action`` on it.

    The lookup bypasses the read filter so that an existing record is never
    reported as missing: a denied action raises AuthorizationDenied and the
    record is not returned.

    Raises:
        RecordNotFound: If no record has this key
        AuthorizationDenied: If the action is denied on the record
    """
    instance = await session.get(model, ident, execution_options={UNSCOPED_LOAD: True})
    if instance is None:
        raise RecordNotFound(model.__name__, ident)
    authorize(instance, action)
    return instance


def persisted_values(instance: Any) -> dict[str, Any]:
    """Column values as last loaded from the database, ignoring pending edits."""
    state = inspect(instance)
    values: dict[str, Any] = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            values[attr.key] = history.deleted[0]
        elif history.unchanged:
            values[attr.key] = history.unchanged[0]
        else:
            values[attr.key] = state.dict.get(attr.key)
    return values


def _record(
    action: Action, subject_type: str, effect: Effect, caller_id: int | None, ident: Any = None
) -> None:
    _metrics.record_decision(action.value, subject_type, effect.value)
    _logger.log_decision(action.value, subject_type, effect.value, caller_id, ident)


def _dml_model(statement: Any) -> type[Any] | None:
    entity = statement.entity_description.get("entity")
    if entity is not None:
        return entity
    for model in subject_models():
        if model.__table__ is statement.table:
            return model
    return None


@event.listens_for(AuthorizedSession, "do_orm_execute")
def _scope_statement(orm_execute_state: ORMExecuteState) -> None:
    """Inject the row filter for the statement's action."""
    if orm_execute_state.is_select:
        # refreshing attributes of an already authorized instance
        if orm_execute_state.is_column_load:
            return
        if orm_execute_state.execution_options.get(UNSCOPED_LOAD, False):
            return

        ability, _ = active_ability("select")
        options = []
        for model in subject_models():
            criteria = synthesize_filter(ability, Action.read, model.__name__, model)
            options.append(with_loader_criteria(model, criteria, include_aliases=True))
        for mapper in orm_execute_state.all_mappers:
            _metrics.inc_filter(Action.read.value, mapper.class_.__name__, "select")
            _logger.log_filter(Action.read.value, mapper.class_.__name__, "select")
        orm_execute_state.statement = orm_execute_state.statement.options(*options)

    elif orm_execute_state.is_update or orm_execute_state.is_delete:
        action = Action.update if orm_execute_state.is_update else Action.delete
        operation = "update" if orm_execute_state.is_update else "delete"
        statement = orm_execute_state.statement
        model = _dml_model(statement)
        if model is None:
            return

        ability, _ = active_ability(operation)
        criteria = synthesize_filter(ability, action, model.__name__, model)
        _metrics.inc_filter(action.value, model.__name__, operation)
        _logger.log_filter(action.value, model.__name__, operation)
        orm_execute_state.statement = statement.where(criteria)

    elif orm_execute_state.is_insert:
        model = _dml_model(orm_execute_state.statement)
        if model is not None:
            authorize_type(Action.create, model.__name__)


@event.listens_for(AuthorizedSession, "before_flush")
def _check_unit_of_work(session: Session, flush_context: UOWTransaction, instances: Any) -> None:
    """Authorize every pending insert, update and delete against its instance."""
    for instance in session.new:
        authorize(instance, Action.create)

    for instance in session.dirty:
        if session.is_modified(instance, include_collections=False):
            authorize(instance, Action.update, persisted_values(instance))

    for instance in session.deleted:
        authorize(instance, Action.delete, persisted_values(instance))
