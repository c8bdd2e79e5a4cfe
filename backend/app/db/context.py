"""Request context carrying the caller and its resolved ability."""

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from backend.app.authz.rules import Ability


@dataclass(frozen=True)
class Caller:
    """Acting identity for one request.

    ``id`` doubles as the ownership attribute: posts whose ``author_id``
    equals it belong to the caller.
    """

    id: int
    role: str


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the caller and exactly one ability.

    Installed once per request and read by every data-access call made
    inside that request. ``caller`` is None for anonymous requests.
    """

    caller: Caller | None
    ability: "Ability"
