"""Authorization error taxonomy."""


class AuthorizationError(Exception):
    """Base class for authorization failures."""

    pass


class AuthorizationDenied(AuthorizationError):
    """The installed ability denies the action on the subject.

    The message is operator-facing; clients only ever see a generic
    "Forbidden" body.
    """

    def __init__(self, action: str, subject_type: str) -> None:
        super().__init__(f"{action} on {subject_type} denied")
        self.action = action
        self.subject_type = subject_type


class RecordNotFound(AuthorizationError):
    """No record exists with the requested key."""

    def __init__(self, subject_type: str, ident: object) -> None:
        super().__init__(f"{subject_type} with ID {ident} not found.")
        self.subject_type = subject_type
        self.ident = ident


class PolicyConstructionFailure(AuthorizationError):
    """Caller attributes are malformed and no ability can be built."""

    pass
