"""Error taxonomy for hierarchy resolution and access decisions.

Route handlers translate these into HTTP responses; see orgguard.api.v1.errors.
"""


class AccessControlError(Exception):
    """Base for every error raised by the hierarchy and access-control services."""

    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AccessDeniedError(AccessControlError):
    """The decision table denied the request. The message never says why."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class OwnerNotFoundError(AccessControlError):
    """The target owner id does not resolve to any user."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id!r} not found.")


class StoreUnavailableError(AccessControlError):
    """The hierarchy store could not be reached, failed, or ran past the deadline."""

    retryable = True

    def __init__(
        self,
        message: str,
        query: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.query = query
        self.cause = cause
        super().__init__(message)


class MalformedIdentifierError(AccessControlError):
    """An actor or owner id is not a well-formed identifier; no query was issued."""

    def __init__(self, field: str, value: object) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}.")
