"""Error taxonomy shared by the services and mapped to HTTP codes by the API."""


class DomainError(Exception):
    """Base class for every error the core raises on purpose."""


class ValidationError(DomainError):
    """Malformed or missing required input.  Never retried."""


class NotFound(DomainError):
    """Unknown trip, request or driver id."""


class Conflict(DomainError):
    """A precondition on the current row state failed (lost a race)."""


class InvalidTransition(DomainError):
    """The requested status change is not permitted from the current state."""


class PersistenceFailure(DomainError):
    """Transient I/O error talking to the relational store."""
