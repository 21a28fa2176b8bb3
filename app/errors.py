"""Workflow error taxonomy.

Services raise these; the API layer maps each one to an HTTP status through a
single exception handler. None of them is fatal and none is retried
internally. `ConflictError` is the only one a caller should retry.
"""


class WorkflowError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WorkflowError):
    """Malformed date, unknown leave type, missing field, inverted range."""

    status_code = 400


class AuthorizationError(WorkflowError):
    """Actor lacks ownership or role for the target record."""

    status_code = 403


class NotFoundError(WorkflowError):
    status_code = 404


class ConflictError(WorkflowError):
    """Concurrent duplicate-key write; retry the whole operation."""

    status_code = 409


class StateGuardViolation(WorkflowError):
    """Transition attempted from a status that does not allow it; nothing changed."""

    status_code = 400
