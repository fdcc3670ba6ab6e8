"""Error taxonomy for the workflow core.

Each error carries a stable ``error_code`` and the HTTP status the API maps it to.
"""

from __future__ import annotations


class PrelixError(Exception):
    """Base class for errors surfaced to callers."""

    error_code = "PRELIX_ERROR"
    status_code = 400

    def __init__(self, message: str, **context: str | None) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}


class MalformedResponseError(PrelixError):
    """The language-model backend returned output that is not the expected structure.

    Recovered inside the estimator; never returned to an end user.
    """

    error_code = "MALFORMED_RESPONSE"
    status_code = 502


class ChatLimitReachedError(PrelixError):
    """The user has used up their chat interfaces and has no unlimited entitlement."""

    error_code = "CHAT_LIMIT_REACHED"
    status_code = 403


class BackendUnavailableError(PrelixError):
    """The language-model backend failed, timed out, or is not configured."""

    error_code = "BACKEND_UNAVAILABLE"
    status_code = 502


class AuthorizationError(PrelixError):
    error_code = "UNAUTHORIZED"
    status_code = 401


class SessionNotFoundError(PrelixError):
    error_code = "SESSION_NOT_FOUND"
    status_code = 404


class TemplateNotFoundError(PrelixError):
    error_code = "TEMPLATE_NOT_FOUND"
    status_code = 404


class DuplicateSubmissionError(PrelixError):
    """The same message is already being processed for this session."""

    error_code = "DUPLICATE_SUBMISSION"
    status_code = 409


class SessionBusyError(PrelixError):
    """Another call for this session is still in flight."""

    error_code = "SESSION_BUSY"
    status_code = 409


class InvalidConfirmationError(PrelixError):
    error_code = "INVALID_CONFIRMATION"
    status_code = 422


class WorkflowStateError(PrelixError):
    """The requested step is not valid at the session's current point in the workflow."""

    error_code = "WORKFLOW_STATE"
    status_code = 409
