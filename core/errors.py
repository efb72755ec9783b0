"""
Error taxonomy for the feedback pipeline.
"""

from typing import Optional


class AnalysisError(Exception):
    """A single analysis call failed. Always recoverable by the caller."""

    error_code = "ANALYSIS_ERROR"

    def __init__(self, message: str, action: Optional[str] = None, reason: Optional[str] = None):
        self.message = message
        self.action = action
        self.reason = reason
        super().__init__(message)

    def __str__(self) -> str:
        if self.reason:
            return f"{self.message}: {self.reason}"
        return self.message


class NetworkError(AnalysisError):
    """The backend could not be reached or did not answer."""
    error_code = "NETWORK_ERROR"


class BackendError(AnalysisError):
    """The backend answered with an error or an empty payload."""
    error_code = "BACKEND_ERROR"


class MalformedResponse(AnalysisError):
    """The backend answered, but not in the shape expected for the action."""
    error_code = "MALFORMED_RESPONSE"


class EmptyContentError(ValueError):
    error_code = "EMPTY_CONTENT"


class InsufficientFeedbackError(ValueError):
    error_code = "INSUFFICIENT_FEEDBACK"


class DraftConflictError(Exception):
    """The editor buffer changed after the draft was requested."""
    error_code = "DRAFT_CONFLICT"


class SessionDisposedError(RuntimeError):
    error_code = "SESSION_DISPOSED"
