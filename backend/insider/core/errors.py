"""
Domain exceptions raised by services and mapped to HTTP responses in main.py
"""


class InsiderError(Exception):
    """Base class for errors that carry an HTTP status"""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(InsiderError, ValueError):
    status_code = 400


class AuthenticationError(InsiderError):
    status_code = 401


class PermissionDeniedError(InsiderError):
    status_code = 403


class NotFoundError(InsiderError):
    status_code = 404


class ConflictError(InsiderError):
    status_code = 409


class InvalidStateError(ConflictError):
    """Raised for a state-machine transition that is not allowed from the current status"""


class LLMError(InsiderError):
    """Raised when the LLM API cannot produce an answer"""

    status_code = 502


class ServiceUnavailableError(InsiderError):
    status_code = 503
