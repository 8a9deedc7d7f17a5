"""
Service-level exceptions.

Services raise these; routers translate them into HTTP responses with
``status_code`` and ``message``.
"""

from typing import Optional


class APIError(Exception):
    """Base exception for all service errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(APIError):
    """Raised when a row does not exist."""

    status_code = 404


class BadRequestError(APIError):
    """Raised for malformed ids, bodies or parameters."""

    status_code = 400


class UnauthorizedError(APIError):
    """Raised when a request cannot be authenticated."""

    status_code = 401


class ForbiddenActionError(APIError):
    """Raised when an authenticated operator attempts a disallowed action."""

    status_code = 400


class DatabaseError(APIError):
    """Raised when the persistence layer fails."""

    status_code = 500


class ConfigPersistError(APIError):
    """Raised when the in-memory config changed but the file write failed."""

    status_code = 500


# ============================================================================
# LLM errors
# ============================================================================

class LLMError(APIError):
    """Base class for analysis pipeline failures."""

    status_code = 500


class LLMDisabledError(LLMError):
    """Raised when analysis is requested while the LLM is disabled."""

    def __init__(self, message: str = "LLM service is not enabled"):
        super().__init__(message)


class LLMTransportError(LLMError):
    """Raised when the endpoint could not be reached."""


class LLMUpstreamError(LLMError):
    """Raised when the endpoint answers with a non-200 status."""

    def __init__(self, upstream_status: int, body_prefix: str):
        super().__init__(f"LLM API returned status {upstream_status}: {body_prefix}")
        self.upstream_status = upstream_status
        self.body_prefix = body_prefix


class LLMEmptyResponseError(LLMError):
    """Raised when the completion carries no message content."""

    def __init__(self, message: str = "LLM returned empty choices"):
        super().__init__(message)


class LLMSchemaError(LLMError):
    """Raised when the completion does not decode into the analysis schema."""

    def __init__(self, error: str, raw_prefix: str):
        super().__init__(f"parse JSON: {error} (raw: {raw_prefix})")
        self.error = error
        self.raw_prefix = raw_prefix
