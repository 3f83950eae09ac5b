"""Error taxonomy for the draft/sync core.

Every error is an ``HTTPException`` so services can raise them directly and
FastAPI renders a structured JSON body without extra handlers.
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class DomainError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.code
        detail: dict[str, Any] = {"error": self.message}
        detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(DomainError):
    """Bulk, module+field scoped validation failure."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_failed"

    def __init__(self, message: Optional[str] = None, issues: Optional[list] = None, **extra: Any):
        self.issues = list(issues or [])
        details = [issue.as_dict() if hasattr(issue, "as_dict") else issue for issue in self.issues]
        super().__init__(message, details=details, **extra)


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class AuthorizationError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class InternalError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"


class ForbiddenError(DomainError):
    """Authenticated, but not allowed to perform the action."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class UpstreamError(DomainError):
    """The sync target answered with something we cannot map, or not at all."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "sync_target_failed"


class ServiceUnavailableError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "not_configured"
