"""Custom exceptions."""
from typing import Optional
from fastapi import HTTPException, status
from app.localization.helpers import get_translation


class AppHTTPError(HTTPException):
    """HTTP error whose default detail comes from the translation catalogue."""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_key = "errors.validation_error"

    def __init__(
        self,
        detail: Optional[str] = None,
        locale: str = "en",
        *,
        key: Optional[str] = None,
        **params,
    ):
        if detail is None:
            detail = get_translation(key or self.default_key, locale, **params)
        super().__init__(status_code=self.status_code_default, detail=detail)


class NotFoundError(AppHTTPError):
    """Resource not found exception."""

    status_code_default = status.HTTP_404_NOT_FOUND
    default_key = "errors.resource_not_found"


class UnauthorizedError(AppHTTPError):
    """Unauthorized exception."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    default_key = "errors.not_authenticated"


class ForbiddenError(AppHTTPError):
    """Forbidden exception."""

    status_code_default = status.HTTP_403_FORBIDDEN
    default_key = "errors.permission_denied"


class ValidationError(AppHTTPError):
    """Validation exception."""

    status_code_default = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_key = "errors.validation_error"


class ConflictError(AppHTTPError):
    """Conflict exception."""

    status_code_default = status.HTTP_409_CONFLICT
    default_key = "errors.resource_conflict"


class AuditWriteError(Exception):
    """Raised inside the audit pipeline when a log could not be fully persisted.

    Never escapes the background writer; it only carries context for logging.
    """

    def __init__(self, message: str, audit_log_id: Optional[str] = None):
        super().__init__(message)
        self.audit_log_id = audit_log_id
