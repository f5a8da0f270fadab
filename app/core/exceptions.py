"""
Application exception hierarchy.

Services and dependencies raise these; the handlers registered in
app.main render them as ``{"success": false, "message": ..., "code": ...}``.

    ClinicError (base)            → 500
    ├── ValidationError           → 400
    ├── AuthenticationError       → 401
    ├── ForbiddenError            → 403
    ├── NotFoundError             → 404
    ├── ConflictError             → 409
    ├── RateLimitExceededError    → 429
    └── DatabaseError             → 500 (message never reaches the client)
        └── UniqueViolationError
"""

from typing import Any, Dict, List, Optional

from app.core.constants import ERROR_MESSAGES


class ClinicError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        code:     Machine-readable code, returned when set
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code = 500
    default_code: Optional[str] = None

    def __init__(
        self,
        message: str = ERROR_MESSAGES["INTERNAL_SERVER_ERROR"],
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message}
        if self.code:
            body["code"] = self.code
        return body


class ValidationError(ClinicError):
    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = ERROR_MESSAGES["INVALID_REQUEST"],
        field: Optional[str] = None,
        required: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.required = required

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        if self.required:
            body["required"] = self.required
        return body


class AuthenticationError(ClinicError):
    status_code = 401
    default_code = "TOKEN_MISSING"

    def __init__(self, message: str = ERROR_MESSAGES["TOKEN_MISSING"], code: Optional[str] = None):
        super().__init__(message=message, code=code)


class ForbiddenError(ClinicError):
    status_code = 403
    default_code = "FORBIDDEN"

    def __init__(self, message: str = ERROR_MESSAGES["FORBIDDEN"], code: Optional[str] = None):
        super().__init__(message=message, code=code)


class NotFoundError(ClinicError):
    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(
        self,
        message: str = ERROR_MESSAGES["NOT_FOUND"],
        resource_id: Optional[str] = None,
    ):
        super().__init__(message=message, context={"resource_id": resource_id} if resource_id else None)


class ConflictError(ClinicError):
    status_code = 409
    default_code = "CONFLICT"


class RateLimitExceededError(ClinicError):
    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message=message, context={"retry_after": retry_after})
        self.retry_after = retry_after


class DatabaseError(ClinicError):
    """
    A Supabase/PostgREST call failed.

    The message returned to the client is always generic; the PostgREST
    code, message and details are kept in ``context`` for the server log.
    """

    status_code = 500
    default_code = "DATABASE_ERROR"

    def __init__(
        self,
        message: str = ERROR_MESSAGES["INTERNAL_SERVER_ERROR"],
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UniqueViolationError(DatabaseError):
    """Postgres 23505; ``constraint`` is parsed from the error message when present."""

    def __init__(self, constraint: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(context=context)
        self.constraint = constraint
