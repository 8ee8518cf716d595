"""
Application exception hierarchy.

Route handlers raise these; the handlers registered in main.py turn them into
JSON error responses:

    SocialHubError (base)     -> 500
    ├── ValidationError       -> 400
    │   └── ConflictError     -> 409
    ├── UnauthorizedError     -> 401
    ├── ForbiddenError        -> 403
    ├── NotFoundError         -> 404
    └── DatabaseError         -> 500
"""

from typing import Any, Dict, Optional


class SocialHubError(Exception):
    """
    Base exception for all application errors.

    `message` is safe to return to clients; `context` is for logs only.
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SocialHubError):
    """Missing, empty or malformed input the client can fix."""

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ConflictError(ValidationError):
    """A uniqueness constraint (username, email) would be violated."""

    status_code = 409
    error_code = "conflict"


class UnauthorizedError(SocialHubError):
    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str = "Access denied", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class ForbiddenError(SocialHubError):
    status_code = 403
    error_code = "forbidden"

    def __init__(self, message: str = "Forbidden", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class NotFoundError(SocialHubError):
    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class DatabaseError(SocialHubError):
    """
    A database operation failed unexpectedly.

    The client only ever sees the generic message; driver details stay in the log.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
