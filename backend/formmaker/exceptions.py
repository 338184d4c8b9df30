"""
Formmaker Backend — Custom Exception Hierarchy
================================================

What:  Application-specific exceptions, one per failure kind a service
       operation can report.
How:   Each exception carries a user-facing message and a context dict.
       Global handlers registered in main.py translate the kind into an HTTP
       status code and a structured JSON body.

Exception Hierarchy:
    FormmakerError (base)
    ├── ValidationError     → 400 Bad Request (malformed filter, bad sort field)
    ├── AccessDeniedError   → 403 Forbidden (permission predicate failed)
    ├── NotFoundError       → 404 Not Found
    ├── ConflictError       → 409 Conflict (already a member, wrong placement,
    │                                       form not accepting responses)
    └── DatabaseError       → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class FormmakerError(Exception):
    """
    Base exception for all Formmaker application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only by 4xx handlers)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(FormmakerError):
    """Raised when client input breaks a business rule the schema cannot express."""

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


class NotFoundError(FormmakerError):
    """Raised when a referenced team, folder, form, user or response does not exist."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class AccessDeniedError(FormmakerError):
    """
    Raised when the acting user lacks the capability an operation needs.

    `required` names the missing capability (view, edit, delete) or the role
    the operation is reserved for (creator).
    """

    def __init__(
        self,
        message: str = "Access denied",
        required: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if required:
            ctx["required"] = required
        super().__init__(message=message, context=ctx)
        self.required = required


class ConflictError(FormmakerError):
    """Raised when the request is well-formed but clashes with current state."""

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(FormmakerError):
    """
    Raised when a database operation fails unexpectedly.

    The client always receives a generic message; details stay in the logs.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
