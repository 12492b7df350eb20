"""
StackIt Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for the three failure families of the
       product: bad input, failed backend calls, and missing records.
How:   Each exception carries a user-facing message and a context dict.
       Global handlers (registered in main.py) turn them into JSON errors.
Who:   Raised by gateways and services; caught by global handlers.

Exception Hierarchy:
    StackItError (base)
    ├── ValidationError          → 400 Bad Request (field-scoped, user can fix)
    ├── AuthenticationError      → 401 Unauthorized (no session / no profile)
    ├── PermissionDeniedError    → 403 Forbidden (admin-only operations)
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── BackendCallError         → 502 Bad Gateway (identity/document/object store)

Propagation policy:
    Validation errors are raised before any network call. Backend errors are
    logged where they happen and re-raised as BackendCallError with a single
    non-field-scoped message. Nothing is retried.
"""

from typing import Any, Dict, Optional


class StackItError(Exception):
    """
    Base exception for all StackIt application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info, returned as `details`
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(StackItError):
    """
    Raised when client input fails a business rule.

    Always field-scoped when a field is known (title, description, tags,
    files, email, ...). The form stays populated on the client.

    Example response:
        {
            "error": "validation_error",
            "message": "Title must be at least 10 characters",
            "details": {"field": "title"}
        }
    """

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


class AuthenticationError(StackItError):
    """
    Raised when a route needs a signed-in user and there is none.

    "No session" and "signed in but no profile document" are reported the
    same way; `redirect` tells the client where to send the user.
    """

    def __init__(
        self,
        message: str = "Please sign in to continue",
        redirect: str = "/login",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["redirect"] = redirect
        super().__init__(message=message, context=ctx)
        self.redirect = redirect


class PermissionDeniedError(StackItError):
    """Raised when a signed-in user lacks the role an operation needs."""

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(StackItError):
    """
    Raised when a requested record does not exist.

    When:  GET /api/questions/{id} with an unknown id, voting on an unknown
           answer, deleting an unknown user.
    """

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


class BackendCallError(StackItError):
    """
    Raised when a call to the Identity Gateway, Document Store or Object
    Store fails.

    The message is the single user-visible sentence for the failed
    operation (e.g. "Failed to submit question. Please try again.").
    Upstream details stay in the server log.
    """

    def __init__(
        self,
        message: str = "The request could not be completed. Please try again.",
        service: str = "backend",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["service"] = service
        super().__init__(message=message, context=ctx)
        self.service = service


class RateLimitExceededError(StackItError):
    """Raised when a client exceeds the per-IP request rate limit."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


def raise_for_field_errors(errors: Dict[str, str]) -> None:
    """
    Raise a ValidationError for a form's collected field errors.

    The first error becomes the message and `field`; the full mapping is
    returned to the client as `details.errors`.
    """
    if errors:
        field, message = next(iter(errors.items()))
        raise ValidationError(message=message, field=field, context={"errors": dict(errors)})
