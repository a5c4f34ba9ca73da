"""
Application-wide exception hierarchy.

Services raise these types; ``app.core.error_handlers`` registers one
handler per type so every blueprint gets the same status codes and JSON
body without its own try/except.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Project")
    raise ValidationError("Title is required and must be under 200 characters")
"""


class AppError(Exception):
    """Base class for errors that carry their own HTTP status."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(AppError):
    """Raised when a resource does not exist within the caller's tenant.

    Used for BOTH genuinely missing records AND cross-tenant access attempts,
    so a 404 never confirms that another tenant's row exists.

    Args:
        resource: Human-readable entity name, or a full message when it
                  already ends in "not found".
        resource_id: Looked-up key. Logged, never sent to the client.
        tenant_id: Enforced scope. Logged, never sent to the client.
    """

    status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        if "not found" in resource.lower():
            msg = resource
        else:
            msg = f"{resource} not found"
        super().__init__(msg)


class ValidationError(AppError):
    """Raised when input is malformed or violates a business rule (HTTP 400).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    status_code = 400

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(AppError):
    """Raised when an operation would duplicate a unique value (HTTP 409).

    Args:
        message: Full message shown to the caller, e.g. "Email already exists".
    """

    status_code = 409


class ForbiddenError(AppError):
    """Raised when the caller is authenticated but lacks the role (HTTP 403)."""

    status_code = 403

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class AuthenticationError(AppError):
    """Raised on missing/invalid credentials (HTTP 401)."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ExternalServiceError(AppError):
    """Raised when a third-party API (Kinescope, OpenAI, ...) fails (HTTP 502)."""

    status_code = 502

    def __init__(self, message: str, service: str | None = None) -> None:
        self.service = service
        super().__init__(message)


class ServiceUnavailableError(AppError):
    """Raised when an optional integration is not configured (HTTP 503)."""

    status_code = 503
