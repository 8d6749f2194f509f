from __future__ import annotations


class AppError(Exception):
    """Base error for domain/application exceptions.

    Every subclass carries a stable machine-readable ``code`` and the HTTP status the
    API layer renders it with.
    """

    code: str = "APP_ERROR"
    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


class Unauthorized(AppError):
    """Raised when no authenticated actor is present."""

    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AppError):
    """Raised when the actor's role (or ownership) does not permit the action."""

    code = "FORBIDDEN"
    status_code = 403
    default_message = "Forbidden"


class DeliveryNotEnabled(Forbidden):
    code = "DELIVERY_NOT_ENABLED"
    default_message = "Deal has not been approved for delivery"


class NotFound(AppError):
    """Raised when entity is missing or not visible within tenant scope."""

    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class InvalidStage(AppError):
    """Raised when the action is not valid for the deal's current stage."""

    code = "INVALID_STAGE"
    status_code = 409
    default_message = "Action not valid for the current stage"


class VersionLocked(InvalidStage):
    code = "VERSION_LOCKED"
    default_message = "Version is locked and cannot be edited"


class ImmutableRecordError(InvalidStage):
    """Raised at flush time when a write targets an append-only or frozen row."""

    code = "IMMUTABLE_RECORD"
    default_message = "Record is immutable"


class ValidationError(AppError):
    """Raised for domain-level validation beyond schema validation."""

    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Validation failed"


class Conflict(AppError):
    """Raised when a concurrent or duplicate operation lost the precondition race."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict"


class Internal(AppError):
    code = "INTERNAL"
    status_code = 500
    default_message = "Internal error"


class ApprovalFailed(Internal):
    code = "APPROVAL_FAILED"
    default_message = "Approval failed - all changes rolled back"
