from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for failures that are reported to API callers.

    Every subclass carries a machine-readable ``kind``, the HTTP status it maps
    to and whether a client may retry the same request.
    """

    kind: str = "internal_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.field:
            body["field"] = self.field
        return body


class UnauthenticatedError(AppError):
    kind = "unauthenticated"
    status_code = 401


class ForbiddenError(AppError):
    kind = "forbidden"
    status_code = 403


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404


class ValidationFailedError(AppError):
    kind = "validation_error"
    status_code = 400


class InvalidImageError(AppError):
    kind = "invalid_image"
    status_code = 422


class StorageFailureError(AppError):
    """Downstream database or object storage failure."""

    kind = "storage_failure"
    status_code = 502
    retryable = True


class ProfileUnavailableError(StorageFailureError):
    """Profile could not be read or created while authenticating a request."""

    status_code = 500


class UpstreamTimeoutError(StorageFailureError):
    kind = "timeout"
    status_code = 504


class IdentityProviderUnavailableError(AppError):
    kind = "identity_provider_unavailable"
    status_code = 503
    retryable = True


class ConflictError(AppError):
    """Row already exists. Absorbed by callers, never sent to clients."""

    kind = "conflict"
    status_code = 409


class ImageFailureError(AppError):
    """One of the images attached to an item could not be ingested."""

    kind = "image_failure"

    def __init__(self, message: str, *, index: int, cause: AppError) -> None:
        super().__init__(message, field=f"images[{index}]")
        self.index = index
        self.cause = cause
        self.status_code = 422 if isinstance(cause, InvalidImageError) else 502
        self.retryable = cause.retryable
