"""Error taxonomy for the event platform.

Every error carries a machine code, a user-safe message and the HTTP status
the API surface maps it to. Ownership and auth failures stay distinct from
generic server errors because clients react to them differently
(redirect to sign-in, toast, silent refresh).
"""
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class DevEventsError(Exception):
    """Base exception for all platform errors."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code}


class UnauthorizedError(DevEventsError):
    """No authenticated identity for an operation that needs one."""

    code = "UNAUTHORIZED"
    http_status = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(DevEventsError):
    """Identity present but not the owner of the record."""

    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, message: str = "You do not have permission to modify this event"):
        super().__init__(message)


class NotFoundError(DevEventsError):
    """No such record."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, resource: str = "Event", resource_id: Optional[str] = None):
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(DevEventsError):
    """Malformed or missing input, with per-field detail."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, errors: list[FieldError], message: str = "Please fill in all required fields"):
        super().__init__(message)
        self.errors = errors

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        body["errors"] = [e.to_dict() for e in self.errors]
        return body


class ResourceUploadError(DevEventsError):
    """The external image store rejected or failed an upload."""

    code = "UPLOAD_FAILED"
    http_status = 500

    def __init__(self, message: str = "Image upload failed"):
        super().__init__(message)


class StoreUnavailableError(DevEventsError):
    """The document store could not be reached."""

    code = "STORE_UNAVAILABLE"
    http_status = 500

    def __init__(self, message: str = "Database unavailable"):
        super().__init__(message)
