"""
Error taxonomy for the access control engine.

Only the Grant Store and the request workflow raise these; the resolver and
the guard are pure and never do. Each error carries the HTTP status the API
boundary renders it with, so route handlers just let them propagate.
"""
from fastapi import status


class AccessControlError(Exception):
    """Base exception for access control errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(AccessControlError):
    """Malformed input, rejected before any mutation."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, error_code)


class UnknownVariantError(ValidationError):
    """A raw string that names no Position or Permission."""

    def __init__(self, kind: str, value: object):
        self.kind = kind
        self.value = value
        super().__init__(f"Unknown {kind}: {value!r}", error_code="UNKNOWN_VARIANT")


class UnauthorizedError(AccessControlError):
    """No caller identity where one is required."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED")


class ForbiddenError(AccessControlError):
    """Caller identity lacks the permission for the action."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status.HTTP_403_FORBIDDEN, "FORBIDDEN")


class NotFoundError(AccessControlError):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}", status.HTTP_404_NOT_FOUND, "NOT_FOUND")


class ConflictError(AccessControlError):
    """State changed underneath the caller; re-fetch before retrying."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_409_CONFLICT, "CONFLICT")


class UpstreamUnavailable(AccessControlError):
    """Resolution service or storage could not be reached."""

    def __init__(self, message: str = "Permission service unavailable"):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE, "UPSTREAM_UNAVAILABLE")


class InconsistentStateError(AccessControlError):
    """Fatal: stored state needs operator remediation."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, "INCONSISTENT_STATE")


class GrantCreationError(InconsistentStateError):
    """The grant for an approved request could not be written."""

    def __init__(self, request_id: str, reason: str):
        self.request_id = request_id
        super().__init__(f"Grant for approved permission request {request_id} could not be created: {reason}")
