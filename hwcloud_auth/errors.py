from __future__ import annotations


class AuthError(Exception):
    """Base class for every request-scoped failure raised by this package."""

    code = "AUTH_ERROR"
    status_code = 500


class MissingField(AuthError):
    """Raised when a required request field is absent or empty."""

    code = "MISSING_FIELD"
    status_code = 400

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"missing {field}")


class FormatError(AuthError):
    """Raised when an identity string is not in account:user form."""

    code = "FORMAT_ERROR"
    status_code = 400


class ValidationError(AuthError):
    """Raised when a role write breaks a field or TTL constraint."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(AuthError):
    code = "NOT_FOUND"
    status_code = 404


class AlreadyExists(AuthError):
    code = "ALREADY_EXISTS"
    status_code = 409


class PermissionDenied(AuthError):
    """Raised when a bound CIDR check fails. The message never says which part."""

    code = "PERMISSION_DENIED"
    status_code = 403

    def __init__(self, message: str = "permission denied"):
        super().__init__(message)


class IdentityMismatch(AuthError):
    """Raised when the verified identity differs from the role's identity."""

    code = "IDENTITY_MISMATCH"
    status_code = 403

    def __init__(self, message: str = "the caller's identity does not match the role's"):
        super().__init__(message)


class UpstreamError(AuthError):
    """Raised when the identity provider call fails; the cause is chained."""

    code = "UPSTREAM_ERROR"
    status_code = 502
    public_message = "error making upstream request"


class StorageError(AuthError):
    code = "STORAGE_ERROR"
    status_code = 500
