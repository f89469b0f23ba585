"""Huawei Cloud token auth backend.

Callers present a Huawei Cloud IAM token; the backend resolves it to an
account/user identity, matches that against a configured role and returns the
role's token parameters for the host platform to mint a credential with.
"""

from .backend import Backend
from .errors import (
    AlreadyExists,
    AuthError,
    FormatError,
    IdentityMismatch,
    MissingField,
    NotFound,
    PermissionDenied,
    StorageError,
    UpstreamError,
    ValidationError,
)
from .identity import Identity, parse_identity
from .login import AuthRecord, login
from .renewal import RenewedAuth, renew
from .roles import Role, RoleStore

__all__ = [
    "__version__",
    "AlreadyExists",
    "AuthError",
    "AuthRecord",
    "Backend",
    "FormatError",
    "Identity",
    "IdentityMismatch",
    "MissingField",
    "NotFound",
    "PermissionDenied",
    "RenewedAuth",
    "Role",
    "RoleStore",
    "StorageError",
    "UpstreamError",
    "ValidationError",
    "login",
    "parse_identity",
    "renew",
]

__version__ = "0.1.0"
