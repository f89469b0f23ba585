from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import IdentityMismatch, MissingField, PermissionDenied
from .identity import Identity
from .roles import RoleStore
from .token_params import remote_addr_is_ok

METADATA_KEYS = ("account", "user", "role_name")


class Verifier(Protocol):
    def verify(self, token: str, *, timeout: float | None = None) -> Identity: ...


@dataclass
class AuthRecord:
    """What a successful login hands back to the host platform for minting."""

    metadata: dict[str, str]
    ttl: int = 0
    max_ttl: int = 0
    period: int = 0
    explicit_max_ttl: int = 0
    policies: list[str] = field(default_factory=list)
    no_default_policy: bool = False
    num_uses: int = 0
    bound_cidrs: list[str] = field(default_factory=list)
    token_type: str = "default"

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": dict(self.metadata),
            "ttl": self.ttl,
            "max_ttl": self.max_ttl,
            "period": self.period,
            "explicit_max_ttl": self.explicit_max_ttl,
            "policies": list(self.policies),
            "no_default_policy": self.no_default_policy,
            "num_uses": self.num_uses,
            "bound_cidrs": list(self.bound_cidrs),
            "token_type": self.token_type,
        }


def login(
    *,
    role_store: RoleStore,
    verifier: Verifier,
    role_name: str,
    token: str,
    remote_addr: str | None = None,
    timeout: float | None = None,
    events: list[dict[str, Any]] | None = None,
) -> AuthRecord:
    role_name = (role_name or "").strip()
    if not role_name:
        raise MissingField("role")
    if not token:
        raise MissingField("token")

    verified = verifier.verify(token, timeout=timeout)

    role = role_store.read(role_name)

    bound_cidrs = role.token_params.token_bound_cidrs
    if bound_cidrs:
        if not remote_addr:
            if events is not None:
                events.append(
                    {
                        "level": "warn",
                        "message": "token bound CIDRs found but no connection information available for validation",
                    }
                )
            raise PermissionDenied()
        if not remote_addr_is_ok(remote_addr, bound_cidrs):
            raise PermissionDenied()

    if not verified.equal(role.identity):
        raise IdentityMismatch()

    fields: dict[str, Any] = {}
    role.token_params.populate_auth(fields)
    return AuthRecord(
        metadata={
            "account": verified.account,
            "user": verified.user,
            "role_name": role.name,
        },
        **fields,
    )
