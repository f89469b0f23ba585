from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import IdentityMismatch, MissingField
from .identity import Identity
from .roles import RoleStore


@dataclass
class RenewedAuth:
    metadata: dict[str, str]
    ttl: int
    max_ttl: int
    period: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": dict(self.metadata),
            "ttl": self.ttl,
            "max_ttl": self.max_ttl,
            "period": self.period,
        }


def _metadata_value(metadata: dict[str, Any], key: str, label: str) -> str:
    val = str(metadata.get(key) or "")
    if not val:
        raise MissingField(key, f"unable to retrieve {label} from metadata during renewal")
    return val


def renew(*, role_store: RoleStore, metadata: dict[str, Any]) -> RenewedAuth:
    """Re-check stored login metadata against the role as it is now.

    TTLs come from the current role, not from the original login, so policy
    edits apply to sessions that are already out there.
    """

    account = _metadata_value(metadata, "account", "account")
    user = _metadata_value(metadata, "user", "user")
    role_name = _metadata_value(metadata, "role_name", "role name")

    role = role_store.read(role_name)

    if not Identity(account=account, user=user).equal(role.identity):
        raise IdentityMismatch()

    params = role.token_params
    return RenewedAuth(
        metadata={k: str(v) for k, v in metadata.items()},
        ttl=params.token_ttl,
        max_ttl=params.token_max_ttl,
        period=params.token_period,
    )
