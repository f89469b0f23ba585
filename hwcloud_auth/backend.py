from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from .login import AuthRecord, Verifier, login
from .renewal import RenewedAuth, renew
from .request_types import LoginRequest, RenewRequest, RoleNameRequest, RoleWriteRequest
from .roles import RoleStore, WriteResult
from .storage import DynamoStorage, InMemoryStorage, Storage
from .verifier import IdentityVerifier

ROLE_TABLE_NAME = "ROLE_TABLE_NAME"
SYSTEM_MAX_LEASE_TTL_SECONDS = "SYSTEM_MAX_LEASE_TTL_SECONDS"
DEFAULT_SYSTEM_MAX_LEASE_TTL = 32 * 24 * 3600

BACKEND_HELP = """
The Huawei Cloud auth method allows entities to authenticate based on their
identity and pre-configured roles.
"""


def _aws_region() -> str | None:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")


def _int_env(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def storage_from_env() -> Storage:
    table = (os.environ.get(ROLE_TABLE_NAME) or "").strip()
    if table:
        return DynamoStorage(table, region_name=_aws_region())
    return InMemoryStorage()


@dataclass
class Backend:
    """Collaborators built once and shared by every request."""

    role_store: RoleStore
    verifier: Verifier

    @classmethod
    def from_env(cls, *, storage: Storage | None = None, verifier: Verifier | None = None) -> "Backend":
        role_store = RoleStore(
            storage if storage is not None else storage_from_env(),
            system_max_lease_ttl=_int_env(SYSTEM_MAX_LEASE_TTL_SECONDS, DEFAULT_SYSTEM_MAX_LEASE_TTL),
        )
        return cls(role_store=role_store, verifier=verifier or IdentityVerifier())

    def login(
        self,
        req: LoginRequest,
        *,
        timeout: float | None = None,
        events: list[dict[str, Any]] | None = None,
    ) -> AuthRecord:
        return login(
            role_store=self.role_store,
            verifier=self.verifier,
            role_name=req.role,
            token=req.token,
            remote_addr=req.remote_addr,
            timeout=timeout,
            events=events,
        )

    def renew(self, req: RenewRequest) -> RenewedAuth:
        return renew(role_store=self.role_store, metadata=req.metadata)

    def role_exists(self, req: RoleNameRequest) -> bool:
        return self.role_store.exists(req.name)

    def role_create(self, req: RoleWriteRequest) -> WriteResult:
        return self.role_store.create(req.name, req.identity, req.token_fields)

    def role_update(self, req: RoleWriteRequest) -> WriteResult:
        return self.role_store.update(req.name, identity=req.identity, token_fields=req.token_fields)

    def role_write(self, req: RoleWriteRequest) -> tuple[str, WriteResult]:
        """Create when the role is absent, otherwise merge into it."""

        if self.role_exists(RoleNameRequest(name=req.name)):
            return "update", self.role_update(req)
        return "create", self.role_create(req)

    def role_read(self, req: RoleNameRequest) -> dict[str, Any]:
        return self.role_store.read(req.name).to_response_data()

    def role_delete(self, req: RoleNameRequest) -> None:
        self.role_store.delete(req.name)

    def role_list(self) -> list[str]:
        return self.role_store.list()
