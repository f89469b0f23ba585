from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any

from .errors import AlreadyExists, FormatError, NotFound, ValidationError
from .identity import Identity, parse_identity
from .storage import Storage
from .token_params import TokenParams

ROLE_PREFIX = "role/"
ROLE_NAME_PATTERN = re.compile(r"^\w(([\w.-]+)?\w)?$")


def normalize_role_name(raw: Any) -> str:
    name = str(raw or "").strip().lower()
    if not name:
        raise ValidationError("missing role")
    if not ROLE_NAME_PATTERN.match(name):
        raise ValidationError(f"invalid role name {name!r}")
    return name


@dataclass(frozen=True)
class Role:
    name: str
    identity: Identity
    token_params: TokenParams = field(default_factory=TokenParams)

    def to_record(self) -> dict[str, Any]:
        record = self.token_params.to_dict()
        record["role_name"] = self.name
        record["identity"] = self.identity.to_dict()
        return record

    @classmethod
    def from_record(cls, raw: dict[str, Any]) -> "Role":
        return cls(
            name=str(raw.get("role_name") or ""),
            identity=Identity.from_dict(raw.get("identity") or {}),
            token_params=TokenParams.from_dict(raw),
        )

    def to_response_data(self) -> dict[str, Any]:
        data = self.token_params.to_dict()
        data["identity"] = self.identity.to_string()
        data["role_name"] = self.name
        return data


@dataclass
class WriteResult:
    role: Role
    warnings: list[str] = field(default_factory=list)


def _role_key(name: str) -> str:
    return ROLE_PREFIX + name


class RoleStore:
    """Named role records persisted as JSON snapshots under role/<name>."""

    def __init__(self, storage: Storage, *, system_max_lease_ttl: int = 0) -> None:
        self.storage = storage
        self.system_max_lease_ttl = system_max_lease_ttl

    def get(self, name: str) -> Role | None:
        # A name that fails the pattern can never have been stored.
        try:
            role_name = normalize_role_name(name)
        except ValidationError:
            return None
        raw = self.storage.get(_role_key(role_name))
        if raw is None:
            return None
        return Role.from_record(raw)

    def exists(self, name: str) -> bool:
        return self.get(name) is not None

    def read(self, name: str) -> Role:
        role = self.get(name)
        if role is None:
            raise NotFound(f"entry for role {str(name or '').strip().lower()} not found")
        return role

    def create(
        self,
        name: str,
        identity: Identity | str | None,
        token_fields: dict[str, Any] | None = None,
    ) -> WriteResult:
        role_name = normalize_role_name(name)
        if self.get(role_name) is not None:
            raise AlreadyExists(f"role {role_name} already exists")
        if identity is None or identity == "":
            raise ValidationError("the identity is required to create a role")
        role = Role(
            name=role_name,
            identity=_coerce_identity(identity),
            token_params=TokenParams().merged(token_fields or {}),
        )
        return self._write(role)

    def update(
        self,
        name: str,
        *,
        identity: Identity | str | None = None,
        token_fields: dict[str, Any] | None = None,
    ) -> WriteResult:
        role_name = normalize_role_name(name)
        role = self.get(role_name)
        if role is None:
            raise NotFound(f"no role {role_name} found to update")
        if identity is not None:
            role = replace(role, identity=_coerce_identity(identity))
        role = replace(role, token_params=role.token_params.merged(token_fields or {}))
        return self._write(role)

    def delete(self, name: str) -> None:
        self.storage.delete(_role_key(normalize_role_name(name)))

    def list(self) -> list[str]:
        return [n for n in self.storage.list(ROLE_PREFIX) if not n.endswith("/")]

    def _write(self, role: Role) -> WriteResult:
        if not role.identity.is_complete():
            raise ValidationError("the identity must name both an account and a user")
        role.token_params.validate()
        self.storage.put(_role_key(role.name), role.to_record())

        result = WriteResult(role=role)
        ttl = role.token_params.token_ttl
        if self.system_max_lease_ttl and ttl > self.system_max_lease_ttl:
            result.warnings.append(
                f"ttl of {ttl} exceeds the system max ttl of {self.system_max_lease_ttl}, "
                "the latter will be used during login"
            )
        return result


def _coerce_identity(identity: Identity | str) -> Identity:
    if isinstance(identity, Identity):
        return identity
    try:
        return parse_identity(identity)
    except FormatError as e:
        raise FormatError(f"unable to parse identity {identity}: {e}") from e
