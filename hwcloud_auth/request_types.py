"""Typed request structs for each endpoint.

Payloads arrive as loose JSON objects; these types check field shapes once at
the boundary so the state machines only ever see well-typed values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import ValidationError
from .roles import normalize_role_name
from .token_params import TOKEN_FIELDS


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    val = payload.get(key)
    if val is None:
        return None
    if not isinstance(val, str):
        raise ValidationError(f"invalid {key}: expected string")
    return val


@dataclass(frozen=True)
class LoginRequest:
    role: str
    token: str
    remote_addr: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, remote_addr: str | None = None) -> "LoginRequest":
        return cls(
            role=(_optional_str(payload, "role") or "").strip(),
            token=(_optional_str(payload, "token") or "").strip(),
            remote_addr=(remote_addr or "").strip() or None,
        )


@dataclass(frozen=True)
class RoleNameRequest:
    name: str

    @classmethod
    def from_path(cls, name: str) -> "RoleNameRequest":
        return cls(name=normalize_role_name(name))


@dataclass(frozen=True)
class RoleWriteRequest:
    name: str
    identity: str | None = None
    token_fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, name: str, payload: dict[str, Any]) -> "RoleWriteRequest":
        body_name = _optional_str(payload, "role")
        role_name = normalize_role_name(name or body_name)
        if body_name and normalize_role_name(body_name) != role_name:
            raise ValidationError("role in body does not match role in path")

        unknown = sorted(k for k in payload if k not in TOKEN_FIELDS and k not in ("role", "identity"))
        if unknown:
            raise ValidationError(f"unknown fields: {', '.join(unknown)}")

        return cls(
            name=role_name,
            identity=_optional_str(payload, "identity"),
            token_fields={k: payload[k] for k in TOKEN_FIELDS if k in payload},
        )


@dataclass(frozen=True)
class RenewRequest:
    metadata: dict[str, str]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RenewRequest":
        raw = payload.get("metadata")
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValidationError("invalid metadata: expected object")
        metadata: dict[str, str] = {}
        for k, v in raw.items():
            if not isinstance(v, str):
                raise ValidationError(f"invalid metadata.{k}: expected string")
            metadata[str(k)] = v
        return cls(metadata=metadata)
