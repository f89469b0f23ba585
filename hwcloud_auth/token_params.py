from __future__ import annotations

import ipaddress
import math
import re
from dataclasses import dataclass, field, replace
from typing import Any

from .errors import ValidationError

TOKEN_TYPES = ("default", "service", "batch", "default-service", "default-batch")
_BATCH_TYPES = {"batch", "default-batch"}

_DURATION_INT = re.compile(r"-?[0-9]+")
_DURATION_PART = re.compile(r"([0-9]+)(s|m|h|d)")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

TOKEN_FIELDS = (
    "token_ttl",
    "token_max_ttl",
    "token_explicit_max_ttl",
    "token_period",
    "token_bound_cidrs",
    "token_policies",
    "token_no_default_policy",
    "token_num_uses",
    "token_type",
)


def parse_duration(raw: Any, *, name: str) -> int:
    """Seconds from an int or a duration string such as "3600", "90m" or "1h30m"."""

    if isinstance(raw, bool):
        raise ValidationError(f"invalid {name}: expected a duration")
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            raise ValidationError(f"invalid {name}: duration must be finite")
        seconds = int(raw)
    else:
        text = str(raw or "").strip().lower()
        if not text:
            return 0
        if _DURATION_INT.fullmatch(text):
            seconds = int(text)
        else:
            pos = 0
            seconds = 0
            for m in _DURATION_PART.finditer(text):
                if m.start() != pos:
                    break
                seconds += int(m.group(1)) * _DURATION_UNITS[m.group(2)]
                pos = m.end()
            if pos != len(text):
                raise ValidationError(f"invalid {name}: unrecognized duration {raw!r}")
    if seconds < 0:
        raise ValidationError(f"invalid {name}: duration cannot be negative")
    return seconds


def _str_list(raw: Any, *, name: str) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple, set)):
        items = list(raw)
    else:
        raise ValidationError(f"invalid {name}: expected a list or comma-separated string")
    out: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise ValidationError(f"invalid {name}: entries must be strings")
        v = item.strip()
        if v:
            out.append(v)
    return out


def parse_cidrs(raw: Any) -> list[str]:
    out: list[str] = []
    for entry in _str_list(raw, name="token_bound_cidrs"):
        try:
            network = ipaddress.ip_network(entry, strict=False)
        except ValueError as e:
            raise ValidationError(f"invalid token_bound_cidrs entry {entry!r}: {e}") from e
        if str(network) not in out:
            out.append(str(network))
    return out


def parse_policies(raw: Any) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for entry in _str_list(raw, name="token_policies"):
        policy = entry.lower()
        if policy in seen:
            continue
        seen.add(policy)
        out.append(policy)
    return out


def _parse_bool(raw: Any, *, name: str) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw or "").strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"", "0", "false", "no", "off"}:
        return False
    raise ValidationError(f"invalid {name}: expected a boolean")


def _parse_num_uses(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError("invalid token_num_uses: expected an integer")
    try:
        val = int(raw)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValidationError("invalid token_num_uses: expected an integer") from e
    if val < 0:
        raise ValidationError("'token_num_uses' cannot be negative")
    return val


def _parse_token_type(raw: Any) -> str:
    val = str(raw or "").strip().lower().replace("_", "-")
    if not val:
        return "default"
    if val not in TOKEN_TYPES:
        raise ValidationError(f"invalid 'token_type' value {raw!r}")
    return val


@dataclass(frozen=True)
class TokenParams:
    """Token issuance options a role carries into every login it authorizes."""

    token_ttl: int = 0
    token_max_ttl: int = 0
    token_explicit_max_ttl: int = 0
    token_period: int = 0
    token_bound_cidrs: tuple[str, ...] = field(default_factory=tuple)
    token_policies: tuple[str, ...] = field(default_factory=tuple)
    token_no_default_policy: bool = False
    token_num_uses: int = 0
    token_type: str = "default"

    def merged(self, fields: dict[str, Any]) -> "TokenParams":
        """Copy with only the supplied keys changed, each parsed and validated."""

        changes: dict[str, Any] = {}
        for key in ("token_ttl", "token_max_ttl", "token_explicit_max_ttl", "token_period"):
            if key in fields:
                changes[key] = parse_duration(fields[key], name=key)
        if "token_bound_cidrs" in fields:
            changes["token_bound_cidrs"] = tuple(parse_cidrs(fields["token_bound_cidrs"]))
        if "token_policies" in fields:
            changes["token_policies"] = tuple(parse_policies(fields["token_policies"]))
        if "token_no_default_policy" in fields:
            changes["token_no_default_policy"] = _parse_bool(
                fields["token_no_default_policy"], name="token_no_default_policy"
            )
        if "token_num_uses" in fields:
            changes["token_num_uses"] = _parse_num_uses(fields["token_num_uses"])
        if "token_type" in fields:
            changes["token_type"] = _parse_token_type(fields["token_type"])

        out = replace(self, **changes)
        out.validate()
        return out

    def validate(self) -> None:
        if self.token_type in _BATCH_TYPES:
            if self.token_period:
                raise ValidationError(
                    "'token_type' cannot be 'batch' or 'default-batch' when set to generate periodic tokens"
                )
            if self.token_num_uses:
                raise ValidationError(
                    "'token_type' cannot be 'batch' or 'default-batch' when set to generate tokens with limited use count"
                )
        if self.token_max_ttl > 0 and self.token_ttl > self.token_max_ttl:
            raise ValidationError("ttl exceeds max ttl")

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_ttl": self.token_ttl,
            "token_max_ttl": self.token_max_ttl,
            "token_explicit_max_ttl": self.token_explicit_max_ttl,
            "token_period": self.token_period,
            "token_bound_cidrs": list(self.token_bound_cidrs),
            "token_policies": list(self.token_policies),
            "token_no_default_policy": self.token_no_default_policy,
            "token_num_uses": self.token_num_uses,
            "token_type": self.token_type,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "TokenParams":
        return cls().merged({k: raw[k] for k in TOKEN_FIELDS if k in raw})

    def populate_auth(self, auth: dict[str, Any]) -> None:
        auth["ttl"] = self.token_ttl
        auth["max_ttl"] = self.token_max_ttl
        auth["explicit_max_ttl"] = self.token_explicit_max_ttl
        auth["period"] = self.token_period
        auth["policies"] = list(self.token_policies)
        auth["no_default_policy"] = self.token_no_default_policy
        auth["num_uses"] = self.token_num_uses
        auth["bound_cidrs"] = list(self.token_bound_cidrs)
        auth["token_type"] = self.token_type


def remote_addr_is_ok(remote_addr: str | None, bound_cidrs: tuple[str, ...] | list[str]) -> bool:
    """True when the caller address falls inside one of the bound CIDRs.

    Addresses may carry a port ("10.1.2.3:5555", "[::1]:80"); it is ignored.
    """

    host = str(remote_addr or "").strip()
    if not host:
        return False
    if host.startswith("["):
        host = host[1:].split("]", 1)[0]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    for cidr in bound_cidrs:
        try:
            network = ipaddress.ip_network(cidr, strict=False)
        except ValueError:
            continue
        if addr.version == network.version and addr in network:
            return True
    return False
