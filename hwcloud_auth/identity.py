from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import FormatError

SEPARATOR = ":"


@dataclass(frozen=True)
class Identity:
    account: str
    user: str

    def equal(self, other: "Identity") -> bool:
        return self.account == other.account and self.user == other.user

    def is_complete(self) -> bool:
        return bool(self.account) and bool(self.user)

    def to_string(self) -> str:
        return f"{self.account}{SEPARATOR}{self.user}"

    def __str__(self) -> str:
        return self.to_string()

    def to_dict(self) -> dict[str, str]:
        return {"account": self.account, "user": self.user}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Identity":
        return cls(account=str(raw.get("account") or ""), user=str(raw.get("user") or ""))

    @classmethod
    def parse(cls, value: str) -> "Identity":
        return parse_identity(value)


def parse_identity(value: str) -> Identity:
    parts = str(value).split(SEPARATOR)
    if len(parts) != 2:
        raise FormatError(
            f"unrecognized identity: contains {len(parts)} colon-separated fields "
            f"({len(parts) - 1} separators), expected 2"
        )
    return Identity(account=parts[0], user=parts[1])
