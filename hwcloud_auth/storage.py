from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Protocol

import boto3

from .errors import StorageError


class Storage(Protocol):
    def get(self, key: str) -> dict[str, Any] | None: ...

    def put(self, key: str, value: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...

    def list(self, prefix: str) -> list[str]: ...


def _children(keys: list[str], prefix: str) -> list[str]:
    # Only direct children; nested keys collapse to "<child>/".
    out: list[str] = []
    for key in keys:
        if not key.startswith(prefix):
            continue
        rest = key[len(prefix) :]
        if not rest:
            continue
        if "/" in rest:
            rest = rest.split("/", 1)[0] + "/"
        if rest not in out:
            out.append(rest)
    return sorted(out)


class InMemoryStorage:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = json.dumps(value, sort_keys=True)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def list(self, prefix: str) -> list[str]:
        return _children(list(self._data), prefix)


class FileStorage:
    """Single JSON document on disk; used by the CLI when no table is configured."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            val = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except Exception as e:
            raise StorageError(f"invalid state file {self.path}: {e}") from e
        if not isinstance(val, dict):
            raise StorageError(f"invalid state file {self.path}: expected JSON object")
        return val

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        try:
            os.chmod(self.path, 0o600)
        except Exception as e:
            raise StorageError(f"failed to apply 0600 permissions to {self.path}: {e}") from e

    def get(self, key: str) -> dict[str, Any] | None:
        val = self._load().get(key)
        return val if isinstance(val, dict) else None

    def put(self, key: str, value: dict[str, Any]) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def list(self, prefix: str) -> list[str]:
        return _children(list(self._load()), prefix)


class DynamoStorage:
    """One DynamoDB item per key: {"key": S, "value": S(json)}."""

    def __init__(self, table_name: str, *, region_name: str | None = None, client: Any = None) -> None:
        self.table_name = table_name
        self.region_name = region_name
        self._client = client

    def _ddb(self) -> Any:
        if self._client is None:
            self._client = boto3.client("dynamodb", region_name=self.region_name)
        return self._client

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            out = self._ddb().get_item(
                TableName=self.table_name,
                Key={"key": {"S": key}},
                ConsistentRead=True,
            )
        except Exception as e:
            raise StorageError(f"storage read failed for {key!r}: {e}") from e
        item = out.get("Item")
        if not item:
            return None
        raw = str((item.get("value") or {}).get("S") or "")
        try:
            val = json.loads(raw)
        except Exception as e:
            raise StorageError(f"invalid stored value for {key!r}: {e}") from e
        return val if isinstance(val, dict) else None

    def put(self, key: str, value: dict[str, Any]) -> None:
        try:
            self._ddb().put_item(
                TableName=self.table_name,
                Item={
                    "key": {"S": key},
                    "value": {"S": json.dumps(value, separators=(",", ":"), sort_keys=True)},
                },
            )
        except Exception as e:
            raise StorageError(f"storage write failed for {key!r}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._ddb().delete_item(TableName=self.table_name, Key={"key": {"S": key}})
        except Exception as e:
            raise StorageError(f"storage delete failed for {key!r}: {e}") from e

    def list(self, prefix: str) -> list[str]:
        keys: list[str] = []
        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "ProjectionExpression": "#k",
            "FilterExpression": "begins_with(#k, :prefix)",
            "ExpressionAttributeNames": {"#k": "key"},
            "ExpressionAttributeValues": {":prefix": {"S": prefix}},
            "ConsistentRead": True,
        }
        try:
            while True:
                out = self._ddb().scan(**kwargs)
                for item in out.get("Items", []):
                    k = str((item.get("key") or {}).get("S") or "")
                    if k:
                        keys.append(k)
                last = out.get("LastEvaluatedKey")
                if not last:
                    break
                kwargs["ExclusiveStartKey"] = last
        except Exception as e:
            raise StorageError(f"storage list failed for {prefix!r}: {e}") from e
        return _children(keys, prefix)
