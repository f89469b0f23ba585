from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

import hwcloud_auth.cli as cli
from hwcloud_auth.errors import IdentityMismatch
from hwcloud_auth.identity import Identity


runner = CliRunner()


class _FakeVerifier:
    endpoints: list[str | None] = []

    def __init__(self, endpoint: str | None = None) -> None:
        _FakeVerifier.endpoints.append(endpoint)

    def verify(self, token: str, *, timeout: float | None = None) -> Identity:
        if token == "tok-alice":
            return Identity(account="acme", user="alice")
        return Identity(account="acme", user="bob")


def _base(tmp_path: Path) -> list[str]:
    return ["--state-file", str(tmp_path / "state.json")]


def _clear_env(monkeypatch) -> None:
    for name in ("ROLE_TABLE_NAME", "HWCLOUD_AUTH_STATE_FILE", "HWCLOUD_IAM_ENDPOINT", "SYSTEM_MAX_LEASE_TTL_SECONDS"):
        monkeypatch.delenv(name, raising=False)


def test_role_write_read_list_delete(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    base = _base(tmp_path)

    result = runner.invoke(cli.app, base + ["role-write", "ops", "--identity", "acme:alice", "--ttl", "1h"])
    assert result.exit_code == 0, result.output
    parsed = json.loads(result.stdout)
    assert parsed["operation"] == "create"
    assert parsed["data"]["token_ttl"] == 3600

    result = runner.invoke(cli.app, base + ["role-write", "ops", "--policies", "dev,ops", "--no-default-policy"])
    assert result.exit_code == 0, result.output
    parsed = json.loads(result.stdout)
    assert parsed["operation"] == "update"
    assert parsed["data"]["token_policies"] == ["dev", "ops"]
    assert parsed["data"]["token_no_default_policy"] is True
    assert parsed["data"]["token_ttl"] == 3600

    result = runner.invoke(cli.app, base + ["role-read", "ops"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["data"]["identity"] == "acme:alice"

    result = runner.invoke(cli.app, base + ["role-list"])
    assert json.loads(result.stdout) == {"keys": ["ops"]}

    result = runner.invoke(cli.app, base + ["role-delete", "ops"])
    assert result.exit_code == 0
    result = runner.invoke(cli.app, base + ["role-list"])
    assert json.loads(result.stdout) == {"keys": []}


def test_login_and_renew(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    _FakeVerifier.endpoints.clear()
    monkeypatch.setattr(cli, "IdentityVerifier", _FakeVerifier)
    base = _base(tmp_path) + ["--iam-endpoint", "https://iam.example.com/v3"]

    runner.invoke(cli.app, base + ["role-write", "ops", "--identity", "acme:alice", "--ttl", "3600"])

    result = runner.invoke(cli.app, base + ["login", "--role", "ops", "--token", "tok-alice"])
    assert result.exit_code == 0, result.output
    auth = json.loads(result.stdout)["auth"]
    assert auth["metadata"] == {"account": "acme", "user": "alice", "role_name": "ops"}
    assert auth["ttl"] == 3600
    assert "https://iam.example.com/v3" in _FakeVerifier.endpoints

    result = runner.invoke(cli.app, base + ["renew", "--metadata-json", json.dumps(auth["metadata"])])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["auth"]["ttl"] == 3600


def test_login_mismatch_surfaces_error(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setattr(cli, "IdentityVerifier", _FakeVerifier)
    base = _base(tmp_path)
    runner.invoke(cli.app, base + ["role-write", "ops", "--identity", "acme:alice"])

    result = runner.invoke(cli.app, base + ["login", "--role", "ops", "--token", "tok-bob"])
    assert result.exit_code == 1
    assert isinstance(result.exception, IdentityMismatch)


def test_main_maps_errors_to_exit_codes(tmp_path: Path, monkeypatch) -> None:
    _clear_env(monkeypatch)
    base = _base(tmp_path)
    assert cli.main(base + ["role-read", "ghost"]) == 1
    assert cli.main(base + ["renew", "--metadata-json", "[]"]) == 2
    assert cli.main(base + ["role-write", "ops", "--identity", "acme:alice"]) == 0


def test_version_flag() -> None:
    result = runner.invoke(cli.app, ["--version"])
    assert result.exit_code == 0
    assert "hwcloud-auth 0.1.0" in result.stdout
