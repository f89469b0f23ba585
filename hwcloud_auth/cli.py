from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import click
import typer
from rich.console import Console

from . import __version__
from .backend import (
    BACKEND_HELP,
    DEFAULT_SYSTEM_MAX_LEASE_TTL,
    ROLE_TABLE_NAME,
    SYSTEM_MAX_LEASE_TTL_SECONDS,
    Backend,
)
from .errors import AuthError
from .request_types import LoginRequest, RenewRequest, RoleNameRequest, RoleWriteRequest
from .roles import RoleStore
from .storage import DynamoStorage, FileStorage, Storage
from .verifier import HWCLOUD_IAM_ENDPOINT, IdentityVerifier

HWCLOUD_AUTH_STATE_FILE = "HWCLOUD_AUTH_STATE_FILE"

app = typer.Typer(
    name="hwcloud-auth",
    help="Manage roles and exercise logins for the Huawei Cloud auth backend." + BACKEND_HELP,
    no_args_is_help=True,
    add_completion=False,
)

_ERROR_CONSOLE = Console(stderr=True)


class UsageError(Exception):
    pass


@dataclass(frozen=True)
class GlobalOpts:
    table: str
    state_file: str
    iam_endpoint: str
    region: str
    system_max_lease_ttl: int
    pretty: bool


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {msg}")


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _default_state_file() -> str:
    return str(Path.home() / ".hwcloud-auth" / "state.json")


def _print_json(obj: Any, *, pretty: bool) -> None:
    if pretty:
        sys.stdout.write(json.dumps(obj, indent=2, sort_keys=True) + "\n")
    else:
        sys.stdout.write(json.dumps(obj, separators=(",", ":"), sort_keys=True) + "\n")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"hwcloud-auth {__version__}")
        raise typer.Exit(code=0)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    if isinstance(ctx.obj, dict) and isinstance(ctx.obj.get("g"), GlobalOpts):
        return ctx.obj["g"]
    raise UsageError("global options were not initialised")


def _storage(g: GlobalOpts) -> Storage:
    if g.table:
        return DynamoStorage(g.table, region_name=g.region or None)
    return FileStorage(g.state_file)


def _backend(ctx: typer.Context) -> Backend:
    g = _ctx_global(ctx)
    return Backend(
        role_store=RoleStore(_storage(g), system_max_lease_ttl=g.system_max_lease_ttl),
        verifier=IdentityVerifier(g.iam_endpoint or None),
    )


def _load_json_object(*, raw: str, label: str) -> dict[str, Any]:
    try:
        val = json.loads(raw)
    except Exception as e:
        raise UsageError(f"invalid {label}: {e}") from e
    if not isinstance(val, dict):
        raise UsageError(f"invalid {label}: expected JSON object")
    return val


@app.callback()
def app_callback(
    ctx: typer.Context,
    table: Optional[str] = typer.Option(
        None, "--table", help=f"DynamoDB role table (env override: {ROLE_TABLE_NAME})"
    ),
    state_file: Optional[str] = typer.Option(
        None,
        "--state-file",
        help=f"Local JSON role store used when no table is set (env override: {HWCLOUD_AUTH_STATE_FILE})",
    ),
    iam_endpoint: Optional[str] = typer.Option(
        None, "--iam-endpoint", help=f"IAM v3 endpoint (env override: {HWCLOUD_IAM_ENDPOINT})"
    ),
    region: Optional[str] = typer.Option(None, "--region", help="AWS region for the role table"),
    pretty: bool = typer.Option(False, "--pretty", help="Emit indented JSON output"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    max_lease_raw = _env_or_none(SYSTEM_MAX_LEASE_TTL_SECONDS) or str(DEFAULT_SYSTEM_MAX_LEASE_TTL)
    try:
        max_lease = int(max_lease_raw)
    except ValueError as e:
        raise UsageError(f"invalid {SYSTEM_MAX_LEASE_TTL_SECONDS}: {max_lease_raw!r}") from e
    ctx.obj = {
        "g": GlobalOpts(
            table=(table or _env_or_none(ROLE_TABLE_NAME) or "").strip(),
            state_file=(state_file or _env_or_none(HWCLOUD_AUTH_STATE_FILE) or _default_state_file()).strip(),
            iam_endpoint=(iam_endpoint or _env_or_none(HWCLOUD_IAM_ENDPOINT) or "").strip(),
            region=(region or _env_or_none("AWS_REGION", "AWS_DEFAULT_REGION") or "").strip(),
            system_max_lease_ttl=max_lease,
            pretty=pretty,
        )
    }


@app.command("role-write")
def role_write(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Role name"),
    identity: Optional[str] = typer.Option(None, "--identity", help="Bound identity as account:user"),
    ttl: Optional[str] = typer.Option(None, "--ttl", help="Token TTL, e.g. 3600 or 1h"),
    max_ttl: Optional[str] = typer.Option(None, "--max-ttl", help="Token max TTL"),
    explicit_max_ttl: Optional[str] = typer.Option(None, "--explicit-max-ttl"),
    period: Optional[str] = typer.Option(None, "--period", help="Periodic token renewal interval"),
    bound_cidrs: Optional[str] = typer.Option(None, "--bound-cidrs", help="Comma-separated CIDRs"),
    policies: Optional[str] = typer.Option(None, "--policies", help="Comma-separated policy names"),
    num_uses: Optional[int] = typer.Option(None, "--num-uses"),
    token_type: Optional[str] = typer.Option(None, "--token-type"),
    no_default_policy: Optional[bool] = typer.Option(
        None, "--no-default-policy/--with-default-policy"
    ),
) -> None:
    """Create the role, or merge the given fields into an existing one."""

    payload: dict[str, Any] = {}
    if identity is not None:
        payload["identity"] = identity
    for key, val in (
        ("token_ttl", ttl),
        ("token_max_ttl", max_ttl),
        ("token_explicit_max_ttl", explicit_max_ttl),
        ("token_period", period),
        ("token_bound_cidrs", bound_cidrs),
        ("token_policies", policies),
        ("token_num_uses", num_uses),
        ("token_type", token_type),
        ("token_no_default_policy", no_default_policy),
    ):
        if val is not None:
            payload[key] = val

    backend = _backend(ctx)
    operation, result = backend.role_write(RoleWriteRequest.from_payload(name, payload))
    out: dict[str, Any] = {"operation": operation, "data": result.role.to_response_data()}
    if result.warnings:
        out["warnings"] = list(result.warnings)
    _print_json(out, pretty=_ctx_global(ctx).pretty)


@app.command("role-read")
def role_read(ctx: typer.Context, name: str = typer.Argument(..., help="Role name")) -> None:
    data = _backend(ctx).role_read(RoleNameRequest.from_path(name))
    _print_json({"data": data}, pretty=_ctx_global(ctx).pretty)


@app.command("role-delete")
def role_delete(ctx: typer.Context, name: str = typer.Argument(..., help="Role name")) -> None:
    req = RoleNameRequest.from_path(name)
    _backend(ctx).role_delete(req)
    _print_json({"deleted": req.name}, pretty=_ctx_global(ctx).pretty)


@app.command("role-list")
def role_list(ctx: typer.Context) -> None:
    _print_json({"keys": _backend(ctx).role_list()}, pretty=_ctx_global(ctx).pretty)


@app.command("login")
def login_cmd(
    ctx: typer.Context,
    role: str = typer.Option(..., "--role", help="Role to log in against"),
    token: str = typer.Option(
        "", "--token", envvar="HWCLOUD_TOKEN", help="Huawei Cloud IAM token (env: HWCLOUD_TOKEN)"
    ),
    remote_addr: Optional[str] = typer.Option(
        None, "--remote-addr", help="Caller address checked against bound CIDRs"
    ),
) -> None:
    """Verify a token against IAM and print the resulting auth record."""

    req = LoginRequest.from_payload({"role": role, "token": token}, remote_addr=remote_addr)
    auth = _backend(ctx).login(req)
    _print_json({"auth": auth.to_dict()}, pretty=_ctx_global(ctx).pretty)


@app.command("renew")
def renew_cmd(
    ctx: typer.Context,
    metadata_json: str = typer.Option(..., "--metadata-json", help="Auth metadata from a prior login"),
) -> None:
    """Re-check prior login metadata against the current role."""

    metadata = _load_json_object(raw=metadata_json, label="--metadata-json")
    renewed = _backend(ctx).renew(RenewRequest.from_payload({"metadata": metadata}))
    _print_json({"auth": renewed.to_dict()}, pretty=_ctx_global(ctx).pretty)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        result = app(args=argv, prog_name="hwcloud-auth", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except AuthError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
