import base64
import json
import os
import re
import time
from datetime import datetime, timezone
from typing import Any

from hwcloud_auth.backend import Backend
from hwcloud_auth.errors import AuthError, UpstreamError
from hwcloud_auth.request_types import (
    LoginRequest,
    RenewRequest,
    RoleNameRequest,
    RoleWriteRequest,
)

SCHEMA_VERSION = os.environ.get("SCHEMA_VERSION", "2026-10-19")
LOGIN_PATH = os.environ.get("LOGIN_PATH", "login")
ROLE_TABLE_NAME = os.environ.get("ROLE_TABLE_NAME", "")

_backend = None

# role/<name> first so role names like "login" stay role paths.
_ROUTES = (
    ("role", re.compile(r"(?:^|/)role/(?P<name>[^/]+)/?$")),
    ("login", re.compile(r"(?:^|/)" + re.escape(LOGIN_PATH.strip("/")) + r"/?$")),
    ("roles", re.compile(r"(?:^|/)roles/?$")),
    ("renew", re.compile(r"(?:^|/)renew/?$")),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_backend() -> Backend:
    global _backend
    if _backend is None:
        _backend = Backend.from_env()
    return _backend


def _response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"content-type": "application/json", "cache-control": "no-store"},
        "body": json.dumps(body),
    }


def _get_request_id(event: dict[str, Any]) -> str:
    rc = event.get("requestContext") or {}
    if not isinstance(rc, dict):
        return ""
    return str(rc.get("requestId") or "")


def _request_method(event: dict[str, Any]) -> str:
    rc = event.get("requestContext") or {}
    http = rc.get("http") if isinstance(rc, dict) else None
    raw = event.get("httpMethod") or (http.get("method") if isinstance(http, dict) else "")
    return str(raw or "").strip().upper()


def _request_path_values(event: dict[str, Any]) -> list[str]:
    out: list[str] = []
    rc = event.get("requestContext") or {}
    candidates = [
        event.get("rawPath"),
        event.get("path"),
        rc.get("path") if isinstance(rc, dict) else None,
    ]
    for raw in candidates:
        val = str(raw or "").strip()
        if val:
            out.append(val)
    return out


def _match_route(event: dict[str, Any]) -> tuple[str, dict[str, str]]:
    for raw in _request_path_values(event):
        for name, pattern in _ROUTES:
            m = pattern.search(raw)
            if m:
                return name, m.groupdict()
    return "", {}


def _source_ip(event: dict[str, Any]) -> str:
    rc = event.get("requestContext") or {}
    if not isinstance(rc, dict):
        return ""
    for key in ("identity", "http"):
        val = rc.get(key)
        if isinstance(val, dict):
            ip = str(val.get("sourceIp") or "").strip()
            if ip:
                return ip
    return ""


def _parse_json_body(event: dict[str, Any]) -> dict[str, Any] | None:
    raw = event.get("body")
    if raw is None:
        return {}
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except Exception:
            return None
    if not isinstance(raw, str):
        return None
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except Exception:
        return None
    return data if isinstance(data, dict) else None


def _remaining_seconds(context: Any) -> float | None:
    get_remaining = getattr(context, "get_remaining_time_in_millis", None)
    if not callable(get_remaining):
        return None
    remaining = int(get_remaining())
    if remaining <= 0:
        return None
    return remaining / 1000.0


def _error_body(exc: AuthError, request_id: str) -> dict[str, Any]:
    message = str(exc)
    if isinstance(exc, UpstreamError):
        # The upstream detail goes to the log only.
        message = exc.public_message
    return {"errorCode": exc.code, "message": message, "requestId": request_id}


def _claims(event: dict[str, Any]) -> dict[str, Any]:
    rc = event.get("requestContext") or {}
    if not isinstance(rc, dict):
        return {}
    auth = rc.get("authorizer") or {}
    if not isinstance(auth, dict):
        return {}
    claims = auth.get("claims")
    if isinstance(claims, dict):
        return claims
    jwt_claims = (auth.get("jwt") or {}).get("claims")
    if isinstance(jwt_claims, dict):
        return jwt_claims
    return {}


def _caller_principal(event: dict[str, Any]) -> str:
    sub = str(_claims(event).get("sub") or "").strip()
    if sub:
        return sub
    # AWS_IAM authorization on the route fills in the signer's ARN instead.
    rc = event.get("requestContext") or {}
    identity = rc.get("identity") if isinstance(rc, dict) else None
    if isinstance(identity, dict):
        return str(identity.get("userArn") or "").strip()
    return ""


def _dispatch(
    route: str,
    params: dict[str, str],
    method: str,
    event: dict[str, Any],
    context: Any,
    wide_event: dict[str, Any],
) -> tuple[int, dict[str, Any]]:
    request_id = wide_event["request_id"]
    if route in ("role", "roles", "renew"):
        caller = _caller_principal(event)
        if not caller:
            wide_event["outcome"] = "unauthorized"
            return 401, {"errorCode": "UNAUTHORIZED", "message": "missing authorizer claims", "requestId": request_id}
        wide_event["caller"] = caller
    backend = _get_backend()

    payload = _parse_json_body(event)
    if payload is None:
        return 400, {"errorCode": "INVALID_JSON", "message": "Body must be a JSON object", "requestId": request_id}

    if route == "login":
        if method not in ("POST", "PUT"):
            return 405, {"errorCode": "METHOD_NOT_ALLOWED", "message": "Use POST", "requestId": request_id}
        req = LoginRequest.from_payload(payload, remote_addr=_source_ip(event))
        wide_event["role_name"] = req.role
        events: list[dict[str, Any]] = []
        try:
            auth = backend.login(req, timeout=_remaining_seconds(context), events=events)
        finally:
            if events:
                wide_event["warnings"] = [e.get("message", "") for e in events]
        wide_event["principal"] = {
            "account": auth.metadata.get("account", ""),
            "user": auth.metadata.get("user", ""),
        }
        return 200, {"requestId": request_id, "auth": auth.to_dict()}

    if route == "renew":
        if method not in ("POST", "PUT"):
            return 405, {"errorCode": "METHOD_NOT_ALLOWED", "message": "Use POST", "requestId": request_id}
        renewed = backend.renew(RenewRequest.from_payload(payload))
        wide_event["role_name"] = renewed.metadata.get("role_name", "")
        return 200, {"requestId": request_id, "auth": renewed.to_dict()}

    if route == "roles":
        if method not in ("GET", "LIST"):
            return 405, {"errorCode": "METHOD_NOT_ALLOWED", "message": "Use GET", "requestId": request_id}
        return 200, {"requestId": request_id, "keys": backend.role_list()}

    if route == "role":
        name = params.get("name") or ""
        if method == "GET":
            req = RoleNameRequest.from_path(name)
            wide_event["role_name"] = req.name
            return 200, {"requestId": request_id, "data": backend.role_read(req)}
        if method == "DELETE":
            req = RoleNameRequest.from_path(name)
            wide_event["role_name"] = req.name
            backend.role_delete(req)
            return 204, {"requestId": request_id}
        if method in ("POST", "PUT"):
            req = RoleWriteRequest.from_payload(name, payload)
            wide_event["role_name"] = req.name
            operation, result = backend.role_write(req)
            wide_event["operation"] = operation
            body: dict[str, Any] = {"requestId": request_id, "data": result.role.to_response_data()}
            if result.warnings:
                body["warnings"] = list(result.warnings)
            return (201 if operation == "create" else 200), body
        return 405, {"errorCode": "METHOD_NOT_ALLOWED", "message": "Unsupported method", "requestId": request_id}

    return 404, {"errorCode": "ROUTE_NOT_FOUND", "message": "Unknown path", "requestId": request_id}


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    start = time.time()
    request_id = _get_request_id(event)
    route, params = _match_route(event)
    method = _request_method(event)

    wide_event: dict[str, Any] = {
        "event": "hwcloud_auth_request",
        "schema_version": SCHEMA_VERSION,
        "request_id": request_id,
        "ts": _now_iso(),
        "route": route,
        "method": method,
    }

    status_code = 500
    try:
        if not ROLE_TABLE_NAME:
            wide_event["outcome"] = "misconfigured"
            return _response(
                status_code,
                {"errorCode": "MISCONFIGURED", "message": "Server misconfigured", "requestId": request_id},
            )
        status_code, body = _dispatch(route, params, method, event, context, wide_event)
        wide_event.setdefault("outcome", "success" if status_code < 400 else "rejected")
        return _response(status_code, body)
    except AuthError as exc:
        status_code = exc.status_code
        wide_event["outcome"] = exc.code.lower()
        error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
        if exc.__cause__ is not None:
            error["cause"] = {"type": type(exc.__cause__).__name__, "message": str(exc.__cause__)}
        wide_event["error"] = error
        return _response(status_code, _error_body(exc, request_id))
    except Exception as exc:
        status_code = 500
        wide_event["outcome"] = "error"
        wide_event["error"] = {"type": type(exc).__name__, "message": str(exc)}
        return _response(
            status_code,
            {"errorCode": "INTERNAL", "message": "Internal error", "requestId": request_id},
        )
    finally:
        wide_event["status_code"] = status_code
        wide_event["duration_ms"] = int((time.time() - start) * 1000)
        # Never log bearer tokens.
        print(json.dumps(wide_event, separators=(",", ":"), sort_keys=True))
