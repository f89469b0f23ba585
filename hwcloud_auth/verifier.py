from __future__ import annotations

import json
import os
from http.client import HTTPException
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import UpstreamError
from .identity import Identity

DEFAULT_IAM_ENDPOINT = "https://iam.myhwclouds.com:443/v3"
HWCLOUD_IAM_ENDPOINT = "HWCLOUD_IAM_ENDPOINT"


def _http_get(
    *,
    url: str,
    headers: dict[str, str],
    timeout_seconds: float | None = None,
) -> tuple[int, bytes]:
    req = Request(url, method="GET")
    for k, v in headers.items():
        req.add_header(k, v)
    kwargs: dict[str, Any] = {}
    if timeout_seconds is not None:
        kwargs["timeout"] = timeout_seconds
    try:
        with urlopen(req, **kwargs) as resp:
            status = getattr(resp, "status", 200)
            return int(status), resp.read()
    except HTTPError as e:
        try:
            data = e.read() if hasattr(e, "read") else b""
        except (OSError, HTTPException) as read_err:
            raise UpstreamError(f"http request failed: {read_err}") from read_err
        return int(getattr(e, "code", 0) or 0), data
    except (URLError, OSError, HTTPException) as e:
        raise UpstreamError(f"http request failed: {e}") from e


def _name(raw: Any) -> str:
    # Verified names are compared byte-for-byte; no trimming.
    return raw if isinstance(raw, str) else ""


def _extract_identity(raw: bytes) -> Identity:
    try:
        doc = json.loads(raw.decode("utf-8"))
    except Exception as e:
        raise UpstreamError(f"invalid JSON from identity provider: {e}") from e
    token = doc.get("token") if isinstance(doc, dict) else None
    user = token.get("user") if isinstance(token, dict) else None
    if not isinstance(user, dict):
        raise UpstreamError("identity provider response has no token.user")
    domain = user.get("domain")
    user_name = _name(user.get("name"))
    account_name = _name(domain.get("name")) if isinstance(domain, dict) else ""
    if not user_name or not account_name:
        raise UpstreamError("identity provider response is missing user.name or user.domain.name")
    return Identity(account=account_name, user=user_name)


class IdentityVerifier:
    """Resolves a Huawei Cloud IAM token to the account/user that owns it.

    One blocking round-trip per call, no retries. The caller's deadline may be
    passed as ``timeout``; nothing else bounds the request.
    """

    def __init__(self, endpoint: str | None = None) -> None:
        self.endpoint = (endpoint or os.environ.get(HWCLOUD_IAM_ENDPOINT) or DEFAULT_IAM_ENDPOINT).rstrip("/")

    @property
    def tokens_url(self) -> str:
        return f"{self.endpoint}/auth/tokens"

    def verify(self, token: str, *, timeout: float | None = None) -> Identity:
        status, raw = _http_get(
            url=self.tokens_url,
            headers={
                "X-Auth-Token": token,
                "X-Subject-Token": token,
                "Accept": "application/json",
            },
            timeout_seconds=timeout,
        )
        if status < 200 or status >= 300:
            text = raw.decode("utf-8", errors="replace")[:512]
            raise UpstreamError(f"identity provider returned status={status} body={text}")
        return _extract_identity(raw)
