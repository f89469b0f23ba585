from __future__ import annotations

import pytest

from hwcloud_auth.errors import ValidationError
from hwcloud_auth.token_params import (
    TokenParams,
    parse_cidrs,
    parse_duration,
    parse_policies,
    remote_addr_is_ok,
)


def test_parse_duration_accepts_seconds_and_suffixes():
    assert parse_duration(3600, name="ttl") == 3600
    assert parse_duration("3600", name="ttl") == 3600
    assert parse_duration("90m", name="ttl") == 5400
    assert parse_duration("1h30m", name="ttl") == 5400
    assert parse_duration("2d", name="ttl") == 172800
    assert parse_duration("", name="ttl") == 0


def test_parse_duration_rejects_garbage_and_negative():
    with pytest.raises(ValidationError):
        parse_duration("soon", name="ttl")
    with pytest.raises(ValidationError):
        parse_duration("-5", name="ttl")
    with pytest.raises(ValidationError):
        parse_duration(True, name="ttl")


def test_parse_cidrs_normalizes_and_dedupes():
    assert parse_cidrs("10.0.0.0/8, 10.1.2.3,10.0.0.0/8") == ["10.0.0.0/8", "10.1.2.3/32"]
    assert parse_cidrs(["::1"]) == ["::1/128"]
    with pytest.raises(ValidationError):
        parse_cidrs(["not-a-cidr"])


def test_parse_policies_lowercases_and_dedupes():
    assert parse_policies("Dev, ops,dev,") == ["dev", "ops"]


def test_merged_only_changes_supplied_fields():
    base = TokenParams().merged({"token_ttl": "1h", "token_max_ttl": 7200, "token_policies": "a,b"})
    out = base.merged({"token_ttl": 1800})
    assert out.token_ttl == 1800
    assert out.token_max_ttl == 7200
    assert out.token_policies == ("a", "b")


def test_ttl_must_not_exceed_max_ttl_when_max_set():
    with pytest.raises(ValidationError, match="ttl exceeds max ttl"):
        TokenParams().merged({"token_ttl": 7200, "token_max_ttl": 3600})


def test_zero_max_ttl_never_triggers_ttl_check():
    out = TokenParams().merged({"token_ttl": 10**9, "token_max_ttl": 0})
    assert out.token_ttl == 10**9


def test_batch_tokens_cannot_be_periodic_or_limited_use():
    with pytest.raises(ValidationError):
        TokenParams().merged({"token_type": "batch", "token_period": 60})
    with pytest.raises(ValidationError):
        TokenParams().merged({"token_type": "default-batch", "token_num_uses": 3})


def test_invalid_token_type_and_num_uses():
    with pytest.raises(ValidationError):
        TokenParams().merged({"token_type": "weird"})
    with pytest.raises(ValidationError):
        TokenParams().merged({"token_num_uses": -1})


def test_populate_auth_copies_all_fields():
    params = TokenParams().merged(
        {
            "token_ttl": 60,
            "token_max_ttl": 120,
            "token_period": 30,
            "token_policies": ["p"],
            "token_bound_cidrs": "10.0.0.0/8",
            "token_num_uses": 2,
        }
    )
    auth: dict = {}
    params.populate_auth(auth)
    assert auth["ttl"] == 60
    assert auth["max_ttl"] == 120
    assert auth["period"] == 30
    assert auth["policies"] == ["p"]
    assert auth["bound_cidrs"] == ["10.0.0.0/8"]
    assert auth["num_uses"] == 2
    assert auth["token_type"] == "default"


def test_remote_addr_is_ok():
    cidrs = ("10.0.0.0/8",)
    assert remote_addr_is_ok("10.1.2.3", cidrs)
    assert remote_addr_is_ok("10.1.2.3:5555", cidrs)
    assert not remote_addr_is_ok("192.168.1.1", cidrs)
    assert not remote_addr_is_ok("", cidrs)
    assert not remote_addr_is_ok(None, cidrs)
    assert not remote_addr_is_ok("garbage", cidrs)
    assert remote_addr_is_ok("[::1]:80", ("::1/128",))
    assert remote_addr_is_ok("::1", ("::1/128",))
    assert not remote_addr_is_ok("::1", cidrs)


@pytest.mark.parametrize("raw", [float("inf"), float("-inf"), float("nan"), "²", "1²h"])
def test_parse_duration_rejects_non_finite_and_non_ascii_digits(raw):
    with pytest.raises(ValidationError):
        parse_duration(raw, name="token_ttl")


def test_num_uses_rejects_infinity():
    with pytest.raises(ValidationError):
        TokenParams().merged({"token_num_uses": float("inf")})
