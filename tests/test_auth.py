from __future__ import annotations

import httpx
import pytest

from httptool.auth import apply_credentials, infer_auth_type
from httptool.errors import CredentialError
from httptool.models import RequestDescriptor
from httptool.transport import request_kwargs


def _descriptor(**overrides) -> RequestDescriptor:
    base = {"method": "GET", "url": "https://api.example.com/items", "headers": {"accept": "application/json"}}
    base.update(overrides)
    return RequestDescriptor(**base)


def test_basic_auth() -> None:
    desc = apply_credentials(_descriptor(), "httpBasicAuth", {"user": "user", "password": "password"})
    assert desc.auth is not None
    assert desc.auth.basic == ("user", "password")
    kwargs = request_kwargs(desc)
    assert isinstance(kwargs["auth"], httpx.BasicAuth)


def test_header_auth() -> None:
    desc = apply_credentials(_descriptor(), "httpHeaderAuth", {"name": "X-Api-Key", "value": "k1"})
    assert desc.headers["x-api-key"] == "k1"


def test_header_auth_keeps_case_for_mixed_case_headers() -> None:
    desc = apply_credentials(_descriptor(headers={"Accept": "*/*"}), "httpHeaderAuth", {"name": "X-Api-Key", "value": "k1"})
    assert desc.headers["X-Api-Key"] == "k1"


def test_query_auth() -> None:
    desc = apply_credentials(_descriptor(query={"q": "a"}), "httpQueryAuth", {"name": "api_key", "value": "k2"})
    assert dict(desc.query) == {"q": "a", "api_key": "k2"}


def test_bearer_auth() -> None:
    desc = apply_credentials(_descriptor(), "httpBearerAuth", {"token": "t0k"})
    assert desc.headers["authorization"] == "Bearer t0k"


def test_custom_auth_from_json_string() -> None:
    creds = {"json": '{"headers": {"X-Sig": "s"}, "qs": {"tenant": "t1"}, "body": {"client": "c"}}'}
    desc = apply_credentials(_descriptor(method="POST", body={"a": 1}), "httpCustomAuth", creds)
    assert desc.headers["x-sig"] == "s"
    assert dict(desc.query) == {"tenant": "t1"}
    assert desc.body == {"a": 1, "client": "c"}


def test_invalid_credentials() -> None:
    with pytest.raises(CredentialError):
        apply_credentials(_descriptor(), "httpBearerAuth", {})
    with pytest.raises(CredentialError):
        apply_credentials(_descriptor(), "httpCustomAuth", {"json": "not json"})
    with pytest.raises(CredentialError, match="Unsupported"):
        apply_credentials(_descriptor(), "oauth2", {})


def test_infer_auth_type() -> None:
    assert infer_auth_type({"token": "x"}) == "httpBearerAuth"
    assert infer_auth_type({"user": "u", "password": "p"}) == "httpBasicAuth"
    assert infer_auth_type({"name": "X-Key", "value": "v"}) == "httpHeaderAuth"
    assert infer_auth_type({"type": "httpQueryAuth", "name": "k", "value": "v"}) == "httpQueryAuth"
    assert infer_auth_type({"headers": {}}) == "httpCustomAuth"
