from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, Mapping

from httptool.crypto import mask_mapping
from httptool.errors import CredentialError
from httptool.models import AuthRef, RequestDescriptor

log = logging.getLogger(__name__)


def _merge_headers(descriptor: RequestDescriptor, extra: Mapping[str, Any], *, lowercase: bool) -> dict[str, str]:
    headers = dict(descriptor.headers)
    for k, v in extra.items():
        headers[k.lower() if lowercase else k] = str(v)
    return headers


def _lowercase_in_use(descriptor: RequestDescriptor) -> bool:
    keys = [k for k in descriptor.headers if any(c.isalpha() for c in k)]
    return bool(keys) and all(k == k.lower() for k in keys)


def _custom_auth(credentials: Mapping[str, Any]) -> dict[str, Any]:
    raw = credentials.get("json", credentials)
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CredentialError("Custom auth credentials must be a JSON object") from exc
    if not isinstance(raw, dict):
        raise CredentialError("Custom auth credentials must be a JSON object")
    return raw


def apply_credentials(
    descriptor: RequestDescriptor,
    auth_type: str,
    credentials: Mapping[str, Any],
) -> RequestDescriptor:
    """
    Return a new descriptor with credential material applied. Supported shapes:
      - httpBasicAuth:  {"user", "password"}
      - httpHeaderAuth: {"name", "value"}
      - httpQueryAuth:  {"name", "value"}
      - httpBearerAuth: {"token"}
      - httpCustomAuth: {"headers": {...}, "qs": {...}, "body": {...}} (optionally as a "json" string)
    """
    log.debug("auth: applying %s credentials %s", auth_type, mask_mapping(dict(credentials)))
    lowercase = _lowercase_in_use(descriptor)

    if auth_type == "httpBasicAuth":
        user = credentials.get("user")
        if user is None:
            raise CredentialError("Basic auth credentials require 'user'")
        basic = (str(user), str(credentials.get("password") or ""))
        return dataclasses.replace(descriptor, auth=AuthRef(basic=basic))

    if auth_type == "httpHeaderAuth":
        name = str(credentials.get("name") or "").strip()
        if not name:
            raise CredentialError("Header auth credentials require 'name'")
        headers = _merge_headers(descriptor, {name: credentials.get("value") or ""}, lowercase=lowercase)
        return dataclasses.replace(descriptor, headers=headers, auth=None)

    if auth_type == "httpQueryAuth":
        name = str(credentials.get("name") or "").strip()
        if not name:
            raise CredentialError("Query auth credentials require 'name'")
        query = dict(descriptor.query)
        query[name] = credentials.get("value") or ""
        return dataclasses.replace(descriptor, query=query, auth=None)

    if auth_type == "httpBearerAuth":
        token = str(credentials.get("token") or "").strip()
        if not token:
            raise CredentialError("Bearer auth credentials require 'token'")
        headers = _merge_headers(descriptor, {"Authorization": f"Bearer {token}"}, lowercase=lowercase)
        return dataclasses.replace(descriptor, headers=headers, auth=None)

    if auth_type == "httpCustomAuth":
        custom = _custom_auth(credentials)
        headers = _merge_headers(descriptor, dict(custom.get("headers") or {}), lowercase=lowercase)
        query = {**dict(descriptor.query), **dict(custom.get("qs") or {})}
        body = descriptor.body
        extra_body = custom.get("body")
        if isinstance(extra_body, dict) and extra_body:
            if body is not None and not isinstance(body, dict):
                raise CredentialError("Custom auth body can only be merged into a JSON object body")
            body = {**(body or {}), **extra_body}
        return dataclasses.replace(descriptor, headers=headers, query=query, body=body, auth=None)

    raise CredentialError(f"Unsupported authentication type '{auth_type}'")


def infer_auth_type(credentials: Mapping[str, Any]) -> str:
    """Guess the generic shape of credential material stored for a named credential type."""
    explicit = str(credentials.get("type") or "").strip()
    if explicit:
        return explicit
    if "token" in credentials:
        return "httpBearerAuth"
    if "user" in credentials:
        return "httpBasicAuth"
    if "name" in credentials and "value" in credentials:
        return "httpHeaderAuth"
    return "httpCustomAuth"
