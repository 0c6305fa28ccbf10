from __future__ import annotations

import logging
from typing import Any, Optional, Protocol
from urllib.parse import urlencode

import httpx

from httptool.auth import apply_credentials, infer_auth_type
from httptool.credentials import CredentialProvider
from httptool.errors import ConfigurationError, CredentialError, HttpError
from httptool.models import RawResponse, RequestDescriptor
from httptool.request_builder import serialize_params

log = logging.getLogger(__name__)


class HttpExecutor(Protocol):
    async def send(self, descriptor: RequestDescriptor) -> RawResponse: ...

    async def send_with_authentication(self, credential_type: str, descriptor: RequestDescriptor) -> RawResponse: ...


def _has_header(headers: dict[str, str], name: str) -> bool:
    return any(k.lower() == name.lower() for k in headers)


def request_kwargs(descriptor: RequestDescriptor) -> dict[str, Any]:
    headers = dict(descriptor.headers)
    kwargs: dict[str, Any] = {}
    if descriptor.query:
        kwargs["params"] = serialize_params(descriptor.query, array_format=descriptor.query_array_format)

    body = descriptor.body
    if body is not None:
        if descriptor.body_content_type == "form-urlencoded":
            if not isinstance(body, dict):
                raise ConfigurationError("Form-urlencoded body must be a JSON object")
            kwargs["content"] = urlencode(
                serialize_params(body, array_format=descriptor.query_array_format)
            ).encode("utf-8")
            if not _has_header(headers, "content-type"):
                headers["content-type"] = "application/x-www-form-urlencoded"
        elif descriptor.body_content_type == "raw":
            kwargs["content"] = body if isinstance(body, (bytes, str)) else str(body)
            if not _has_header(headers, "content-type"):
                headers["content-type"] = descriptor.raw_content_type
        else:
            kwargs["json"] = body

    if descriptor.auth is not None and descriptor.auth.basic is not None:
        kwargs["auth"] = httpx.BasicAuth(*descriptor.auth.basic)
    kwargs["headers"] = headers or None
    return kwargs


class HttpxExecutor:
    """
    Default executor. A fresh AsyncClient is opened per call so that redirect,
    TLS and proxy settings follow each descriptor.
    """

    def __init__(
        self,
        *,
        credentials: Optional[CredentialProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.credentials = credentials
        self.transport = transport

    def _client(self, descriptor: RequestDescriptor) -> httpx.AsyncClient:
        timeout_s = max(descriptor.timeout_ms, 1) / 1000.0
        client_kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(timeout_s),
            "follow_redirects": descriptor.follow_redirects,
            "max_redirects": descriptor.max_redirects,
            "verify": not descriptor.allow_unauthorized_certs,
        }
        if self.transport is not None:
            client_kwargs["transport"] = self.transport
        elif descriptor.proxy:
            client_kwargs["proxy"] = descriptor.proxy
        return httpx.AsyncClient(**client_kwargs)

    async def send(self, descriptor: RequestDescriptor) -> RawResponse:
        kwargs = request_kwargs(descriptor)
        log.debug("http: %s %s", descriptor.method, descriptor.url)
        try:
            async with self._client(descriptor) as client:
                resp = await client.request(descriptor.method, descriptor.url, **kwargs)
        except httpx.RequestError as exc:
            raise HttpError(None, str(exc) or exc.__class__.__name__) from exc
        return RawResponse(status_code=resp.status_code, headers=dict(resp.headers), body=resp.content)

    async def send_with_authentication(self, credential_type: str, descriptor: RequestDescriptor) -> RawResponse:
        if self.credentials is None:
            raise CredentialError(f"No credential provider configured for '{credential_type}'")
        material = await self.credentials.get_credentials(credential_type)
        authed = apply_credentials(descriptor, infer_auth_type(material), material)
        return await self.send(authed)
