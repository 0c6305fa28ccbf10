from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from httptool.errors import ConfigurationError
from httptool.models import PaginationConfig, PaginationState, RawResponse, RequestDescriptor
from httptool.utils.template import evaluate_condition, evaluate_expression, stringify_value

log = logging.getLogger(__name__)


def parse_body(resp: RawResponse) -> Any:
    """Body as JSON when it parses, otherwise text. Undecodable bytes come back unchanged."""
    try:
        text = resp.text()
    except UnicodeDecodeError:
        return resp.body
    s = text.strip()
    if s[:1] in ("{", "[") or "json" in resp.content_type:
        try:
            return json.loads(s)
        except json.JSONDecodeError:
            return text
    return text


def response_context(resp: RawResponse) -> dict[str, Any]:
    return {"body": parse_body(resp), "headers": dict(resp.headers), "statusCode": resp.status_code}


def expression_context(state: PaginationState, descriptor: RequestDescriptor) -> dict[str, Any]:
    last = state.last_response
    return {
        "response": response_context(last) if last is not None else {},
        "request": descriptor.to_context(),
        "pageCount": state.page_count,
    }


def is_empty_response(resp: RawResponse) -> bool:
    body = parse_body(resp)
    if body is None:
        return True
    if isinstance(body, (bytes, bytearray)):
        return len(body) == 0
    if isinstance(body, str):
        return not body.strip()
    if isinstance(body, (list, dict)):
        return len(body) == 0
    return False


def is_complete(config: PaginationConfig, state: PaginationState, descriptor: RequestDescriptor) -> bool:
    last = state.last_response
    if last is None:
        return False
    if config.complete_when == "responseIsEmpty":
        return is_empty_response(last)
    if config.complete_when == "receiveSpecificStatusCodes":
        return last.status_code in config.completion_status_codes()
    return evaluate_condition(config.complete_expression, ctx=expression_context(state, descriptor))


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def next_descriptor(
    config: PaginationConfig,
    state: PaginationState,
    descriptor: RequestDescriptor,
) -> Optional[RequestDescriptor]:
    """The request for the next page, or None when there is nowhere to go."""
    ctx = expression_context(state, descriptor)

    if config.mode == "responseContainsNextURL":
        value = evaluate_expression(config.next_url, ctx=ctx)
        url = stringify_value(value).strip() if value is not None else ""
        if not url:
            log.info("pagination: next URL is empty after %s page(s)", state.page_count)
            return None
        url = urljoin(descriptor.url, url)
        if not _is_http_url(url):
            log.info("pagination: next URL %r is not an http(s) URL; stopping", url)
            return None
        # The next URL carries its own query string.
        return dataclasses.replace(descriptor, url=url, query={})

    if config.mode == "updateAParameterInEachRequest":
        query = dict(descriptor.query)
        headers = dict(descriptor.headers)
        body = descriptor.body
        for param in config.parameters:
            name = param.name.strip()
            if not name:
                continue
            value = evaluate_expression(param.value, ctx=ctx)
            if param.type == "qs":
                query[name] = value
            elif param.type == "headers":
                headers[name] = stringify_value(value)
            else:
                if body is None:
                    body = {}
                if not isinstance(body, dict):
                    raise ConfigurationError("Pagination can only update body parameters of a JSON object body")
                body = {**body, name: value}
        return dataclasses.replace(descriptor, query=query, headers=headers, body=body)

    return None


def aggregate_responses(pages: list[RawResponse]) -> RawResponse:
    """
    Fold the fetched pages into one response: JSON-array bodies are concatenated,
    anything else becomes a JSON array of page bodies. Status and headers come from
    the last page.
    """
    if not pages:
        raise ValueError("aggregate_responses requires at least one page")
    if len(pages) == 1:
        return pages[0]

    bodies: list[Any] = []
    for page in pages:
        body = parse_body(page)
        if isinstance(body, (bytes, bytearray)):
            # Let the optimizer reject it.
            return page
        bodies.append(body)

    if all(isinstance(b, list) for b in bodies):
        combined: Any = [item for b in bodies for item in b]
    else:
        combined = bodies

    last = pages[-1]
    headers = {
        k: v
        for k, v in last.headers.items()
        if k.lower() not in ("content-type", "content-length", "content-encoding")
    }
    headers["content-type"] = "application/json"
    return RawResponse(
        status_code=last.status_code,
        headers=headers,
        body=json.dumps(combined, ensure_ascii=False).encode("utf-8"),
    )
