from __future__ import annotations

import copy
import json
import re
from typing import Any, Optional

from bs4 import BeautifulSoup

from httptool.errors import UnsupportedContentError
from httptool.models import OptimizeOptions, RawResponse, ResponseOptions
from httptool.utils.template import delete_path, has_path, resolve_path, set_path


BINARY_ERROR = "Binary data is not supported"
TRUNCATION_MARKER = "...[truncated]"

_WS_RE = re.compile(r"\s+")
_TEXTUAL_MARKERS = ("json", "xml", "html", "javascript", "x-www-form-urlencoded", "csv", "yaml", "graphql")
_NON_CONTENT_TAGS = ("script", "style", "noscript", "svg", "canvas")


def binary_error_text() -> str:
    return json.dumps({"error": BINARY_ERROR})


def is_binary_content_type(content_type: str) -> bool:
    ct = (content_type or "").lower()
    if not ct or ct.startswith("text/"):
        return False
    return not any(marker in ct for marker in _TEXTUAL_MARKERS)


def decode_text(resp: RawResponse, *, response_format: str = "autodetect") -> str:
    if response_format == "file":
        raise UnsupportedContentError(BINARY_ERROR)
    if response_format == "autodetect" and is_binary_content_type(resp.content_type):
        raise UnsupportedContentError(BINARY_ERROR)
    try:
        text = resp.text()
    except UnicodeDecodeError as exc:
        raise UnsupportedContentError(BINARY_ERROR) from exc
    if "\x00" in text:
        raise UnsupportedContentError(BINARY_ERROR)
    return text


def _content_kind(resp: RawResponse, text: str, options: OptimizeOptions, response_format: str) -> str:
    if options.enabled and options.response_type != "auto":
        return options.response_type
    if response_format in ("json", "text"):
        return response_format
    ct = resp.content_type
    if "json" in ct:
        return "json"
    if "html" in ct:
        return "html"
    if not ct and text.strip()[:1] in ("{", "["):
        return "json"
    return "text"


def select_fields(value: Any, options: OptimizeOptions) -> Any:
    paths = [p.strip() for p in options.fields if p and p.strip()]
    if options.fields_to_include == "all" or not paths:
        return value
    if isinstance(value, list):
        return [select_fields(v, options) for v in value]
    if not isinstance(value, dict):
        return value
    if options.fields_to_include == "selected":
        out: dict[str, Any] = {}
        for path in paths:
            if has_path(value, path):
                set_path(out, path, resolve_path(value, path))
        return out
    out = copy.deepcopy(value)
    for path in paths:
        delete_path(out, path)
    return out


def extract_html(text: str, options: OptimizeOptions) -> list[str]:
    soup = BeautifulSoup(text, "html.parser")
    for selector in options.elements_to_omit:
        if selector and selector.strip():
            for el in soup.select(selector.strip()):
                el.decompose()
    if options.only_content:
        for el in soup.find_all(_NON_CONTENT_TAGS):
            el.decompose()

    selector = (options.css_selector or "").strip() or "body"
    nodes = soup.select(selector)
    if not nodes and selector == "body":
        nodes = [soup]

    out: list[str] = []
    for node in nodes:
        raw = node.get_text(" ") if options.only_content else node.decode_contents()
        s = _WS_RE.sub(" ", raw).strip()
        if s:
            out.append(s)
    return out


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + TRUNCATION_MARKER


def optimize(
    response: RawResponse,
    options: Optional[OptimizeOptions] = None,
    *,
    response_options: Optional[ResponseOptions] = None,
    default_max_length: int = 1000,
) -> str:
    """Compress a raw response into agent-readable text."""
    options = options or OptimizeOptions()
    response_options = response_options or ResponseOptions()
    try:
        text = decode_text(response, response_format=response_options.response_format)
    except UnsupportedContentError:
        return binary_error_text()

    kind = _content_kind(response, text, options, response_options.response_format)
    body: Any = text
    rendered: Optional[str] = None
    if kind == "json":
        try:
            body = json.loads(text)
        except json.JSONDecodeError:
            body = text
        else:
            if options.enabled:
                body = select_fields(body, options)
            rendered = json.dumps(body, ensure_ascii=False)
    elif kind == "html" and options.enabled:
        body = extract_html(text, options)
        rendered = json.dumps(body, indent=2, ensure_ascii=False)

    if response_options.full_response:
        out = json.dumps(
            {"statusCode": response.status_code, "headers": dict(response.headers), "body": body},
            ensure_ascii=False,
        )
    else:
        out = rendered if rendered is not None else text

    if options.enabled and options.truncate:
        out = truncate(out, options.max_length or default_max_length)
    return out
