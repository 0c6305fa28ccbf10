from __future__ import annotations

import json

from conftest import json_response
from httptool.models import PaginationConfig, PaginationState, RawResponse, RequestDescriptor
from httptool.pagination import aggregate_responses, is_empty_response, next_descriptor, parse_body


def _state(resp: RawResponse, page_count: int = 1) -> PaginationState:
    return PaginationState(page_count=page_count, last_response=resp, accumulated=[resp])


def test_parse_body() -> None:
    assert parse_body(json_response({"a": 1})) == {"a": 1}
    assert parse_body(RawResponse(status_code=200, headers={"content-type": "text/plain"}, body=b"hi")) == "hi"
    assert parse_body(RawResponse(status_code=200, headers={}, body=b"\xff\xfe")) == b"\xff\xfe"


def test_is_empty_response() -> None:
    assert is_empty_response(json_response([]))
    assert is_empty_response(json_response({}))
    assert is_empty_response(RawResponse(status_code=200, headers={}, body=b"  "))
    assert not is_empty_response(json_response([0]))


def test_next_url_must_be_http() -> None:
    config = PaginationConfig(mode="responseContainsNextURL", next_url="{{ $response.body.next }}")
    desc = RequestDescriptor(method="GET", url="https://api.example.com/items")
    resp = json_response({"next": "ftp://elsewhere/items"})
    assert next_descriptor(config, _state(resp), desc) is None


def test_next_url_absolute() -> None:
    config = PaginationConfig(mode="responseContainsNextURL", next_url="{{ $response.headers['x-next'] }}")
    desc = RequestDescriptor(method="GET", url="https://api.example.com/items", query={"page": 1})
    resp = json_response([1], headers={"x-next": "https://api2.example.com/items?page=2"})
    nxt = next_descriptor(config, _state(resp), desc)
    assert nxt is not None
    assert nxt.url == "https://api2.example.com/items?page=2"
    assert dict(nxt.query) == {}


def test_update_parameter_uses_request_context() -> None:
    config = PaginationConfig(
        mode="updateAParameterInEachRequest",
        parameters=[{"type": "qs", "name": "offset", "value": "{{ $request.qs.offset + $request.qs.limit }}"}],
    )
    desc = RequestDescriptor(method="GET", url="https://api.example.com/items", query={"offset": 0, "limit": 20})
    nxt = next_descriptor(config, _state(json_response([1])), desc)
    assert nxt is not None
    assert dict(nxt.query) == {"offset": 20, "limit": 20}


def test_aggregate_concatenates_arrays() -> None:
    pages = [json_response([1, 2], headers={"x-page": "1"}), json_response([3], headers={"x-page": "2"})]
    out = aggregate_responses(pages)
    assert json.loads(out.text()) == [1, 2, 3]
    assert out.headers["x-page"] == "2"
    assert out.content_type == "application/json"


def test_aggregate_wraps_non_array_bodies() -> None:
    pages = [json_response({"p": 1}), RawResponse(status_code=200, headers={"content-type": "text/plain"}, body=b"two")]
    assert json.loads(aggregate_responses(pages).text()) == [{"p": 1}, "two"]


def test_aggregate_single_page_is_unchanged() -> None:
    page = json_response({"p": 1})
    assert aggregate_responses([page]) is page
