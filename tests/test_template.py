from __future__ import annotations

import json

import pytest

from httptool.errors import ConfigurationError
from httptool.utils.template import (
    delete_path,
    evaluate_condition,
    evaluate_expression,
    find_placeholders,
    has_path,
    resolve_path,
    set_path,
    stringify_value,
    substitute_json_template,
    substitute_placeholders,
)


def test_find_placeholders_ignores_expressions_and_keeps_order() -> None:
    text = "https://{host}/{version}/users/{userId}?next={{ $response.body.next }}&v={version}"
    assert find_placeholders(text) == ["host", "version", "userId"]


def test_substitute_placeholders_leaves_unknown_tokens() -> None:
    out = substitute_placeholders("/{a}/{b}", {"a": 1.0})
    assert out == "/1/{b}"


def test_stringify_value() -> None:
    assert stringify_value(True) == "true"
    assert stringify_value(None) == ""
    assert stringify_value(2.5) == "2.5"
    assert stringify_value({"a": 1}) == '{"a": 1}'


def test_substitute_json_template_types() -> None:
    template = '{"name": "{name}", "count": {count}, "greeting": "hi {name}!", "flag": {flag}}'
    out = substitute_json_template(template, {"name": 'Jo "J"', "count": 3, "flag": False})
    assert json.loads(out) == {"name": 'Jo "J"', "count": 3, "greeting": 'hi Jo "J"!', "flag": False}


def test_paths() -> None:
    obj = {"data": {"items": [{"id": 1, "name": "a"}, {"id": 2}]}}
    assert resolve_path(obj, "data.items[1].id") == 2
    assert resolve_path(obj, "data.missing.id") is None
    assert has_path(obj, "data.items[0].name")
    assert not has_path(obj, "data.items[5]")

    out: dict = {}
    set_path(out, "data.items[0].id", 1)
    assert out == {"data": {"items": [{"id": 1}]}}

    delete_path(obj, "data.items[0].name")
    assert obj["data"]["items"][0] == {"id": 1}


def test_evaluate_expression_returns_raw_value_for_single_block() -> None:
    ctx = {"response": {"body": {"next": 7}}, "pageCount": 2}
    assert evaluate_expression("{{ $response.body.next }}", ctx=ctx) == 7
    assert evaluate_expression("{{ $pageCount + 1 }}", ctx=ctx) == 3
    assert evaluate_expression("page-{{ $pageCount }}-{{ $pageCount * 10 }}", ctx=ctx) == "page-2-20"
    assert evaluate_expression("static", ctx=ctx) == "static"


def test_evaluate_expression_missing_attribute_is_none() -> None:
    assert evaluate_expression("{{ $response.body.nextUrl }}", ctx={"response": {"body": {}}}) is None


def test_evaluate_expression_rejects_bad_syntax() -> None:
    with pytest.raises(ConfigurationError):
        evaluate_expression("{{ $response.body[ }}", ctx={"response": {}})


def test_evaluate_condition() -> None:
    ctx = {"response": {"body": {"hasMore": False}}, "pageCount": 3}
    assert evaluate_condition("{{ not $response.body.hasMore }}", ctx=ctx)
    assert evaluate_condition("$pageCount >= 3", ctx=ctx)
    assert not evaluate_condition("", ctx=ctx)


def test_substitute_json_template_does_not_rescan_values() -> None:
    out = substitute_json_template('{"a": "{a}", "b": {b}}', {"a": "{b}", "b": 7})
    assert json.loads(out) == {"a": "{b}", "b": 7}

    out = substitute_json_template('{"text": "say {a} now", "n": {b}}', {"a": "{b}", "b": 1})
    assert json.loads(out) == {"text": "say {b} now", "n": 1}
