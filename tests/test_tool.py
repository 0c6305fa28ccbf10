from __future__ import annotations

import asyncio
import json

import pytest

from conftest import ScriptedExecutor, json_response, make_config
from httptool.errors import ConfigurationError, HttpError
from httptool.models import RawResponse
from httptool.tool import HttpRequestTool, load_tool_config
from httptool.trace import JsonlTraceSink, MemoryTraceSink


def _tool(executor, settings, trace=None, **overrides) -> HttpRequestTool:
    return HttpRequestTool.from_config(make_config(**overrides), executor=executor, trace=trace, settings=settings)


@pytest.mark.asyncio
async def test_text_response(settings) -> None:
    executor = ScriptedExecutor([RawResponse(status_code=200, headers={"content-type": "text/plain"}, body=b"Hello World")])
    assert await _tool(executor, settings).ainvoke({}) == "Hello World"


@pytest.mark.asyncio
async def test_json_response(settings) -> None:
    executor = ScriptedExecutor([json_response({"message": "Hello World"})])
    out = await _tool(executor, settings).ainvoke({})
    assert json.loads(out) == {"message": "Hello World"}


@pytest.mark.asyncio
async def test_binary_response(settings) -> None:
    executor = ScriptedExecutor([RawResponse(status_code=200, headers={"content-type": "image/jpeg"}, body=b"")])
    out = await _tool(executor, settings).ainvoke({})
    assert "error" in out
    assert "Binary data is not supported" in out


@pytest.mark.asyncio
async def test_http_failure_is_returned_as_text(settings) -> None:
    executor = ScriptedExecutor([HttpError(500, "Connection refused")])
    trace = MemoryTraceSink()
    out = await _tool(executor, settings, trace=trace).ainvoke({})
    assert out == "HTTP 500: Connection refused"
    assert trace.outputs() == [{"kind": "error", "index": 0, "data": "HTTP 500: Connection refused"}]


@pytest.mark.asyncio
async def test_custom_error_json(settings) -> None:
    executor = ScriptedExecutor([json_response({"detail": "down"}, status_code=503)])
    tool = _tool(executor, settings, options={"on_error": "customJson", "custom_error_json": '{"status": "unavailable"}'})
    assert json.loads(await tool.ainvoke({})) == {"status": "unavailable"}


def test_invalid_custom_error_json_fails_setup(settings) -> None:
    with pytest.raises(ConfigurationError, match="Custom error JSON"):
        _tool(ScriptedExecutor([json_response({})]), settings, options={"on_error": "customJson", "custom_error_json": "{oops"})


def test_invalid_tool_name_fails_setup(settings) -> None:
    with pytest.raises(ConfigurationError, match="Invalid tool name"):
        _tool(ScriptedExecutor([json_response({})]), settings, name="Invalid-Node-Name!")


def test_generic_auth_without_type_fails_setup(settings) -> None:
    with pytest.raises(ConfigurationError, match="generic auth type"):
        _tool(ScriptedExecutor([json_response({})]), settings, authentication={"type": "genericCredentialType"})


@pytest.mark.asyncio
async def test_missing_parameter_does_not_send(settings) -> None:
    executor = ScriptedExecutor([json_response({})])
    tool = _tool(
        executor,
        settings,
        query={
            "enabled": True,
            "parameters": [
                {"name": "name", "value_provider": "modelRequired"},
                {"name": "age", "value_provider": "modelOptional", "type": "number"},
            ],
        },
    )
    out = await tool.ainvoke({"age": 3})
    assert out == "Input provided by model is not valid: Model did not provide parameter 'name'"
    assert executor.sent == []


@pytest.mark.asyncio
async def test_single_field_raw_string(settings) -> None:
    executor = ScriptedExecutor([json_response({"ok": True})])
    tool = _tool(executor, settings, query={"enabled": True, "parameters": [{"name": "q"}]})
    await tool.ainvoke("weather in pune")
    assert dict(executor.sent[0].query) == {"q": "weather in pune"}


@pytest.mark.asyncio
async def test_trace_records_input_and_output(settings) -> None:
    executor = ScriptedExecutor([json_response({"id": 1})])
    trace = MemoryTraceSink()
    tool = _tool(executor, settings, trace=trace, query={"enabled": True, "parameters": [{"name": "q"}]})
    out = await tool.ainvoke({"q": "x"}, index=4)
    assert trace.entries == [
        {"kind": "input", "index": 4, "data": {"q": "x"}},
        {"kind": "output", "index": 4, "data": out},
    ]


@pytest.mark.asyncio
async def test_broken_trace_sink_does_not_change_result(settings) -> None:
    class BrokenSink:
        def record_input(self, index, data):
            raise OSError("disk full")

        def record_output(self, index, data, *, error=False):
            raise OSError("disk full")

    executor = ScriptedExecutor([json_response({"id": 1})])
    assert json.loads(await _tool(executor, settings, trace=BrokenSink()).ainvoke({})) == {"id": 1}


@pytest.mark.asyncio
async def test_cancellation_propagates(settings) -> None:
    class HangingExecutor(ScriptedExecutor):
        async def send(self, descriptor):
            raise asyncio.CancelledError()

    tool = _tool(HangingExecutor([json_response({})]), settings)
    with pytest.raises(asyncio.CancelledError):
        await tool.ainvoke({})


@pytest.mark.asyncio
async def test_batch_invocation(settings) -> None:
    executor = ScriptedExecutor([json_response({"n": 1}), json_response({"n": 2}), json_response({"n": 3})])
    tool = _tool(
        executor,
        settings,
        query={"enabled": True, "parameters": [{"name": "q"}]},
        options={"batching": {"batch_size": 2, "batch_interval_ms": 0}},
    )
    out = await tool.ainvoke_batch([{"q": "a"}, "b", {}])
    assert [json.loads(o) for o in out[:2]] == [{"n": 1}, {"n": 2}]
    assert out[2] == "Input provided by model is not valid: Model did not provide parameter 'q'"
    assert [d.query["q"] for d in executor.sent] == ["a", "b"]


def test_tool_def_and_description(settings) -> None:
    tool = _tool(
        ScriptedExecutor([json_response({})]),
        settings,
        description="Search the catalog.",
        query={"enabled": True, "parameters": [{"name": "q", "description": "Search text"}]},
    )
    tool_def = tool.tool_def()
    assert tool_def["type"] == "function"
    assert tool_def["name"] == "test_tool"
    assert tool_def["parameters"]["required"] == ["q"]
    assert "Search the catalog." in tool_def["description"]
    assert "- q (string, required): Search text" in tool.description


def test_load_tool_config(tmp_path) -> None:
    path = tmp_path / "tool.json"
    path.write_text(json.dumps({"name": "users", "url": "https://api.example.com/users", "method": "get"}), encoding="utf-8")
    config = load_tool_config(path)
    assert config.method == "GET"

    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        load_tool_config(path)


@pytest.mark.asyncio
async def test_jsonl_trace_sink(tmp_path, settings) -> None:
    sink = JsonlTraceSink(str(tmp_path / "traces" / "run.jsonl"))
    executor = ScriptedExecutor([json_response({"id": 1})])
    await _tool(executor, settings, trace=sink).ainvoke({})
    rows = sink.read()
    assert [r["kind"] for r in rows] == ["input", "output"]
    assert all(r["ts_utc"].endswith("Z") for r in rows)
