from __future__ import annotations

import json
from typing import Any

import pytest

from httptool.config import Settings
from httptool.models import RawResponse, RequestDescriptor, ToolConfig


def make_config(**overrides: Any) -> ToolConfig:
    base: dict[str, Any] = {
        "name": "test_tool",
        "description": "Test tool",
        "method": "GET",
        "url": "https://api.example.com/items",
    }
    base.update(overrides)
    return ToolConfig.model_validate(base)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, user_agent="httptool-tests")


def json_response(body: Any, status_code: int = 200, headers: dict[str, str] | None = None) -> RawResponse:
    return RawResponse(
        status_code=status_code,
        headers={"content-type": "application/json", **(headers or {})},
        body=json.dumps(body).encode("utf-8"),
    )


class ScriptedExecutor:
    """Replays responses in order; the last one repeats. Exceptions are raised."""

    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.sent: list[RequestDescriptor] = []
        self.authenticated: list[str] = []

    async def send(self, descriptor: RequestDescriptor) -> RawResponse:
        self.sent.append(descriptor)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def send_with_authentication(self, credential_type: str, descriptor: RequestDescriptor) -> RawResponse:
        self.authenticated.append(credential_type)
        return await self.send(descriptor)


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
