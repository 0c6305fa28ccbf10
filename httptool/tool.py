from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from httptool.config import Settings
from httptool.contract import build_contract, contract_json_schema, describe_contract
from httptool.credentials import CredentialProvider
from httptool.engine import ExecutionEngine
from httptool.errors import ConfigurationError, HttpError, InputRecoveryError, ToolError
from httptool.models import ParameterContract, ToolConfig
from httptool.optimizer import optimize
from httptool.request_builder import auth_ref, build_request
from httptool.resolver import resolve
from httptool.trace import NullTraceSink, TraceSink
from httptool.transport import HttpExecutor, HttpxExecutor

log = logging.getLogger(__name__)


def load_tool_config(path: str | Path) -> ToolConfig:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Tool config not found: {p}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Tool config is not valid JSON: {exc}") from exc
    try:
        return ToolConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid tool config: {exc}") from exc


def _parse_custom_error_json(text: str) -> str:
    try:
        obj = json.loads(text or "{}")
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Custom error JSON is not valid JSON: {exc.msg}") from exc
    return json.dumps(obj, ensure_ascii=False)


class HttpRequestTool:
    """
    Agent-facing HTTP request tool.

    Setup (`from_config`) validates the whole configuration and fails with
    ConfigurationError. After that, `ainvoke` always returns a string: failures
    are rendered as text and recorded to the trace sink.
    """

    def __init__(
        self,
        config: ToolConfig,
        contract: ParameterContract,
        *,
        engine: ExecutionEngine,
        trace: TraceSink,
        settings: Settings,
        custom_error: Optional[str] = None,
    ) -> None:
        self.config = config
        self.contract = contract
        self.engine = engine
        self.trace = trace
        self.settings = settings
        self.custom_error = custom_error

    @classmethod
    def from_config(
        cls,
        config: ToolConfig,
        *,
        executor: Optional[HttpExecutor] = None,
        credentials: Optional[CredentialProvider] = None,
        trace: Optional[TraceSink] = None,
        settings: Optional[Settings] = None,
        engine: Optional[ExecutionEngine] = None,
    ) -> "HttpRequestTool":
        contract = build_contract(config)
        auth_ref(config)
        custom_error = None
        if config.options.on_error == "customJson":
            custom_error = _parse_custom_error_json(config.options.custom_error_json)
        if engine is None:
            engine = ExecutionEngine(executor or HttpxExecutor(credentials=credentials), credentials=credentials)
        log.debug("tool %s: %s caller field(s)", config.name, len(contract.caller_fields()))
        return cls(
            config,
            contract,
            engine=engine,
            trace=trace or NullTraceSink(),
            settings=settings or Settings(),
            custom_error=custom_error,
        )

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def description(self) -> str:
        return describe_contract(self.config.description, self.contract)

    def json_schema(self) -> dict[str, Any]:
        return contract_json_schema(self.contract)

    def tool_def(self) -> dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.json_schema(),
            "strict": False,
        }

    def _record(self, method: str, index: int, data: Any, **kwargs: Any) -> None:
        # Sink failures never change the result.
        try:
            getattr(self.trace, method)(index, data, **kwargs)
        except Exception:
            log.exception("tool %s: trace sink failed on %s", self.name, method)

    async def _run(self, raw: Any) -> str:
        resolved = resolve(raw, self.contract)
        log.debug("tool %s: input resolved via %s", self.name, resolved.tier)
        descriptor = build_request(resolved, self.config, self.contract, settings=self.settings)
        options = self.config.options
        response = await self.engine.execute(
            descriptor,
            options.pagination,
            never_error=options.response.never_error,
        )
        return optimize(
            response,
            self.config.optimize,
            response_options=options.response,
            default_max_length=self.settings.truncate_max_length,
        )

    async def ainvoke(self, raw: Any = None, *, index: int = 0) -> str:
        self._record("record_input", index, raw)
        try:
            result = await self._run(raw)
        except InputRecoveryError as exc:
            message = f"Input provided by model is not valid: {exc}"
        except HttpError as exc:
            log.warning("tool %s: %s", self.name, exc)
            message = self.custom_error if self.custom_error is not None else str(exc)
        except ToolError as exc:
            log.warning("tool %s: %s", self.name, exc)
            message = str(exc)
        except Exception as exc:
            log.exception("tool %s: unexpected failure", self.name)
            message = f"Unexpected error: {exc}"
        else:
            self._record("record_output", index, result)
            return result
        self._record("record_output", index, message, error=True)
        return message

    async def ainvoke_batch(self, items: Sequence[Any]) -> list[str]:
        """One result per item, in order, throttled by the configured batching."""
        indexed = list(enumerate(items))

        async def run(pair: tuple[int, Any]) -> str:
            i, item = pair
            return await self.ainvoke(item, index=i)

        return await self.engine.run_batched(indexed, run, self.config.options.batching)
