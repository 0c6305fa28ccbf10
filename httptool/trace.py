from __future__ import annotations

import datetime as dt
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Protocol

log = logging.getLogger(__name__)


class TraceSink(Protocol):
    def record_input(self, index: int, data: Any) -> None: ...

    def record_output(self, index: int, data: Any, *, error: bool = False) -> None: ...


def _utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z")


class NullTraceSink:
    def record_input(self, index: int, data: Any) -> None:
        return None

    def record_output(self, index: int, data: Any, *, error: bool = False) -> None:
        return None


class LoggingTraceSink:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.log = logger or log

    def record_input(self, index: int, data: Any) -> None:
        self.log.info("trace[%s] input: %s", index, data)

    def record_output(self, index: int, data: Any, *, error: bool = False) -> None:
        if error:
            self.log.warning("trace[%s] error: %s", index, data)
        else:
            self.log.info("trace[%s] output: %s", index, data)


@dataclass
class MemoryTraceSink:
    entries: list[dict[str, Any]] = field(default_factory=list)

    def record_input(self, index: int, data: Any) -> None:
        self.entries.append({"kind": "input", "index": index, "data": data})

    def record_output(self, index: int, data: Any, *, error: bool = False) -> None:
        self.entries.append({"kind": "error" if error else "output", "index": index, "data": data})

    def inputs(self) -> list[dict[str, Any]]:
        return [e for e in self.entries if e["kind"] == "input"]

    def outputs(self) -> list[dict[str, Any]]:
        return [e for e in self.entries if e["kind"] != "input"]


class JsonlTraceSink:
    """
    Appends one JSON line per trace entry. Values that are not JSON-serializable
    are written via str().
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def _append(self, event: dict[str, Any]) -> None:
        obj = dict(event)
        obj.setdefault("ts_utc", _utc_now())
        line = json.dumps(obj, ensure_ascii=False, default=str)
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def record_input(self, index: int, data: Any) -> None:
        self._append({"kind": "input", "index": index, "data": data})

    def record_output(self, index: int, data: Any, *, error: bool = False) -> None:
        self._append({"kind": "error" if error else "output", "index": index, "data": data})

    def read(self) -> list[dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        out: list[dict[str, Any]] = []
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                s = (line or "").strip()
                if not s:
                    continue
                try:
                    obj = json.loads(s)
                except json.JSONDecodeError:
                    continue
                if isinstance(obj, dict):
                    out.append(obj)
        return out
