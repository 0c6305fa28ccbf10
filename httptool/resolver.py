from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from httptool.errors import InputRecoveryError
from httptool.models import ParameterContract, ResolvedInvocation

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierFailure:
    tier: str
    reason: str
    missing: Optional[str] = None


TierResult = Union[ResolvedInvocation, TierFailure]
Tier = Callable[[Any, ParameterContract], TierResult]


_PY_TYPES: dict[str, Any] = {
    "string": str,
    "number": Union[int, float],
    "boolean": bool,
}


def build_input_model(contract: ParameterContract) -> type[BaseModel]:
    """
    Pydantic model for the caller-facing fields. Attribute names are synthetic
    (`f0`, `f1`, ...) and the real field name is the alias, so header-style names
    like `X-Api-Key` validate too.
    """
    definitions: dict[str, Any] = {}
    for i, f in enumerate(contract.caller_fields()):
        tp = _PY_TYPES.get(f.type, str)
        if f.required:
            definitions[f"f{i}"] = (tp, Field(..., alias=f.name, description=f.description or None))
        else:
            definitions[f"f{i}"] = (Optional[tp], Field(default=None, alias=f.name, description=f.description or None))
    return create_model(
        "ToolInput",
        __config__=ConfigDict(extra="ignore", coerce_numbers_to_str=True),
        **definitions,
    )


def validate_against_contract(obj: Mapping[str, Any], contract: ParameterContract, *, tier: str) -> TierResult:
    for f in contract.caller_fields():
        if f.required and obj.get(f.name) in (None, ""):
            return TierFailure(tier=tier, reason=f"missing '{f.name}'", missing=f.name)
    model = build_input_model(contract)
    try:
        parsed = model.model_validate(dict(obj))
    except ValidationError as exc:
        err = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in err.get("loc", ()))
        return TierFailure(tier=tier, reason=f"{loc}: {err.get('msg', 'invalid value')}")
    values = parsed.model_dump(by_alias=True, exclude_unset=True)
    return ResolvedInvocation.of({k: v for k, v in values.items() if v is not None}, tier=tier)


# Tier 1: already-structured input, strict JSON, or `key: value` text.

_KV_LINE_RE = re.compile(r"\r?\n+")
_KV_RE = re.compile(r"^\s*[\"']?([^\"':=]+?)[\"']?\s*[:=]\s*(.*?)\s*$")


def _kv_parts(text: str, names: list[str]) -> list[str]:
    """
    Lines, further split on `&` or `;` only where the next segment starts with a known
    field name followed by `:` or `=`. Query-like values such as `a=1&b=2` stay whole.
    """
    alternatives = "|".join(re.escape(n) for n in sorted(names, key=len, reverse=True))
    inline = re.compile(rf"[&;]+(?=\s*[\"']?(?:{alternatives})[\"']?\s*[:=])", re.I)
    parts: list[str] = []
    for line in _KV_LINE_RE.split(text):
        parts.extend(inline.split(line))
    return parts


def _parse_key_values(text: str, names: list[str]) -> dict[str, Any]:
    lookup = {n.lower(): n for n in names}
    out: dict[str, Any] = {}
    for part in _kv_parts(text, names):
        m = _KV_RE.match(part)
        if not m:
            continue
        key = lookup.get(m.group(1).strip().lower())
        if key is None:
            continue
        value = m.group(2).strip().rstrip(",").strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        out[key] = value
    return out


def structured_tier(raw: Any, contract: ParameterContract) -> TierResult:
    caller = contract.caller_fields()
    if not caller:
        return ResolvedInvocation.of({}, tier="structured")
    if raw is None:
        return validate_against_contract({}, contract, tier="structured")
    if isinstance(raw, Mapping):
        return validate_against_contract(raw, contract, tier="structured")
    if not isinstance(raw, str):
        return TierFailure(tier="structured", reason=f"unsupported input type {type(raw).__name__}")
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError:
        obj = None
    if isinstance(obj, dict):
        return validate_against_contract(obj, contract, tier="structured")
    if len(caller) > 1:
        pairs = _parse_key_values(raw, [f.name for f in caller])
        if pairs:
            return validate_against_contract(pairs, contract, tier="structured")
    return TierFailure(tier="structured", reason="input is not a JSON object")


# Tier 2: near-JSON.

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][A-Za-z0-9_$-]*)(\s*:)")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_PY_LITERALS_RE = re.compile(r"(?<![\"\w])(True|False|None)(?![\"\w])")


def _extract_json_object(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_str = False
    quote = ""
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == quote:
                in_str = False
            continue
        if ch in "\"'":
            in_str = True
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def repair_json(text: str) -> str:
    repaired = _FENCE_RE.sub("", (text or "").strip()).strip()
    extracted = _extract_json_object(repaired)
    if extracted:
        repaired = extracted
    if '"' not in repaired and "'" in repaired:
        repaired = repaired.replace("'", '"')
    repaired = _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', repaired)
    repaired = _TRAILING_COMMA_RE.sub(r"\1", repaired)
    repaired = _PY_LITERALS_RE.sub(lambda m: {"True": "true", "False": "false", "None": "null"}[m.group(1)], repaired)
    if repaired.count("{") > repaired.count("}"):
        repaired += "}" * (repaired.count("{") - repaired.count("}"))
    return repaired


def relaxed_json_tier(raw: Any, contract: ParameterContract) -> TierResult:
    if not isinstance(raw, str):
        return TierFailure(tier="relaxed_json", reason="input is not text")
    try:
        obj = json.loads(repair_json(raw))
    except json.JSONDecodeError as exc:
        return TierFailure(tier="relaxed_json", reason=f"not parseable as JSON: {exc.msg}")
    if not isinstance(obj, dict):
        return TierFailure(tier="relaxed_json", reason="input is not a JSON object")
    return validate_against_contract(obj, contract, tier="relaxed_json")


# Tier 3: a bare string for a single-field contract.


def single_field_tier(raw: Any, contract: ParameterContract) -> TierResult:
    caller = contract.caller_fields()
    if len(caller) != 1:
        return TierFailure(tier="single_field", reason="contract has more than one field")
    if not isinstance(raw, str):
        return TierFailure(tier="single_field", reason="input is not text")
    return validate_against_contract({caller[0].name: raw}, contract, tier="single_field")


TIERS: tuple[Tier, ...] = (structured_tier, relaxed_json_tier, single_field_tier)


def resolve(raw: Any, contract: ParameterContract, *, tiers: tuple[Tier, ...] = TIERS) -> ResolvedInvocation:
    failures: list[TierFailure] = []
    for tier in tiers:
        outcome = tier(raw, contract)
        if isinstance(outcome, ResolvedInvocation):
            log.debug("resolver: resolved via %s tier", outcome.tier)
            return outcome
        failures.append(outcome)

    missing = next((f.missing for f in failures if f.missing), None)
    if missing:
        raise InputRecoveryError(f"Model did not provide parameter '{missing}'", missing=missing)
    reasons = "; ".join(f"{f.tier}: {f.reason}" for f in failures)
    raise InputRecoveryError(f"Could not parse input ({reasons})")
