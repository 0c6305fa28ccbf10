from __future__ import annotations

import json
import re
from typing import Any, Iterable, Mapping

from jinja2 import TemplateError
from jinja2.sandbox import SandboxedEnvironment

from httptool.errors import ConfigurationError


_PLACEHOLDER_RE = re.compile(r"{([A-Za-z_][A-Za-z0-9_-]*)}")
_JSON_TOKEN_RE = re.compile(r'"{([A-Za-z_][A-Za-z0-9_-]*)}"|{([A-Za-z_][A-Za-z0-9_-]*)}')
_EXPR_RE = re.compile(r"{{\s*(.+?)\s*}}", re.S)
_DOLLAR_NAME_RE = re.compile(r"(?<![A-Za-z0-9_])\$([A-Za-z_][A-Za-z0-9_]*)")


def find_placeholders(text: str) -> list[str]:
    """Placeholder names in order of first appearance; `{{expr}}` blocks are not placeholders."""
    if not text:
        return []
    stripped = _EXPR_RE.sub("", str(text))
    out: list[str] = []
    for m in _PLACEHOLDER_RE.finditer(stripped):
        name = m.group(1)
        if name not in out:
            out.append(name)
    return out


def stringify_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def substitute_placeholders(text: str, values: Mapping[str, Any]) -> str:
    """Literal `{name}` replacement; names without a value are left in place."""
    if not text or "{" not in text:
        return text

    def repl(m: re.Match) -> str:
        name = m.group(1)
        if name not in values:
            return m.group(0)
        return stringify_value(values[name])

    return _PLACEHOLDER_RE.sub(repl, text)


def substitute_json_template(text: str, values: Mapping[str, Any]) -> str:
    """
    Substitute placeholders into a JSON document template in a single pass:
      - "{name}"        -> JSON string of the value
      - "a {name} b"    -> value escaped inside the surrounding string
      - {name} (bare)   -> JSON literal of the value
    Substituted values are never scanned again.
    """
    if not text or "{" not in text:
        return text

    def repl(m: re.Match) -> str:
        quoted_name, bare_name = m.group(1), m.group(2)
        name = quoted_name or bare_name
        if name not in values:
            return m.group(0)
        value = values[name]
        if quoted_name:
            return json.dumps(stringify_value(value), ensure_ascii=False)
        if isinstance(value, str):
            return json.dumps(value, ensure_ascii=False)[1:-1]
        return json.dumps(value, ensure_ascii=False)

    return _JSON_TOKEN_RE.sub(repl, text)


_SEG_RE = re.compile(r"([A-Za-z0-9_-]+)|\[(\d+)\]")


def resolve_path(obj: Any, path: str) -> Any:
    """
    Resolve a dotted path with optional [index] segments.
    Examples:
      - user.first_name
      - data.items[0].id
    """
    if path == "" or obj is None:
        return obj
    cur = obj
    for token in _iter_path_tokens(path):
        if cur is None:
            return None
        if isinstance(token, int):
            if isinstance(cur, (list, tuple)) and 0 <= token < len(cur):
                cur = cur[token]
            else:
                return None
        else:
            if isinstance(cur, dict):
                cur = cur.get(token)
            else:
                return None
    return cur


def has_path(obj: Any, path: str) -> bool:
    cur = obj
    for token in _iter_path_tokens(path):
        if isinstance(token, int):
            if not (isinstance(cur, list) and 0 <= token < len(cur)):
                return False
        elif not (isinstance(cur, dict) and token in cur):
            return False
        cur = cur[token]
    return True


def set_path(obj: dict, path: str, value: Any) -> None:
    """Set a value at a dotted path, creating intermediate objects. Index segments create lists."""
    tokens = list(_iter_path_tokens(path))
    if not tokens:
        return
    cur: Any = obj
    for i, token in enumerate(tokens):
        last = i == len(tokens) - 1
        nxt: Any = None if last else ([] if isinstance(tokens[i + 1], int) else {})
        if isinstance(token, int):
            while len(cur) <= token:
                cur.append(None)
            if last:
                cur[token] = value
            elif not isinstance(cur[token], (dict, list)):
                cur[token] = nxt
            cur = cur[token]
        else:
            if last:
                cur[token] = value
            elif not isinstance(cur.get(token), (dict, list)):
                cur[token] = nxt
            cur = cur[token]


def delete_path(obj: Any, path: str) -> None:
    tokens = list(_iter_path_tokens(path))
    if not tokens:
        return
    parent = resolve_path(obj, _tokens_to_path(tokens[:-1])) if len(tokens) > 1 else obj
    last = tokens[-1]
    if isinstance(last, int):
        if isinstance(parent, list) and 0 <= last < len(parent):
            del parent[last]
    elif isinstance(parent, dict):
        parent.pop(last, None)


def _tokens_to_path(tokens: list[str | int]) -> str:
    out = ""
    for t in tokens:
        if isinstance(t, int):
            out += f"[{t}]"
        else:
            out += f".{t}" if out else t
    return out


def _iter_path_tokens(path: str) -> Iterable[str | int]:
    for seg in path.split("."):
        seg = seg.strip()
        if not seg:
            continue
        for m in _SEG_RE.finditer(seg):
            key = m.group(1)
            idx = m.group(2)
            if key is not None:
                yield key
            elif idx is not None:
                yield int(idx)


_env = SandboxedEnvironment(autoescape=False)


def _to_jinja(src: str) -> str:
    # `$response.body.next` -> `response.body.next`
    return _DOLLAR_NAME_RE.sub(r"\1", src)


def is_expression(text: str) -> bool:
    return bool(text) and "{{" in text and "}}" in text


def evaluate_expression(text: str, *, ctx: Mapping[str, Any]) -> Any:
    """
    Evaluate an `{{ ... }}` expression against a read-only context.
    - Text with no `{{ }}` is returned unchanged.
    - Exactly one `{{expr}}` returns the raw value (not stringified).
    - Anything else renders to a string.
    """
    if not is_expression(text):
        return text
    s = text.strip()
    try:
        m = _EXPR_RE.fullmatch(s) if s.count("{{") == 1 else None
        if m:
            fn = _env.compile_expression(_to_jinja(m.group(1)))
            return fn(**dict(ctx))
        return _env.from_string(_to_jinja(text)).render(**dict(ctx))
    except (TemplateError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid expression {text!r}: {exc}") from exc


def evaluate_condition(expr: str, *, ctx: Mapping[str, Any]) -> bool:
    s = (expr or "").strip()
    if not s:
        return False
    if not is_expression(s):
        s = "{{ " + s + " }}"
    value = evaluate_expression(s, ctx=ctx)
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)
