from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from httptool.errors import ConfigurationError
from httptool.models import (
    ContractField,
    ParameterContract,
    ParameterDecl,
    ParameterSource,
    PlaceholderSpec,
    SectionConfig,
    ToolConfig,
)
from httptool.utils.template import find_placeholders


_TOOL_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_tool_name(name: str) -> str:
    s = str(name or "").strip()
    if not _TOOL_NAME_RE.fullmatch(s):
        raise ConfigurationError(
            f"Invalid tool name '{name}': only letters, digits, '_' and '-' are allowed"
        )
    return s


def url_authority(url: str) -> str:
    """Scheme-less host part of a (possibly templated) URL, e.g. `{tenant}.example.com:8080`."""
    s = str(url or "").strip()
    if "://" in s:
        s = s.split("://", 1)[1]
    for sep in ("/", "?", "#"):
        s = s.split(sep, 1)[0]
    return s


def active_sections(config: ToolConfig) -> list[tuple[str, SectionConfig]]:
    out: list[tuple[str, SectionConfig]] = []
    for key, section in (("query", config.query), ("headers", config.headers), ("body", config.body)):
        if section.enabled:
            out.append((key, section))
    return out


def template_texts(config: ToolConfig) -> list[str]:
    """Every template string that may contain `{placeholder}` tokens."""
    texts = [config.url]
    for _, section in active_sections(config):
        if section.mode == "json":
            texts.append(section.json_template)
            continue
        for decl in section.parameters:
            if decl.value_provider is ParameterSource.FIXED_VALUE and isinstance(decl.value, str):
                texts.append(decl.value)
    return texts


def _infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "string"


def _merge(fields: dict[str, ContractField], incoming: ContractField, *, declared_type: Optional[str]) -> None:
    current = fields.get(incoming.name)
    if current is None:
        fields[incoming.name] = incoming
        return

    if declared_type and current.caller_facing and current.type != declared_type:
        raise ConfigurationError(
            f"Parameter '{incoming.name}' is declared with conflicting types "
            f"'{current.type}' and '{declared_type}'"
        )

    if not current.caller_facing and not incoming.caller_facing:
        # Same fixed name in two sections: each section keeps its own value.
        return

    if current.caller_facing and incoming.caller_facing:
        required = current.required or incoming.required
        source = ParameterSource.MODEL_REQUIRED if required else ParameterSource.MODEL_OPTIONAL
        fixed_value = current.fixed_value
    elif current.caller_facing:
        source = current.source
        fixed_value = incoming.fixed_value if current.fixed_value is None else current.fixed_value
    else:
        source = incoming.source
        fixed_value = current.fixed_value

    fields[incoming.name] = ContractField(
        name=incoming.name,
        source=source,
        type=current.type if current.caller_facing else incoming.type,
        description=current.description or incoming.description,
        fixed_value=fixed_value,
    )


def _spec_index(placeholders: Iterable[PlaceholderSpec]) -> dict[str, PlaceholderSpec]:
    out: dict[str, PlaceholderSpec] = {}
    for spec in placeholders:
        name = spec.name.strip()
        if not name:
            raise ConfigurationError("Placeholder definitions must have a name")
        if name in out:
            raise ConfigurationError(f"Placeholder '{name}' is defined more than once")
        out[name] = spec
    return out


def _decl_field(decl: ParameterDecl, spec: Optional[PlaceholderSpec]) -> tuple[ContractField, Optional[str]]:
    if decl.type and spec is not None and decl.type != spec.type:
        raise ConfigurationError(
            f"Parameter '{decl.name}' is declared as '{decl.type}' but its placeholder is '{spec.type}'"
        )
    declared_type = decl.type or (spec.type if spec is not None else None)
    if decl.value_provider is ParameterSource.FIXED_VALUE:
        return (
            ContractField(
                name=decl.name,
                source=ParameterSource.FIXED_VALUE,
                type=_infer_type(decl.value),  # type: ignore[arg-type]
                description=decl.description,
                fixed_value=decl.value,
            ),
            None,
        )
    return (
        ContractField(
            name=decl.name,
            source=decl.value_provider,
            type=declared_type or "string",  # type: ignore[arg-type]
            description=decl.description or (spec.description if spec is not None else ""),
        ),
        declared_type,
    )


def build_contract(config: ToolConfig) -> ParameterContract:
    """
    Union placeholder definitions with query/header/body declarations into one contract.

    Raises ConfigurationError for:
      - a `{token}` used in a template with no placeholder definition and no parameter
        declaration of the same name (a fixed declaration supplies its value to the token)
      - a placeholder definition that no template references
      - a placeholder in the URL host when authentication is configured
    """
    validate_tool_name(config.name)
    specs = _spec_index(config.placeholders)
    fields: dict[str, ContractField] = {}
    used: set[str] = set()

    for _, section in active_sections(config):
        if section.mode != "keypair":
            continue
        for decl in section.parameters:
            name = decl.name.strip()
            if not name:
                raise ConfigurationError("Query/header/body parameters must have a name")
            field, declared_type = _decl_field(decl.model_copy(update={"name": name}), specs.get(name))
            _merge(fields, field, declared_type=declared_type)
            if field.caller_facing:
                used.add(name)

    for text in template_texts(config):
        for name in find_placeholders(text):
            used.add(name)
            spec = specs.get(name)
            existing = fields.get(name)
            if spec is None and (existing is None or (not existing.caller_facing and existing.fixed_value is None)):
                raise ConfigurationError(
                    f"Misconfigured placeholder '{name}': it is used in a template but has no definition"
                )
            if existing is not None and (existing.caller_facing or spec is None):
                continue
            _merge(
                fields,
                ContractField(
                    name=name,
                    source=ParameterSource.MODEL_REQUIRED,
                    type=spec.type if spec is not None else "string",
                    description=spec.description if spec is not None else "",
                ),
                declared_type=spec.type if spec is not None else None,
            )

    for name in specs:
        if name not in used:
            raise ConfigurationError(
                f"Misconfigured placeholder '{name}': it is defined but not used in the URL, query, headers or body"
            )

    if config.authentication.type != "none" and find_placeholders(url_authority(config.url)):
        raise ConfigurationError("Placeholders in domain are not allowed with authentication")

    return ParameterContract(fields=fields)


def contract_json_schema(contract: ParameterContract) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []
    for f in contract.caller_fields():
        prop: dict[str, Any] = {"type": f.type}
        if f.description:
            prop["description"] = f.description
        properties[f.name] = prop
        if f.required:
            required.append(f.name)
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": True,
    }


def describe_contract(description: str, contract: ParameterContract) -> str:
    """Human-readable fallback for callers that cannot consume a JSON schema."""
    lines = [description.strip()] if description and description.strip() else []
    caller = contract.caller_fields()
    if not caller:
        lines.append("This tool takes no input.")
        return "\n".join(lines)
    lines.append(
        f"Input must be a JSON object with {len(caller)} "
        f"{'property' if len(caller) == 1 else 'properties'}:"
    )
    for f in caller:
        flag = "required" if f.required else "optional"
        line = f"- {f.name} ({f.type}, {flag})"
        if f.description:
            line += f": {f.description}"
        lines.append(line)
    if any(f.required for f in caller):
        lines.append("All required properties must be provided.")
    return "\n".join(lines)
