from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from httptool.config import Settings
from httptool.contract import url_authority
from httptool.errors import ConfigurationError
from httptool.models import (
    AuthRef,
    ParameterContract,
    ParameterSource,
    RequestDescriptor,
    ResolvedInvocation,
    SectionConfig,
    ToolConfig,
)
from httptool.utils.template import (
    find_placeholders,
    stringify_value,
    substitute_json_template,
    substitute_placeholders,
)


def _render(template: str, values: Mapping[str, Any], *, where: str, json_mode: bool = False) -> str:
    """Substitute into a template. Unresolved tokens are read from the template, never from the output."""
    leftover = [n for n in find_placeholders(template) if n not in values]
    if leftover:
        names = ", ".join(f"'{n}'" for n in leftover)
        raise ConfigurationError(f"Unresolved placeholder(s) {names} in {where}")
    if json_mode:
        return substitute_json_template(template, values)
    return substitute_placeholders(template, values)


def template_values(resolved: ResolvedInvocation, contract: ParameterContract) -> dict[str, Any]:
    """Values available to `{name}` tokens: fixed values, overridden by caller values."""
    out = {f.name: f.fixed_value for f in contract.fields.values() if f.fixed_value is not None}
    out.update(resolved.values)
    return out


def _keypair_section(
    section: SectionConfig,
    *,
    values: Mapping[str, Any],
    substitutions: Mapping[str, Any],
    contract: ParameterContract,
    where: str,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    # Fixed values first.
    for decl in section.parameters:
        name = decl.name.strip()
        if decl.value_provider is ParameterSource.FIXED_VALUE:
            value = decl.value
            if isinstance(value, str):
                value = _render(value, substitutions, where=f"{where} '{name}'")
            out[name] = value
            continue
        field = contract.fields.get(name)
        if field is not None and field.fixed_value is not None:
            out[name] = field.fixed_value
    # Caller values win over fixed defaults with the same name.
    for decl in section.parameters:
        name = decl.name.strip()
        if name in values:
            out[name] = values[name]
    return out


def _json_section(section: SectionConfig, *, substitutions: Mapping[str, Any], where: str) -> Any:
    template = section.json_template or ""
    if not template.strip():
        return None
    rendered = _render(template, substitutions, where=where, json_mode=True)
    try:
        return json.loads(rendered)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{where} is not valid JSON after substitution: {exc.msg}") from exc


def _section_values(
    section: SectionConfig,
    *,
    values: Mapping[str, Any],
    substitutions: Mapping[str, Any],
    contract: ParameterContract,
    where: str,
) -> Any:
    if not section.enabled:
        return None
    if section.mode == "json":
        return _json_section(section, substitutions=substitutions, where=where)
    return _keypair_section(section, values=values, substitutions=substitutions, contract=contract, where=where)


def _as_mapping(value: Any, *, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{where} must be a JSON object")
    return dict(value)


def normalize_headers(headers: Mapping[str, Any], *, lowercase: bool) -> dict[str, str]:
    out: dict[str, str] = {}
    for k, v in headers.items():
        if not isinstance(k, str) or not k.strip() or v is None:
            continue
        out[k.lower() if lowercase else k] = stringify_value(v)
    return out


def serialize_params(params: Mapping[str, Any], *, array_format: str) -> list[tuple[str, str]]:
    """Flatten params to wire pairs: repeat (`a=1&a=2`), brackets (`a[]=1`) or indices (`a[0]=1`)."""
    pairs: list[tuple[str, str]] = []
    for k, v in params.items():
        if isinstance(v, (list, tuple)):
            for i, item in enumerate(v):
                if array_format == "repeat":
                    key = k
                elif array_format == "indices":
                    key = f"{k}[{i}]"
                else:
                    key = f"{k}[]"
                pairs.append((key, stringify_value(item)))
            continue
        pairs.append((k, stringify_value(v)))
    return pairs


def auth_ref(config: ToolConfig) -> Optional[AuthRef]:
    auth = config.authentication
    if auth.type == "predefinedCredentialType":
        if not auth.credential_type.strip():
            raise ConfigurationError("Authentication 'predefinedCredentialType' requires a credential type")
        return AuthRef(credential_type=auth.credential_type.strip())
    if auth.type == "genericCredentialType":
        if not auth.generic_auth_type:
            raise ConfigurationError("Authentication 'genericCredentialType' requires a generic auth type")
        return AuthRef(generic_type=auth.generic_auth_type)
    return None


def build_request(
    resolved: ResolvedInvocation,
    config: ToolConfig,
    contract: ParameterContract,
    *,
    settings: Settings,
) -> RequestDescriptor:
    values = dict(resolved.values)
    substitutions = template_values(resolved, contract)

    url = _render(config.url, substitutions, where="URL")
    if auth_ref(config) is not None and find_placeholders(url_authority(config.url)):
        raise ConfigurationError("Placeholders in domain are not allowed with authentication")

    query = _as_mapping(
        _section_values(
            config.query, values=values, substitutions=substitutions, contract=contract, where="Query parameters"
        ),
        where="Query parameters",
    )
    headers_raw = _as_mapping(
        _section_values(
            config.headers, values=values, substitutions=substitutions, contract=contract, where="Headers"
        ),
        where="Headers",
    )
    body = _section_values(
        config.body, values=values, substitutions=substitutions, contract=contract, where="Body"
    )

    options = config.options
    headers = normalize_headers(headers_raw, lowercase=options.lowercase_headers)
    if settings.user_agent and not any(k.lower() == "user-agent" for k in headers):
        headers["user-agent" if options.lowercase_headers else "User-Agent"] = settings.user_agent

    return RequestDescriptor(
        method=config.method,
        url=url,
        query=query,
        headers=headers,
        body=body,
        body_content_type=config.body.content_type,
        raw_content_type=config.body.raw_content_type,
        auth=auth_ref(config),
        timeout_ms=options.timeout_ms or settings.timeout_ms,
        allow_unauthorized_certs=options.allow_unauthorized_certs,
        follow_redirects=settings.follow_redirects if options.follow_redirects is None else options.follow_redirects,
        max_redirects=settings.max_redirects if options.max_redirects is None else options.max_redirects,
        query_array_format=options.query_array_format,
        proxy=options.proxy,
    )
