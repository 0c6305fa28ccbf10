from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator


PlaceholderType = Literal["string", "number", "boolean"]


class ParameterSource(str, Enum):
    MODEL_REQUIRED = "modelRequired"
    MODEL_OPTIONAL = "modelOptional"
    FIXED_VALUE = "fixedValue"


# Tool configuration (declarative, loaded from JSON).


class PlaceholderSpec(BaseModel):
    name: str
    type: PlaceholderType = "string"
    description: str = ""


class ParameterDecl(BaseModel):
    name: str
    value_provider: ParameterSource = ParameterSource.MODEL_REQUIRED
    value: Any = None  # only used for fixedValue
    description: str = ""
    type: Optional[PlaceholderType] = None

    @field_validator("value_provider", mode="before")
    @classmethod
    def _accept_field_value_alias(cls, v):
        # Older configs call fixed values "fieldValue".
        if isinstance(v, str) and v.strip() == "fieldValue":
            return ParameterSource.FIXED_VALUE
        return v


class SectionConfig(BaseModel):
    enabled: bool = False
    mode: Literal["keypair", "json"] = "keypair"
    parameters: list[ParameterDecl] = []
    json_template: str = ""


class BodyConfig(SectionConfig):
    content_type: Literal["json", "form-urlencoded", "raw"] = "json"
    raw_content_type: str = "text/plain"


GenericAuthType = Literal[
    "httpBasicAuth",
    "httpHeaderAuth",
    "httpQueryAuth",
    "httpBearerAuth",
    "httpCustomAuth",
]


class AuthConfig(BaseModel):
    type: Literal["none", "predefinedCredentialType", "genericCredentialType"] = "none"
    credential_type: str = ""  # predefinedCredentialType: credential name handed to the executor
    generic_auth_type: Optional[GenericAuthType] = None


class PaginationParameter(BaseModel):
    type: Literal["qs", "headers", "body"] = "qs"
    name: str
    value: str = ""


class PaginationConfig(BaseModel):
    mode: Literal["off", "updateAParameterInEachRequest", "responseContainsNextURL"] = "off"
    parameters: list[PaginationParameter] = []
    next_url: str = ""
    complete_when: Literal["responseIsEmpty", "receiveSpecificStatusCodes", "other"] = "responseIsEmpty"
    status_codes_when_complete: str = ""
    complete_expression: str = ""
    limit_pages_fetched: bool = False
    max_requests: int = Field(default=100, ge=1)
    request_interval_ms: int = Field(default=0, ge=0)

    def completion_status_codes(self) -> set[int]:
        if self.complete_when != "receiveSpecificStatusCodes":
            return set()
        out: set[int] = set()
        for part in self.status_codes_when_complete.split(","):
            s = part.strip()
            if s.isdigit():
                out.add(int(s))
        return out


class BatchConfig(BaseModel):
    batch_size: int = Field(default=50, ge=-1)
    batch_interval_ms: int = Field(default=1000, ge=0)

    def effective_size(self) -> Optional[int]:
        if self.batch_size < 0:
            return None
        return max(1, self.batch_size)


class ResponseOptions(BaseModel):
    full_response: bool = False
    never_error: bool = False
    response_format: Literal["autodetect", "json", "text", "file"] = "autodetect"


class RequestOptions(BaseModel):
    query_array_format: Literal["repeat", "brackets", "indices"] = "brackets"
    batching: Optional[BatchConfig] = None
    on_error: Literal["default", "customJson"] = "default"
    custom_error_json: str = "{}"
    allow_unauthorized_certs: bool = False
    lowercase_headers: bool = True
    pagination: Optional[PaginationConfig] = None
    proxy: str = ""
    follow_redirects: Optional[bool] = None
    max_redirects: Optional[int] = Field(default=None, ge=0)
    response: ResponseOptions = ResponseOptions()
    timeout_ms: Optional[int] = Field(default=None, ge=1)


class OptimizeOptions(BaseModel):
    enabled: bool = False
    response_type: Literal["auto", "json", "html", "text"] = "auto"
    css_selector: str = "body"
    only_content: bool = False
    elements_to_omit: list[str] = []
    fields_to_include: Literal["all", "selected", "except"] = "all"
    fields: list[str] = []
    truncate: bool = False
    max_length: Optional[int] = Field(default=None, ge=1)


class ToolConfig(BaseModel):
    name: str
    description: str = ""
    method: str = "GET"
    url: str
    authentication: AuthConfig = AuthConfig()
    placeholders: list[PlaceholderSpec] = []
    query: SectionConfig = SectionConfig()
    headers: SectionConfig = SectionConfig()
    body: BodyConfig = BodyConfig()
    options: RequestOptions = RequestOptions()
    optimize: OptimizeOptions = OptimizeOptions()

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v):
        return (str(v or "GET").strip().upper()) or "GET"


# Runtime values.


@dataclass(frozen=True)
class ContractField:
    name: str
    source: ParameterSource
    type: PlaceholderType = "string"
    description: str = ""
    fixed_value: Any = None

    @property
    def caller_facing(self) -> bool:
        return self.source is not ParameterSource.FIXED_VALUE

    @property
    def required(self) -> bool:
        return self.source is ParameterSource.MODEL_REQUIRED


@dataclass(frozen=True)
class ParameterContract:
    fields: Mapping[str, ContractField]

    def caller_fields(self) -> list[ContractField]:
        return [f for f in self.fields.values() if f.caller_facing]

    def fixed_values(self) -> dict[str, Any]:
        return {f.name: f.fixed_value for f in self.fields.values() if not f.caller_facing}


@dataclass(frozen=True)
class ResolvedInvocation:
    values: Mapping[str, Any]
    tier: str = ""

    @classmethod
    def of(cls, values: Mapping[str, Any], *, tier: str = "") -> "ResolvedInvocation":
        return cls(values=MappingProxyType(dict(values)), tier=tier)


@dataclass(frozen=True)
class AuthRef:
    credential_type: Optional[str] = None  # delegated to the executor
    generic_type: Optional[str] = None  # applied from credential provider material
    basic: Optional[tuple[str, str]] = None


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    url: str
    query: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    body_content_type: str = "json"
    raw_content_type: str = "text/plain"
    auth: Optional[AuthRef] = None
    timeout_ms: int = 10000
    allow_unauthorized_certs: bool = False
    follow_redirects: bool = True
    max_redirects: int = 21
    query_array_format: str = "brackets"
    proxy: str = ""

    def to_context(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "qs": dict(self.query),
            "headers": dict(self.headers),
            "body": self.body,
        }


@dataclass(frozen=True)
class RawResponse:
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Union[bytes, str, None] = b""

    @property
    def content_type(self) -> str:
        for k, v in self.headers.items():
            if str(k).lower() == "content-type":
                return str(v or "").split(";", 1)[0].strip().lower()
        return ""

    @property
    def ok(self) -> bool:
        return 200 <= int(self.status_code) < 300

    def text(self) -> str:
        """Decode the body as UTF-8; raises UnicodeDecodeError for undecodable bytes."""
        if self.body is None:
            return ""
        if isinstance(self.body, str):
            return self.body
        return bytes(self.body).decode("utf-8")


@dataclass
class PaginationState:
    page_count: int = 0
    last_response: Optional[RawResponse] = None
    accumulated: list[RawResponse] = field(default_factory=list)
