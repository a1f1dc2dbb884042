"""
Model Invocation Layer - Data Types

Model records come from the registry (read-only here). Backend variants are
decided once at resolution time so the rest of the pipeline never re-checks
endpoint strings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


OutputTiming = Literal["sync", "async"]


class AuthType(str, Enum):
    """How the API key is presented to an HTTP backend."""

    NONE = "none"
    API_KEY = "apiKey"
    BEARER_TOKEN = "bearerToken"
    X_API_KEY = "xApiKey"


# Spellings found in exported model records
_AUTH_TYPE_ALIASES = {
    "": AuthType.NONE,
    "none": AuthType.NONE,
    "apikey": AuthType.API_KEY,
    "bearertoken": AuthType.BEARER_TOKEN,
    "xapikey": AuthType.X_API_KEY,
    "x-api-key": AuthType.X_API_KEY,
}


def parse_auth_type(value: Any) -> AuthType:
    """Map a raw authType value onto AuthType. Unknown values mean no auth."""
    if isinstance(value, AuthType):
        return value
    if value is None:
        return AuthType.NONE
    return _AUTH_TYPE_ALIASES.get(str(value).strip().lower(), AuthType.NONE)


class Model(BaseModel):
    """
    Configuration record describing one text-generation backend.

    Accepts the camelCase keys used by exported model records as well as
    the snake_case attribute names.
    """

    endpoint: str = ""
    auth_type: AuthType = Field(AuthType.NONE, alias="authType")
    api_key: str = Field("", alias="apiKey")
    input_schema: str = Field("", alias="inputSchema")
    output_key_path: str = Field("", alias="outputKeyPath")
    output_timing: OutputTiming = Field("async", alias="outputTiming")
    temperature: str = "1.0"
    length_limit: str = Field("2500", alias="lengthLimit")
    is_default: bool = Field(False, alias="isDefault")

    id: str = ""
    name: str = ""
    description: str = ""
    favorited: bool = False
    icon: str = ""
    icon_color: str = Field("", alias="iconColor")
    notes: str = ""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("auth_type", mode="before")
    @classmethod
    def _coerce_auth_type(cls, value: Any) -> AuthType:
        return parse_auth_type(value)

    @field_validator("output_timing", mode="before")
    @classmethod
    def _coerce_output_timing(cls, value: Any) -> str:
        timing = str(value or "async").strip().lower()
        return "sync" if timing == "sync" else "async"

    @field_validator("temperature", "length_limit", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return "" if value is None else str(value)


# ============================================================================
# BACKEND VARIANTS (decided once by the resolver)
# ============================================================================

@dataclass(frozen=True)
class BuiltInBackend:
    """The platform's managed generation service."""

    model_variant: str


@dataclass(frozen=True)
class HttpBackend:
    """An arbitrary user-configured HTTP endpoint."""

    url: str
    auth_type: AuthType
    input_schema: str
    output_key_path: str
    output_timing: OutputTiming


@dataclass(frozen=True)
class PendingBackend:
    """Registry still loading; resolution is not final yet."""


@dataclass(frozen=True)
class InvalidBackend:
    """Endpoint is neither the managed service nor a URL."""

    endpoint: str


Backend = Union[BuiltInBackend, HttpBackend, PendingBackend, InvalidBackend]


# ============================================================================
# RESULT (public surface)
# ============================================================================

def _noop() -> None:
    return None


@dataclass
class InvocationResult:
    """Snapshot of the observable output of one caller session."""

    data: str = ""
    is_loading: bool = False
    error: Optional[str] = None
    data_tag: str = ""
    stop: Callable[[], None] = field(default=_noop, repr=False, compare=False)
    revalidate: Callable[[], None] = field(default=_noop, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "is_loading": self.is_loading,
            "error": self.error,
            "data_tag": self.data_tag,
        }
