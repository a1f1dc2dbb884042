"""
Model Resolver
==============

Chooses the effective Model for an invocation and derives everything the
dispatcher needs from it.

Resolution order:
    explicit override -> registry default -> preference model
    (only if its endpoint is non-empty) -> hardcoded managed-service fallback

Derived fields:
- backend variant (BuiltIn / Http / Pending / Invalid), decided here once
- effective temperature
- auth headers (from authType/apiKey only)
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional

from .config import Preferences
from .registry import ModelRegistry
from .types import (
    AuthType,
    Backend,
    BuiltInBackend,
    HttpBackend,
    InvalidBackend,
    Model,
    PendingBackend,
)

# Accepted spellings of the managed service endpoint (compared lowercased)
MANAGED_SERVICE_ALIASES = ("raycast ai", "raycastai", "raycast", "raycast-ai", "raycast ai 3.5")

MANAGED_MODEL_DEFAULT = "text-davinci-003"
MANAGED_MODEL_VARIANTS = {"Raycast AI 3.5": "gpt-3.5-turbo"}

NEUTRAL_TEMPERATURE = 1.0

FALLBACK_MODEL = Model(
    endpoint="Raycast AI",
    output_timing="async",
    length_limit="2500",
    temperature="1.0",
    name="Text-Davinci-003 Via Raycast AI",
)


def parse_temperature(raw: Optional[str], default: float = NEUTRAL_TEMPERATURE) -> float:
    """Parse a decimal string; anything unparsable (or non-finite) gives `default`."""
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


def build_auth_headers(auth_type: AuthType, api_key: str) -> Dict[str, str]:
    """Request headers for an HTTP model: JSON content type plus at most one auth header."""
    headers = {"Content-Type": "application/json"}
    key = (api_key or "").strip()

    if auth_type == AuthType.API_KEY:
        headers["Authorization"] = f"Api-Key {key}"
    elif auth_type == AuthType.BEARER_TOKEN:
        headers["Authorization"] = f"Bearer {key}"
    elif auth_type == AuthType.X_API_KEY:
        headers["X-API-Key"] = key

    return headers


def managed_model_variant(endpoint: str) -> str:
    return MANAGED_MODEL_VARIANTS.get(endpoint, MANAGED_MODEL_DEFAULT)


def is_managed_endpoint(endpoint: str) -> bool:
    return endpoint == "" or endpoint.strip().lower() in MANAGED_SERVICE_ALIASES


@dataclass(frozen=True)
class ResolvedModel:
    """The outcome of resolution for one invocation."""

    model: Model
    backend: Backend
    temperature: float
    inject_temperature: bool
    headers: Dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def is_managed(self) -> bool:
        return isinstance(self.backend, BuiltInBackend)


class ModelResolver:
    """
    Resolves the effective model against a registry and preferences.

    Never mutates the registry.
    """

    def __init__(self, registry: ModelRegistry, preferences: Preferences):
        self.registry = registry
        self.preferences = preferences

    def select_model(self, model_override: Optional[Model] = None) -> Model:
        if model_override is not None:
            return model_override

        default = self.registry.default_model()
        if default is not None:
            return default

        preference_model = self.preferences.preference_model()
        if preference_model.endpoint == "":
            return FALLBACK_MODEL
        return preference_model

    def classify(self, model: Model, model_override: Optional[Model] = None) -> Backend:
        if model_override is None and self.registry.is_loading:
            return PendingBackend()

        endpoint = model.endpoint
        if is_managed_endpoint(endpoint):
            return BuiltInBackend(model_variant=managed_model_variant(endpoint))

        if ":" in endpoint:
            return HttpBackend(
                url=endpoint,
                auth_type=model.auth_type,
                input_schema=model.input_schema,
                output_key_path=model.output_key_path,
                output_timing=model.output_timing,
            )

        return InvalidBackend(endpoint=endpoint)

    def effective_temperature(
        self,
        model: Model,
        temperature: Optional[str],
        model_override: Optional[Model] = None,
    ) -> float:
        if model_override is not None:
            return parse_temperature(model.temperature)
        if self.preferences.include_temperature:
            return parse_temperature(temperature)
        return NEUTRAL_TEMPERATURE

    def resolve(
        self,
        temperature: Optional[str] = None,
        model_override: Optional[Model] = None,
    ) -> ResolvedModel:
        model = self.select_model(model_override)
        backend = self.classify(model, model_override)
        return ResolvedModel(
            model=model,
            backend=backend,
            temperature=self.effective_temperature(model, temperature, model_override),
            inject_temperature=self.preferences.include_temperature or model_override is not None,
            headers=build_auth_headers(model.auth_type, model.api_key),
        )
