"""
Configuration management for the model invocation layer.

Loads environment variables from a .env file and builds an explicit,
immutable Preferences struct. Components receive Preferences as an argument;
nothing below this module reads the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .types import Model

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _parse_bool(raw: Optional[str]) -> bool:
    return str(raw or "").strip().lower() in _TRUE_VALUES


def _parse_timeout(raw: Optional[str]) -> Optional[float]:
    if raw is None or not str(raw).strip():
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


@dataclass(frozen=True)
class Preferences:
    """Caller/environment preferences consumed by the resolver and builder."""

    model_endpoint: str = ""
    auth_type: str = "none"
    api_key: str = ""
    input_schema: str = ""
    output_key_path: str = ""
    output_timing: str = "async"
    length_limit: str = "2500"
    include_temperature: bool = False
    prompt_prefix: str = ""
    prompt_suffix: str = ""
    request_timeout_s: Optional[float] = None
    models_file: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Preferences":
        env = os.environ if environ is None else environ
        return cls(
            model_endpoint=env.get("PROMPTLAB_MODEL_ENDPOINT", ""),
            auth_type=env.get("PROMPTLAB_AUTH_TYPE", "none"),
            api_key=env.get("PROMPTLAB_API_KEY", ""),
            input_schema=env.get("PROMPTLAB_INPUT_SCHEMA", ""),
            output_key_path=env.get("PROMPTLAB_OUTPUT_KEY_PATH", ""),
            output_timing=env.get("PROMPTLAB_OUTPUT_TIMING", "async"),
            length_limit=env.get("PROMPTLAB_LENGTH_LIMIT", "2500"),
            include_temperature=_parse_bool(env.get("PROMPTLAB_INCLUDE_TEMPERATURE")),
            prompt_prefix=env.get("PROMPTLAB_PROMPT_PREFIX", ""),
            prompt_suffix=env.get("PROMPTLAB_PROMPT_SUFFIX", ""),
            request_timeout_s=_parse_timeout(env.get("PROMPTLAB_REQUEST_TIMEOUT_S")),
            models_file=env.get("PROMPTLAB_MODELS_FILE") or None,
        )

    def preference_model(self) -> Model:
        """The model described directly by preferences."""
        return Model(
            endpoint=self.model_endpoint,
            auth_type=self.auth_type,
            api_key=self.api_key,
            input_schema=self.input_schema,
            output_key_path=self.output_key_path,
            output_timing=self.output_timing,
            length_limit=self.length_limit,
            temperature="1.0",
        )


if __name__ == "__main__":
    # Test configuration loading
    prefs = Preferences.from_env()
    print("Configuration loaded:")
    print(f"  Model Endpoint: {prefs.model_endpoint or '(managed service)'}")
    print(f"  Auth Type: {prefs.auth_type}")
    print(f"  API Key: {'✓ Set' if prefs.api_key else '✗ Missing'}")
    print(f"  Output Timing: {prefs.output_timing}")
    print(f"  Include Temperature: {prefs.include_temperature}")
