"""
Template Request Builder
========================

Renders a model's declared input schema into a JSON request body.

The schema is a JSON-shaped string holding zero or more of the placeholders
{prompt}, {basePrompt} and {input}. Each placeholder is replaced (first
occurrence, in that order) with a sanitized fragment before the result is
parsed as JSON.

Invariants:
- Rendering is pure: the same inputs always produce the same body
- {input} renders empty when the schema already carries a {prompt...}
  placeholder and the input is the prompt itself
- A schema that does not parse to a JSON object raises TemplateError
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from .errors import TemplateError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"[\n\r\s]+")


def sanitize_fragment(text: str) -> str:
    """Collapse whitespace runs to one space and escape double quotes."""
    return _WHITESPACE_RE.sub(" ", text or "").replace('"', '\\"')


def render_input_schema(
    input_schema: str,
    base_prompt: str,
    prompt: str,
    input_text: str,
    prompt_prefix: str = "",
    prompt_suffix: str = "",
) -> str:
    """
    Substitute placeholders in `input_schema`. Returns the raw JSON text.

    Fragments:
        {prompt}     -> prefix + prompt + suffix
        {basePrompt} -> prefix + basePrompt
        {input}      -> input + suffix, or "" when input is the prompt
    """
    rendered_prompt = prompt_prefix + sanitize_fragment(prompt) + prompt_suffix
    rendered_base = prompt_prefix + sanitize_fragment(base_prompt)
    if "{prompt" in input_schema and prompt == input_text:
        rendered_input = ""
    else:
        rendered_input = sanitize_fragment(input_text) + prompt_suffix

    return (
        input_schema
        .replace("{prompt}", rendered_prompt, 1)
        .replace("{basePrompt}", rendered_base, 1)
        .replace("{input}", rendered_input, 1)
    )


def build_request_body(
    input_schema: str,
    base_prompt: str,
    prompt: str,
    input_text: str,
    prompt_prefix: str = "",
    prompt_suffix: str = "",
    temperature: Optional[float] = None,
    model_name: str = "",
) -> Dict[str, Any]:
    """
    Render and parse the request body for an HTTP model.

    Args:
        input_schema: The model's template
        base_prompt / prompt / input_text: Caller fragments
        prompt_prefix / prompt_suffix: Wrapping configured by preferences
        temperature: Injected as body["temperature"] when not None
        model_name: Used in error messages only

    Returns:
        The request body as a dict

    Raises:
        TemplateError: If the rendered schema is not a JSON object
    """
    rendered = render_input_schema(
        input_schema, base_prompt, prompt, input_text, prompt_prefix, prompt_suffix
    )

    try:
        body = json.loads(rendered)
    except json.JSONDecodeError as e:
        label = model_name or "model"
        logger.error(
            f"Input schema for {label} is not valid JSON after substitution: {e}",
            extra={"model_name": model_name},
        )
        raise TemplateError(f"Invalid input schema for {label}: {e.msg}", model_name) from e

    if not isinstance(body, dict):
        label = model_name or "model"
        raise TemplateError(f"Invalid input schema for {label}: expected a JSON object", model_name)

    if temperature is not None:
        body["temperature"] = temperature

    return body
