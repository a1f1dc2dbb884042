"""
Key-path extraction over decoded JSON.

Paths use dot-separated segments with optional bracketed sub-segments:

    choices[0].text      -> ["choices", "0", "text"]
    data.outputs[0][1]   -> ["data", "outputs", "0", "1"]

Any miss (absent key, out-of-range index, null value, non-container
intermediate, non-container root) yields the caller's default. Never raises.
"""

import re
from typing import Any, List, Optional

_BRACKET_RE = re.compile(r"\[([^\]]+)\]")


def split_key_path(path: str) -> List[str]:
    """Split a key path string into its non-empty segments."""
    segments: List[str] = []
    for item in (path or "").strip().split("."):
        # re.split keeps the captured bracket contents
        for key in _BRACKET_RE.split(item):
            if key:
                segments.append(key)
    return segments


def _step(current: Any, key: str) -> tuple[bool, Any]:
    if isinstance(current, dict):
        if key in current:
            return True, current[key]
        return False, None

    if isinstance(current, list):
        try:
            index = int(key)
        except ValueError:
            return False, None
        if 0 <= index < len(current):
            return True, current[index]
        return False, None

    return False, None


def get_key_path(obj: Any, path: str, default: Optional[Any] = None) -> Any:
    """
    Walk `path` through `obj` and return the value found there.

    Args:
        obj: Decoded JSON value (dict / list / scalar)
        path: Dotted/bracketed key path
        default: Returned on any miss

    Returns:
        The value at the path, or `default`
    """
    if not isinstance(obj, (dict, list)):
        return default

    current = obj
    for key in split_key_path(path):
        found, current = _step(current, key)
        if not found or current is None:
            return default
    return current
