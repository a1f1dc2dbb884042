"""
Stream Accumulator
==================

Decodes model output into accumulated text.

sync timing:  the whole body is one JSON document.
async timing: the body is newline-delimited text; lines starting with
              "data: " carry JSON events, "data: [DONE]" ends the stream.

Merge rule (per event):
- fragment contains the accumulated text -> replace (backend resent the full text)
- otherwise                               -> append (backend sent a delta)

The rule is a heuristic: a genuine delta that happens to contain the text
accumulated so far (e.g. repeated tokens) is treated as a full resend.
"""

import json
import logging
from typing import Any, List, Optional, Union

from .errors import DecodeError
from .key_path import get_key_path

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "data: [DONE]"


def fragment_to_text(value: Any) -> str:
    """Render an extracted JSON value as text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def merge_output(accumulated: str, fragment: str) -> str:
    """Fold one fragment into the accumulated text."""
    if accumulated in fragment:
        return fragment
    return accumulated + fragment


def decode_sync_output(body: Union[str, bytes], output_key_path: str) -> str:
    """
    Parse a complete response body and extract the output text.

    Raises:
        DecodeError: If the body is not valid JSON
    """
    try:
        document = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"Model returned invalid JSON: {e}") from e
    return fragment_to_text(get_key_path(document, output_key_path, ""))


class StreamAccumulator:
    """
    Incremental decoder for one async response.

    Chunks are processed in arrival order. Each chunk is split on newlines
    independently; a line cut at a chunk boundary fails to decode and is
    skipped.
    """

    def __init__(self, output_key_path: str):
        self.output_key_path = output_key_path
        self.text = ""
        self.done = False
        self.skipped = 0

    def decode_line(self, line: str) -> Optional[Any]:
        """
        Decode the JSON payload of one data line.

        Raises:
            DecodeError: If the payload is not valid JSON
        """
        payload = line[len(DATA_PREFIX):]
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise DecodeError(f"Could not decode stream event: {e.msg}", line) from e

    def feed_line(self, line: str) -> Optional[str]:
        """
        Process one line. Returns the accumulated text if the line was an
        event, otherwise None.
        """
        if self.done:
            return None
        if line.startswith(DONE_SENTINEL):
            self.done = True
            return None
        if not line.startswith(DATA_PREFIX):
            return None

        try:
            event = self.decode_line(line)
        except DecodeError as e:
            self.skipped += 1
            logger.warning(f"{e}; skipping line", extra={"line_length": len(line)})
            return None

        fragment = fragment_to_text(get_key_path(event, self.output_key_path, ""))
        self.text = merge_output(self.text, fragment)
        return self.text

    def feed(self, chunk: Union[str, bytes]) -> List[str]:
        """Process one chunk. Returns the accumulated text after each event, in order."""
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")

        updates: List[str] = []
        for line in chunk.split("\n"):
            text = self.feed_line(line)
            if text is not None:
                updates.append(text)
        return updates
