"""Decode single ``data:`` records into typed stream events."""

import json

from loguru import logger
from pydantic import ValidationError

from kognys.streaming.events import StreamEvent, build_event

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


def _payload(line: str) -> str | None:
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].strip()


def is_done_sentinel(line: str) -> bool:
    """True for the logical end-of-stream record ``data: [DONE]``."""
    return _payload(line) == DONE_SENTINEL


def parse_sse_line(line: str) -> StreamEvent | None:
    """Parse one complete line into a StreamEvent.

    Returns None for lines without the ``data:`` prefix, for the ``[DONE]``
    sentinel, and for malformed records. Malformed records are logged and
    dropped; they never raise, so a bad upstream record cannot kill the stream.
    """
    payload = _payload(line)
    if not payload or payload == DONE_SENTINEL:
        return None

    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse SSE line: {e}: {payload[:200]}")
        return None

    if not isinstance(decoded, dict):
        logger.warning(f"Ignoring non-object SSE record: {payload[:200]}")
        return None

    try:
        return build_event(decoded)
    except (ValidationError, ValueError) as e:
        logger.warning(f"Invalid {decoded.get('event_type', 'untyped')} event: {e}")
        return None
