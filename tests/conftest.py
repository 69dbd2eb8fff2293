"""
Pytest configuration and shared fixtures for kognys tests.

Test Organization:
- tests/unit/ - Isolated tests, no network; HTTP goes through httpx.MockTransport
"""

import json

import pytest


def sse(event_type: str, timestamp: float = 0, **data) -> str:
    """One SSE record line (with trailing newline) for the given event."""
    return "data: " + json.dumps({"event_type": event_type, "timestamp": timestamp, "data": data}) + "\n"


@pytest.fixture
def sse_line():
    """Factory for SSE record lines."""
    return sse
