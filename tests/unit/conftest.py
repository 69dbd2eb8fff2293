"""
Pytest configuration and fixtures for kognys unit tests.

Unit tests MUST be isolated from external dependencies:
- No network calls (httpx.MockTransport only)
- No writes outside tmp_path

Settings are pointed at a per-test data directory.
"""

import pytest

from kognys.settings import settings
from kognys.streaming.sink import OutputSink, StreamCallbacks


class CallbackRecorder:
    """Records every sink callback as (name, args) in arrival order."""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []

    def _recorder(self, name: str):
        def record(*args):
            self.calls.append((name, args))

        return record

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_chunk=self._recorder("chunk"),
            on_status=self._recorder("status"),
            on_agent_message=self._recorder("agent_message"),
            on_agent_debate=self._recorder("agent_debate"),
            on_complete=self._recorder("complete"),
            on_error=self._recorder("error"),
        )

    def of(self, name: str) -> list[tuple]:
        return [args for call, args in self.calls if call == name]

    @property
    def statuses(self) -> list[str]:
        return [args[0] for args in self.of("status")]

    @property
    def messages(self) -> list[tuple]:
        return self.of("agent_message")


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture
def sink(recorder) -> OutputSink:
    return OutputSink(recorder.callbacks())


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep user id and chat files inside the test's tmp directory."""
    monkeypatch.setattr(settings, "data_dir", tmp_path)
    monkeypatch.setattr(settings.api, "user_id", "test-user")
    yield settings


def pytest_collection_modifyitems(items):
    """Automatically add 'unit' marker to all tests in /unit/."""
    for item in items:
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
