"""Callback boundary between the stream interpreter and its consumers.

Consumers (terminal UI, CLI, chat store) register plain callables. OutputSink
wraps them and enforces the delivery rules:

- ``on_complete`` and ``on_error`` are terminal, fire at most once, and are
  mutually exclusive;
- once the abort signal is set nothing fires at all, unless the caller asked
  for a graceful shutdown and the final flush runs inside ``draining()``;
- a consumer exception is logged and never breaks the stream.
"""

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from loguru import logger

from kognys.streaming.events import AgentMessage, DebateParticipant


@dataclass
class StreamCallbacks:
    """Consumer hooks. Every hook is optional."""

    on_chunk: Callable[[str], Any] | None = None
    on_status: Callable[[str, str], Any] | None = None
    on_agent_message: Callable[[str, str, str | None, str | None], Any] | None = None
    on_agent_debate: Callable[[list[DebateParticipant], str | None], Any] | None = None
    on_complete: Callable[[str, str | None], Any] | None = None
    on_error: Callable[[Exception], Any] | None = None


class OutputSink:
    """Ordered, guarded delivery of aggregator output to StreamCallbacks."""

    def __init__(
        self,
        callbacks: StreamCallbacks | None = None,
        abort: asyncio.Event | None = None,
    ):
        self.callbacks = callbacks or StreamCallbacks()
        self.terminated = False
        self.aborted = False
        self._abort_signal = abort
        self._draining = False

    @property
    def abort_requested(self) -> bool:
        return self.aborted or (self._abort_signal is not None and self._abort_signal.is_set())

    @property
    def closed(self) -> bool:
        if self.terminated:
            return True
        return self.abort_requested and not self._draining

    @contextmanager
    def draining(self) -> Iterator[None]:
        """Let non-terminal callbacks through after abort, for a graceful final flush."""
        self._draining = True
        try:
            yield
        finally:
            self._draining = False

    def _call(self, name: str, *args: Any) -> None:
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"{name} callback failed: {e}")

    def chunk(self, text: str) -> None:
        if not self.closed:
            self._call("on_chunk", text)

    def status(self, text: str, event_kind: str) -> None:
        if not self.closed:
            self._call("on_status", text, event_kind)

    def agent_message(self, message: AgentMessage) -> None:
        if not self.closed:
            self._call(
                "on_agent_message",
                message.agent_name,
                message.message,
                message.role,
                message.message_type,
            )

    def agent_debate(self, participants: list[DebateParticipant], topic: str | None) -> None:
        if not self.closed:
            self._call("on_agent_debate", participants, topic)

    def complete(self, full_text: str, transaction_hash: str | None = None) -> bool:
        """Deliver the terminal success. Returns False if terminated or aborted."""
        if self.terminated or self.abort_requested:
            return False
        self.terminated = True
        self._call("on_complete", full_text, transaction_hash)
        return True

    def error(self, error: Exception) -> bool:
        """Deliver the terminal failure. Returns False if terminated or aborted."""
        if self.terminated or self.abort_requested:
            return False
        self.terminated = True
        self._call("on_error", error)
        return True

    def abort(self) -> None:
        """Silence every further callback."""
        self.aborted = True
