"""Event classifier and aggregator for the research stream.

Turns the irregular upstream event sequence into the consumer-facing
timeline: status lines, agent messages, raw answer chunks and exactly one
terminal completion.

PHASES
------

    initializing → starting → validating → retrieving* → drafting* → finalizing → completed
                                      (error reachable from anywhere)

The phase is informational; behavior is driven by the event kind.

ORDERING
--------

Callbacks fire in classification order, with two exceptions:
- answer tokens go to ``on_chunk`` immediately, outside the message log;
- critique text is held by the SentenceBuffer and appears at flush time,
  possibly after later non-critique messages.

COMPLETION
----------

``finish()`` is called when the transport reaches end-of-stream. It flushes
the critique buffer and completes with the accumulated answer. A
``validation_error`` completes early; after that, further events and
``finish()`` are no-ops.
"""

from typing import Callable

from loguru import logger

from kognys.settings import settings
from kognys.streaming.buffer import SentenceBuffer, is_complete_sentence
from kognys.streaming.events import AgentMessage, StreamEvent
from kognys.streaming.handlers import (
    AGENT_VOICES,
    HANDLERS,
    agent_key,
    display_name,
    get_target_agent,
)
from kognys.streaming.sink import OutputSink
from kognys.streaming.state import AggregationState


class EventAggregator:
    """Owns one AggregationState and feeds one OutputSink.

    Not safe for concurrent use: one request, one reader, events in arrival order.
    """

    def __init__(
        self,
        sink: OutputSink,
        *,
        state: AggregationState | None = None,
        message_debounce: float | None = None,
        criticism_debounce: float | None = None,
        courtesy_threshold: int | None = None,
        is_complete: Callable[[str], bool] = is_complete_sentence,
    ):
        stream_settings = settings.stream
        self.sink = sink
        self.state = state or AggregationState()
        self.message_debounce = (
            stream_settings.message_debounce if message_debounce is None else message_debounce
        )
        self.criticism_debounce = (
            stream_settings.criticism_debounce if criticism_debounce is None else criticism_debounce
        )
        self.courtesy_threshold = (
            stream_settings.courtesy_threshold if courtesy_threshold is None else courtesy_threshold
        )
        self.buffer = SentenceBuffer(self._deliver, is_complete=is_complete)

    @property
    def done(self) -> bool:
        return self.state.completed or self.sink.closed

    # -- emission helpers used by handlers ---------------------------------

    def _deliver(self, message: AgentMessage) -> None:
        if self.sink.closed:
            return
        self.state.messages.append(message)
        self.sink.agent_message(message)

    def emit(
        self,
        agent_name: str,
        message: str,
        *,
        role: str | None = None,
        message_type: str | None = "speaking",
    ) -> AgentMessage:
        agent_message = AgentMessage(
            agent_name=agent_name,
            message=message,
            role=role,
            message_type=message_type,
            target_agent=get_target_agent(agent_name, message),
        )
        self._deliver(agent_message)
        return agent_message

    def say(
        self,
        voice: str,
        message: str,
        message_type: str,
        *,
        agent: str | None = None,
    ) -> AgentMessage:
        """Emit in a pipeline agent's voice; ``agent`` is the event's own label, if any."""
        role = AGENT_VOICES[agent_key(agent) or voice][1]
        return self.emit(display_name(agent, voice), message, role=role, message_type=message_type)

    def status(self, text: str, event_kind: str) -> None:
        self.sink.status(text, event_kind)

    # -- lifecycle ----------------------------------------------------------

    def handle(self, event: StreamEvent) -> None:
        """Classify one event. Raises BackendError for fatal backend faults."""
        if self.done:
            logger.debug(f"Ignoring {event.event_type} after completion")
            return
        handler = HANDLERS.get(event.event_type)
        if handler is None:
            logger.debug(f"Ignoring unknown event type: {event.event_type}")
            return
        handler(event, self)

    def complete(self, text: str | None = None) -> bool:
        """Flush critique text and deliver the terminal success once."""
        if self.state.completed:
            return False
        self.buffer.flush()
        self.state.completed = True
        self.state.advance("completed")
        full_text = self.state.response_text() if text is None else text
        logger.info(
            f"Research stream complete: {len(full_text)} chars, "
            f"{self.state.document_count} documents, {self.state.latency_ms()}ms"
        )
        return self.sink.complete(full_text, self.state.transaction_hash)

    def finish(self) -> bool:
        """Transport reached end-of-stream."""
        return self.complete()

    def close(self, graceful: bool = True) -> None:
        """Release buffered critique text: flushed if graceful, dropped otherwise."""
        if graceful:
            self.buffer.flush()
        else:
            self.buffer.discard()
