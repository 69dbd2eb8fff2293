"""Research stream interpretation.

Turns the backend's SSE stream into an ordered timeline for consumers.

Components:
- framer.py: LineFramer, newline framing across arbitrary read boundaries
- events.py: typed StreamEvent models (Pydantic) and AgentMessage
- parser.py: ``data:`` record decoding, malformed records dropped
- buffer.py: SentenceBuffer for fragmented critique text
- state.py: AggregationState, one per request attempt
- handlers.py: per-event-kind handlers
- aggregator.py: EventAggregator state machine
- retry.py: RetryController, bounded exponential backoff
- sink.py: StreamCallbacks and OutputSink delivery rules
- transport.py: httpx POST/GET stream transport
"""

from kognys.streaming.aggregator import EventAggregator
from kognys.streaming.buffer import SentenceBuffer, is_complete_sentence
from kognys.streaming.events import AgentMessage, StreamEvent, UnknownEvent, build_event
from kognys.streaming.framer import LineFramer, aiter_lines
from kognys.streaming.parser import is_done_sentinel, parse_sse_line
from kognys.streaming.retry import RetryController
from kognys.streaming.sink import OutputSink, StreamCallbacks
from kognys.streaming.state import AggregationState
from kognys.streaming.transport import (
    ChatTurn,
    ResearchResult,
    ResearchStreamTransport,
    last_user_message,
)

__all__ = [
    # Transport
    "ResearchStreamTransport",
    "ResearchResult",
    "ChatTurn",
    "last_user_message",
    # Pipeline stages
    "LineFramer",
    "aiter_lines",
    "parse_sse_line",
    "is_done_sentinel",
    "SentenceBuffer",
    "is_complete_sentence",
    "EventAggregator",
    "AggregationState",
    "RetryController",
    # Events
    "StreamEvent",
    "UnknownEvent",
    "AgentMessage",
    "build_event",
    # Sink
    "StreamCallbacks",
    "OutputSink",
]
