"""Sentence buffering for fragmented critique text.

The challenger agent's output reaches us as small token fragments spread over
``agent_message``, ``criticisms_received`` and ``criticism_token`` events.
Emitting each fragment would flood the timeline with half sentences, so
fragments are joined here and released as one readable message.

Lifecycle of one buffer:

    append("The draft")          pending = "The draft"            (arm debounce)
    append("lacks evidence.")    pending = "" -> fragments[0]     (re-arm)
    append("Sources are old.")   pending = "" -> fragments[1]     (re-arm)
    ... quiet for `delay` ...    flush -> one AgentMessage, numbered 1. / 2.

A sentence is complete when it ends in terminal punctuation or matches one of
the phrase patterns the critique agent uses for finished thoughts. Completion
only commits the sentence; emission happens on flush (debounce fire, explicit
flush, stream end), which is what coalesces bursts into one message.
"""

import asyncio
import re
from typing import Callable

from loguru import logger

from kognys.streaming.events import AgentMessage

CHALLENGER_NAME = "Challenger"
CHALLENGER_ROLE = "The Peer Reviewer"
MULTI_FRAGMENT_PREAMBLE = "I've identified several areas for improvement:"

_TERMINAL_PUNCTUATION = re.compile(r"[.!?][\"')\]]*$")

# Critique phrasing that reads as a finished thought even without punctuation
COMPLETION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"lacks specific\w*$",
        r"is too vague$",
        r"without explaining$",
        r"fails to address$",
        r"does not provide$",
        r"needs more detail$",
        r"should include$",
    )
]


def is_complete_sentence(text: str) -> bool:
    """Default completeness test: terminal punctuation or a known phrase ending."""
    text = text.rstrip()
    if not text:
        return False
    if _TERMINAL_PUNCTUATION.search(text):
        return True
    return any(pattern.search(text) for pattern in COMPLETION_PATTERNS)


def format_fragments(fragments: list[str]) -> str:
    """One fragment verbatim; several as a numbered list under a preamble."""
    if len(fragments) == 1:
        return fragments[0]
    numbered = "\n".join(f"{i}. {fragment}" for i, fragment in enumerate(fragments, 1))
    return f"{MULTI_FRAGMENT_PREAMBLE}\n\n{numbered}"


class ScheduledFlush:
    """Single-slot timer: arming replaces (cancels) any previous deadline.

    All mutation happens on the event loop thread, so cancel/re-arm is atomic
    with respect to buffer appends. The callback runs at most once per arm.
    """

    def __init__(self, callback: Callable[[], None]):
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float) -> None:
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous use): content is released by the final flush
            logger.debug("No running event loop; debounce flush not scheduled")
            return
        self._handle = loop.call_later(delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class SentenceBuffer:
    """Accumulates fragments into sentences and emits them as AgentMessages."""

    def __init__(
        self,
        emit: Callable[[AgentMessage], None],
        *,
        is_complete: Callable[[str], bool] = is_complete_sentence,
        agent_name: str = CHALLENGER_NAME,
        role: str = CHALLENGER_ROLE,
        target_agent: str | None = "orchestrator",
    ):
        self._emit = emit
        self._is_complete = is_complete
        self.agent_name = agent_name
        self.role = role
        self.target_agent = target_agent

        self.accumulated_fragments: list[str] = []
        self.pending_buffer = ""
        self._deadline = ScheduledFlush(self.flush)

    @property
    def has_content(self) -> bool:
        return bool(self.accumulated_fragments or self.pending_buffer.strip())

    @property
    def flush_scheduled(self) -> bool:
        return self._deadline.pending

    def append(self, fragment: str, delay: float) -> None:
        """Add a fragment and re-arm the debounce flush."""
        if not fragment:
            return

        if self.pending_buffer and not self.pending_buffer[-1].isspace():
            self.pending_buffer += " "
        self.pending_buffer += fragment

        if self._is_complete(self.pending_buffer):
            self.accumulated_fragments.append(self.pending_buffer.strip())
            self.pending_buffer = ""

        self._deadline.arm(delay)

    def flush(self) -> AgentMessage | None:
        """Emit everything buffered as one message, complete or not."""
        # Cancel first so a natural flush can never be followed by a stale timer
        self._deadline.cancel()

        tail = self.pending_buffer.strip()
        if tail:
            self.accumulated_fragments.append(tail)
        self.pending_buffer = ""

        if not self.accumulated_fragments:
            return None

        fragments = self.accumulated_fragments
        self.accumulated_fragments = []

        message = AgentMessage(
            agent_name=self.agent_name,
            message=format_fragments(fragments),
            role=self.role,
            message_type="analyzing",
            target_agent=self.target_agent,
        )
        logger.debug(f"Flushing {len(fragments)} critique fragment(s)")
        self._emit(message)
        return message

    def discard(self) -> None:
        """Drop buffered text without emitting (abrupt cancellation)."""
        self._deadline.cancel()
        self.accumulated_fragments = []
        self.pending_buffer = ""
