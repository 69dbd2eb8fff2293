"""Aggregation state for one research request."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from kognys.streaming.events import AgentMessage

PHASES = (
    "initializing",
    "starting",
    "validating",
    "retrieving",
    "drafting",
    "finalizing",
    "completed",
    "error",
)


@dataclass
class AggregationState:
    """Tracks everything the aggregator learns while a stream is read.

    One instance per request attempt, owned by exactly one EventAggregator.
    Counters only grow; ``paper_id`` and ``transaction_hash`` are write-once.
    """

    request_id: str = field(default_factory=lambda: f"research-{uuid.uuid4().hex[:8]}")
    start_time: float = field(default_factory=lambda: datetime.now(timezone.utc).timestamp())

    phase: str = "initializing"

    # Running totals
    document_count: int = 0
    iteration_count: int = 0

    # Set once from research_completed
    paper_id: str | None = None
    transaction_hash: str | None = None
    final_answer: str | None = None

    # Token stream accumulation
    full_response_text: str = ""
    courtesy_sent: bool = False

    completed: bool = False

    # Emitted timeline in emission order
    messages: list[AgentMessage] = field(default_factory=list)

    def latency_ms(self) -> int:
        """Milliseconds since the request started."""
        return int((datetime.now(timezone.utc).timestamp() - self.start_time) * 1000)

    def advance(self, phase: str) -> None:
        if phase not in PHASES:
            raise ValueError(f"Unknown phase: {phase}")
        self.phase = phase

    def add_documents(self, delta: int) -> int:
        """Add a batch count; negative deltas are ignored. Returns the total."""
        if delta > 0:
            self.document_count += delta
        return self.document_count

    def next_iteration(self) -> int:
        self.iteration_count += 1
        return self.iteration_count

    def append_token(self, token: str) -> None:
        self.full_response_text += token

    def record_completion(
        self,
        paper_id: str | None,
        transaction_hash: str | None,
        final_answer: str | None = None,
    ) -> None:
        """Capture research_completed metadata. Later values never overwrite."""
        if self.paper_id is None and paper_id:
            self.paper_id = paper_id
        if self.transaction_hash is None and transaction_hash:
            self.transaction_hash = transaction_hash
        if self.final_answer is None and final_answer:
            self.final_answer = final_answer

    def response_text(self) -> str:
        """Streamed answer, or the completed answer if no tokens were streamed."""
        return self.full_response_text or self.final_answer or ""
