"""Typed events decoded from the research SSE stream.

Each record is ``data: {"event_type": ..., "timestamp": ..., "data": {...}}``.
The ``event_type`` tag selects one of the models below; the payload shape is
fixed per kind. Kinds we do not know yet decode to ``UnknownEvent`` so new
upstream events never break the client.

All events are Pydantic models, frozen once constructed.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class BaseStreamEvent(_Frozen):
    """Envelope fields shared by every event."""

    event_type: str
    timestamp: float = 0
    agent: str | None = None


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class ResearchStartedData(_Frozen):
    question: str = ""
    task_id: str | None = None
    status: str | None = None


class QuestionValidatedData(_Frozen):
    validated_question: str = ""
    status: str | None = None


class RetrievedDocument(_Frozen):
    """A retrieved document; only the title is displayed."""

    model_config = ConfigDict(frozen=True, extra="allow")

    title: str = "Untitled"
    url: str | None = None
    source: str | None = None


class DocumentsRetrievedData(_Frozen):
    document_count: int = 0  # delta for this batch, not a running total
    documents: list[RetrievedDocument | str] | None = None
    status: str | None = None


class TokenData(_Frozen):
    token: str = ""


class DraftGeneratedData(_Frozen):
    draft_length: int = 0
    sections: list[str] | None = None
    summary: str | None = None
    status: str | None = None


class OrchestratorDecisionData(_Frozen):
    decision: str = ""  # RESEARCH_AGAIN | FINALIZE | CONTINUE
    status: str | None = None


class StorageReceipt(_Frozen):
    model_config = ConfigDict(frozen=True, extra="allow")

    success: bool = False
    id: str | None = None
    ids: list[str] | None = None
    message: str | None = None


class VerifiableData(_Frozen):
    task_id: str | None = None
    finish_task_txn_hash: str | None = None
    membase_kb_storage_receipt: StorageReceipt | None = None
    da_storage_receipt: StorageReceipt | None = None


class ResearchCompletedData(_Frozen):
    final_answer: str | None = None
    paper_id: str | None = None
    verifiable_data: VerifiableData | None = None
    status: str | None = None


class ValidationErrorData(_Frozen):
    error: str = ""
    suggestion: str | None = None
    status: str | None = None


class AgentMessageData(_Frozen):
    agent_name: str = ""
    agent_role: str | None = None
    message: str = ""
    message_type: str | None = None


class DebateParticipant(_Frozen):
    name: str
    role: str = ""
    position: str | None = None


class AgentDebateData(_Frozen):
    agents: list[DebateParticipant] = Field(default_factory=list)
    topic: str | None = None
    status: str | None = None


class Criticism(_Frozen):
    issue: str
    suggestion: str | None = None
    severity: str | None = None


class CriticismsReceivedData(_Frozen):
    criticism_count: int | None = None
    criticisms: str | list[Criticism | str] | None = None
    status: str | None = None


class QueriesRefinedData(_Frozen):
    openalex_query: str | None = None
    semantic_scholar_query: str | None = None
    arxiv_query: str | None = None
    core_query: str | None = None
    status: str | None = None


class ErrorData(_Frozen):
    error: str | None = None
    details: Any = None


class HeartbeatData(_Frozen):
    status: str | None = None
    timestamp: float | None = None
    task_id: str | None = None


class TransactionConfirmedData(_Frozen):
    transaction_hash: str = ""
    task_id: str | None = None
    operation: str | None = None
    status: str | None = None


class TransactionFailedData(_Frozen):
    error: str = ""
    task_id: str | None = None
    operation: str | None = None
    status: str | None = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class ResearchStartedEvent(BaseStreamEvent):
    event_type: Literal["research_started"] = "research_started"
    data: ResearchStartedData = ResearchStartedData()


class QuestionValidatedEvent(BaseStreamEvent):
    event_type: Literal["question_validated"] = "question_validated"
    data: QuestionValidatedData = QuestionValidatedData()


class DocumentsRetrievedEvent(BaseStreamEvent):
    event_type: Literal["documents_retrieved"] = "documents_retrieved"
    data: DocumentsRetrievedData = DocumentsRetrievedData()


class DraftAnswerTokenEvent(BaseStreamEvent):
    event_type: Literal["draft_answer_token"] = "draft_answer_token"
    data: TokenData = TokenData()


class FinalAnswerTokenEvent(BaseStreamEvent):
    event_type: Literal["final_answer_token"] = "final_answer_token"
    data: TokenData = TokenData()


class DraftGeneratedEvent(BaseStreamEvent):
    event_type: Literal["draft_generated"] = "draft_generated"
    data: DraftGeneratedData = DraftGeneratedData()


class OrchestratorDecisionEvent(BaseStreamEvent):
    event_type: Literal["orchestrator_decision"] = "orchestrator_decision"
    data: OrchestratorDecisionData = OrchestratorDecisionData()


class ResearchCompletedEvent(BaseStreamEvent):
    event_type: Literal["research_completed"] = "research_completed"
    data: ResearchCompletedData = ResearchCompletedData()


class ValidationErrorEvent(BaseStreamEvent):
    event_type: Literal["validation_error"] = "validation_error"
    data: ValidationErrorData = ValidationErrorData()


class AgentMessageEvent(BaseStreamEvent):
    event_type: Literal["agent_message"] = "agent_message"
    data: AgentMessageData = AgentMessageData()


class AgentDebateEvent(BaseStreamEvent):
    event_type: Literal["agent_debate"] = "agent_debate"
    data: AgentDebateData = AgentDebateData()


class CriticismsReceivedEvent(BaseStreamEvent):
    event_type: Literal["criticisms_received"] = "criticisms_received"
    data: CriticismsReceivedData = CriticismsReceivedData()


class CriticismTokenEvent(BaseStreamEvent):
    event_type: Literal["criticism_token"] = "criticism_token"
    data: TokenData = TokenData()


class QueriesRefinedEvent(BaseStreamEvent):
    event_type: Literal["queries_refined"] = "queries_refined"
    data: QueriesRefinedData = QueriesRefinedData()


class ErrorEvent(BaseStreamEvent):
    event_type: Literal["error"] = "error"
    data: ErrorData = ErrorData()


class HeartbeatEvent(BaseStreamEvent):
    event_type: Literal[
        "heartbeat", "transaction_heartbeat", "transaction_stream_connected"
    ] = "heartbeat"
    data: HeartbeatData = HeartbeatData()


class TransactionConfirmedEvent(BaseStreamEvent):
    event_type: Literal["transaction_confirmed"] = "transaction_confirmed"
    data: TransactionConfirmedData = TransactionConfirmedData()


class TransactionFailedEvent(BaseStreamEvent):
    event_type: Literal["transaction_failed"] = "transaction_failed"
    data: TransactionFailedData = TransactionFailedData()


class UnknownEvent(BaseStreamEvent):
    """Any event kind this client does not understand yet."""

    data: dict[str, Any] = Field(default_factory=dict)


StreamEvent = (
    ResearchStartedEvent
    | QuestionValidatedEvent
    | DocumentsRetrievedEvent
    | DraftAnswerTokenEvent
    | FinalAnswerTokenEvent
    | DraftGeneratedEvent
    | OrchestratorDecisionEvent
    | ResearchCompletedEvent
    | ValidationErrorEvent
    | AgentMessageEvent
    | AgentDebateEvent
    | CriticismsReceivedEvent
    | CriticismTokenEvent
    | QueriesRefinedEvent
    | ErrorEvent
    | HeartbeatEvent
    | TransactionConfirmedEvent
    | TransactionFailedEvent
    | UnknownEvent
)

EVENT_MODELS: dict[str, type[BaseStreamEvent]] = {
    "research_started": ResearchStartedEvent,
    "question_validated": QuestionValidatedEvent,
    "documents_retrieved": DocumentsRetrievedEvent,
    "draft_answer_token": DraftAnswerTokenEvent,
    "final_answer_token": FinalAnswerTokenEvent,
    "draft_generated": DraftGeneratedEvent,
    "orchestrator_decision": OrchestratorDecisionEvent,
    "research_completed": ResearchCompletedEvent,
    "validation_error": ValidationErrorEvent,
    "agent_message": AgentMessageEvent,
    "agent_debate": AgentDebateEvent,
    "criticisms_received": CriticismsReceivedEvent,
    "criticism_token": CriticismTokenEvent,
    "queries_refined": QueriesRefinedEvent,
    "error": ErrorEvent,
    "heartbeat": HeartbeatEvent,
    "transaction_heartbeat": HeartbeatEvent,
    "transaction_stream_connected": HeartbeatEvent,
    "transaction_confirmed": TransactionConfirmedEvent,
    "transaction_failed": TransactionFailedEvent,
}


def build_event(payload: dict[str, Any]) -> StreamEvent:
    """Validate a decoded JSON record into its typed event.

    Raises:
        pydantic.ValidationError: payload does not match its kind's shape
        ValueError: payload has no ``event_type``
    """
    event_type = payload.get("event_type")
    if not isinstance(event_type, str) or not event_type:
        raise ValueError("SSE record missing 'event_type'")
    model = EVENT_MODELS.get(event_type, UnknownEvent)
    return model.model_validate(payload)


MessageType = Literal["thinking", "speaking", "analyzing", "concluding"]


class AgentMessage(_Frozen):
    """One timeline entry emitted by the aggregator."""

    agent_name: str
    message: str
    role: str | None = None
    message_type: MessageType | None = None
    target_agent: str | None = None
