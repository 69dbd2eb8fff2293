"""Per-event handlers for the research stream.

Each handler takes the typed event and the aggregator that owns the request
state. Handlers update running totals, pick the agent voice for the event and
emit status lines / agent messages through the aggregator. The table at the
bottom (HANDLERS) maps ``event_type`` to handler; anything not listed is an
unknown kind and is ignored.

AGENT VOICES
------------

| Agent key     | Display name          | Role               |
|---------------|-----------------------|--------------------|
| orchestrator  | Research Orchestrator | Lead Coordinator   |
| validator     | Input Validator       | Validation Expert  |
| retriever     | Document Retriever    | Research Specialist|
| synthesizer   | Research Synthesizer  | Content Specialist |
| challenger    | Challenger            | The Peer Reviewer  |
| query_refiner | Query Refiner         | Search Strategist  |

Challenger output is never emitted directly: it goes through the
SentenceBuffer and appears when the buffer flushes.
"""

from typing import TYPE_CHECKING

from loguru import logger

from kognys.errors import BackendError
from kognys.streaming.events import (
    AgentDebateEvent,
    AgentMessageEvent,
    Criticism,
    CriticismsReceivedEvent,
    CriticismTokenEvent,
    DocumentsRetrievedEvent,
    DraftAnswerTokenEvent,
    DraftGeneratedEvent,
    ErrorEvent,
    FinalAnswerTokenEvent,
    HeartbeatEvent,
    OrchestratorDecisionEvent,
    QueriesRefinedEvent,
    QuestionValidatedEvent,
    ResearchCompletedEvent,
    ResearchStartedEvent,
    RetrievedDocument,
    TransactionConfirmedEvent,
    TransactionFailedEvent,
    ValidationErrorEvent,
)

if TYPE_CHECKING:
    from kognys.streaming.aggregator import EventAggregator


AGENT_VOICES: dict[str, tuple[str, str]] = {
    "orchestrator": ("Research Orchestrator", "Lead Coordinator"),
    "validator": ("Input Validator", "Validation Expert"),
    "retriever": ("Document Retriever", "Research Specialist"),
    "synthesizer": ("Research Synthesizer", "Content Specialist"),
    "challenger": ("Challenger", "The Peer Reviewer"),
    "query_refiner": ("Query Refiner", "Search Strategist"),
}

# Backend agent identifiers and display names -> agent key
AGENT_ALIASES: dict[str, str] = {
    "orchestrator": "orchestrator",
    "research orchestrator": "orchestrator",
    "input_validator": "validator",
    "validator": "validator",
    "input validator": "validator",
    "retriever": "retriever",
    "document retriever": "retriever",
    "synthesizer": "synthesizer",
    "research synthesizer": "synthesizer",
    "challenger": "challenger",
    "critic": "challenger",
    "query_refiner": "query_refiner",
    "query refiner": "query_refiner",
}

# Keyword mentions used to guess who a message is addressed to
AGENT_MENTIONS: dict[str, tuple[str, ...]] = {
    "orchestrator": ("orchestrator", "coordinator", "lead"),
    "validator": ("validator", "input validator"),
    "retriever": ("retriever", "document retriever"),
    "synthesizer": ("synthesizer", "synthesis"),
    "challenger": ("challenger", "reviewer"),
}

# Hand-off chain when a message names nobody
DEFAULT_TARGETS: dict[str, str] = {
    "orchestrator": "validator",
    "validator": "retriever",
    "retriever": "synthesizer",
    "synthesizer": "challenger",
    "challenger": "orchestrator",
}

# Known-benign backend faults; the pipeline keeps running after these
IGNORABLE_ERRORS = (
    "name 'json' is not defined",
    "Error in execute_streaming",
    "NameError",
)

QUERY_SOURCES = (
    ("OpenAlex", "openalex_query"),
    ("Semantic Scholar", "semantic_scholar_query"),
    ("arXiv", "arxiv_query"),
    ("CORE", "core_query"),
)

MESSAGE_TYPES = ("thinking", "speaking", "analyzing", "concluding")


def agent_key(name: str | None) -> str | None:
    """Normalize a backend agent id or display name to an agent key."""
    if not name:
        return None
    return AGENT_ALIASES.get(name.strip().lower())


def is_challenger(name: str | None) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return agent_key(name) == "challenger" or "challenger" in lowered or "critic" in lowered


def display_name(agent: str | None, default_key: str) -> str:
    """Display name for the event's agent, falling back to the default voice."""
    key = agent_key(agent)
    if key:
        return AGENT_VOICES[key][0]
    return agent or AGENT_VOICES[default_key][0]


def get_target_agent(from_agent: str, message: str) -> str | None:
    """Guess which agent a message is directed to.

    A mention of another agent wins; otherwise the default hand-off chain.
    """
    source = agent_key(from_agent) or from_agent.lower()
    content = message.lower()
    for target, keywords in AGENT_MENTIONS.items():
        if target == source:
            continue
        if any(keyword in content for keyword in keywords):
            return target
    return DEFAULT_TARGETS.get(source)


def format_criticism(item: Criticism | str) -> str:
    """Render one criticism as a single complete sentence."""
    if isinstance(item, str):
        text = item.strip()
    else:
        text = item.issue.strip()
        if item.severity:
            text = f"[{item.severity.upper()}] {text}"
        if item.suggestion:
            text = f"{_terminate(text)} Suggestion: {item.suggestion.strip()}"
    return _terminate(text)


def _terminate(text: str) -> str:
    if text and text[-1] not in ".!?":
        return text + "."
    return text


def format_documents(count: int, documents: list[RetrievedDocument | str] | None) -> str:
    if not documents:
        return f"I found {count} relevant documents for analysis"
    titles = [doc if isinstance(doc, str) else doc.title for doc in documents]
    listing = "\n".join(f"{i}. {title}" for i, title in enumerate(titles, 1))
    return f"I found {count} relevant documents for analysis:\n\n{listing}"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_research_started(event: ResearchStartedEvent, agg: "EventAggregator") -> None:
    agg.state.advance("starting")
    agg.status("Research started", event.event_type)
    agg.say(
        "orchestrator",
        f'Starting research on: "{event.data.question}"',
        "analyzing",
    )


def handle_question_validated(event: QuestionValidatedEvent, agg: "EventAggregator") -> None:
    agg.state.advance("validating")
    question = event.data.validated_question
    agg.status(f'Question refined: "{question}"', event.event_type)
    agg.say(
        "validator",
        f'I\'ve validated and refined your question to: "{question}"',
        "analyzing",
        agent=event.agent,
    )


def handle_documents_retrieved(event: DocumentsRetrievedEvent, agg: "EventAggregator") -> None:
    agg.state.advance("retrieving")
    delta = event.data.document_count
    total = agg.state.add_documents(delta)
    agg.status(f"Retrieved {delta} documents ({total} total)", event.event_type)
    agg.say(
        "retriever",
        format_documents(delta, event.data.documents),
        "speaking",
        agent=event.agent,
    )


def _handle_answer_token(
    event: DraftAnswerTokenEvent | FinalAnswerTokenEvent,
    agg: "EventAggregator",
    voice: str,
    courtesy: str,
) -> None:
    token = event.data.token
    if not token:
        return
    state = agg.state
    state.append_token(token)
    agg.sink.chunk(token)

    if not state.courtesy_sent and len(state.full_response_text) >= agg.courtesy_threshold:
        state.courtesy_sent = True
        agg.say(voice, courtesy, "thinking", agent=event.agent)


def handle_draft_answer_token(event: DraftAnswerTokenEvent, agg: "EventAggregator") -> None:
    agg.state.advance("drafting")
    _handle_answer_token(
        event,
        agg,
        "synthesizer",
        "I'm synthesizing the research findings into a comprehensive answer...",
    )


def handle_final_answer_token(event: FinalAnswerTokenEvent, agg: "EventAggregator") -> None:
    agg.state.advance("finalizing")
    _handle_answer_token(
        event,
        agg,
        "orchestrator",
        "I'm composing the final research paper from the reviewed draft...",
    )


def handle_draft_generated(event: DraftGeneratedEvent, agg: "EventAggregator") -> None:
    data = event.data
    agg.status(f"Draft generated ({data.draft_length} characters)", event.event_type)

    message = f"I've completed a draft with {data.draft_length} characters of analysis"
    if data.sections:
        sections = "\n".join(f"- {section}" for section in data.sections)
        message += f"\n\nSections:\n{sections}"
    if data.summary:
        message += f"\n\nSummary: {data.summary}"
    agg.say("synthesizer", message, "concluding", agent=event.agent)


def handle_orchestrator_decision(event: OrchestratorDecisionEvent, agg: "EventAggregator") -> None:
    decision = event.data.decision
    if decision == "RESEARCH_AGAIN":
        iteration = agg.state.next_iteration()
        agg.status(
            f"Conducting additional research (iteration {iteration + 1})...",
            event.event_type,
        )
        agg.say(
            "orchestrator",
            "I think we need more information. Let me conduct another round of "
            "research to ensure comprehensive coverage.",
            "analyzing",
        )
    elif decision == "FINALIZE":
        agg.state.advance("finalizing")
        agg.status("Finalizing research paper...", event.event_type)
        agg.say(
            "orchestrator",
            "The research is complete. Finalizing the comprehensive analysis now.",
            "concluding",
        )
    else:
        logger.debug(f"Orchestrator decision {decision!r} needs no message")


def handle_research_completed(event: ResearchCompletedEvent, agg: "EventAggregator") -> None:
    data = event.data
    tx_hash = data.verifiable_data.finish_task_txn_hash if data.verifiable_data else None
    agg.state.record_completion(data.paper_id, tx_hash, data.final_answer)
    logger.info(f"Research completed: paper_id={agg.state.paper_id} tx={agg.state.transaction_hash}")
    agg.status("Research complete!", event.event_type)


def handle_validation_error(event: ValidationErrorEvent, agg: "EventAggregator") -> None:
    """A rejected question is a normal outcome, delivered as the answer."""
    data = event.data
    text = f"I couldn't process your question because: {data.error}"
    if data.suggestion:
        text += f"\n\n💡 **Suggestion:** {data.suggestion}"

    logger.info(f"Question rejected by validator: {data.error}")
    agg.state.full_response_text = text
    agg.sink.chunk(text)
    agg.status("Question validation failed", event.event_type)
    agg.complete(text)


def handle_agent_message(event: AgentMessageEvent, agg: "EventAggregator") -> None:
    data = event.data
    if is_challenger(data.agent_name):
        agg.buffer.append(data.message, agg.message_debounce)
        return
    if not data.message:
        return
    message_type = data.message_type if data.message_type in MESSAGE_TYPES else "speaking"
    agg.emit(
        data.agent_name or display_name(event.agent, "orchestrator"),
        data.message,
        role=data.agent_role,
        message_type=message_type,
    )


def handle_agent_debate(event: AgentDebateEvent, agg: "EventAggregator") -> None:
    topic = event.data.topic
    agg.status(f"Agents debating: {topic or 'research approach'}", event.event_type)
    agg.sink.agent_debate(event.data.agents, topic)


def handle_criticisms_received(event: CriticismsReceivedEvent, agg: "EventAggregator") -> None:
    criticisms = event.data.criticisms
    if isinstance(criticisms, str):
        agg.buffer.append(criticisms, agg.message_debounce)
    elif criticisms:
        for item in criticisms:
            agg.buffer.append(format_criticism(item), agg.criticism_debounce)
    elif event.data.criticism_count:
        agg.status(f"Received {event.data.criticism_count} criticisms", event.event_type)
    else:
        agg.status("Reviewing the draft for improvements...", event.event_type)


def handle_criticism_token(event: CriticismTokenEvent, agg: "EventAggregator") -> None:
    agg.buffer.append(event.data.token, agg.message_debounce)


def handle_queries_refined(event: QueriesRefinedEvent, agg: "EventAggregator") -> None:
    lines = [
        f'- {source}: "{query}"'
        for source, field_name in QUERY_SOURCES
        if (query := getattr(event.data, field_name))
    ]
    if not lines:
        return
    agg.status("Search queries refined", event.event_type)
    agg.say(
        "query_refiner",
        "I've refined the search queries for the next retrieval pass:\n" + "\n".join(lines),
        "speaking",
    )


def handle_error(event: ErrorEvent, agg: "EventAggregator") -> None:
    message = event.data.error or "Unknown error occurred"
    if any(signature in message for signature in IGNORABLE_ERRORS):
        logger.warning(f"Ignoring non-critical backend error: {message}")
        return
    logger.error(f"Backend error: {message}")
    raise BackendError(message)


def handle_heartbeat(event: HeartbeatEvent, agg: "EventAggregator") -> None:
    logger.debug(f"{event.event_type}: {event.data.status}")


def handle_transaction_confirmed(event: TransactionConfirmedEvent, agg: "EventAggregator") -> None:
    data = event.data
    logger.info(f"Transaction confirmed ({data.operation}): {data.transaction_hash}")
    agg.status(f"Transaction confirmed: {data.transaction_hash}", event.event_type)


def handle_transaction_failed(event: TransactionFailedEvent, agg: "EventAggregator") -> None:
    data = event.data
    logger.warning(f"Transaction failed ({data.operation}): {data.error}")
    agg.status(f"Transaction failed: {data.error}", event.event_type)


HANDLERS = {
    "research_started": handle_research_started,
    "question_validated": handle_question_validated,
    "documents_retrieved": handle_documents_retrieved,
    "draft_answer_token": handle_draft_answer_token,
    "final_answer_token": handle_final_answer_token,
    "draft_generated": handle_draft_generated,
    "orchestrator_decision": handle_orchestrator_decision,
    "research_completed": handle_research_completed,
    "validation_error": handle_validation_error,
    "agent_message": handle_agent_message,
    "agent_debate": handle_agent_debate,
    "criticisms_received": handle_criticisms_received,
    "criticism_token": handle_criticism_token,
    "queries_refined": handle_queries_refined,
    "error": handle_error,
    "heartbeat": handle_heartbeat,
    "transaction_heartbeat": handle_heartbeat,
    "transaction_stream_connected": handle_heartbeat,
    "transaction_confirmed": handle_transaction_confirmed,
    "transaction_failed": handle_transaction_failed,
}
