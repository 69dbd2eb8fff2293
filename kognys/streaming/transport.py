"""Streaming transport for research requests.

    send_messages()
         │
         ├── last user message → question
         │
         └── RetryController.run(attempt)          (1s, 2s, 4s on connection faults)
                 │
                 └── attempt: httpx stream (POST or GET)
                        │
                        ▼
                   LineFramer → parse_sse_line → EventAggregator → OutputSink
                                                      │
                                                      └── SentenceBuffer (critique text)

Each attempt gets a fresh EventAggregator, so nothing leaks between attempts
or between requests. The OutputSink is shared by all attempts of a request
and guarantees one terminal callback.

ABORT
-----
Pass an ``asyncio.Event`` as ``abort``. Setting it stops reading at once
(the read task is cancelled), bypasses retry and silences all callbacks.
With ``graceful_abort=True`` buffered critique text is flushed first.
Cancelling the calling task has the same effect as a non-graceful abort.
"""

import asyncio
from contextlib import aclosing, asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from loguru import logger
from pydantic import BaseModel

from kognys.api.client import get_user_id
from kognys.errors import ResearchStreamError, RetryableStreamError, StreamAborted
from kognys.settings import settings
from kognys.streaming.aggregator import EventAggregator
from kognys.streaming.framer import LineFramer
from kognys.streaming.parser import is_done_sentinel, parse_sse_line
from kognys.streaming.retry import RetryController
from kognys.streaming.sink import OutputSink, StreamCallbacks
from kognys.streaming.state import AggregationState

STREAM_PATH = "/papers/stream"


class ChatTurn(BaseModel):
    id: str | None = None
    role: str
    content: str


class ResearchResult(BaseModel):
    paper_content: str
    paper_id: str | None = None
    transaction_hash: str | None = None
    document_count: int = 0
    iteration_count: int = 0
    status: str = "success"


def last_user_message(messages: list[ChatTurn | dict[str, Any]]) -> str | None:
    for message in reversed(messages):
        turn = message if isinstance(message, ChatTurn) else ChatTurn.model_validate(message)
        if turn.role == "user" and turn.content.strip():
            return turn.content
    return None


class ResearchStreamTransport:
    """Runs research requests against the streaming endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        user_id: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        retry: RetryController | None = None,
        timeout: float | None = None,
        **aggregator_options: Any,
    ):
        self.base_url = (base_url or settings.api.base_url).rstrip("/")
        self._user_id = user_id
        self._client = client
        self.retry = retry or RetryController()
        self.timeout = settings.api.timeout if timeout is None else timeout
        self.aggregator_options = aggregator_options

    @property
    def user_id(self) -> str:
        if self._user_id is None:
            self._user_id = get_user_id()
        return self._user_id

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    def _build_request(self, client: httpx.AsyncClient, question: str, method: str) -> httpx.Request:
        url = f"{self.base_url}{STREAM_PATH}"
        if method == "post":
            return client.build_request(
                "POST",
                url,
                json={"message": question, "user_id": self.user_id},
                headers={"Accept": "text/event-stream"},
            )
        if method == "get":
            return client.build_request(
                "GET",
                url,
                params={"message": question, "user_id": self.user_id},
                headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            )
        raise ValueError(f"Unsupported stream method: {method}")

    async def iter_chunks(
        self,
        client: httpx.AsyncClient,
        question: str,
        method: str = "post",
    ) -> AsyncIterator[str]:
        """Yield decoded body chunks; connection faults become RetryableStreamError."""
        request = self._build_request(client, question, method)
        logger.debug(f"Opening research stream: {request.method} {request.url}")
        try:
            response = await client.send(request, stream=True)
        except httpx.TransportError as e:
            raise RetryableStreamError(f"Stream connection failed: {e}") from e

        try:
            if not response.is_success:
                await response.aread()
                raise RetryableStreamError(f"HTTP error! status: {response.status_code}")
            async for chunk in response.aiter_text():
                yield chunk
        except httpx.TransportError as e:
            raise RetryableStreamError(f"Stream connection failed: {e}") from e
        finally:
            await response.aclose()

    def _consume(self, lines: list[str], aggregator: EventAggregator, sink: OutputSink) -> bool:
        """Feed complete lines to the aggregator. Returns True when reading should stop."""
        for line in lines:
            if sink.abort_requested:
                raise StreamAborted("Request aborted")
            if is_done_sentinel(line):
                logger.debug("Received [DONE] sentinel")
                return True
            event = parse_sse_line(line)
            if event is not None:
                aggregator.handle(event)
            if aggregator.done:
                return True
        return False

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        question: str,
        sink: OutputSink,
        method: str,
        graceful_abort: bool,
    ) -> AggregationState:
        """One full connect-and-read pass."""
        aggregator = EventAggregator(sink, **self.aggregator_options)
        framer = LineFramer()
        try:
            async with aclosing(self.iter_chunks(client, question, method)) as chunks:
                async for chunk in chunks:
                    if self._consume(framer.feed(chunk), aggregator, sink):
                        break
            framer.close()
            aggregator.finish()
            return aggregator.state
        except (StreamAborted, asyncio.CancelledError):
            if graceful_abort:
                with sink.draining():
                    aggregator.close(graceful=True)
            sink.abort()
            aggregator.close(graceful=False)
            raise
        except Exception:
            aggregator.state.advance("error")
            aggregator.close(graceful=True)
            raise

    async def _run(
        self,
        question: str,
        sink: OutputSink,
        method: str,
        graceful_abort: bool,
    ) -> AggregationState:
        async with self._http() as client:
            return await self.retry.run(
                lambda: self._attempt(client, question, sink, method, graceful_abort),
                on_status=sink.status,
                is_aborted=lambda: sink.abort_requested,
            )

    async def send_messages(
        self,
        messages: list[ChatTurn | dict[str, Any]],
        callbacks: StreamCallbacks | None = None,
        *,
        abort: asyncio.Event | None = None,
        method: str = "post",
        graceful_abort: bool = False,
    ) -> ResearchResult:
        """Stream a research request for the last user message.

        Raises:
            StreamAborted: the abort signal was set (no terminal callback fires)
            ResearchStreamError: terminal failure, after ``on_error`` was called
        """
        sink = OutputSink(callbacks, abort=abort)

        question = last_user_message(messages)
        if question is None:
            error = ResearchStreamError("Failed to generate research paper: No user message found")
            sink.error(error)
            raise error

        try:
            state = await self._run_abortable(question, sink, method, graceful_abort, abort)
        except StreamAborted:
            logger.info("Research request aborted")
            sink.abort()
            raise
        except ResearchStreamError as e:
            sink.error(e)
            raise

        return ResearchResult(
            paper_content=state.response_text(),
            paper_id=state.paper_id,
            transaction_hash=state.transaction_hash,
            document_count=state.document_count,
            iteration_count=state.iteration_count,
        )

    async def _run_abortable(
        self,
        question: str,
        sink: OutputSink,
        method: str,
        graceful_abort: bool,
        abort: asyncio.Event | None,
    ) -> AggregationState:
        if abort is None:
            return await self._run(question, sink, method, graceful_abort)
        if abort.is_set():
            raise StreamAborted("Request aborted before start")

        run_task = asyncio.create_task(self._run(question, sink, method, graceful_abort))
        abort_task = asyncio.create_task(abort.wait())
        try:
            await asyncio.wait({run_task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            run_task.cancel()
            raise
        finally:
            abort_task.cancel()

        if run_task.done():
            return run_task.result()

        run_task.cancel()
        try:
            await run_task
        except asyncio.CancelledError:
            pass
        raise StreamAborted("Request aborted")
