"""Newline framing for chunked stream bodies.

Network reads arrive in arbitrary sizes: one read may hold half a record,
the next three and a half. LineFramer keeps the unfinished tail between
reads and hands out only lines that were terminated by ``\\n``.
"""

import codecs
from typing import AsyncIterable, AsyncIterator

from loguru import logger


class LineFramer:
    """Split successive text/bytes chunks into complete lines."""

    def __init__(self, encoding: str = "utf-8"):
        self._remainder = ""
        # Incremental decoder keeps multibyte characters split across reads intact
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    @property
    def remainder(self) -> str:
        return self._remainder

    def feed(self, chunk: str | bytes) -> list[str]:
        """Add a chunk and return every line it completed (delimiters stripped)."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        if not chunk:
            return []

        parts = (self._remainder + chunk).split("\n")
        self._remainder = parts.pop()
        return [part[:-1] if part.endswith("\r") else part for part in parts]

    def close(self) -> list[str]:
        """End of stream. A dangling partial line is incomplete noise and is dropped."""
        tail = self._remainder + self._decoder.decode(b"", final=True)
        self._remainder = ""
        if tail.strip():
            logger.debug(f"Discarding unterminated stream tail ({len(tail)} chars)")
        return []


async def aiter_lines(
    chunks: AsyncIterable[str | bytes],
    framer: LineFramer | None = None,
) -> AsyncIterator[str]:
    """Adapt an async chunk iterator into an async iterator of complete lines."""
    framer = framer or LineFramer()
    async for chunk in chunks:
        for line in framer.feed(chunk):
            yield line
    framer.close()
