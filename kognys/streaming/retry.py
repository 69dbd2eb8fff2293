"""Bounded exponential-backoff retry for stream attempts."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from kognys.errors import ResearchStreamError, RetryableStreamError, StreamAborted
from kognys.settings import settings

T = TypeVar("T")


class RetryController:
    """Retries one whole attempt (connect + read to end) on connection faults.

    Delays double from ``base_delay``: 1s, 2s, 4s with the defaults. Anything
    that is not a RetryableStreamError fails immediately; cancellation is
    never retried.
    """

    def __init__(
        self,
        max_retries: int | None = None,
        base_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_retries = settings.stream.max_retries if max_retries is None else max_retries
        self.base_delay = settings.stream.retry_delay if base_delay is None else base_delay
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    async def run(
        self,
        attempt: Callable[[], Awaitable[T]],
        on_status: Callable[[str, str], None] | None = None,
        is_aborted: Callable[[], bool] | None = None,
    ) -> T:
        """Run ``attempt`` until it succeeds, fails terminally or is aborted.

        Raises:
            StreamAborted / asyncio.CancelledError: propagated untouched
            ResearchStreamError: terminal failure wrapping the original message
        """
        retries = 0
        while True:
            try:
                return await attempt()
            except (StreamAborted, asyncio.CancelledError):
                raise
            except RetryableStreamError as e:
                if is_aborted and is_aborted():
                    raise StreamAborted("Request aborted") from e
                if retries >= self.max_retries:
                    logger.error(f"Stream failed after {retries} retries: {e}")
                    raise ResearchStreamError(
                        f"Failed to generate research paper: {e} "
                        f"(retried {retries} times)",
                        retries=retries,
                        cause=e,
                    ) from e

                retries += 1
                delay = self.delay_for(retries)
                logger.info(f"Retrying stream in {delay:g}s (attempt {retries}/{self.max_retries}): {e}")
                if on_status:
                    on_status(
                        f"Connection failed. Retrying in {delay:g} seconds... "
                        f"(Attempt {retries}/{self.max_retries})",
                        "retry",
                    )
                await self._sleep(delay)
            except ResearchStreamError:
                raise
            except Exception as e:
                logger.error(f"Research stream failed: {e}")
                raise ResearchStreamError(
                    f"Failed to generate research paper: {e}",
                    retries=retries,
                    cause=e,
                ) from e
