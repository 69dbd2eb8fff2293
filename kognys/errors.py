"""Error taxonomy for the research stream client.

Recoverable conditions (malformed records, ignorable backend faults,
validation failures) never surface as exceptions; they are handled inside
the aggregator. Everything here is either retried or terminal.
"""


class KognysError(Exception):
    """Base class for all client errors."""


class RetryableStreamError(KognysError):
    """Connection-level failure: fetch failure, non-2xx response, dropped stream."""


class BackendError(KognysError):
    """Fatal ``error`` event reported by the backend pipeline."""


class StreamAborted(KognysError):
    """The caller aborted the request. Not a failure, never retried."""


class ResearchStreamError(KognysError):
    """Terminal failure of one research request."""

    def __init__(self, message: str, *, retries: int = 0, cause: BaseException | None = None):
        super().__init__(message)
        self.retries = retries
        self.cause = cause


class PaperApiError(KognysError):
    """Non-streaming paper API call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
