"""Kognys - streaming client for the multi-agent research paper backend."""

__version__ = "0.1.0"

from kognys.streaming import (
    AgentMessage,
    ResearchResult,
    ResearchStreamTransport,
    StreamCallbacks,
)

__all__ = ["ResearchStreamTransport", "ResearchResult", "StreamCallbacks", "AgentMessage"]
