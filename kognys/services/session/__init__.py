"""Chat history storage.

Key components:
- ChatStore: keyed chat sessions persisted to a JSON file
- Chat / StoredMessage: stored shapes
"""

from kognys.services.session.store import Chat, ChatStore, StoredMessage

__all__ = [
    "ChatStore",
    "Chat",
    "StoredMessage",
]
