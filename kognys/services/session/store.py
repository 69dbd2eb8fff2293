"""
Chat Session Storage
====================

Keeps the chat history a user sees in the sidebar: one Chat per conversation,
each holding its persisted messages. The stream interpreter only needs
"append a message to a session" (``add_message``); everything else serves
the CLI history views.

PERSISTENCE
-----------

All chats live in one JSON file (``<data_dir>/chats.json``). The file is
rewritten on every mutation, newest chats first, capped at MAX_CHATS. A
missing or corrupt file starts an empty store; corruption is logged, never
raised.

MESSAGE RULES
-------------

| Rule                 | Behavior                                              |
|----------------------|-------------------------------------------------------|
| temporary messages   | never stored (status lines, transient agent chatter)  |
| duplicates           | same role + content within 1s of the last update skip |
| auto title           | "New Chat" takes the first user message's first 8 words, max 50 chars |
"""

import json
import random
import string
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from kognys.settings import settings

MAX_CHATS = 100
DEFAULT_TITLE = "New Chat"
DUPLICATE_WINDOW = timedelta(seconds=1)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Base-36 millisecond timestamp plus 9 random characters."""
    millis = int(time.time() * 1000)
    digits = string.digits + string.ascii_lowercase
    encoded = ""
    while millis:
        millis, rem = divmod(millis, 36)
        encoded = digits[rem] + encoded
    return encoded + "".join(random.choices(digits, k=9))


def generate_title(content: str) -> str:
    words = content.split()[:8]
    title = " ".join(words)
    if len(title) > 50:
        title = title[:47] + "..."
    return title or DEFAULT_TITLE


class StoredMessage(BaseModel):
    id: str | None = None
    role: str  # user | assistant | status | agent
    content: str
    event_type: str | None = None
    temporary: bool = False
    agent_name: str | None = None
    agent_role: str | None = None
    message_type: str | None = None
    transaction_hash: str | None = None


class Chat(BaseModel):
    id: str
    title: str = DEFAULT_TITLE
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    messages: list[StoredMessage] = Field(default_factory=list)


class ChatStore:
    """JSON-file backed chat history."""

    def __init__(self, path: Path | None = None):
        self.path = path or settings.data_dir / "chats.json"
        self._chats: dict[str, Chat] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text())
            for item in raw:
                chat = Chat.model_validate(item)
                self._chats[chat.id] = chat
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.error(f"Error loading chats from {self.path}: {e}")
            self._chats.clear()

    def _save(self) -> None:
        chats = self.get_all_chats()[:MAX_CHATS]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [chat.model_dump(mode="json") for chat in chats]
            self.path.write_text(json.dumps(payload, indent=2))
        except OSError as e:
            logger.error(f"Error saving chats to {self.path}: {e}")

    def create_chat(self, title: str | None = None, chat_id: str | None = None) -> Chat:
        chat = Chat(id=chat_id or generate_id(), title=title or DEFAULT_TITLE)
        self._chats[chat.id] = chat
        self._save()
        return chat

    def get_chat(self, chat_id: str) -> Chat | None:
        return self._chats.get(chat_id)

    def get_all_chats(self) -> list[Chat]:
        """All chats, most recently updated first."""
        return sorted(self._chats.values(), key=lambda c: c.updated_at, reverse=True)

    def get_recent_chats(self, limit: int = 20) -> list[Chat]:
        return self.get_all_chats()[:limit]

    def update_chat(self, chat_id: str, **patch: Any) -> Chat | None:
        """Apply a partial update; ``id`` and ``created_at`` cannot change."""
        chat = self._chats.get(chat_id)
        if chat is None:
            return None
        patch.pop("id", None)
        patch.pop("created_at", None)
        updated = chat.model_copy(update={**patch, "updated_at": _now()})
        self._chats[chat_id] = updated
        self._save()
        return updated

    def delete_chat(self, chat_id: str) -> bool:
        if self._chats.pop(chat_id, None) is None:
            return False
        self._save()
        return True

    def add_message(self, chat_id: str, message: StoredMessage | dict[str, Any]) -> StoredMessage | None:
        """Append a message to a chat. Returns the stored message, or None if skipped."""
        chat = self._chats.get(chat_id)
        if chat is None:
            logger.warning(f"add_message: unknown chat {chat_id}")
            return None

        if isinstance(message, dict):
            message = StoredMessage.model_validate(message)
        if message.temporary:
            return None

        recent = _now() - chat.updated_at < DUPLICATE_WINDOW
        if recent and any(
            m.role == message.role and m.content == message.content for m in chat.messages
        ):
            logger.debug("Skipping duplicate message")
            return None

        stored = message.model_copy(update={"id": generate_id()})
        chat.messages.append(stored)
        chat.updated_at = _now()

        if chat.title == DEFAULT_TITLE and stored.role == "user":
            chat.title = generate_title(stored.content)

        self._save()
        return stored

    def search_chats(self, query: str) -> list[Chat]:
        needle = query.lower()
        return [
            chat
            for chat in self.get_all_chats()
            if needle in chat.title.lower()
            or any(needle in m.content.lower() for m in chat.messages)
        ]

    def get_grouped_chats(self) -> dict[str, list[Chat]]:
        """Chats bucketed by age for history listings; empty buckets omitted."""
        now = _now()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        buckets = [
            ("Today", today),
            ("Yesterday", today - timedelta(days=1)),
            ("Last 7 days", today - timedelta(days=7)),
            ("Last 30 days", today - timedelta(days=30)),
        ]
        groups: dict[str, list[Chat]] = {}
        for chat in self.get_all_chats():
            label = next((name for name, start in buckets if chat.updated_at >= start), "Older")
            groups.setdefault(label, []).append(chat)
        return groups
