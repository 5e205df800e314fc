"""Append-only chronological record of exchanged chat messages."""

from __future__ import annotations

from typing import Iterator

from voice_chat.models import ChatMessage, ChatRole


class ChatLog:
    """Ordered, append-only message store for one session."""

    def __init__(self) -> None:
        self._messages: list[ChatMessage] = []

    def append(self, role: ChatRole, content: str) -> ChatMessage:
        """Add a message at the end of chronological order."""
        message = ChatMessage(role=ChatRole(role), content=content, position=len(self._messages))
        self._messages.append(message)
        return message

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        """Authoritative chronological order."""
        return tuple(self._messages)

    def newest_first(self) -> tuple[ChatMessage, ...]:
        """Display order: most recent message first."""
        return tuple(reversed(self._messages))

    def last(self) -> ChatMessage | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(tuple(self._messages))
