"""Notification port — abstract interface for sending messages to a chat.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationError(Exception):
    """Raised when a message could not be delivered."""


class NotificationPort(Protocol):
    """Abstract messaging interface used by the send action and reminders."""

    async def send_message(self, chat_id: int, text: str) -> None: ...
