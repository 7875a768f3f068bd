"""Chat notifier interface consumed by the escalation core."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ChatNotifier(Protocol):
    async def send_channel_message(self, channel_id: str, text: str) -> None:
        """Publish text to a channel. Raises ChatError on failure."""
        ...
