from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MessageRef:
    """Where a platform message lives. Threads are channels, so a thread post is a MessageRef too."""

    channel_id: int
    message_id: int

    def jump_url(self, server_id: int) -> str:
        return f"https://discord.com/channels/{server_id}/{self.channel_id}/{self.message_id}"
