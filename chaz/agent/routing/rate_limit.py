"""Per-sender message limits and room size limits."""

from __future__ import annotations

import threading

from loguru import logger

from chaz.agent.commands import COMMAND_MARKER
from chaz.agent.routing.base import ResponseFilter
from chaz.channels.base import InboundMessage, Room


class RateLimiter:
    """
    Bounds how much a sender may use the bot, and in which rooms.

    Counts live in memory for the lifetime of the process and are keyed by
    sender across all rooms. ``None`` limits are unbounded.
    """

    def __init__(
        self,
        message_limit: int | None = None,
        room_size_limit: int | None = None,
        bot_name: str = "chaz",
    ) -> None:
        self.message_limit = message_limit
        self.room_size_limit = room_size_limit
        self.prefix = f"{COMMAND_MARKER}{bot_name}"
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def count(self, sender: str) -> int:
        with self._lock:
            return self._counts.get(sender, 0)

    async def should_block(self, room: Room, sender: str) -> bool:
        """
        Decide whether a message from ``sender`` must be ignored.

        Oversized rooms are skipped silently so the bot cannot be used to
        spam large rooms, and such messages are not counted. A sender over
        the message limit gets a notice for every blocked message.
        """
        if self.room_size_limit is not None:
            room_size = await room.active_member_count()
            if room_size > self.room_size_limit:
                logger.debug(
                    f"Ignoring {sender} in {room.room_id}: "
                    f"{room_size} members > limit {self.room_size_limit}"
                )
                return True

        # The lock only covers the read-modify-write, never the send below
        with self._lock:
            count = self._counts.get(sender, 0)
            if self.message_limit is None or count < self.message_limit:
                self._counts[sender] = count + 1
                return False

        logger.error(f"User {sender} has sent {count} messages")
        await room.send(
            f"{self.prefix} Error: you have used up your message limit of {self.message_limit} messages."
        )
        return True


class RateLimitFilter(ResponseFilter):
    """Routing filter that vetoes messages blocked by a :class:`RateLimiter`."""

    def __init__(self, limiter: RateLimiter) -> None:
        self.limiter = limiter

    async def should_respond(self, msg: InboundMessage) -> bool | None:
        if await self.limiter.should_block(msg.room, msg.sender_id):
            return False
        return None
