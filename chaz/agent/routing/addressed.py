"""Filter for messages that are meant for the bot."""

from __future__ import annotations

from chaz.agent.commands import COMMAND_MARKER, parse_command
from chaz.agent.routing.base import ResponseFilter
from chaz.channels.base import InboundMessage


class AddressedFilter(ResponseFilter):
    """Only answer in direct rooms, on mentions, or when called by name.

    A room counts as direct when it is flagged as such or has fewer than
    three members.
    """

    def __init__(self, bot_name: str, marker: str = COMMAND_MARKER) -> None:
        self.bot_name = bot_name
        self.marker = marker

    async def should_respond(self, msg: InboundMessage) -> bool | None:
        if msg.is_mentioned:
            return None
        command = parse_command(msg.content, self.bot_name, self.marker)
        if command is not None and command.addressed:
            return None
        if await msg.room.is_direct():
            return None
        return False
