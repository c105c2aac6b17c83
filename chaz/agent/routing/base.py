"""Base classes for deciding whether the bot answers a message.

See :mod:`chaz.agent.routing` package docstring for the overall
architecture.
"""

from __future__ import annotations

import abc

from loguru import logger

from chaz.channels.base import InboundMessage


# -----------------------------------------------------------------------
# ResponseFilter
# -----------------------------------------------------------------------

class ResponseFilter(abc.ABC):
    """Base class for message filters."""

    @abc.abstractmethod
    async def should_respond(self, msg: InboundMessage) -> bool | None:
        """Decide whether the bot should respond.

        Returns
        -------
        bool | None
            * ``True``  – the bot **should** respond.
            * ``False`` – the bot should **skip** this message.
            * ``None``  – this filter has no opinion; defer to the next one.
        """
        ...


# -----------------------------------------------------------------------
# MessageRouter
# -----------------------------------------------------------------------

class MessageRouter:
    """Chains :class:`ResponseFilter` instances to reach a respond/skip decision.

    Filters are evaluated **in order**.  The first filter that returns a
    definitive ``True`` or ``False`` wins, so filters with side effects
    (counting messages) belong after the ones that only look.  If every
    filter returns ``None`` the router defaults to **respond** (``True``).
    """

    def __init__(self, filters: list[ResponseFilter] | None = None) -> None:
        self._filters: list[ResponseFilter] = list(filters or [])

    def add_filter(self, f: ResponseFilter) -> None:
        """Append a filter to the chain."""
        self._filters.append(f)

    async def should_respond(self, msg: InboundMessage) -> bool:
        for f in self._filters:
            result = await f.should_respond(msg)
            if result is not None:
                logger.debug(f"{type(f).__name__} decided {result} for {msg.sender_id}")
                return result
        return True  # default: respond
