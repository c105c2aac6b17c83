"""Deciding whether the bot answers a message.

Each concern is a :class:`ResponseFilter`; a :class:`MessageRouter` runs
them in order and the first definitive answer wins.

Architecture
------------
MessageRouter
  └── ResponseFilter (chain)
        ├── AddressedFilter   – direct room / @mention / "!chaz" prefix
        └── RateLimitFilter   – room size and per-sender message limits
"""

from chaz.agent.routing.addressed import AddressedFilter
from chaz.agent.routing.base import MessageRouter, ResponseFilter
from chaz.agent.routing.rate_limit import RateLimiter, RateLimitFilter

__all__ = ["AddressedFilter", "MessageRouter", "RateLimitFilter", "RateLimiter", "ResponseFilter"]
