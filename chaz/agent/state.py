"""Application state shared by every event handler.

One :class:`BotState` is built at startup and handed to the dispatcher; it
replaces process-wide globals. Backends are not cached because room tags
can change between messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from chaz.agent.roles import DEFAULT_ROLES, get_role
from chaz.agent.routing.rate_limit import RateLimiter
from chaz.config.schema import Config, RoleDetails
from chaz.providers.manager import BackendManager, backends_from_tags, merge_backends
from chaz.tags.store import BACKEND_NAMESPACE, MemoryTagBackend, TagStore


@dataclass
class BotState:
    config: Config
    tag_store: TagStore = field(default_factory=lambda: TagStore(MemoryTagBackend()))
    rate_limiter: RateLimiter | None = None
    default_roles: list[RoleDetails] = field(default_factory=lambda: list(DEFAULT_ROLES))

    def __post_init__(self) -> None:
        if self.rate_limiter is None:
            self.rate_limiter = RateLimiter(
                message_limit=self.config.message_limit,
                room_size_limit=self.config.room_size_limit,
                bot_name=self.config.name,
            )

    @property
    def bot_name(self) -> str:
        return self.config.name

    def resolve_role(self) -> RoleDetails | None:
        return get_role(self.config.role, self.config.roles, self.default_roles)

    async def backends_for(self, room_id: str) -> BackendManager:
        """
        Build the backend manager for a room.

        Room-registered backends come first, configured backends after. With
        neither, the manager falls back to a default aichat backend.
        """
        tags = await self.tag_store.open(room_id, BACKEND_NAMESPACE)
        backends = merge_backends(backends_from_tags(tags), self.config.backends)
        return BackendManager(backends or None)
