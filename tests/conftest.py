"""Shared fakes for the chaz tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from chaz.agent.state import BotState
from chaz.channels.base import (
    HistoryMessage,
    HistoryPage,
    ImageContent,
    MediaHandle,
    Room,
    TextContent,
)
from chaz.config.schema import BackendConfig, Config
from chaz.errors import ChazError, TransportError
from chaz.providers.base import ChatContext, LLMBackend

BOT_ID = "@chaz:example.org"
USER_ID = "@alice:example.org"
OTHER_ID = "@bob:example.org"
ROOM_ID = "!room:example.org"


def text(sender: str, body: str) -> tuple[str, TextContent]:
    return sender, TextContent(body)


def image(sender: str, source: str, mimetype: str = "image/png") -> tuple[str, ImageContent]:
    return sender, ImageContent(source, mimetype)


class FakeRoom(Room):
    """
    In-memory room.

    ``history`` is given oldest first, the way people read it; pages are
    served newest first with integer offsets as continuation tokens.
    """

    def __init__(
        self,
        history: list | None = None,
        members: int = 5,
        direct: bool = False,
        media_dir: Path | None = None,
        fail_on_page: int | None = None,
        failing_media: set[str] | None = None,
        name_error: ChazError | None = None,
        topic_error: ChazError | None = None,
        room_id: str = ROOM_ID,
        own_user_id: str = BOT_ID,
    ):
        self.history = list(history or [])
        self.members = members
        self.direct = direct
        self.media_dir = media_dir
        self.fail_on_page = fail_on_page
        self.failing_media = failing_media or set()
        self.name_error = name_error
        self.topic_error = topic_error
        self.room_id = room_id
        self.own_user_id = own_user_id

        self.page_calls = 0
        self.resolved: list[MediaHandle] = []
        self.sent: list[tuple[str, bool]] = []
        self.name: str | None = None
        self.topic: str | None = None

    @property
    def sent_texts(self) -> list[str]:
        return [body for body, _ in self.sent]

    async def messages(self, start: str | None, limit: int) -> HistoryPage:
        self.page_calls += 1
        if self.fail_on_page is not None and self.page_calls >= self.fail_on_page:
            raise TransportError("history unavailable")
        newest_first = list(reversed(self.history))
        offset = int(start) if start else 0
        chunk = newest_first[offset:offset + limit]
        next_offset = offset + len(chunk)
        end = str(next_offset) if next_offset < len(newest_first) else None
        return HistoryPage([HistoryMessage(sender, content) for sender, content in chunk], end)

    async def resolve_media(self, source: str, mimetype: str | None) -> MediaHandle:
        if source in self.failing_media:
            raise TransportError(f"cannot download {source}")
        name = source.rsplit("/", 1)[-1]
        if self.media_dir is not None:
            path = self.media_dir / name
            path.write_bytes(b"\x89PNG")
        else:
            path = Path("/nonexistent") / name
        handle = MediaHandle(str(path), mimetype)
        self.resolved.append(handle)
        return handle

    async def send(self, text: str, *, markdown: bool = False) -> None:
        self.sent.append((text, markdown))

    async def active_member_count(self) -> int:
        return self.members

    async def is_direct(self) -> bool:
        return self.direct or self.members < 3

    async def set_name(self, name: str) -> None:
        if self.name_error is not None:
            raise self.name_error
        self.name = name

    async def set_topic(self, topic: str) -> None:
        if self.topic_error is not None:
            raise self.topic_error
        self.topic = topic


class FakeBackend(LLMBackend):
    """Backend adapter that records contexts and returns canned replies."""

    def __init__(
        self,
        backend: BackendConfig | None = None,
        models: list[str] | None = None,
        default: str | None = None,
        replies: list[str] | None = None,
        error: ChazError | None = None,
    ):
        super().__init__(backend or BackendConfig(kind="aichat"))
        self.models = list(models or [])
        self.default = default
        self.replies = list(replies or ["Mock response"])
        self.error = error
        self.contexts: list[ChatContext] = []

    async def list_models(self) -> list[str]:
        return list(self.models)

    async def default_model(self) -> str | None:
        return self.default

    async def execute(self, context: ChatContext) -> str:
        # Copy the messages, callers may mutate the list afterwards
        self.contexts.append(ChatContext(
            messages=list(context.messages),
            model=context.model,
            role=context.role,
            media=list(context.media),
        ))
        if self.error is not None:
            raise self.error
        return self.replies[(len(self.contexts) - 1) % len(self.replies)]


@pytest.fixture
def fake_backends(monkeypatch) -> dict[str, FakeBackend]:
    """
    Replace backend adapters with :class:`FakeBackend` instances.

    Pre-register an adapter under a backend's display name to control it;
    unregistered backends get a default fake.
    """
    registry: dict[str, FakeBackend] = {}

    def create(cfg: BackendConfig) -> FakeBackend:
        adapter = registry.get(cfg.display_name)
        if adapter is None:
            adapter = registry[cfg.display_name] = FakeBackend(cfg)
        adapter.backend = cfg
        return adapter

    monkeypatch.setattr("chaz.providers.manager.create_backend", create)
    return registry


@pytest.fixture
def state() -> BotState:
    return BotState(config=Config())
