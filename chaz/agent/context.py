"""Context builder: turns room history into a ChatContext.

Room history can only be read backwards, so assembly is two-phase: walk
the pages newest to oldest collecting messages and media, then reverse
both lists once at the end. The walk stops at the first page without a
continuation token, or at the most recent ``clear`` command, which is
excluded together with everything older.
"""

from __future__ import annotations

from loguru import logger

from chaz.agent.commands import COMMAND_MARKER, Command, parse_command
from chaz.agent.state import BotState
from chaz.channels.base import HistoryMessage, ImageContent, MediaHandle, Room, TextContent
from chaz.errors import ChazError, ModelValidationError
from chaz.providers.base import ChatContext, Message, MessageRole
from chaz.providers.manager import BackendManager
from chaz.tags.store import MODEL_NAMESPACE

HISTORY_PAGE_SIZE = 10
MODEL_TAG_KEY = "default"


class ContextBuilder:
    """
    Builds the context for a room.

    Model precedence: the room's ``is.chaz.model`` tag always wins; failing
    that, the most recent valid ``model`` command in history.
    """

    def __init__(
        self,
        state: BotState,
        page_size: int = HISTORY_PAGE_SIZE,
        marker: str = COMMAND_MARKER,
    ) -> None:
        self.state = state
        self.page_size = page_size
        self.marker = marker

    async def assemble(self, room: Room) -> ChatContext:
        """
        Assemble the context for ``room``.

        Raises:
            TransportError: If a history page cannot be read. Media resolved
                so far is released and no partial context is returned.
        """
        messages: list[Message] = []
        media: list[MediaHandle] = []
        scan = _HistoryScan(self, room)

        try:
            token: str | None = None
            while True:
                page = await room.messages(token, self.page_size)
                finished = False
                for item in page.messages:
                    if not await scan.visit(item, messages, media):
                        finished = True
                        break
                if finished or page.end is None:
                    break
                if not page.messages and page.end == token:
                    # Server handed back the same position, nothing older
                    break
                token = page.end

            tags = await self.state.tag_store.open(room.room_id, MODEL_NAMESPACE)
            tag_model = tags.get(MODEL_TAG_KEY)
        except BaseException:
            for handle in media:
                handle.close()
            raise

        messages.reverse()
        media.reverse()

        context = ChatContext(
            messages=messages,
            model=scan.model,
            role=self.state.resolve_role(),
            media=media,
        )

        # The room tag always beats a model command found in history
        if tag_model:
            context.model = tag_model

        logger.debug(
            f"Assembled context for {room.room_id}: {len(messages)} messages, "
            f"{len(media)} media, model={context.model}"
        )
        return context


class _HistoryScan:
    """Per-assembly state for the backward walk."""

    def __init__(self, builder: ContextBuilder, room: Room) -> None:
        self.builder = builder
        self.room = room
        self.model: str | None = None
        self._backends: BackendManager | None = None
        self._media_enabled = not builder.state.config.disable_media_context

    def _role_for(self, sender: str) -> MessageRole:
        if sender == self.room.own_user_id:
            return MessageRole.ASSISTANT
        return MessageRole.USER

    async def visit(
        self,
        item: HistoryMessage,
        messages: list[Message],
        media: list[MediaHandle],
    ) -> bool:
        """Process one history message. Returns False when the walk must stop."""
        content = item.content
        if isinstance(content, ImageContent):
            if self._media_enabled:
                handle = await self._resolve_media(content)
                if handle is not None:
                    media.append(handle)
            return True

        if not isinstance(content, TextContent):
            return True

        command = parse_command(content.body, self.builder.state.bot_name, self.builder.marker)
        if command is None:
            messages.append(Message(self._role_for(item.sender), content.body))
            return True
        return await self._visit_command(item, command, messages)

    async def _visit_command(self, item: HistoryMessage, command: Command, messages: list[Message]) -> bool:
        if command.name == "model" and self.model is None and command.args:
            await self._consider_model(command.args[0])
        # Also matches the bot's own "!chaz clear: ..." acknowledgement
        if command.name in ("clear", "clear:"):
            return False
        if not command.name or command.is_reserved:
            return True
        if command.addressed:
            messages.append(Message(self._role_for(item.sender), command.remainder))
        return True

    async def _consider_model(self, model: str) -> None:
        if self._backends is None:
            self._backends = await self.builder.state.backends_for(self.room.room_id)
        try:
            await self._backends.validate_model(model)
        except ModelValidationError as e:
            logger.debug(f"Ignoring model command {model!r} in history: {e}")
            return
        self.model = model

    async def _resolve_media(self, content: ImageContent) -> MediaHandle | None:
        try:
            return await self.room.resolve_media(content.source, content.mimetype)
        except ChazError as e:
            logger.warning(f"Skipping media {content.source} in {self.room.room_id}: {e}")
            return None
