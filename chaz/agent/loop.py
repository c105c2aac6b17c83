"""Agent loop: routes inbound room messages to commands or a chat reply."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from chaz.agent.commands import COMMAND_MARKER, Command, parse_command
from chaz.agent.context import MODEL_TAG_KEY, ContextBuilder
from chaz.agent.routing import AddressedFilter, MessageRouter, RateLimitFilter
from chaz.agent.state import BotState
from chaz.channels.base import InboundMessage, Room
from chaz.errors import ChazError, ModelValidationError, PermissionDeniedError
from chaz.providers.base import ChatContext, Message, MessageRole
from chaz.providers.manager import DEFAULT_BACKEND_KEY
from chaz.tags.store import BACKEND_NAMESPACE, MODEL_NAMESPACE

Handler = Callable[[InboundMessage, Command], Awaitable[None]]

TITLE_REQUEST = " ".join([
    "Summarize this conversation in less than 20 characters to use as the title of this conversation.",
    "The output should be a single line of text describing the conversation.",
    "Do not output anything except for the summary text.",
    "Only the first 20 characters will be used.",
])

TOPIC_REQUEST = " ".join([
    "Summarize this conversation in less than 50 characters.",
    "Do not output anything except for the summary text.",
    "Do not include any commentary or context, only the summary.",
])

_QUOTED_RE = re.compile(r'"([^"]*)"')


@dataclass
class CommandSpec:
    handler: Handler
    usage: str = ""
    help: str | None = None  # None hides the command from help


def clean_summary_response(response: str, max_length: int | None = None) -> str:
    """
    Clean up a summary returned by a model.

    Models sometimes wrap the summary in commentary, so the first quoted
    string is used when there is one.
    """
    match = _QUOTED_RE.search(response)
    if match:
        response = match.group(1)
    if max_length is not None:
        return response[:max_length]
    return response


def _one_line(text: str) -> str:
    return text.replace("\n", " ")


class AgentLoop:
    """
    The dispatcher for one bot.

    It:
    1. Parses the message as a command and runs its handler, or
    2. Gates ordinary messages (addressed? rate limited?), then
    3. Builds the room context, calls the backend and replies.
    """

    def __init__(self, state: BotState, context_builder: ContextBuilder | None = None) -> None:
        self.state = state
        self.context = context_builder or ContextBuilder(state)
        self.router = MessageRouter([
            AddressedFilter(state.bot_name),
            RateLimitFilter(state.rate_limiter),
        ])
        self.prefix = f"{COMMAND_MARKER}{state.bot_name}"
        self.commands: dict[str, CommandSpec] = {
            "help": CommandSpec(self._help, help="Show this message"),
            "party": CommandSpec(self._party, help="Party!"),
            "print": CommandSpec(self._print, help="Print the conversation"),
            "send": CommandSpec(self._send, "<message>", "Send a message without context"),
            "model": CommandSpec(self._model, "<model>", "Select the model to use"),
            "backend": CommandSpec(
                self._backend,
                "<name> <api_base> <api_key>",
                "Manually enter an OpenAI Compatible Backend",
            ),
            "list": CommandSpec(self._list, help="List available models"),
            "clear": CommandSpec(self._clear, help="Ignore all messages before this point"),
            "rename": CommandSpec(
                self._rename,
                help="Rename the room and set the topic based on the chat content",
            ),
        }

    async def handle_message(self, msg: InboundMessage) -> None:
        """Handle one inbound text message. Never raises."""
        try:
            command = parse_command(msg.content, self.state.bot_name)
            if command is not None and not command.addressed:
                # Short forms may be meant for another bot
                return
            if command is not None and command.name in self.commands:
                logger.info(f"Command {command.name} from {msg.sender_id} in {msg.room.room_id}")
                await self.commands[command.name].handler(msg, command)
                return
            if not await self.router.should_respond(msg):
                return
            await self._chat(msg)
        except ChazError as e:
            await self._reply_error(msg.room, str(e))
        except Exception as e:
            logger.error(f"Error processing message from {msg.sender_id}: {e}")

    async def _reply_error(self, room: Room, message: str) -> None:
        err = f"{self.prefix} Error: {_one_line(message)}"
        logger.error(err)
        try:
            await room.send(err)
        except ChazError as e:
            logger.error(f"Failed to send error to {room.room_id}: {e}")

    async def _execute(self, room: Room, context: ChatContext) -> str:
        try:
            backends = await self.state.backends_for(room.room_id)
            return await backends.execute(context)
        finally:
            context.close()

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def _chat(self, msg: InboundMessage) -> None:
        context = await self.context.assemble(msg.room)
        result = await self._execute(msg.room, context)
        logger.info(f"Response: {_one_line(result)}")
        # Most LLMs like responding with Markdown
        await msg.room.send(result, markdown=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _help(self, msg: InboundMessage, command: Command) -> None:
        lines = [f"{self.prefix} help", "", "Available commands:"]
        for name, spec in self.commands.items():
            if spec.help is None:
                continue
            usage = f" {spec.usage}" if spec.usage else ""
            lines.append(f"- {self.prefix} {name}{usage} - {spec.help}")
        await msg.room.send("\n".join(lines))

    async def _party(self, msg: InboundMessage, command: Command) -> None:
        await msg.room.send(".🎉🎊🥳 let's PARTY!! 🥳🎊🎉")

    async def _print(self, msg: InboundMessage, command: Command) -> None:
        context = await self.context.assemble(msg.room)
        context.close()
        await msg.room.send(context.string_prompt())

    async def _send(self, msg: InboundMessage, command: Command) -> None:
        if await self.state.rate_limiter.should_block(msg.room, msg.sender_id):
            return
        text = " ".join(command.args)
        # The room context still decides the model and role
        context = await self.context.assemble(msg.room)
        context.close()
        no_context = ChatContext(
            messages=[Message(MessageRole.USER, text)],
            model=context.model,
            role=context.role,
        )
        logger.info(f"Request: {msg.sender_id} - {_one_line(text)}")
        result = await self._execute(msg.room, no_context)
        logger.info(f"Response: {msg.sender_id} - {_one_line(result)}")
        await msg.room.send(result)

    async def _model(self, msg: InboundMessage, command: Command) -> None:
        if not command.args:
            await self._list(msg, command)
            return
        model = command.args[0]
        backends = await self.state.backends_for(msg.room.room_id)
        if await backends.is_known_model(model):
            await msg.room.send(f'{self.prefix} Model set to "{model}"')
        else:
            try:
                await backends.validate_model(model)
            except ModelValidationError as e:
                await self._reply_error(msg.room, str(e))
                return
            await msg.room.send(
                f"{self.prefix} Model {model} is unknown, but may be valid. "
                "Please manually verify that it is supported by your desired backend."
            )
        tags = await self.state.tag_store.open(msg.room.room_id, MODEL_NAMESPACE)
        tags.replace(MODEL_TAG_KEY, model)
        await tags.sync()

    async def _backend(self, msg: InboundMessage, command: Command) -> None:
        if len(command.args) < 3:
            await self._reply_error(
                msg.room,
                f"invalid arguments. Usage: {self.prefix} backend <name> <api_base> <api_key>",
            )
            return
        name, url, token = command.args[:3]
        tags = await self.state.tag_store.open(msg.room.room_id, BACKEND_NAMESPACE)
        tags.replace(DEFAULT_BACKEND_KEY, name)
        tags.replace(f"{name}.url", url)
        tags.replace(f"{name}.token", token)
        await tags.sync()
        await msg.room.send(f"{self.prefix} Successfully added backend {name}")

    async def _list(self, msg: InboundMessage, command: Command) -> None:
        context = await self.context.assemble(msg.room)
        context.close()
        backends = await self.state.backends_for(msg.room.room_id)
        current = context.model or await backends.default_model() or "unknown"
        models = await backends.list_known_models()
        await msg.room.send(
            f"{self.prefix} Current Model: {current}\n\n"
            "Known Backends:\n" + "\n".join(backends.list_known_backends()) + "\n\n"
            "Known Models:\n" + "\n".join(models)
        )

    async def _clear(self, msg: InboundMessage, command: Command) -> None:
        await msg.room.send(f"{self.prefix} clear: All messages before this will be ignored")

    async def _rename(self, msg: InboundMessage, command: Command) -> None:
        if await self.state.rate_limiter.should_block(msg.room, msg.sender_id):
            return
        context = await self.context.assemble(msg.room)
        context.model = self.state.config.chat_summary_model
        try:
            title = await self._summarize(msg, context, TITLE_REQUEST)
            try:
                await msg.room.set_name(title)
            except PermissionDeniedError:
                # Without permission to rename there is none to set the topic
                await self._reply_error(msg.room, "I don't have permission to rename the room")
                return

            topic = await self._summarize(msg, context, TOPIC_REQUEST)
            try:
                await msg.room.set_topic(topic)
            except PermissionDeniedError:
                await self._reply_error(msg.room, "I don't have permission to set the topic")
        finally:
            context.close()

    async def _summarize(self, msg: InboundMessage, context: ChatContext, request: str) -> str:
        context.messages.append(Message(MessageRole.USER, request))
        try:
            backends = await self.state.backends_for(msg.room.room_id)
            result = await backends.execute(context)
        finally:
            context.messages.pop()
        logger.info(f"Response: {msg.sender_id} - {_one_line(result)}")
        return clean_summary_response(result)
