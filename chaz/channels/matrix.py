"""Matrix channel implementation using matrix-nio."""

from __future__ import annotations

import asyncio
import getpass
import html
import mimetypes
import os
import re
import tempfile
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx
import nio
from loguru import logger

from chaz.channels.base import (
    BaseChannel,
    HistoryMessage,
    HistoryPage,
    ImageContent,
    InboundMessage,
    MediaHandle,
    Room,
    TextContent,
)
from chaz.config.schema import Config
from chaz.errors import PermissionDeniedError, TransportError
from chaz.session.manager import Session, SessionStore
from chaz.tags.store import TagBackend

SYNC_TIMEOUT_MS = 30000
JOIN_RETRY_START_S = 2
JOIN_RETRY_MAX_S = 3600

MessageHandler = Callable[[InboundMessage], Awaitable[None]]


# -----------------------------------------------------------------------
# Client-server REST calls nio does not wrap
# -----------------------------------------------------------------------

class MatrixRestApi:
    """
    Thin httpx wrapper for the account-data and room-tag endpoints.

    Credentials are read from the nio client on every call, so the API can
    be built before login.
    """

    def __init__(self, client: nio.AsyncClient, http: httpx.AsyncClient | None = None):
        self.client = client
        self._http = http or httpx.AsyncClient(timeout=30.0)

    async def request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        url = f"{self.client.homeserver.rstrip('/')}/_matrix/client/v3{path}"
        headers = {"Authorization": f"Bearer {self.client.access_token}"}
        try:
            response = await self._http.request(method, url, headers=headers, json=json)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        if response.status_code == 403:
            raise PermissionDeniedError(_error_message(response))
        return response

    def user_path(self) -> str:
        return f"/user/{quote(self.client.user_id, safe='')}"

    async def direct_rooms(self) -> set[str]:
        """Room ids listed in the ``m.direct`` account data."""
        response = await self.request("GET", f"{self.user_path()}/account_data/m.direct")
        if response.status_code == 404:
            return set()
        if response.is_error:
            raise TransportError(_error_message(response))
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Malformed m.direct account data: {e}") from e
        return {room_id for rooms in data.values() for room_id in rooms}

    async def close(self) -> None:
        await self._http.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
        return f"{data.get('errcode', response.status_code)}: {data.get('error', '')}".strip()
    except ValueError:
        return f"HTTP {response.status_code}"


class MatrixTagBackend(TagBackend):
    """Room tags of the logged-in user, via the client-server tag API."""

    def __init__(self, api: MatrixRestApi):
        self.api = api

    def _path(self, room_id: str, tag: str | None = None) -> str:
        path = f"{self.api.user_path()}/rooms/{quote(room_id, safe='')}/tags"
        if tag is not None:
            path += f"/{quote(tag, safe='')}"
        return path

    async def list_tags(self, room_id: str) -> list[str]:
        response = await self.api.request("GET", self._path(room_id))
        if response.is_error:
            raise TransportError(_error_message(response))
        try:
            return list(response.json().get("tags", {}))
        except ValueError as e:
            raise TransportError(f"Malformed tag list for {room_id}: {e}") from e

    async def put_tag(self, room_id: str, tag: str) -> None:
        response = await self.api.request("PUT", self._path(room_id, tag), json={})
        if response.is_error:
            raise TransportError(_error_message(response))

    async def delete_tag(self, room_id: str, tag: str) -> None:
        response = await self.api.request("DELETE", self._path(room_id, tag))
        if response.is_error and response.status_code != 404:
            raise TransportError(_error_message(response))


# -----------------------------------------------------------------------
# Formatting
# -----------------------------------------------------------------------

_CODE_BLOCK_RE = re.compile(r"```[\w+-]*\n?([\s\S]*?)```")
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_PLACEHOLDER_RE = re.compile(r"[\x00\x01](\d+)[\x00\x01]")
_BLOCK_PLACEHOLDER_RE = re.compile(r"\x01\d+\x01")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.*)$")
_QUOTE_RE = re.compile(r"^>\s?(.*)$")


def _inline_html(text: str) -> str:
    text = html.escape(text)
    text = re.sub(r"\[([^\]]+)\]\(([^)\s]+)\)", r'<a href="\2">\1</a>', text)
    text = re.sub(r"\*\*(.+?)\*\*", r"<strong>\1</strong>", text)
    text = re.sub(r"__(.+?)__", r"<strong>\1</strong>", text)
    text = re.sub(r"(?<![\w*])\*([^*\s][^*]*)\*(?!\w)", r"<em>\1</em>", text)
    text = re.sub(r"(?<!\w)_([^_]+)_(?!\w)", r"<em>\1</em>", text)
    text = re.sub(r"~~(.+?)~~", r"<del>\1</del>", text)
    return text


def markdown_to_html(text: str) -> str:
    """
    Render the markdown models usually produce as Matrix HTML.

    Covers fenced and inline code, headings, quotes, lists, links and
    emphasis. Everything else is escaped, and line breaks are kept.
    """
    stash: list[str] = []

    def keep(fragment: str, marker: str) -> str:
        stash.append(fragment)
        return f"{marker}{len(stash) - 1}{marker}"

    text = _CODE_BLOCK_RE.sub(
        lambda m: keep(f"<pre><code>{html.escape(m.group(1))}</code></pre>", "\x01"), text
    )
    text = _INLINE_CODE_RE.sub(lambda m: keep(f"<code>{html.escape(m.group(1))}</code>", "\x00"), text)

    blocks: list[tuple[str, bool]] = []  # (html, is_block)
    list_tag: str | None = None
    items: list[str] = []

    def close_list() -> None:
        nonlocal list_tag
        if list_tag is not None:
            body = "".join(f"<li>{item}</li>" for item in items)
            blocks.append((f"<{list_tag}>{body}</{list_tag}>", True))
            items.clear()
            list_tag = None

    for line in text.split("\n"):
        bullet = _BULLET_RE.match(line)
        numbered = None if bullet else _NUMBERED_RE.match(line)
        if bullet or numbered:
            tag = "ul" if bullet else "ol"
            if tag != list_tag:
                close_list()
                list_tag = tag
            items.append(_inline_html((bullet or numbered).group(1)))
            continue
        close_list()

        heading = _HEADING_RE.match(line)
        quoted = _QUOTE_RE.match(line)
        if _BLOCK_PLACEHOLDER_RE.fullmatch(line.strip()):
            blocks.append((line.strip(), True))
        elif heading:
            level = len(heading.group(1))
            blocks.append((f"<h{level}>{_inline_html(heading.group(2))}</h{level}>", True))
        elif quoted:
            blocks.append((f"<blockquote>{_inline_html(quoted.group(1))}</blockquote>", True))
        else:
            blocks.append((_inline_html(line), False))
    close_list()

    parts: list[str] = []
    previous_inline = False
    for fragment, is_block in blocks:
        if not is_block and previous_inline:
            parts.append("<br/>")
        parts.append(fragment)
        previous_inline = not is_block

    return _PLACEHOLDER_RE.sub(lambda m: stash[int(m.group(1))], "".join(parts))


# -----------------------------------------------------------------------
# Room
# -----------------------------------------------------------------------

class MatrixRoom(Room):
    """A joined Matrix room."""

    def __init__(self, client: nio.AsyncClient, room: nio.MatrixRoom, api: MatrixRestApi):
        self.client = client
        self.room = room
        self.api = api
        self.room_id = room.room_id
        self.own_user_id = client.user_id

    async def messages(self, start: str | None, limit: int) -> HistoryPage:
        response = await self.client.room_messages(
            self.room_id,
            start=start,
            limit=limit,
            direction=nio.MessageDirection.back,
        )
        if isinstance(response, nio.RoomMessagesError):
            raise TransportError(f"Failed to read history of {self.room_id}: {response.message}")

        page = HistoryPage(end=response.end)
        for event in response.chunk:
            page.messages.append(HistoryMessage(sender=event.sender, content=_history_content(event)))
        return page

    async def resolve_media(self, source: str, mimetype: str | None) -> MediaHandle:
        response = await self.client.download(mxc=source)
        if isinstance(response, nio.DownloadError):
            raise TransportError(f"Failed to download {source}: {response.message}")

        mimetype = mimetype or response.content_type
        suffix = mimetypes.guess_extension(mimetype) if mimetype else None
        fd, path = tempfile.mkstemp(prefix="chaz-", suffix=suffix or "")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(response.body)
        except OSError as e:
            os.unlink(path)
            raise TransportError(f"Failed to store {source}: {e}") from e
        return MediaHandle(path, mimetype)

    async def send(self, text: str, *, markdown: bool = False) -> None:
        content: dict[str, Any] = {"msgtype": "m.text" if markdown else "m.notice", "body": text}
        if markdown:
            content["format"] = "org.matrix.custom.html"
            content["formatted_body"] = markdown_to_html(text)
        response = await self.client.room_send(
            self.room_id,
            message_type="m.room.message",
            content=content,
            ignore_unverified_devices=True,
        )
        if isinstance(response, nio.RoomSendError):
            raise TransportError(f"Failed to send to {self.room_id}: {response.message}")

    async def active_member_count(self) -> int:
        return self.room.joined_count + self.room.invited_count

    async def is_direct(self) -> bool:
        # Direct flags are unreliable, small rooms count as direct too
        if self.room.joined_count < 3:
            return True
        try:
            return self.room_id in await self.api.direct_rooms()
        except TransportError as e:
            logger.warning(f"Could not read direct rooms: {e}")
            return False

    async def set_name(self, name: str) -> None:
        await self._put_state("m.room.name", {"name": name})

    async def set_topic(self, topic: str) -> None:
        await self._put_state("m.room.topic", {"topic": topic})

    async def _put_state(self, event_type: str, content: dict[str, Any]) -> None:
        response = await self.client.room_put_state(self.room_id, event_type, content)
        if isinstance(response, nio.RoomPutStateError):
            if response.status_code == "M_FORBIDDEN":
                raise PermissionDeniedError(response.message)
            raise TransportError(f"Failed to set {event_type} in {self.room_id}: {response.message}")


def _history_content(event: Any) -> TextContent | ImageContent | None:
    # Notices (the bot's own status replies) are not part of the conversation
    if isinstance(event, nio.RoomMessageText):
        return TextContent(event.body)
    if isinstance(event, nio.RoomMessageImage):
        info = event.source.get("content", {}).get("info") or {}
        return ImageContent(event.url, info.get("mimetype"))
    return None


# -----------------------------------------------------------------------
# Channel
# -----------------------------------------------------------------------

class MatrixChannel(BaseChannel):
    """
    Matrix channel using the nio sync loop.

    Requires:
    - homeserver_url and username in the config
    - a password in the config, on the terminal, or a saved session
    """

    name = "matrix"

    def __init__(
        self,
        config: Config,
        sessions: SessionStore,
        on_message: MessageHandler | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__(config)
        self.config: Config = config
        self.sessions = sessions
        self.on_message = on_message
        self.client = nio.AsyncClient(config.homeserver_url, config.username)
        self.api = MatrixRestApi(self.client, http)
        self._allow_re = re.compile(config.allow_list) if config.allow_list else None
        self._sync_task: asyncio.Task | None = None
        self._join_tasks: set[asyncio.Task] = set()
        self._message_tasks: set[asyncio.Task] = set()

    def is_allowed(self, sender: str) -> bool:
        """Check ``sender`` against the allow list. No list allows nobody."""
        if self._allow_re is None:
            return False
        return self._allow_re.search(sender) is not None

    async def start(self) -> None:
        """Log in, catch up with the server, then process events until stopped."""
        if not self.config.homeserver_url or not self.config.username:
            logger.error("Matrix homeserver_url and username not configured")
            return

        if not await self._login():
            return

        # Invites received while offline are still joined
        self.client.add_event_callback(self._on_invite, nio.InviteMemberEvent)

        response = await self.client.sync(timeout=SYNC_TIMEOUT_MS, full_state=True)
        if isinstance(response, nio.SyncError):
            logger.error(f"Initial sync failed: {response.message}")
            return
        self._on_sync(response)

        # Registered after the initial sync so old messages are not answered
        self.client.add_event_callback(self._on_message, nio.RoomMessageText)
        self.client.add_response_callback(self._on_sync, nio.SyncResponse)

        logger.info(f"Matrix client ready as {self.client.user_id}, listening to new messages")
        self._sync_task = asyncio.create_task(self.client.sync_forever(timeout=SYNC_TIMEOUT_MS))
        try:
            await self._sync_task
        except asyncio.CancelledError:
            logger.info("Matrix sync stopped")

    async def stop(self) -> None:
        """Stop syncing and close the connections."""
        if self._sync_task is not None:
            self._sync_task.cancel()
            self._sync_task = None
        for task in [*self._join_tasks, *self._message_tasks]:
            task.cancel()
        await self.client.close()
        await self.api.close()

    async def _login(self) -> bool:
        session = self.sessions.load()
        if session is not None and session.homeserver == self.config.homeserver_url:
            logger.info(f"Restoring session for {session.user_id}")
            self.client.restore_login(session.user_id, session.device_id, session.access_token)
            if session.sync_token:
                self.client.next_batch = session.sync_token
            return True

        password = self.config.password
        if password is None:
            password = getpass.getpass(f"Password for {self.config.username}: ").strip()

        response = await self.client.login(password, device_name=self.config.name)
        if isinstance(response, nio.LoginError):
            logger.error(f"Error logging in: {response.message}")
            return False

        logger.info(f"Logged in as {response.user_id} (device {response.device_id})")
        self.sessions.save(Session(
            homeserver=self.config.homeserver_url,
            user_id=response.user_id,
            device_id=response.device_id,
            access_token=response.access_token,
        ))
        return True

    def _on_sync(self, response: nio.SyncResponse) -> None:
        self.sessions.update_sync_token(response.next_batch)

    async def _on_invite(self, room: nio.MatrixRoom, event: nio.InviteMemberEvent) -> None:
        if event.state_key != self.client.user_id or event.membership != "invite":
            # Not an invite for us
            return
        if not self.is_allowed(event.sender):
            logger.debug(f"Ignoring invite to {room.room_id} from {event.sender}")
            return
        if any(t.get_name() == room.room_id for t in self._join_tasks):
            return
        logger.info(f"Received invite to {room.room_id} from {event.sender}")
        task = asyncio.create_task(self._join_with_retry(room.room_id), name=room.room_id)
        self._join_tasks.add(task)
        task.add_done_callback(self._join_tasks.discard)

    async def _join_with_retry(self, room_id: str) -> None:
        # Synapse can send an invite before the invitee is able to join
        delay = JOIN_RETRY_START_S
        while True:
            response = await self.client.join(room_id)
            if not isinstance(response, nio.JoinError):
                logger.info(f"Successfully joined room {room_id}")
                return
            logger.warning(f"Failed to join room {room_id} ({response.message}), retrying in {delay}s")
            await asyncio.sleep(delay)
            delay *= 2
            if delay > JOIN_RETRY_MAX_S:
                logger.error(f"Can't join room {room_id} ({response.message})")
                return

    async def _on_message(self, room: nio.MatrixRoom, event: nio.RoomMessageText) -> None:
        if event.sender == self.client.user_id:
            return
        if room.room_id not in self.client.rooms:
            # Not joined
            return
        if not self.is_allowed(event.sender):
            logger.debug(f"Ignoring message from {event.sender} (not on the allow list)")
            return
        if self.on_message is None:
            return

        mentions = event.source.get("content", {}).get("m.mentions") or {}
        msg = InboundMessage(
            room=MatrixRoom(self.client, room, self.api),
            sender_id=event.sender,
            content=event.body.lstrip(),
            is_mentioned=self.client.user_id in (mentions.get("user_ids") or []),
        )
        # Handled off the sync loop so rooms never wait on each other
        task = asyncio.create_task(self.on_message(msg), name=event.event_id)
        self._message_tasks.add(task)
        task.add_done_callback(self._on_message_done)

    def _on_message_done(self, task: asyncio.Task) -> None:
        self._message_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error handling message {task.get_name()}: {error}")
