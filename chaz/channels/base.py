"""Base channel interface and the room surface the core talks to."""

from __future__ import annotations

import abc
import os
from dataclasses import dataclass, field
from typing import Any

from loguru import logger


# -----------------------------------------------------------------------
# History
# -----------------------------------------------------------------------

@dataclass
class TextContent:
    body: str


@dataclass
class ImageContent:
    source: str
    mimetype: str | None = None


@dataclass
class HistoryMessage:
    """A message read back from room history.

    ``content`` is None for message types chaz does not understand.
    """

    sender: str
    content: TextContent | ImageContent | None = None


@dataclass
class HistoryPage:
    """One batch of backward pagination, newest message first."""

    messages: list[HistoryMessage] = field(default_factory=list)
    end: str | None = None  # continuation token, None at the start of the room


class MediaHandle:
    """
    A media file downloaded to a local temporary path.

    The file stays on disk until :meth:`close` is called, so the handle must
    outlive any subprocess that reads it.
    """

    def __init__(self, path: str, mimetype: str | None = None) -> None:
        self.path = path
        self.mimetype = mimetype
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove media file {self.path}: {e}")

    def __repr__(self) -> str:
        return f"MediaHandle({self.path!r})"


# -----------------------------------------------------------------------
# Room
# -----------------------------------------------------------------------

class Room(abc.ABC):
    """A chat room as seen by the core.

    Implemented by each channel on top of its protocol client.
    """

    room_id: str
    own_user_id: str

    @abc.abstractmethod
    async def messages(self, start: str | None, limit: int) -> HistoryPage:
        """Read one page of history backwards from ``start`` (None = newest).

        Raises:
            TransportError: If the page cannot be fetched.
        """

    @abc.abstractmethod
    async def resolve_media(self, source: str, mimetype: str | None) -> MediaHandle:
        """Download media to a local file."""

    @abc.abstractmethod
    async def send(self, text: str, *, markdown: bool = False) -> None:
        """Send a message: a notice for plain text, a text message for markdown."""

    @abc.abstractmethod
    async def active_member_count(self) -> int:
        """Number of joined and invited members."""

    @abc.abstractmethod
    async def is_direct(self) -> bool:
        """Whether this is a one-to-one room."""

    @abc.abstractmethod
    async def set_name(self, name: str) -> None:
        """Rename the room.

        Raises:
            PermissionDeniedError: If the server refuses.
        """

    @abc.abstractmethod
    async def set_topic(self, topic: str) -> None:
        """Set the room topic.

        Raises:
            PermissionDeniedError: If the server refuses.
        """


@dataclass
class InboundMessage:
    """A text event delivered by a channel."""

    room: Room
    sender_id: str
    content: str
    is_mentioned: bool = False


# -----------------------------------------------------------------------
# Channel
# -----------------------------------------------------------------------

class BaseChannel(abc.ABC):
    """A chat protocol connection feeding inbound messages to a handler."""

    name: str = "base"

    def __init__(self, config: Any) -> None:
        self.config = config

    @abc.abstractmethod
    async def start(self) -> None:
        """Connect and process events until stopped."""

    @abc.abstractmethod
    async def stop(self) -> None:
        """Disconnect."""
