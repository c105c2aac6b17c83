"""Per-room key/value tags.

Room tags are plain names, so each entry is stored as a single tag name::

    <namespace>.<key>=<value>

e.g. ``is.chaz.model.default=openai:gpt-4o``. A :class:`TagSet` is a view
of one namespace in one room; changes are buffered by :meth:`TagSet.replace`
and written by :meth:`TagSet.sync`. Concurrent writers to the same room are
not isolated from each other, the last sync wins.
"""

from __future__ import annotations

import abc
from collections import defaultdict

from loguru import logger

MODEL_NAMESPACE = "is.chaz.model"
BACKEND_NAMESPACE = "is.chaz.backend"


def encode_tag(namespace: str, key: str, value: str) -> str:
    return f"{namespace}.{key}={value}"


def decode_tag(namespace: str, tag: str) -> tuple[str, str] | None:
    """Split a tag name into (key, value) if it belongs to ``namespace``."""
    prefix = f"{namespace}."
    if not tag.startswith(prefix) or "=" not in tag:
        return None
    key, value = tag[len(prefix):].split("=", 1)
    if not key:
        return None
    return key, value


class TagBackend(abc.ABC):
    """Raw access to the tag names of a room."""

    @abc.abstractmethod
    async def list_tags(self, room_id: str) -> list[str]:
        ...

    @abc.abstractmethod
    async def put_tag(self, room_id: str, tag: str) -> None:
        ...

    @abc.abstractmethod
    async def delete_tag(self, room_id: str, tag: str) -> None:
        ...


class MemoryTagBackend(TagBackend):
    """Tags held in process memory. Lost on restart."""

    def __init__(self) -> None:
        self._tags: dict[str, list[str]] = defaultdict(list)

    async def list_tags(self, room_id: str) -> list[str]:
        return list(self._tags[room_id])

    async def put_tag(self, room_id: str, tag: str) -> None:
        if tag not in self._tags[room_id]:
            self._tags[room_id].append(tag)

    async def delete_tag(self, room_id: str, tag: str) -> None:
        if tag in self._tags[room_id]:
            self._tags[room_id].remove(tag)


class TagSet:
    """The entries of one namespace in one room."""

    def __init__(
        self,
        backend: TagBackend,
        room_id: str,
        namespace: str,
        entries: dict[str, str] | None = None,
        raw_tags: dict[str, str] | None = None,
    ) -> None:
        self._backend = backend
        self.room_id = room_id
        self.namespace = namespace
        self._entries: dict[str, str] = dict(entries or {})
        self._raw: dict[str, str] = dict(raw_tags or {})  # key -> stored tag name
        self._pending: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        if key in self._pending:
            return self._pending[key]
        return self._entries.get(key)

    def replace(self, key: str, value: str) -> None:
        """Set ``key`` to ``value`` once :meth:`sync` is called."""
        self._pending[key] = value

    def all_keys(self) -> list[str]:
        keys = list(self._entries)
        keys.extend(k for k in self._pending if k not in self._entries)
        return keys

    async def sync(self) -> None:
        """Write pending replacements to the room."""
        for key, value in self._pending.items():
            old_tag = self._raw.get(key)
            new_tag = encode_tag(self.namespace, key, value)
            if old_tag == new_tag:
                continue
            if old_tag is not None:
                await self._backend.delete_tag(self.room_id, old_tag)
            await self._backend.put_tag(self.room_id, new_tag)
            self._entries[key] = value
            self._raw[key] = new_tag
            logger.debug(f"Tag {self.namespace}.{key} updated in {self.room_id}")
        self._pending.clear()


class TagStore:
    """Opens :class:`TagSet` views on top of a :class:`TagBackend`."""

    def __init__(self, backend: TagBackend) -> None:
        self.backend = backend

    async def open(self, room_id: str, namespace: str) -> TagSet:
        entries: dict[str, str] = {}
        raw: dict[str, str] = {}
        for tag in await self.backend.list_tags(room_id):
            decoded = decode_tag(namespace, tag)
            if decoded is None:
                continue
            key, value = decoded
            if key in raw:
                # Stale duplicate left behind by a concurrent writer
                logger.debug(f"Duplicate tag for {namespace}.{key} in {room_id}, keeping the first")
                continue
            entries[key] = value
            raw[key] = tag
        return TagSet(self.backend, room_id, namespace, entries, raw)
