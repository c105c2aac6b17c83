"""Tests for per-room tags."""

import pytest

from chaz.tags.store import (
    BACKEND_NAMESPACE,
    MODEL_NAMESPACE,
    MemoryTagBackend,
    TagStore,
    decode_tag,
    encode_tag,
)

from conftest import ROOM_ID


class RecordingTagBackend(MemoryTagBackend):
    def __init__(self):
        super().__init__()
        self.writes: list[tuple[str, str]] = []

    async def put_tag(self, room_id, tag):
        self.writes.append(("put", tag))
        await super().put_tag(room_id, tag)

    async def delete_tag(self, room_id, tag):
        self.writes.append(("delete", tag))
        await super().delete_tag(room_id, tag)


class TestEncoding:
    def test_encode(self):
        assert encode_tag(MODEL_NAMESPACE, "default", "openai:gpt-4o") == "is.chaz.model.default=openai:gpt-4o"

    def test_decode(self):
        assert decode_tag(MODEL_NAMESPACE, "is.chaz.model.default=openai:gpt-4o") == ("default", "openai:gpt-4o")

    def test_decode_keeps_equals_in_value(self):
        assert decode_tag(BACKEND_NAMESPACE, "is.chaz.backend.x.token=abc==") == ("x.token", "abc==")

    def test_decode_other_namespace(self):
        assert decode_tag(MODEL_NAMESPACE, "is.chaz.backend.chazdefault=x") is None
        assert decode_tag(MODEL_NAMESPACE, "m.favourite") is None


class TestTagSet:
    @pytest.mark.asyncio
    async def test_replace_is_pending_until_sync(self):
        backend = RecordingTagBackend()
        tags = await TagStore(backend).open(ROOM_ID, MODEL_NAMESPACE)

        tags.replace("default", "gpt-4o")

        assert tags.get("default") == "gpt-4o"
        assert backend.writes == []
        await tags.sync()
        assert backend.writes == [("put", "is.chaz.model.default=gpt-4o")]

    @pytest.mark.asyncio
    async def test_replace_existing_deletes_old_tag(self):
        backend = RecordingTagBackend()
        store = TagStore(backend)
        tags = await store.open(ROOM_ID, MODEL_NAMESPACE)
        tags.replace("default", "old")
        await tags.sync()

        tags = await store.open(ROOM_ID, MODEL_NAMESPACE)
        tags.replace("default", "new")
        await tags.sync()

        assert backend.writes[1:] == [
            ("delete", "is.chaz.model.default=old"),
            ("put", "is.chaz.model.default=new"),
        ]
        reopened = await store.open(ROOM_ID, MODEL_NAMESPACE)
        assert reopened.get("default") == "new"

    @pytest.mark.asyncio
    async def test_unchanged_value_is_not_rewritten(self):
        backend = RecordingTagBackend()
        store = TagStore(backend)
        tags = await store.open(ROOM_ID, MODEL_NAMESPACE)
        tags.replace("default", "same")
        await tags.sync()

        tags.replace("default", "same")
        await tags.sync()

        assert len(backend.writes) == 1

    @pytest.mark.asyncio
    async def test_namespaces_are_separate(self):
        store = TagStore(MemoryTagBackend())
        model_tags = await store.open(ROOM_ID, MODEL_NAMESPACE)
        model_tags.replace("default", "gpt-4o")
        await model_tags.sync()

        backend_tags = await store.open(ROOM_ID, BACKEND_NAMESPACE)

        assert backend_tags.all_keys() == []
        assert backend_tags.get("default") is None

    @pytest.mark.asyncio
    async def test_all_keys_includes_pending(self):
        store = TagStore(MemoryTagBackend())
        tags = await store.open(ROOM_ID, BACKEND_NAMESPACE)
        tags.replace("x.url", "http://x")
        await tags.sync()
        tags.replace("x.token", "t")

        assert tags.all_keys() == ["x.url", "x.token"]

    @pytest.mark.asyncio
    async def test_rooms_are_separate(self):
        store = TagStore(MemoryTagBackend())
        tags = await store.open(ROOM_ID, MODEL_NAMESPACE)
        tags.replace("default", "gpt-4o")
        await tags.sync()

        other = await store.open("!other:example.org", MODEL_NAMESPACE)

        assert other.get("default") is None
