"""Tests for backend ordering, model naming and dispatch."""

import pytest

from chaz.agent.state import BotState
from chaz.config.schema import BackendConfig, BackendKind, Config, ModelConfig
from chaz.errors import ConfigurationError, ModelValidationError
from chaz.providers.base import ChatContext
from chaz.providers.manager import BackendManager, backends_from_tags, merge_backends
from chaz.tags.store import BACKEND_NAMESPACE, MemoryTagBackend, TagStore

from conftest import ROOM_ID, FakeBackend


def openai_backend(name: str | None, *models: str) -> BackendConfig:
    return BackendConfig(
        kind=BackendKind.OPENAI_COMPATIBLE,
        name=name,
        api_base=f"http://{name or 'openai'}.example.org/v1",
        api_key="secret",
        models=[ModelConfig(name=m) for m in models],
    )


async def tagged_backends(store: TagStore, entries: dict[str, str]):
    tags = await store.open(ROOM_ID, BACKEND_NAMESPACE)
    for key, value in entries.items():
        tags.replace(key, value)
    await tags.sync()
    return await store.open(ROOM_ID, BACKEND_NAMESPACE)


class TestModelNames:
    @pytest.mark.asyncio
    async def test_single_backend_accepts_anything(self):
        manager = BackendManager([openai_backend("a", "m1")])

        await manager.validate_model("anything")
        await manager.validate_model("b:gpt-x")

    @pytest.mark.asyncio
    async def test_multiple_backends_require_prefix(self):
        manager = BackendManager([openai_backend("a"), openai_backend("b")])

        await manager.validate_model("b:gpt-x")
        with pytest.raises(ModelValidationError, match="backend prepended"):
            await manager.validate_model("gpt-x")

    @pytest.mark.asyncio
    async def test_list_models_single_backend_unprefixed(self):
        manager = BackendManager([openai_backend("a", "m1", "m2")])

        assert await manager.list_known_models() == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_list_models_multiple_backends_prefixed(self):
        manager = BackendManager([openai_backend("a", "m1"), openai_backend("b", "m2", "m3")])

        assert await manager.list_known_models() == ["a:m1", "b:m2", "b:m3"]

    @pytest.mark.asyncio
    async def test_display_name_defaults_by_kind(self):
        manager = BackendManager([openai_backend(None, "gpt-4o"), openai_backend("b", "m")])

        assert manager.list_known_backends() == ["openai", "b"]
        assert await manager.list_known_models() == ["openai:gpt-4o", "b:m"]

    @pytest.mark.asyncio
    async def test_is_known_model(self):
        manager = BackendManager([openai_backend("a", "m1"), openai_backend("b", "m2")])

        assert await manager.is_known_model("b:m2")
        assert not await manager.is_known_model("m2")

    @pytest.mark.asyncio
    async def test_default_model(self):
        single = BackendManager([openai_backend("a", "m1")])
        multi = BackendManager([openai_backend("a", "m1"), openai_backend("b", "m2")])

        assert await single.default_model() == "m1"
        assert await multi.default_model() == "a:m1"
        assert await BackendManager([]).default_model() is None


class TestDispatch:
    def test_no_config_falls_back_to_aichat(self):
        manager = BackendManager(None)

        assert manager.list_known_backends() == ["aichat"]

    @pytest.mark.asyncio
    async def test_empty_list_is_an_error(self):
        with pytest.raises(ConfigurationError, match="No backends configured"):
            await BackendManager([]).execute(ChatContext())

    def test_select_backend(self):
        manager = BackendManager([openai_backend("a"), openai_backend("b")])

        assert manager.select_backend("b:gpt-x").name == "b"
        assert manager.select_backend("zzz:gpt-x").name == "a"
        assert manager.select_backend("gpt-x").name == "a"
        assert manager.select_backend(None).name == "a"

    @pytest.mark.asyncio
    async def test_execute_routes_by_prefix(self, fake_backends):
        fake_backends["a"] = FakeBackend(replies=["from a"])
        fake_backends["b"] = FakeBackend(replies=["from b"])
        manager = BackendManager([openai_backend("a"), openai_backend("b")])

        assert await manager.execute(ChatContext(model="b:gpt-x")) == "from b"
        assert await manager.execute(ChatContext()) == "from a"
        assert len(fake_backends["b"].contexts) == 1


class TestOrdering:
    @pytest.mark.asyncio
    async def test_backends_from_tags(self):
        store = TagStore(MemoryTagBackend())
        tags = await tagged_backends(store, {
            "foo.url": "http://foo/v1",
            "foo.token": "t1",
            "bar.url": "http://bar/v1",
            "bar.token": "t2",
        })

        backends = backends_from_tags(tags)

        assert [b.name for b in backends] == ["foo", "bar"]
        assert backends[1].api_base == "http://bar/v1"
        assert backends[1].api_key == "t2"
        assert all(b.kind is BackendKind.OPENAI_COMPATIBLE for b in backends)

    @pytest.mark.asyncio
    async def test_tag_default_moves_first(self):
        store = TagStore(MemoryTagBackend())
        tags = await tagged_backends(store, {
            "foo.url": "http://foo/v1",
            "foo.token": "t1",
            "bar.url": "http://bar/v1",
            "bar.token": "t2",
            "baz.url": "http://baz/v1",
            "baz.token": "t3",
            "chazdefault": "baz",
        })

        assert [b.name for b in backends_from_tags(tags)] == ["baz", "foo", "bar"]

    @pytest.mark.asyncio
    async def test_incomplete_tag_backend_ignored(self):
        store = TagStore(MemoryTagBackend())
        tags = await tagged_backends(store, {"foo.url": "http://foo/v1"})

        assert backends_from_tags(tags) == []

    def test_merge_puts_tags_first_and_skips_duplicates(self):
        tag_backends = [openai_backend("a", "tagged")]
        config_backends = [openai_backend("b", "m"), openai_backend("a", "configured")]

        merged = merge_backends(tag_backends, config_backends)

        assert [b.name for b in merged] == ["a", "b"]
        assert merged[0].models[0].name == "tagged"

    @pytest.mark.asyncio
    async def test_state_rebuilds_backends_per_request(self):
        config = Config(backends=[openai_backend("configured", "m")])
        state = BotState(config=config)

        before = await state.backends_for(ROOM_ID)
        tags = await state.tag_store.open(ROOM_ID, BACKEND_NAMESPACE)
        tags.replace("chazdefault", "room")
        tags.replace("room.url", "http://room/v1")
        tags.replace("room.token", "t")
        await tags.sync()
        after = await state.backends_for(ROOM_ID)

        assert before.list_known_backends() == ["configured"]
        assert after.list_known_backends() == ["room", "configured"]
