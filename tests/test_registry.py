"""Tests for CollectionRegistry listing and project derivation."""

import pytest

from reflection.qdrant_client import StoreUnavailable
from reflection.registry import CollectionRegistry


@pytest.fixture
def registry(store, config):
    store.create("conv_projA_voyage")
    store.create("conv_projB_voyage")
    store.create("conv_projA_local")
    store.create("unrelated_collection")
    return CollectionRegistry(store.client, config)


class TestListCollections:
    @pytest.mark.asyncio
    async def test_lists_only_conversation_collections(self, registry):
        names = await registry.list_collections()
        assert names == ["conv_projA_voyage", "conv_projB_voyage", "conv_projA_local"]

    @pytest.mark.asyncio
    async def test_filters_by_model_suffix(self, registry):
        names = await registry.list_collections("_voyage")
        assert names == ["conv_projA_voyage", "conv_projB_voyage"]

    @pytest.mark.asyncio
    async def test_lists_fresh_every_call(self, registry, store):
        assert len(await registry.list_collections()) == 3
        store.create("conv_projC_voyage")
        assert "conv_projC_voyage" in await registry.list_collections()
        assert store.client.get_collections.await_count == 2

    @pytest.mark.asyncio
    async def test_store_down_raises(self, registry, store):
        store.down = True
        with pytest.raises(StoreUnavailable):
            await registry.list_collections()

    @pytest.mark.asyncio
    async def test_remembers_last_successful_listing(self, registry, store):
        assert registry.cached_collections() is None
        await registry.list_collections("_voyage")

        store.down = True
        with pytest.raises(StoreUnavailable):
            await registry.list_collections()

        assert registry.cached_collections() == [
            "conv_projA_voyage",
            "conv_projB_voyage",
            "conv_projA_local",
        ]
        assert registry.cached_collections("_local") == ["conv_projA_local"]


class TestDeriveProject:
    @pytest.mark.parametrize(
        "name,project",
        [
            ("conv_projA_voyage", "projA"),
            ("conv_my-app_openai", "my-app"),
            ("conv_service_local", "service"),
            ("conv_plain", "plain"),
            ("conv_multi_part_name_voyage", "multi_part_name"),
        ],
    )
    def test_derive_project(self, registry, name, project):
        assert registry.derive_project(name) == project
