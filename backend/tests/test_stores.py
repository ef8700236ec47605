"""Tests for the key/value backed credential and item stores."""

import json

import pytest

from integrations.core import NormalizedItem, TokenRecord


def record(provider: str, token: str) -> TokenRecord:
    return TokenRecord(user_id="someone-else", provider=provider, access_token=token)


class TestCredentialStore:
    @pytest.mark.asyncio
    async def test_get_all_tokens_follows_the_index(self, credential_store):
        await credential_store.store_token("todoist", record("todoist", "t1"))
        await credential_store.store_token("notion", record("notion", "n1"))
        await credential_store.store_token("todoist", record("todoist", "t2"))

        tokens = await credential_store.get_all_tokens()

        assert list(tokens) == ["todoist", "notion"]
        assert tokens["todoist"].access_token == "t2"
        assert tokens["notion"].user_id == "default"

    @pytest.mark.asyncio
    async def test_deleted_token_leaves_the_index(self, credential_store, kv):
        await credential_store.store_token("todoist", record("todoist", "t1"))
        await credential_store.store_token("notion", record("notion", "n1"))

        assert await credential_store.delete_token("todoist") is True
        assert await credential_store.delete_token("todoist") is False

        assert list(await credential_store.get_all_tokens()) == ["notion"]
        assert json.loads(kv.data["integration_tokens:default"]) == ["notion"]

    @pytest.mark.asyncio
    async def test_upsert_keeps_created_at(self, credential_store):
        first = await credential_store.store_token("todoist", record("todoist", "t1"))

        second = await credential_store.store_token("todoist", record("todoist", "t2"))

        assert second.created_at == first.created_at
        assert (await credential_store.get_token("todoist")).access_token == "t2"


class TestItemStore:
    @pytest.mark.asyncio
    async def test_bulk_create_skips_known_ids(self, item_store, kv):
        await item_store.bulk_create_items([NormalizedItem(id="a", title="A")])

        created = await item_store.bulk_create_items(
            [NormalizedItem(id="a", title="A again"), NormalizedItem(id="b", title="B")]
        )

        assert [i.id for i in created] == ["b"]
        assert [i.title for i in await item_store.get_all_items()] == ["A", "B"]
        channel, message = kv.published[-1]
        assert channel == "items-modified"
        assert json.loads(message)["itemIds"] == ["b"]
