"""
Tests unitaires pour le flux de changements Redis Pub/Sub.

Le client Redis est simulé (AsyncMock): aucun serveur n'est requis.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from ministry_data.adapters.realtime import RedisChangeStream
from ministry_data.adapters.remote import RemoteAdapter
from ministry_data.schemas.changes import TableChange


def make_stream(messages: list[dict] | None = None) -> tuple[RedisChangeStream, MagicMock]:
    """Crée un flux branché sur un client Redis simulé qui diffuse `messages`."""
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    async def listen():
        for message in messages or []:
            yield message

    pubsub.listen = listen

    client = MagicMock()
    client.pubsub.return_value = pubsub
    client.aclose = AsyncMock()

    stream = RedisChangeStream(channel_prefix="realtime:public:", client=client)
    return stream, pubsub


def message(table: str, payload: dict) -> dict:
    return {"type": "message", "channel": f"realtime:public:{table}", "data": json.dumps(payload)}


@pytest.mark.asyncio
class TestRedisChangeStream:
    """Tests de l'abonnement et de la diffusion des changements."""

    async def test_subscribe_once_per_channel(self):
        """Test que le canal n'est suivi qu'une fois quel que soit le nombre de handlers."""
        stream, pubsub = make_stream()

        async def first(change):
            pass

        async def second(change):
            pass

        await stream.subscribe("children", first)
        await stream.subscribe("children", second)

        pubsub.subscribe.assert_awaited_once_with("realtime:public:children")
        assert stream.handlers["realtime:public:children"] == [first, second]
        await stream.close()

    async def test_unsubscribe_last_handler_leaves_channel(self):
        stream, pubsub = make_stream()

        async def handler(change):
            pass

        unsubscribe = await stream.subscribe("children", handler)
        unsubscribe()
        unsubscribe()
        await asyncio.sleep(0)

        assert "realtime:public:children" not in stream.handlers
        pubsub.unsubscribe.assert_awaited_once_with("realtime:public:children")
        await stream.close()

    async def test_resubscribe_right_after_unsubscribe_keeps_channel(self):
        """Test qu'un réabonnement immédiat n'est pas annulé par le désabonnement en attente."""
        stream, pubsub = make_stream()

        async def first(change):
            pass

        async def second(change):
            pass

        unsubscribe = await stream.subscribe("children", first)
        unsubscribe()
        await stream.subscribe("children", second)
        await asyncio.sleep(0)

        assert stream.handlers["realtime:public:children"] == [second]
        pubsub.unsubscribe.assert_not_awaited()
        assert pubsub.subscribe.await_count == 2
        await stream.close()

    async def test_resubscribe_waits_for_inflight_unsubscribe(self):
        """Test que le SUBSCRIBE suit un UNSUBSCRIBE déjà envoyé sur la connexion."""
        stream, pubsub = make_stream()
        calls = []

        async def slow_unsubscribe(*channels):
            calls.append(("unsubscribe", channels))
            await asyncio.sleep(0.01)

        async def record_subscribe(*channels):
            calls.append(("subscribe", channels))

        pubsub.unsubscribe = AsyncMock(side_effect=slow_unsubscribe)
        pubsub.subscribe = AsyncMock(side_effect=record_subscribe)

        async def handler(change):
            pass

        unsubscribe = await stream.subscribe("children", handler)
        unsubscribe()
        await asyncio.sleep(0)
        await stream.subscribe("children", handler)

        channel = ("realtime:public:children",)
        assert calls == [("subscribe", channel), ("unsubscribe", channel), ("subscribe", channel)]
        assert stream.handlers["realtime:public:children"] == [handler]
        await stream.close()

    async def test_messages_dispatched_to_handlers(self):
        """Test qu'un message publié est converti en TableChange et diffusé."""
        received = []
        stream, _ = make_stream(
            [
                {"type": "subscribe", "channel": "realtime:public:children", "data": 1},
                message(
                    "children",
                    {
                        "type": "UPDATE",
                        "table": "children",
                        "record": {"child_id": "c1", "grade": "4"},
                        "old_record": {"child_id": "c1", "grade": "3"},
                    },
                ),
            ]
        )

        async def handler(change: TableChange):
            received.append(change)

        await stream.subscribe("children", handler)
        await stream._consumer_task

        assert len(received) == 1
        assert received[0].event == "UPDATE"
        assert received[0].record_id == "c1"
        assert received[0].old_record["grade"] == "3"
        await stream.close()

    async def test_invalid_message_skipped(self):
        received = []
        stream, _ = make_stream(
            [
                {"type": "message", "channel": "realtime:public:children", "data": "not json"},
                message("children", {"type": "DELETE", "old_record": {"child_id": "c9"}}),
            ]
        )

        async def handler(change):
            received.append(change)

        await stream.subscribe("children", handler)
        await stream._consumer_task

        assert [c.record_id for c in received] == ["c9"]
        assert received[0].table == "children"
        await stream.close()

    async def test_failing_handler_isolated(self):
        stream, _ = make_stream()
        received = []

        async def broken(change):
            raise RuntimeError("handler failure")

        async def handler(change):
            received.append(change)

        stream.handlers["realtime:public:households"] = [broken, handler]
        change = TableChange(table="households", event="INSERT", record_id="h1", record={"household_id": "h1"})

        await stream.dispatch("realtime:public:households", change)

        assert received == [change]

    async def test_close_releases_connections(self):
        stream, pubsub = make_stream()

        async def handler(change):
            pass

        await stream.subscribe("children", handler)
        await stream.close()

        pubsub.aclose.assert_awaited_once()
        assert stream.handlers == {}


@pytest.mark.asyncio
async def test_remote_adapter_subscribes_through_stream():
    """Test que l'adaptateur distant délègue l'abonnement au flux Redis."""
    stream, pubsub = make_stream()
    adapter = RemoteAdapter(base_url="http://remote.test", api_key="k", change_stream=stream)

    async def handler(change):
        pass

    unsubscribe = await adapter.subscribe_to_table("attendance", handler)

    pubsub.subscribe.assert_awaited_once_with("realtime:public:attendance")
    assert callable(unsubscribe)
    await adapter.close()
