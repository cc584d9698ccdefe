import asyncio

import pytest
from fastapi.websockets import WebSocketDisconnect

from conftest import ADMIN
from realtime import CLOSED, ChangeBroadcaster, broadcaster


def test_publish_reaches_subscribers():
    async def scenario():
        hub = ChangeBroadcaster()
        first, second = hub.subscribe(), hub.subscribe()
        hub.publish("order", "INSERT")
        return await hub.next_change(first, 1), await hub.next_change(second, 1)

    assert asyncio.run(scenario()) == ({"table": "order", "event": "INSERT"},) * 2


def test_unwatched_tables_are_ignored():
    async def scenario():
        hub = ChangeBroadcaster()
        queue = hub.subscribe()
        hub.publish("cart", "UPDATE")
        await asyncio.sleep(0)
        return queue.qsize()

    assert asyncio.run(scenario()) == 0


def test_unsubscribed_queue_gets_nothing():
    async def scenario():
        hub = ChangeBroadcaster()
        queue = hub.subscribe()
        hub.unsubscribe(queue)
        hub.publish("product", "DELETE")
        await asyncio.sleep(0)
        return queue.qsize(), hub.subscriber_count

    assert asyncio.run(scenario()) == (0, 0)


def test_full_queue_drops_subscriber():
    async def scenario():
        hub = ChangeBroadcaster(queue_size=1)
        queue = hub.subscribe()
        for _ in range(3):
            hub.publish("coupon", "UPDATE")
        await asyncio.sleep(0)
        return hub.subscriber_count, await hub.next_change(queue, 1), queue.qsize()

    assert asyncio.run(scenario()) == (0, CLOSED, 0)


def test_next_change_timeout():
    async def scenario():
        hub = ChangeBroadcaster()
        await hub.next_change(hub.subscribe(), 0.01)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(scenario())


def test_websocket_streams_catalog_changes(client):
    with client.websocket_connect("/ws/changes") as ws:
        res = client.post(
            "/api/admin/products",
            json={"name": "Boxy Tee", "category": "T-Shirts", "price": 749.0},
            headers=ADMIN,
        )
        assert res.status_code == 200
        assert ws.receive_json() == {"table": "product", "event": "INSERT"}

        client.patch(f"/api/admin/products/{res.json()['id']}", json={"price": 799.0}, headers=ADMIN)
        assert ws.receive_json() == {"table": "product", "event": "UPDATE"}


def test_websocket_streams_settings_changes(client):
    with client.websocket_connect("/ws/changes") as ws:
        client.put("/api/admin/settings/payment-qr", json={"image": "https://cdn.55.in/qr.png"}, headers=ADMIN)
        assert ws.receive_json() == {"table": "app_settings", "event": "UPDATE"}


def test_websocket_closes_when_subscriber_falls_behind(client, monkeypatch):
    monkeypatch.setattr(broadcaster, "queue_size", 1)

    def burst():
        # runs on the server loop, so all three land before the socket drains one
        for _ in range(3):
            broadcaster.publish("order", "INSERT")

    with client.websocket_connect("/ws/changes") as ws:
        assert broadcaster.subscriber_count == 1
        client.portal.call(burst)
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 1013
    assert broadcaster.subscriber_count == 0
