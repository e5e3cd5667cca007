"""Tests for order lifecycle events sent to Kafka."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from storefront.common import kafka_client
from storefront.orders import events, service

ORDER = {
    "id": 5,
    "user_id": "user-1",
    "status": "pending",
    "total_amount": "20.00",
    "items": [{"product_id": 1, "quantity": 2, "price": "10.00"}],
}


def test_build_event_carries_order_snapshot():
    event = events.build_event(events.ORDER_PLACED, ORDER)

    assert event["type"] == "order.placed"
    assert event["order_id"] == 5
    assert event["total_amount"] == "20.00"
    assert event["items"] == ORDER["items"]
    assert "occurred_at" in event


@pytest.mark.asyncio
async def test_publish_sends_keyed_message(monkeypatch):
    producer = MagicMock()
    producer.send_and_wait = AsyncMock(return_value=None)
    monkeypatch.setattr(events, "get_producer", AsyncMock(return_value=producer))

    assert await events.publish_order_event(events.ORDER_CANCELLED, ORDER) is True

    topic, payload = producer.send_and_wait.await_args.args
    assert topic == "order-events"
    assert json.loads(payload)["type"] == "order.cancelled"
    assert producer.send_and_wait.await_args.kwargs["key"] == b"5"


@pytest.mark.asyncio
async def test_broker_outage_is_reported_not_raised(monkeypatch):
    monkeypatch.setattr(events, "get_producer", AsyncMock(side_effect=ConnectionError("kafka down")))

    assert await events.publish_order_event(events.ORDER_PLACED, ORDER) is False


@pytest.mark.asyncio
async def test_disabled_events_are_skipped(monkeypatch):
    get_producer = AsyncMock()
    monkeypatch.setattr(events, "get_producer", get_producer)
    monkeypatch.setattr(events.settings, "ORDER_EVENTS_ENABLED", False)

    assert await events.publish_order_event(events.ORDER_PLACED, ORDER) is False
    get_producer.assert_not_awaited()


@pytest.mark.asyncio
async def test_failure_suspends_publishing_for_cooldown(monkeypatch):
    get_producer = AsyncMock(side_effect=ConnectionError("kafka down"))
    monkeypatch.setattr(events, "get_producer", get_producer)
    monkeypatch.setattr(events, "_suspended_until", 0.0)

    assert await events.publish_order_event(events.ORDER_PLACED, ORDER) is False
    assert await events.publish_order_event(events.ORDER_PLACED, ORDER) is False

    assert get_producer.await_count == 1


@pytest.mark.asyncio
async def test_emit_does_not_wait_for_broker(monkeypatch):
    release = asyncio.Event()

    async def _hanging_producer():
        await release.wait()
        raise ConnectionError("kafka down")

    monkeypatch.setattr(events, "get_producer", _hanging_producer)
    monkeypatch.setattr(events, "_suspended_until", 0.0)

    task = events.emit_order_event(events.ORDER_PLACED, ORDER)

    assert not task.done()
    assert events.pending_events() == 1
    release.set()
    assert await task is False
    assert events.pending_events() == 0


@pytest.mark.asyncio
async def test_place_order_returns_while_broker_hangs(make_product, monkeypatch):
    async def _hanging_producer():
        await asyncio.sleep(60)

    monkeypatch.setattr(service, "emit_order_event", events.emit_order_event)
    monkeypatch.setattr(events, "get_producer", _hanging_producer)
    monkeypatch.setattr(events.settings, "KAFKA_PUBLISH_TIMEOUT", 60.0)
    pid = await make_product(stock=2)

    started = time.monotonic()
    order = await service.place_order("user-1", [{"product_id": pid, "quantity": 1}], "123 Main St")
    elapsed = time.monotonic() - started

    assert order["status"] == "pending"
    assert elapsed < 2.0
    assert events.pending_events() == 1

    await events.drain_pending_events(timeout=0)
    assert events.pending_events() == 0


@pytest.mark.asyncio
async def test_drain_waits_for_sends_in_flight(monkeypatch):
    producer = MagicMock()
    producer.send_and_wait = AsyncMock(return_value=None)
    monkeypatch.setattr(events, "get_producer", AsyncMock(return_value=producer))
    monkeypatch.setattr(events, "_suspended_until", 0.0)

    events.emit_order_event(events.ORDER_CANCELLED, ORDER)
    await events.drain_pending_events(timeout=1.0)

    assert events.pending_events() == 0
    producer.send_and_wait.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_producer_start_is_stopped(monkeypatch):
    producer = MagicMock()
    producer.start = AsyncMock(side_effect=ConnectionError("no brokers"))
    producer.stop = AsyncMock()
    monkeypatch.setattr(kafka_client, "AIOKafkaProducer", MagicMock(return_value=producer))
    monkeypatch.setattr(kafka_client, "_producer", None)
    monkeypatch.setattr(kafka_client.settings, "KAFKA_CONNECT_RETRIES", 1)

    with pytest.raises(ConnectionError):
        await kafka_client.get_producer()

    producer.stop.assert_awaited_once()
    assert kafka_client._producer is None
