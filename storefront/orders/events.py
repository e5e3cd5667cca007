import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Set

from ..common.config import settings
from ..common.db import utcnow
from ..common.kafka_client import get_producer

_logger = logging.getLogger(__name__)

ORDER_PLACED = "order.placed"
ORDER_CANCELLED = "order.cancelled"
ORDER_STATUS_CHANGED = "order.status_changed"

# Sends still in flight; drained on shutdown.
_pending: Set[asyncio.Task] = set()
# Monotonic deadline before which publishing is skipped after a broker failure.
_suspended_until = 0.0


def build_event(event_type: str, order: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": event_type,
        "order_id": order["id"],
        "user_id": order["user_id"],
        "status": order["status"],
        "total_amount": order["total_amount"],
        "items": order["items"],
        "occurred_at": utcnow().isoformat(),
    }


async def publish_order_event(event_type: str, order: Dict[str, Any]) -> bool:
    """Send an order lifecycle event to Kafka, keyed by order id.

    Delivery is best effort: the order is already committed, so a broker
    outage is logged and reported as ``False`` rather than raised. After a
    failure further events are dropped for ``ORDER_EVENTS_COOLDOWN`` seconds
    instead of retrying the broker on every request.
    """
    global _suspended_until
    if not settings.ORDER_EVENTS_ENABLED:
        return False
    if time.monotonic() < _suspended_until:
        _logger.debug("Order event dropped, publishing suspended | type=%s order_id=%s", event_type, order["id"])
        return False
    payload = json.dumps(build_event(event_type, order)).encode("utf-8")
    key = str(order["id"]).encode("utf-8")
    try:
        producer = await asyncio.wait_for(get_producer(), timeout=settings.KAFKA_PUBLISH_TIMEOUT)
        await asyncio.wait_for(
            producer.send_and_wait(settings.ORDER_EVENTS_TOPIC, payload, key=key),
            timeout=settings.KAFKA_PUBLISH_TIMEOUT,
        )
    except Exception as e:
        _suspended_until = time.monotonic() + settings.ORDER_EVENTS_COOLDOWN
        _logger.warning(
            "Order event publish failed, suspending for %ss | type=%s order_id=%s err=%s",
            settings.ORDER_EVENTS_COOLDOWN,
            event_type,
            order["id"],
            e,
        )
        return False
    _logger.info("Published order event | type=%s order_id=%s", event_type, order["id"])
    return True


def emit_order_event(event_type: str, order: Dict[str, Any]) -> Optional[asyncio.Task]:
    """Schedule ``publish_order_event`` without waiting for the broker."""
    if not settings.ORDER_EVENTS_ENABLED:
        return None
    task = asyncio.get_running_loop().create_task(publish_order_event(event_type, order))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def pending_events() -> int:
    return len(_pending)


async def drain_pending_events(timeout: float) -> None:
    """Wait up to ``timeout`` seconds for in-flight sends, then cancel the rest."""
    if not _pending:
        return
    _, unfinished = await asyncio.wait(set(_pending), timeout=timeout)
    for task in unfinished:
        task.cancel()
    if unfinished:
        _logger.warning("Dropped %s order events still in flight at shutdown", len(unfinished))
        await asyncio.gather(*unfinished, return_exceptions=True)
