import asyncio
import json
import logging
from typing import Optional

from quart import Blueprint, Response, request

from ..common.cache import CACHE_ERRORS
from ..common.config import settings
from ..common.redis_client import get_redis

_logger = logging.getLogger(__name__)

bp = Blueprint("realtime", __name__)


async def _close_pubsub(pubsub) -> None:
    if pubsub is None:
        return
    try:
        await pubsub.unsubscribe(settings.REDIS_STOCK_CHANNEL)
        await pubsub.aclose()
    except CACHE_ERRORS as e:
        _logger.debug("Ignoring pubsub close error: %s", e)


def format_stock_event(data, product_id: Optional[int] = None) -> Optional[str]:
    """Render one pub/sub message as an SSE frame, or None if it is filtered out."""
    try:
        payload = json.loads(data) if isinstance(data, str) else data
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    if product_id is not None and payload.get("product_id") != product_id:
        return None
    return f"event: stock\ndata: {json.dumps(payload)}\n\n"


@bp.get("/events")
async def sse_events():
    product_id = request.args.get("product_id", type=int)

    async def gen():
        pubsub = None
        backoff = 1.0
        # Advise client on retry
        yield "retry: 3000\n\n"
        try:
            while True:
                try:
                    if pubsub is None:
                        r = await get_redis()
                        pubsub = r.pubsub(ignore_subscribe_messages=True)
                        await pubsub.subscribe(settings.REDIS_STOCK_CHANNEL)
                    message = await pubsub.get_message(timeout=5.0)
                    if message:
                        frame = format_stock_event(message.get("data"), product_id)
                        if frame:
                            yield frame
                    else:
                        # Keep-alive to prevent closes by proxies
                        yield ": keep-alive\n\n"
                    backoff = 1.0
                except CACHE_ERRORS as e:
                    _logger.warning("Stock stream lost Redis, retrying in %ss | err=%s", int(backoff), e)
                    yield f": redis-error, retrying in {int(backoff)}s\n\n"
                    await _close_pubsub(pubsub)
                    pubsub = None
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 15.0)
        finally:
            await _close_pubsub(pubsub)

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "Connection": "keep-alive",
    }
    return Response(gen(), mimetype="text/event-stream", headers=headers)
