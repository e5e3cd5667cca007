import asyncio
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from .config import settings

_logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None
_producer_lock = asyncio.Lock()


async def _discard(producer: AIOKafkaProducer) -> None:
    try:
        await producer.stop()
    except Exception as e:
        _logger.debug("Ignoring error while stopping failed producer | err=%s", e)


async def get_producer() -> AIOKafkaProducer:
    global _producer
    if _producer is None:
        async with _producer_lock:
            if _producer is None:
                backoff = 1.0
                last_exc: Optional[BaseException] = None
                retries = settings.KAFKA_CONNECT_RETRIES
                for attempt in range(retries):
                    producer = None
                    try:
                        producer = AIOKafkaProducer(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
                        await producer.start()
                        _producer = producer
                        break
                    except Exception as e:
                        last_exc = e
                        _logger.warning("Kafka producer start failed | attempt=%s err=%s", attempt + 1, e)
                        if producer is not None:
                            await _discard(producer)
                        if attempt + 1 < retries:
                            await asyncio.sleep(backoff)
                            backoff = min(backoff * 2, 30.0)
                if _producer is None:
                    raise last_exc or RuntimeError("Kafka producer start failed")
    return _producer


async def close_producer() -> None:
    global _producer
    if _producer is not None:
        await _producer.stop()
        _producer = None
