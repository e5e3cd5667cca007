import logging
import time

import sqlalchemy as sa
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from quart import Quart, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .cart.controller import bp as cart_bp
from .common.cache import CACHE_ERRORS
from .common.config import settings
from .common.database import engine, init_db
from .common.db import utcnow
from .common.kafka_client import close_producer
from .common.metrics import REQUEST_COUNT, REQUEST_LATENCY, normalize_endpoint
from .common.redis_client import close_redis, get_redis
from .inventory.controller import bp as inventory_bp
from .orders.controller import bp as orders_bp
from .orders.errors import OrderError
from .orders.events import drain_pending_events
from .realtime.controller import bp as realtime_bp
from .seed import seed_products

log = logging.getLogger(__name__)


async def _probe_database() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(sa.text("SELECT 1"))
    except SQLAlchemyError as e:
        log.warning("Health check: database unavailable | err=%s", e)
        return False
    return True


async def _probe_redis() -> bool:
    try:
        r = await get_redis()
        await r.ping()
    except CACHE_ERRORS as e:
        log.warning("Health check: redis unavailable | err=%s", e)
        return False
    return True


def create_app() -> Quart:
    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(realtime_bp)

    @app.errorhandler(OrderError)
    async def handle_order_error(error: OrderError):
        return jsonify(error.to_dict()), error.status_code

    @app.before_request
    async def before_request():
        request._start_time = time.time()
        log.debug("[Instance %s] %s %s", settings.INSTANCE_ID, request.method, request.path)

    @app.after_request
    async def after_request(response):
        if hasattr(request, "_start_time"):
            duration = time.time() - request._start_time
            endpoint = normalize_endpoint(request.path)
            REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
            REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=str(response.status_code)).inc()
        response.headers["X-Instance-ID"] = settings.INSTANCE_ID
        return response

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health():
        database_ok = await _probe_database()
        redis_ok = await _probe_redis()
        healthy = database_ok and redis_ok
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": utcnow().isoformat(),
            "services": {
                "database": "connected" if database_ok else "unavailable",
                "redis": "connected" if redis_ok else "unavailable",
            },
        }
        return jsonify(body), 200 if healthy else 503

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL)
        log.info("Initializing database...")
        await init_db()
        if settings.SEED_ON_STARTUP:
            await seed_products()
        log.info("Database ready.")

    @app.after_serving
    async def shutdown():
        await drain_pending_events(settings.KAFKA_PUBLISH_TIMEOUT)
        await close_producer()
        await close_redis()
        await engine.dispose()
        log.info("Shutdown complete.")

    return app
