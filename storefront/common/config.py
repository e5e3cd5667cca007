import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    INSTANCE_ID: str = os.getenv("INSTANCE_ID", "unknown")

    # Database (SQLite by default in a Docker volume)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:////data/data.db")
    DB_ECHO: bool = _get_bool("DB_ECHO", False)
    SEED_ON_STARTUP: bool = _get_bool("SEED_ON_STARTUP", True)

    # Redis
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)
    REDIS_STOCK_CHANNEL: str = os.getenv("REDIS_STOCK_CHANNEL", "stock-updates")

    # Cache TTLs (seconds)
    PRODUCT_CACHE_TTL: int = int(os.getenv("PRODUCT_CACHE_TTL", "600"))
    ORDERS_CACHE_TTL: int = int(os.getenv("ORDERS_CACHE_TTL", "300"))
    CART_CACHE_TTL: int = int(os.getenv("CART_CACHE_TTL", "300"))

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
    KAFKA_CONNECT_RETRIES: int = int(os.getenv("KAFKA_CONNECT_RETRIES", "8"))
    KAFKA_PUBLISH_TIMEOUT: float = float(os.getenv("KAFKA_PUBLISH_TIMEOUT", "5.0"))
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "order-events")
    ORDER_EVENTS_ENABLED: bool = _get_bool("ORDER_EVENTS_ENABLED", True)
    ORDER_EVENTS_COOLDOWN: float = float(os.getenv("ORDER_EVENTS_COOLDOWN", "30.0"))

    # Pagination
    DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    MAX_PAGE_SIZE: int = int(os.getenv("MAX_PAGE_SIZE", "100"))


settings = Settings()
