import asyncio
import logging
from decimal import Decimal

import sqlalchemy as sa

from .common.cache import PRODUCTS_LIST_KEY, invalidate
from .common.config import settings
from .common.database import init_db, transaction
from .inventory.model import Product

_logger = logging.getLogger(__name__)


SAMPLE_PRODUCTS = [
    {"name": "Laptop Pro 14", "stock": 20, "price": Decimal("1499.00")},
    {"name": "Wireless Mouse", "stock": 150, "price": Decimal("24.99")},
    {"name": "Mechanical Keyboard", "stock": 80, "price": Decimal("89.99")},
    {"name": "USB-C Hub", "stock": 120, "price": Decimal("39.99")},
    {"name": "Noise-cancelling Headphones", "stock": 35, "price": Decimal("199.99")},
    {"name": "4K Monitor 27\"", "stock": 25, "price": Decimal("329.99")},
    {"name": "Portable SSD 1TB", "stock": 60, "price": Decimal("99.99")},
    {"name": "Smartphone Charger 65W", "stock": 200, "price": Decimal("19.99")},
    {"name": "Webcam 1080p", "stock": 75, "price": Decimal("49.99")},
    {"name": "Bluetooth Speaker", "stock": 40, "price": Decimal("59.99")},
]


async def seed_products(products=SAMPLE_PRODUCTS) -> int:
    """Insert sample products that are not present yet (matched by name)."""
    added = 0
    async with transaction() as session:
        res = await session.execute(sa.select(Product.name))
        existing = set(res.scalars().all())
        for p in products:
            if p["name"] in existing:
                continue
            session.add(Product(name=p["name"], stock=p["stock"], price=p["price"]))
            added += 1
    if added:
        await invalidate(keys=[PRODUCTS_LIST_KEY])
    _logger.info("Seed complete. Added %s products.", added)
    return added


async def amain():
    logging.basicConfig(level=settings.LOG_LEVEL)
    await init_db()
    await seed_products()


def main():
    asyncio.run(amain())


if __name__ == "__main__":
    main()
