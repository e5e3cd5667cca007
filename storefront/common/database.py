from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload

from .config import settings
from .db import Base, utcnow
from .validation import MAX_INT64
from ..cart.model import CartItem  # noqa: F401  (registers the table)
from ..inventory.model import Product
from ..orders.model import Order


# Async SQLAlchemy engine and session factory
engine = create_async_engine(settings.DB_URL, future=True, echo=settings.DB_ECHO)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncSession]:
    """Yield a session inside one transaction.

    Commits when the block exits normally and rolls back on any exception,
    so every write made through the session lands together or not at all.
    """
    async with AsyncSessionLocal() as session:
        async with session.begin():
            yield session


# -- Inventory store --------------------------------------------------------

def storable_id(value: int) -> bool:
    """True if `value` fits an INTEGER primary key; other ids cannot match a row."""
    return 0 <= value <= MAX_INT64


async def fetch_product(product_id: int) -> Optional[Dict[str, Any]]:
    if not storable_id(product_id):
        return None
    async with AsyncSessionLocal() as session:
        prod = await session.get(Product, product_id)
        return prod.as_dict() if prod else None


async def fetch_products() -> List[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Product).order_by(Product.id))
        return [prod.as_dict() for prod in res.scalars().all()]


async def get_product_stock(product_id: int) -> Optional[int]:
    if not storable_id(product_id):
        return None
    async with AsyncSessionLocal() as session:
        stmt = sa.select(Product.stock).where(Product.id == product_id)
        res = await session.execute(stmt)
        row = res.first()
        return int(row[0]) if row else None


async def get_product_stocks(product_ids: Iterable[int]) -> Dict[int, int]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    async with AsyncSessionLocal() as session:
        res = await session.execute(sa.select(Product.id, Product.stock).where(Product.id.in_(ids)))
        return {int(pid): int(stock) for pid, stock in res.all()}


async def update_product_stock(product_id: int, new_stock: int) -> bool:
    if not storable_id(product_id):
        return False
    async with transaction() as session:
        stmt = (
            sa.update(Product)
            .where(Product.id == product_id)
            .values(stock=new_stock)
            .execution_options(synchronize_session=False)
        )
        res = await session.execute(stmt)
        return (res.rowcount or 0) > 0


async def load_product(session: AsyncSession, product_id: int) -> Optional[Product]:
    if not storable_id(product_id):
        return None
    res = await session.execute(sa.select(Product).where(Product.id == product_id))
    return res.scalar_one_or_none()


async def reserve_stock(session: AsyncSession, product_id: int, quantity: int) -> bool:
    """Decrement stock only if it stays non-negative. Returns True on success."""
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return (res.rowcount or 0) > 0


async def release_stock(session: AsyncSession, product_id: int, quantity: int) -> bool:
    """Give stock back to a product. Returns False if the product is gone."""
    stmt = (
        sa.update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return (res.rowcount or 0) > 0


async def current_stock(session: AsyncSession, product_id: int) -> int:
    res = await session.execute(sa.select(Product.stock).where(Product.id == product_id))
    row = res.first()
    return int(row[0]) if row else 0


# -- Order ledger -----------------------------------------------------------

def _order_query(order_id: int, owner_id: Optional[str] = None):
    stmt = sa.select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
    if owner_id is not None:
        stmt = stmt.where(Order.user_id == owner_id)
    return stmt


async def load_order(session: AsyncSession, order_id: int, owner_id: Optional[str] = None) -> Optional[Order]:
    """Fetch an order with its items; ``owner_id`` restricts the lookup to that user."""
    if not storable_id(order_id):
        return None
    res = await session.execute(_order_query(order_id, owner_id))
    return res.scalar_one_or_none()


async def fetch_order(order_id: int, owner_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as session:
        order = await load_order(session, order_id, owner_id)
        return order.as_dict() if order else None


async def set_order_status(
    session: AsyncSession,
    order_id: int,
    status: str,
    unless_in: Iterable[str] = (),
) -> int:
    """Write a new status. Rows whose current status is in ``unless_in`` are left alone."""
    stmt = sa.update(Order).where(Order.id == order_id)
    excluded = list(unless_in)
    if excluded:
        stmt = stmt.where(Order.status.not_in(excluded))
    stmt = stmt.values(status=status, updated_at=utcnow()).execution_options(synchronize_session=False)
    res = await session.execute(stmt)
    return res.rowcount or 0


async def query_orders(
    owner_id: Optional[str],
    status: Optional[str],
    offset: int,
    limit: int,
) -> Tuple[List[Dict[str, Any]], int]:
    filters = []
    if owner_id is not None:
        filters.append(Order.user_id == owner_id)
    if status is not None:
        filters.append(Order.status == status)

    async with AsyncSessionLocal() as session:
        total_res = await session.execute(sa.select(sa.func.count(Order.id)).where(*filters))
        total = int(total_res.scalar() or 0)
        stmt = (
            sa.select(Order)
            .options(selectinload(Order.items))
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
        )
        res = await session.execute(stmt)
        return [order.as_dict() for order in res.scalars().all()], total
