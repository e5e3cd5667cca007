from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ..common.db import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "stock": self.stock,
            "price": format_amount(self.price),
            "image_url": self.image_url,
        }


def format_amount(value) -> str:
    """Render a money amount with two decimal places, e.g. ``"20.00"``."""
    return str(Decimal(value).quantize(Decimal("0.01")))
