"""Order status values and the rules that gate cancellation.

``pending`` is the initial state. An admin may move an order between any
two states; cancellation is only refused once an order is ``cancelled`` or
``delivered``.
"""
import enum
from typing import Any

from .errors import AlreadyCancelled, InvalidTransition, ValidationError


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def values(cls):
        return [member.value for member in cls]


# States from which CancelOrder is refused.
NON_CANCELLABLE = frozenset({OrderStatus.CANCELLED, OrderStatus.DELIVERED})


def parse_status(value: Any, field: str = "status") -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid {field}: {value!r}",
            errors=[{"field": field, "message": f"must be one of {', '.join(OrderStatus.values())}"}],
        ) from None


def check_cancellable(order_id: int, status: Any) -> None:
    current = parse_status(status)
    if current is OrderStatus.CANCELLED:
        raise AlreadyCancelled(order_id)
    if current is OrderStatus.DELIVERED:
        raise InvalidTransition(order_id, current.value, OrderStatus.CANCELLED.value, "Cannot cancel delivered order")


def leaves_terminal_state(current: Any, new: OrderStatus) -> bool:
    """True when an admin update moves an order out of a terminal state."""
    current = parse_status(current)
    return current in NON_CANCELLABLE and current is not new
