"""Order domain errors.

Raised by the service layer when a business rule is violated; the app's
error handler turns them into JSON responses.
"""
from typing import Any, Dict, List, Optional


class OrderError(Exception):
    code = "order_error"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {"ok": False, "error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class ValidationError(OrderError):
    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message, errors=errors or [])
        self.errors = errors or []


class AuthenticationRequired(OrderError):
    code = "authentication_required"
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class NotAuthorized(OrderError):
    code = "not_authorized"
    status_code = 403

    def __init__(self, message: str = "Not authorized to perform this action") -> None:
        super().__init__(message)


class NotFound(OrderError):
    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, identifier: Any) -> None:
        super().__init__(f"{resource} not found", resource=resource.lower(), id=identifier)


class ProductNotFound(OrderError):
    code = "product_not_found"
    status_code = 404

    def __init__(self, product_id: int) -> None:
        super().__init__(f"Product with ID {product_id} not found", product_id=product_id)
        self.product_id = product_id


class InsufficientStock(OrderError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int, name: Optional[str] = None) -> None:
        label = name or f"ID {product_id}"
        super().__init__(
            f"Insufficient stock for product {label}. Requested: {requested}, available: {available}",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class AlreadyCancelled(OrderError):
    code = "already_cancelled"
    status_code = 400

    def __init__(self, order_id: int) -> None:
        super().__init__("Order is already cancelled", order_id=order_id)


class InvalidTransition(OrderError):
    code = "invalid_transition"
    status_code = 400

    def __init__(self, order_id: int, current: str, requested: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Cannot move order from {current} to {requested}",
            order_id=order_id,
            current_status=current,
            requested_status=requested,
        )
