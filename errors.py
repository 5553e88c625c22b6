"""Exceptions raised by the order core."""
from typing import Optional


class OrderCoreError(Exception):
    """Base exception for all order core errors."""

    pass


class NotFound(OrderCoreError):
    """Raised when a referenced order or product does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")


class Forbidden(OrderCoreError):
    """Raised for suspended accounts, non-owners and insufficient roles."""

    def __init__(self, message: str, reason: Optional[str] = None):
        self.reason = reason
        super().__init__(message)


class InvalidTransition(OrderCoreError):
    """Raised when an order is not in a state that allows the requested change."""

    def __init__(self, order_id: str, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from {current} to {target}")


class InsufficientStock(OrderCoreError):
    """Raised when an order asks for more units than are available."""

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__("Order quantity exceeds available quantity")


class BelowMinimumOrder(OrderCoreError):
    """Raised when an order asks for fewer units than the product's moq."""

    def __init__(self, product_id: str, requested: int, moq: int):
        self.product_id = product_id
        self.requested = requested
        self.moq = moq
        super().__init__(f"Minimum order quantity is {moq}")


class GatewayUnavailable(OrderCoreError):
    """Raised when the payment provider call fails or times out."""

    def __init__(self, operation: str, cause: Optional[str] = None):
        self.operation = operation
        msg = f"Payment gateway unavailable during {operation}"
        if cause:
            msg = f"{msg} ({cause})"
        super().__init__(msg)
