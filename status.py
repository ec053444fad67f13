"""
Order status rules.

Every line item carries its own status (Order Placed, Payment Confirmed,
Completed), set by its vendor. The order-level status is always derived from
the items and is never stored.
"""
from typing import Iterable

from schemas import LineItem, OrderItemStatus, PaymentMethod


def derive_aggregate_status(items: Iterable[LineItem]) -> OrderItemStatus:
    """Aggregate status of an order.

    Completed only when every item is completed. A single confirmed (or
    completed) item makes the whole order Payment Confirmed, since payment
    is settled once per order while completion is tracked per vendor.
    """
    statuses = [item.status for item in items]
    if not statuses:
        raise ValueError("an order must contain at least one item")
    if all(s == OrderItemStatus.COMPLETED for s in statuses):
        return OrderItemStatus.COMPLETED
    if any(s in (OrderItemStatus.PAYMENT_CONFIRMED, OrderItemStatus.COMPLETED) for s in statuses):
        return OrderItemStatus.PAYMENT_CONFIRMED
    return OrderItemStatus.ORDER_PLACED


def initial_status(payment_method: PaymentMethod) -> OrderItemStatus:
    # QRIS is paid online before the order is submitted
    if PaymentMethod(payment_method) == PaymentMethod.QRIS:
        return OrderItemStatus.PAYMENT_CONFIRMED
    return OrderItemStatus.ORDER_PLACED
