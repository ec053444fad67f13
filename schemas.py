"""
Database Schemas for the Canteen Ordering Backend

Each persisted Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., Order -> "order").
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class OrderItemStatus(str, Enum):
    """Fulfillment progress of a line item, in order."""
    ORDER_PLACED = "Order Placed"
    PAYMENT_CONFIRMED = "Payment Confirmed"
    COMPLETED = "Completed"


class PaymentMethod(str, Enum):
    QRIS = "qris"
    CASH = "cash"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LineItem(BaseModel):
    id: Union[int, str] = Field(..., description="Catalog menu item id (not unique across orders)")
    name: str = Field(..., description="Menu item name at checkout time")
    price: float = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., gt=0)
    vendor: str = Field(..., description="Vendor that prepares this item")
    image_url: Optional[str] = None
    status: OrderItemStatus = OrderItemStatus.ORDER_PLACED

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class Order(BaseModel):
    id: str = Field(..., description="Order id, unique across all orders")
    table_number: str = Field("", description="Table the order is served to")
    customer_name: str
    customer_id: str
    note: Optional[str] = None
    items: List[LineItem] = Field(..., min_length=1, description="Line items in cart order")
    total_amount: float = Field(..., ge=0, description="Sum of price * quantity at creation")
    status: OrderItemStatus = Field(OrderItemStatus.ORDER_PLACED, description="Aggregate status, derived from items")
    payment_method: PaymentMethod
    created_at: datetime = Field(default_factory=utcnow)
    rating: Optional[int] = Field(None, ge=1, le=5)
    version: int = Field(0, ge=0, description="Incremented on every item write")


# ===================== Checkout inputs =====================

class CartItem(BaseModel):
    id: Union[int, str]
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, gt=0)
    vendor: str
    image_url: Optional[str] = None


class CartSnapshot(BaseModel):
    """Cart contents at the moment of checkout."""
    items: List[CartItem] = []
    total_amount: float = 0.0
    table_number: str = ""


class CustomerInfo(BaseModel):
    name: str = ""
    id: str = ""


# ===================== Reports =====================

class VendorStats(BaseModel):
    revenue_today: float = 0.0
    active_orders: int = 0
    rating_count: int = 0
    average_rating: float = 0.0


class MonthlyRevenue(BaseModel):
    month: str
    revenue: float = 0.0


class AdminStats(BaseModel):
    total_revenue: float = 0.0
    order_count: int = 0
    recent_orders: List[Order] = []
    monthly_revenue: List[MonthlyRevenue] = []
