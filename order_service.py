"""
Order service: checkout, fulfillment status updates, ratings, and the
vendor/customer views over the cached order list.

The cache is a full copy of the orders collection. It is refreshed from the
repository whenever the change feed reports a write, so a remote change
becomes visible here after the next notification.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from bson import ObjectId

from database import ORDERS_TABLE, OrderRepository
from errors import (
    ConcurrencyConflict,
    ConflictError,
    DuplicateOrderIdError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from schemas import CartSnapshot, CustomerInfo, LineItem, Order, OrderItemStatus, PaymentMethod
from status import derive_aggregate_status, initial_status

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 3


def new_order_id() -> str:
    return f"ORD{str(ObjectId()).upper()}"


def _newest_first(orders: List[Order]) -> List[Order]:
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


class OrderService:
    def __init__(self, repository: OrderRepository, id_factory: Callable[[], str] = new_order_id):
        self.repository = repository
        self.id_factory = id_factory
        self._orders: Dict[str, Order] = {}
        self._cache_lock = threading.RLock()
        self._order_locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ===================== Cache =====================

    def start(self) -> None:
        self.refresh()
        if self._unsubscribe is None:
            self._unsubscribe = self.repository.on_change(ORDERS_TABLE, lambda event: self.refresh())

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def refresh(self) -> None:
        """Merge a fresh read of the collection into the cache.

        The read may have been taken before one of our own writes landed, so
        a cached copy with a higher version wins over the fetched one. Orders
        missing from the read stay cached since orders are never deleted.
        """
        orders = self.repository.list_all()
        with self._cache_lock:
            for order in orders:
                current = self._orders.get(order.id)
                if current is None or current.version <= order.version:
                    self._orders[order.id] = order
        logger.debug("Order cache refreshed (%d orders)", len(orders))

    def _cached(self, order_id: str) -> Order:
        with self._cache_lock:
            order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def _store(self, order: Order) -> None:
        with self._cache_lock:
            current = self._orders.get(order.id)
            # a refresh may already have brought in a newer copy
            if current is None or current.version <= order.version:
                self._orders[order.id] = order

    def _reload(self, order_id: str) -> None:
        order = self.repository.get(order_id)
        with self._cache_lock:
            if order is None:
                self._orders.pop(order_id, None)
            else:
                self._orders[order_id] = order

    @contextmanager
    def _order_lock(self, order_id: str):
        """Serialize writers of one order. The entry is dropped once nobody holds or waits on it."""
        with self._locks_guard:
            entry = self._order_locks.setdefault(order_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._order_locks[order_id]

    # ===================== Checkout =====================

    def create_order(
        self,
        cart: CartSnapshot,
        customer: CustomerInfo,
        payment_method: PaymentMethod,
        note: Optional[str] = None,
    ) -> str:
        if not cart.items:
            raise ValidationError("Cart is empty")
        if not customer.name or not customer.name.strip():
            raise ValidationError("Customer name is required", field="customer_name")
        if not customer.id or not customer.id.strip():
            raise ValidationError("Customer id is required", field="customer_id")

        try:
            payment_method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}", field="payment_method")
        start_status = initial_status(payment_method)
        items = [
            LineItem(
                id=i.id,
                name=i.name,
                price=i.price,
                quantity=i.quantity,
                vendor=i.vendor,
                image_url=i.image_url,
                status=start_status,
            )
            for i in cart.items
        ]
        total = sum(item.subtotal for item in items)

        for attempt in range(1, MAX_ID_ATTEMPTS + 1):
            order = Order(
                id=self.id_factory(),
                table_number=cart.table_number,
                customer_name=customer.name.strip(),
                customer_id=customer.id.strip(),
                note=note or None,
                items=items,
                total_amount=total,
                status=start_status,
                payment_method=payment_method,
            )
            try:
                self.repository.insert(order)
            except DuplicateOrderIdError:
                # nothing was written, so trying again with a new id is safe
                logger.warning("Order id %s already taken (attempt %d)", order.id, attempt)
                if attempt == MAX_ID_ATTEMPTS:
                    raise
                continue
            self._store(order)
            logger.info(
                "Order %s created for %s: %d item(s), total %.2f, %s",
                order.id, order.customer_name, len(items), total, payment_method.value,
            )
            return order.id

    # ===================== Status updates =====================

    def _write_items(self, order: Order, items: List[LineItem]) -> Order:
        try:
            version = self.repository.update_items(order.id, items, order.version)
        except (ConcurrencyConflict, NotFoundError):
            self._reload(order.id)
            raise
        updated = order.model_copy(update={"items": items, "version": version})
        self._store(updated)
        return updated

    def update_item_status(
        self,
        order_id: str,
        item_id,
        new_status: OrderItemStatus,
        vendor_name: Optional[str] = None,
    ) -> None:
        """Move one line item to `new_status`, leaving its siblings untouched.

        When `vendor_name` is given the item must belong to that vendor.
        """
        new_status = OrderItemStatus(new_status)
        with self._order_lock(order_id):
            order = self._cached(order_id)
            index = next((n for n, item in enumerate(order.items) if str(item.id) == str(item_id)), None)
            if index is None:
                raise NotFoundError("Line item", f"{item_id} in order {order_id}")
            item = order.items[index]
            if vendor_name is not None and item.vendor != vendor_name:
                raise PermissionDeniedError(f"Item {item_id} of order {order_id} belongs to another vendor")
            if item.status == new_status:
                return

            items = list(order.items)
            items[index] = item.model_copy(update={"status": new_status})
            self._write_items(order, items)
        logger.info("Order %s item %s -> %s", order_id, item_id, new_status.value)

    def update_order_status(self, order_id: str, new_status: OrderItemStatus) -> None:
        """Set every item to `new_status` (e.g. cash payment confirmed at the register)."""
        new_status = OrderItemStatus(new_status)
        with self._order_lock(order_id):
            order = self._cached(order_id)
            if all(item.status == new_status for item in order.items):
                return
            items = [item.model_copy(update={"status": new_status}) for item in order.items]
            self._write_items(order, items)
        logger.info("Order %s -> %s", order_id, new_status.value)

    # ===================== Rating =====================

    def add_rating(self, order_id: str, rating: int) -> None:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer from 1 to 5", field="rating")
        with self._order_lock(order_id):
            order = self._cached(order_id)
            if derive_aggregate_status(order.items) != OrderItemStatus.COMPLETED:
                raise ValidationError(f"Order {order_id} can only be rated once it is completed")
            if order.rating is not None:
                raise ConflictError(f"Order {order_id} has already been rated")
            try:
                version = self.repository.update_rating(order_id, rating)
            except ConflictError:
                self._reload(order_id)
                raise
            self._store(order.model_copy(update={"rating": rating, "version": version}))
        logger.info("Order %s rated %d", order_id, rating)

    # ===================== Views =====================

    def _all(self) -> List[Order]:
        with self._cache_lock:
            return list(self._orders.values())

    @staticmethod
    def _with_status(order: Order) -> Order:
        return order.model_copy(update={"status": derive_aggregate_status(order.items)})

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._cache_lock:
            order = self._orders.get(order_id)
        return self._with_status(order) if order else None

    def list_orders(self) -> List[Order]:
        return [self._with_status(o) for o in _newest_first(self._all())]

    def get_customer_orders(self, customer_id: str) -> List[Order]:
        return [self._with_status(o) for o in _newest_first(self._all()) if o.customer_id == customer_id]

    def get_vendor_orders(self, vendor_name: str) -> List[Order]:
        """Orders containing at least one item from `vendor_name`.

        Each order is trimmed to that vendor's items and its total recomputed
        over them. The status stays the whole order's status.
        """
        views = []
        for order in _newest_first(self._all()):
            vendor_items = [item for item in order.items if item.vendor == vendor_name]
            if not vendor_items:
                continue
            views.append(order.model_copy(update={
                "items": vendor_items,
                "total_amount": sum(item.subtotal for item in vendor_items),
                "status": derive_aggregate_status(order.items),
            }))
        return views
