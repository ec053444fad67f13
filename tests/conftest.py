"""
Pytest configuration and shared fixtures.

Orders are stored in an in-memory mongomock collection; the FastAPI app gets
the test order service through a dependency override.
"""
from datetime import datetime, timezone
from typing import Generator

import mongomock
import pytest
from fastapi.testclient import TestClient

from cart import Cart
from database import MongoOrderRepository
from main import app, get_order_service
from notifications import ChangeFeed
from order_service import OrderService
from schemas import CartItem, CustomerInfo, LineItem, Order, PaymentMethod


# ── Storage Fixtures ─────────────────────────────────────────────────


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def orders_collection(mongo_client):
    return mongo_client["canteen_test"]["order"]


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def repository(orders_collection, feed) -> MongoOrderRepository:
    return MongoOrderRepository(orders_collection, feed=feed)


@pytest.fixture
def service(repository) -> Generator[OrderService, None, None]:
    svc = OrderService(repository)
    svc.start()
    yield svc
    svc.stop()


@pytest.fixture(scope="function")
def test_client(service) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_order_service] = lambda: service

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ── Sample Data ──────────────────────────────────────────────────────


@pytest.fixture
def customer() -> CustomerInfo:
    return CustomerInfo(name="Budi", id="CUST-001")


@pytest.fixture
def nasi_uduk() -> CartItem:
    return CartItem(id=1, name="Nasi Uduk", price=15000, quantity=2, vendor="Warung A")


@pytest.fixture
def es_teh() -> CartItem:
    return CartItem(id=7, name="Es Teh", price=5000, quantity=3, vendor="Warung B")


@pytest.fixture
def single_vendor_cart(nasi_uduk) -> Cart:
    cart = Cart(table_number="12")
    cart.add(nasi_uduk)
    cart.update_quantity(nasi_uduk.id, 2)
    return cart


@pytest.fixture
def two_vendor_cart(nasi_uduk, es_teh) -> Cart:
    cart = Cart(table_number="4")
    cart.add(nasi_uduk)
    cart.update_quantity(nasi_uduk.id, 2)
    cart.add(es_teh)
    cart.update_quantity(es_teh.id, 3)
    return cart


def make_order(order_id: str, created_at: datetime, items=None, **overrides) -> Order:
    """Build an Order directly, bypassing checkout."""
    items = items or [LineItem(id=1, name="Nasi Uduk", price=15000, quantity=1, vendor="Warung A")]
    fields = dict(
        id=order_id,
        table_number="1",
        customer_name="Sari",
        customer_id="CUST-002",
        items=items,
        total_amount=sum(i.price * i.quantity for i in items),
        payment_method=PaymentMethod.CASH,
        created_at=created_at,
    )
    fields.update(overrides)
    return Order(**fields)


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def utc():
    return lambda *args: datetime(*args, tzinfo=timezone.utc)
