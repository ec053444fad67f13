import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

import config
from database import db, get_order_repository
from errors import NotFoundError, PersistenceError
from notifications import ChangeFeed, ChangeStreamWatcher
from order_service import OrderService
from reports import admin_stats, vendor_stats
from schemas import AdminStats, CartItem, CartSnapshot, CustomerInfo, Order, OrderItemStatus, PaymentMethod, VendorStats

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_service: Optional[OrderService] = None
_watcher: Optional[ChangeStreamWatcher] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load the order cache and hook up change notification."""
    global _service, _watcher
    if db is not None:
        feed = ChangeFeed()
        repository = get_order_repository(feed)
        _service = OrderService(repository)
        _service.start()
        logger.info("Order service started")
        if config.ORDERS_CHANGE_STREAM:
            _watcher = ChangeStreamWatcher(repository.collection, feed)
            _watcher.start()
    else:
        logger.warning("Database not configured, order endpoints are unavailable")

    yield

    if _watcher is not None:
        _watcher.stop()
        _watcher = None
    if _service is not None:
        _service.stop()
        _service = None


app = FastAPI(title="Canteen Ordering API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_order_service() -> OrderService:
    if _service is None:
        raise PersistenceError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return _service


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Canteen Ordering API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


# ===================== Orders =====================
class CreateOrderRequest(BaseModel):
    items: List[CartItem]
    table_number: str = ""
    customer_name: str
    customer_id: str
    payment_method: PaymentMethod
    note: Optional[str] = None


class CreateOrderResponse(BaseModel):
    id: str
    total_amount: float
    status: OrderItemStatus


class UpdateOrderStatusRequest(BaseModel):
    status: OrderItemStatus


class UpdateItemStatusRequest(BaseModel):
    status: OrderItemStatus
    vendor: Optional[str] = Field(None, description="Acting vendor; the item must belong to it")


class RatingRequest(BaseModel):
    rating: int


@app.post("/orders", response_model=CreateOrderResponse)
def create_order(payload: CreateOrderRequest, service: OrderService = Depends(get_order_service)):
    cart = CartSnapshot(
        items=payload.items,
        total_amount=sum(i.price * i.quantity for i in payload.items),
        table_number=payload.table_number,
    )
    customer = CustomerInfo(name=payload.customer_name, id=payload.customer_id)
    order_id = service.create_order(cart, customer, payload.payment_method, note=payload.note)
    order = service.get_order(order_id)
    return CreateOrderResponse(id=order_id, total_amount=order.total_amount, status=order.status)


@app.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: str, service: OrderService = Depends(get_order_service)):
    order = service.get_order(order_id)
    if not order:
        raise NotFoundError("Order", order_id)
    return order


@app.get("/orders", response_model=List[Order])
def list_customer_orders(customer_id: str, service: OrderService = Depends(get_order_service)):
    return service.get_customer_orders(customer_id)


@app.put("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: UpdateOrderStatusRequest, service: OrderService = Depends(get_order_service)):
    service.update_order_status(order_id, payload.status)
    return {"updated": True, "status": service.get_order(order_id).status}


@app.put("/orders/{order_id}/items/{item_id}/status")
def update_item_status(
    order_id: str,
    item_id: str,
    payload: UpdateItemStatusRequest,
    service: OrderService = Depends(get_order_service),
):
    service.update_item_status(order_id, item_id, payload.status, vendor_name=payload.vendor)
    return {"updated": True, "status": service.get_order(order_id).status}


@app.post("/orders/{order_id}/rating")
def rate_order(order_id: str, payload: RatingRequest, service: OrderService = Depends(get_order_service)):
    service.add_rating(order_id, payload.rating)
    return {"rated": True, "rating": payload.rating}


# ===================== Vendors =====================
@app.get("/vendors/{vendor_name}/orders", response_model=List[Order])
def list_vendor_orders(vendor_name: str, service: OrderService = Depends(get_order_service)):
    return service.get_vendor_orders(vendor_name)


@app.get("/vendors/{vendor_name}/stats", response_model=VendorStats)
def get_vendor_stats(vendor_name: str, service: OrderService = Depends(get_order_service)):
    return vendor_stats(service.get_vendor_orders(vendor_name))


# ===================== Admin =====================
@app.get("/admin/orders", response_model=List[Order])
def list_all_orders(service: OrderService = Depends(get_order_service)):
    return service.list_orders()


@app.get("/admin/stats", response_model=AdminStats)
def get_admin_stats(service: OrderService = Depends(get_order_service)):
    return admin_stats(service.list_orders())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
