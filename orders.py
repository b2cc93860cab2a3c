import math
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pymongo.database import Database

from database import get_db, oid
from errors import Forbidden, InvalidInput, NotFound
from order_flow import cancel_order, place_order, set_order_status
from schemas import ORDER_STATUSES, ShippingAddress
from security import get_current_user, require_admin
from stores import OrderStore, ProductStore

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderItemInput(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None


class OrderCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    items: List[OrderItemInput] = Field(..., min_length=1)
    shipping_address: ShippingAddress = Field(..., alias="shippingAddress")


class StatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str


def _orders(db: Database = Depends(get_db)) -> OrderStore:
    return OrderStore(db)


def _products(db: Database = Depends(get_db)) -> ProductStore:
    return ProductStore(db)


@router.post("", status_code=201)
def create_order(
    payload: OrderCreate,
    current_user: dict = Depends(get_current_user),
    orders: OrderStore = Depends(_orders),
    products: ProductStore = Depends(_products),
):
    # Resolve every id up front so a malformed one fails before any stock moves
    items = [
        {"productId": oid(i.product_id), "quantity": i.quantity, "size": i.size, "color": i.color}
        for i in payload.items
    ]
    order = place_order(products, orders, current_user["_id"], items, payload.shipping_address)
    return {"message": "Order created successfully", "order": orders.populate(order, with_customer=False)}


@router.get("/my-orders")
def my_orders(current_user: dict = Depends(get_current_user), orders: OrderStore = Depends(_orders)):
    return [orders.populate(o, with_customer=False) for o in orders.list_for_customer(current_user["_id"])]


@router.get("/admin/all")
def all_orders(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: dict = Depends(require_admin),
    orders: OrderStore = Depends(_orders),
):
    if status is not None and status not in ORDER_STATUSES:
        raise InvalidInput(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")
    items, total = orders.list(status=status, page=page, limit=limit)
    return {
        "orders": [orders.populate(o) for o in items],
        "totalPages": math.ceil(total / limit),
        "currentPage": page,
        "total": total,
    }


@router.get("/admin/stats")
def order_stats(_: dict = Depends(require_admin), orders: OrderStore = Depends(_orders)):
    return orders.stats()


@router.get("/{order_id}")
def get_order(order_id: str, current_user: dict = Depends(get_current_user), orders: OrderStore = Depends(_orders)):
    order = orders.find_by_id(oid(order_id))
    if not order:
        raise NotFound("Order not found")
    # Check if user is owner or admin
    if order["customer"] != current_user["_id"] and current_user.get("role") != "admin":
        raise Forbidden("Access denied")
    return orders.populate(order)


@router.patch("/{order_id}/cancel")
def cancel(
    order_id: str,
    current_user: dict = Depends(get_current_user),
    orders: OrderStore = Depends(_orders),
    products: ProductStore = Depends(_products),
):
    order = cancel_order(products, orders, oid(order_id), current_user)
    return {"message": "Order cancelled successfully", "order": orders.populate(order, with_customer=False)}


@router.patch("/{order_id}/status")
def update_status(
    order_id: str,
    payload: StatusUpdate,
    admin: dict = Depends(require_admin),
    orders: OrderStore = Depends(_orders),
):
    order = set_order_status(orders, oid(order_id), payload.status, admin)
    return {"message": "Order status updated successfully", "order": orders.populate(order)}
