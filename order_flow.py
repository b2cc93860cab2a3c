"""Order placement and cancellation with stock reconciliation."""
import logging
from typing import Any, Dict, List, Tuple

from bson import ObjectId

from errors import Forbidden, InsufficientStock, InvalidInput, InvalidState, NotFound
from schemas import CANCELLABLE_STATUSES, ORDER_STATUSES, Order, OrderItem, ShippingAddress
from stores import OrderStore, ProductStore

logger = logging.getLogger(__name__)


def _release(products: ProductStore, reserved: List[Tuple[ObjectId, int]]) -> None:
    for product_id, quantity in reversed(reserved):
        try:
            products.restore_stock(product_id, quantity)
        except Exception:
            logger.exception("Failed to restore %d unit(s) of product %s", quantity, product_id)


def place_order(
    products: ProductStore,
    orders: OrderStore,
    customer_id: ObjectId,
    items: List[Dict[str, Any]],
    shipping_address: ShippingAddress,
) -> dict:
    """Reserve stock for every item in order, then record a pending order.

    `items` are dicts with productId, quantity, size and color. Each product is
    decremented with a single conditional write; if any item cannot be reserved,
    or the order cannot be written, every reservation made so far is released.
    """
    if not items:
        raise InvalidInput("Order must contain at least one item")

    reserved: List[Tuple[ObjectId, int]] = []
    order_items: List[OrderItem] = []
    total_amount = 0.0
    try:
        for item in items:
            product_id = item["productId"]
            quantity = item["quantity"]
            product = products.reserve_stock(product_id, quantity)
            if product is None:
                existing = products.find_by_id(product_id)
                if existing is None:
                    raise NotFound(f"Product not found: {product_id}")
                raise InsufficientStock(existing.get("name", str(product_id)), existing.get("stock", 0))
            reserved.append((product_id, quantity))

            price = product["price"]
            total_amount += price * quantity
            order_items.append(
                OrderItem(
                    product=product_id,
                    quantity=quantity,
                    size=item.get("size"),
                    color=item.get("color"),
                    price=price,
                )
            )

        order = Order(
            customer=customer_id,
            items=order_items,
            totalAmount=total_amount,
            shippingAddress=shipping_address,
        )
        created = orders.create(order)
    except Exception:
        if reserved:
            logger.warning("Order for customer %s failed, releasing %d reservation(s)", customer_id, len(reserved))
            _release(products, reserved)
        raise

    logger.info("Order %s placed by %s, total %.2f", created["_id"], customer_id, total_amount)
    return created


def cancel_order(products: ProductStore, orders: OrderStore, order_id: ObjectId, requester: dict) -> dict:
    order = orders.find_by_id(order_id)
    if not order:
        raise NotFound("Order not found")
    if order["customer"] != requester["_id"]:
        raise Forbidden("Access denied")
    if order["status"] not in CANCELLABLE_STATUSES:
        raise InvalidState("Cannot cancel order at this stage")

    # The status check is repeated inside the write so only one cancel restores stock
    updated = orders.transition_if(order_id, CANCELLABLE_STATUSES, "cancelled")
    if updated is None:
        if orders.find_by_id(order_id) is None:
            raise NotFound("Order not found")
        raise InvalidState("Cannot cancel order at this stage")

    # Each restore is independent; one failure does not stop the rest.
    for item in order.get("items", []):
        try:
            if not products.restore_stock(item["product"], item["quantity"]):
                logger.warning("Product %s no longer exists, stock not restored", item["product"])
        except Exception:
            logger.exception("Failed to restore stock for product %s on order %s", item["product"], order_id)

    logger.info("Order %s cancelled by %s", order_id, requester.get("email"))
    return updated


def set_order_status(orders: OrderStore, order_id: ObjectId, status: str, admin: dict) -> dict:
    """Admin override: any known status, no ordering check and no stock changes."""
    if status not in ORDER_STATUSES:
        raise InvalidInput(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")
    updated = orders.set_status(order_id, status)
    if not updated:
        raise NotFound("Order not found")
    if status == "cancelled":
        logger.warning("Order %s set to cancelled by admin %s; stock was not restored", order_id, admin.get("email"))
    return updated
