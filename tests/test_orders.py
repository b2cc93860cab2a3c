from bson import ObjectId

from stores import ProductStore

ADDRESS = {"street": "4 Lake View", "city": "Pune", "zipCode": "411001", "country": "IN"}


def stock_of(db, product):
    return ProductStore(db).find_by_id(product["_id"])["stock"]


def place(client, headers, *items):
    return client.post("/api/orders", json={"items": list(items), "shippingAddress": ADDRESS}, headers=headers)


def item(product, quantity, **extra):
    return {"productId": str(product["_id"]), "quantity": quantity, **extra}


def test_create_order_totals_and_decrements(client, db, register, make_product):
    customer = register()
    kurta = make_product(name="Kurta", price=10, stock=5)
    scarf = make_product(name="Scarf", price=5, stock=3)

    response = place(client, customer["headers"], item(kurta, 2, size="M", color="red"), item(scarf, 1))
    assert response.status_code == 201
    order = response.json()["order"]
    assert order["totalAmount"] == 25
    assert order["status"] == "pending"
    assert order["customer"] == customer["user"]["id"]
    assert order["shippingAddress"]["zipCode"] == "411001"
    assert [i["quantity"] for i in order["items"]] == [2, 1]
    assert order["items"][0]["price"] == 10
    assert order["items"][0]["size"] == "M"
    assert order["items"][0]["product"]["name"] == "Kurta"

    assert stock_of(db, kurta) == 3
    assert stock_of(db, scarf) == 2


def test_price_is_snapshotted(client, db, register, make_product):
    customer = register()
    kurta = make_product(price=10, stock=5)
    order_id = place(client, customer["headers"], item(kurta, 1)).json()["order"]["id"]

    ProductStore(db).update(kurta["_id"], {"price": 99})

    order = client.get(f"/api/orders/{order_id}", headers=customer["headers"]).json()
    assert order["totalAmount"] == 10
    assert order["items"][0]["price"] == 10


def test_insufficient_stock_releases_earlier_items(client, db, register, make_product):
    customer = register()
    first = make_product(name="First", stock=5)
    short = make_product(name="Short", stock=1)
    after = make_product(name="After", stock=4)

    response = place(client, customer["headers"], item(first, 2), item(short, 3), item(after, 1))
    assert response.status_code == 400
    assert response.json() == {"message": "Insufficient stock for Short. Available: 1"}

    assert stock_of(db, first) == 5
    assert stock_of(db, short) == 1
    assert stock_of(db, after) == 4
    assert db["order"].count_documents({}) == 0


def test_missing_product_releases_earlier_items(client, db, register, make_product):
    customer = register()
    first = make_product(stock=5)
    missing = str(ObjectId())

    response = place(client, customer["headers"], item(first, 2), {"productId": missing, "quantity": 1})
    assert response.status_code == 404
    assert response.json() == {"message": f"Product not found: {missing}"}
    assert stock_of(db, first) == 5


def test_order_validation(client, register, make_product):
    customer = register()
    product = make_product()
    assert place(client, customer["headers"], item(product, 0)).status_code == 400
    assert place(client, customer["headers"]).status_code == 400
    assert place(client, customer["headers"], {"productId": "nope", "quantity": 1}).status_code == 400
    response = client.post(
        "/api/orders",
        json={"items": [item(product, 1)], "shippingAddress": ADDRESS, "totalAmount": 0},
        headers=customer["headers"],
    )
    assert response.status_code == 400


def test_create_order_requires_auth(client, make_product):
    product = make_product()
    response = client.post("/api/orders", json={"items": [item(product, 1)], "shippingAddress": ADDRESS})
    assert response.status_code == 401


def test_cancel_pending_order_restores_stock(client, db, register, make_product):
    customer = register()
    kurta = make_product(stock=5)
    scarf = make_product(stock=3)
    order_id = place(client, customer["headers"], item(kurta, 2), item(scarf, 3)).json()["order"]["id"]
    assert stock_of(db, scarf) == 0

    response = client.patch(f"/api/orders/{order_id}/cancel", headers=customer["headers"])
    assert response.status_code == 200
    assert response.json()["message"] == "Order cancelled successfully"
    assert response.json()["order"]["status"] == "cancelled"
    assert stock_of(db, kurta) == 5
    assert stock_of(db, scarf) == 3


def test_cancel_confirmed_order(client, register, admin, make_product):
    customer = register()
    product = make_product()
    order_id = place(client, customer["headers"], item(product, 1)).json()["order"]["id"]
    client.patch(f"/api/orders/{order_id}/status", json={"status": "confirmed"}, headers=admin["headers"])
    assert client.patch(f"/api/orders/{order_id}/cancel", headers=customer["headers"]).status_code == 200


def test_cancel_shipped_order_fails(client, db, register, admin, make_product):
    customer = register()
    product = make_product(stock=5)
    order_id = place(client, customer["headers"], item(product, 2)).json()["order"]["id"]
    client.patch(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=admin["headers"])

    response = client.patch(f"/api/orders/{order_id}/cancel", headers=customer["headers"])
    assert response.status_code == 400
    assert response.json() == {"message": "Cannot cancel order at this stage"}
    assert stock_of(db, product) == 3


def test_cancel_twice_fails(client, db, register, make_product):
    customer = register()
    product = make_product(stock=5)
    order_id = place(client, customer["headers"], item(product, 2)).json()["order"]["id"]
    client.patch(f"/api/orders/{order_id}/cancel", headers=customer["headers"])
    assert client.patch(f"/api/orders/{order_id}/cancel", headers=customer["headers"]).status_code == 400
    assert stock_of(db, product) == 5


def test_other_customer_cannot_see_or_cancel(client, register, make_product):
    owner = register(email="owner@example.com")
    intruder = register(email="intruder@example.com")
    product = make_product()
    order_id = place(client, owner["headers"], item(product, 1)).json()["order"]["id"]

    assert client.get(f"/api/orders/{order_id}", headers=intruder["headers"]).status_code == 403
    response = client.patch(f"/api/orders/{order_id}/cancel", headers=intruder["headers"])
    assert response.status_code == 403
    assert response.json() == {"message": "Access denied"}


def test_admin_can_view_any_order(client, register, admin, make_product):
    customer = register()
    product = make_product()
    order_id = place(client, customer["headers"], item(product, 1)).json()["order"]["id"]
    response = client.get(f"/api/orders/{order_id}", headers=admin["headers"])
    assert response.status_code == 200
    assert response.json()["customer"]["email"] == "alice@example.com"


def test_missing_order(client, register):
    customer = register()
    assert client.get(f"/api/orders/{ObjectId()}", headers=customer["headers"]).status_code == 404
    assert client.patch(f"/api/orders/{ObjectId()}/cancel", headers=customer["headers"]).status_code == 404


def test_my_orders(client, register, make_product):
    alice = register(email="alice@example.com")
    bob = register(email="bob@example.com")
    product = make_product(stock=10)
    place(client, alice["headers"], item(product, 1))
    place(client, alice["headers"], item(product, 2))
    place(client, bob["headers"], item(product, 1))

    response = client.get("/api/orders/my-orders", headers=alice["headers"])
    assert response.status_code == 200
    assert len(response.json()) == 2
    assert all(o["customer"] == alice["user"]["id"] for o in response.json())


def test_admin_status_update_accepts_any_status(client, register, admin, make_product):
    customer = register()
    product = make_product()
    order_id = place(client, customer["headers"], item(product, 1)).json()["order"]["id"]

    for status in ("delivered", "pending", "shipped"):
        response = client.patch(f"/api/orders/{order_id}/status", json={"status": status}, headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["order"]["status"] == status


def test_admin_cancel_does_not_restore_stock(client, db, register, admin, make_product):
    customer = register()
    product = make_product(stock=5)
    order_id = place(client, customer["headers"], item(product, 2)).json()["order"]["id"]

    response = client.patch(f"/api/orders/{order_id}/status", json={"status": "cancelled"}, headers=admin["headers"])
    assert response.status_code == 200
    assert stock_of(db, product) == 3


def test_admin_status_update_validation(client, register, admin, make_product):
    customer = register()
    product = make_product()
    order_id = place(client, customer["headers"], item(product, 1)).json()["order"]["id"]

    response = client.patch(f"/api/orders/{order_id}/status", json={"status": "lost"}, headers=admin["headers"])
    assert response.status_code == 400
    response = client.patch(f"/api/orders/{ObjectId()}/status", json={"status": "shipped"}, headers=admin["headers"])
    assert response.status_code == 404
    response = client.patch(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=customer["headers"])
    assert response.status_code == 403


def test_admin_all_orders_paginated(client, register, admin, make_product):
    customer = register()
    product = make_product(stock=30)
    for _ in range(5):
        place(client, customer["headers"], item(product, 1))

    body = client.get("/api/orders/admin/all", params={"page": 2, "limit": 2}, headers=admin["headers"]).json()
    assert len(body["orders"]) == 2
    assert body["totalPages"] == 3
    assert body["total"] == 5

    body = client.get("/api/orders/admin/all", params={"status": "cancelled"}, headers=admin["headers"]).json()
    assert body["total"] == 0


def test_order_stats(client, register, admin, make_product):
    customer = register()
    product = make_product(price=10, stock=30)
    place(client, customer["headers"], item(product, 1))
    place(client, customer["headers"], item(product, 2))
    cancelled_id = place(client, customer["headers"], item(product, 4)).json()["order"]["id"]
    client.patch(f"/api/orders/{cancelled_id}/cancel", headers=customer["headers"])

    response = client.get("/api/orders/admin/stats", headers=admin["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["totalOrders"] == 3
    assert body["totalRevenue"] == 30
    by_status = {s["_id"]: s for s in body["statusStats"]}
    assert by_status["pending"]["count"] == 2
    assert by_status["cancelled"]["totalAmount"] == 40
