from conftest import GATEWAY_SECRET, OWNER
from payments import compute_signature
from store_settings import SettingsPatch


def test_root_and_public_catalog(client, add_product, open_store):
    add_product("p1", price=50, quantity=5, name="Mango")
    open_store()

    assert client.get("/").json() == {"message": "Storefront Backend Running"}
    products = client.get("/api/store/fresh-mart/products").json()
    assert [(p["id"], p["name"], p["quantity"]) for p in products] == [("p1", "Mango", 5)]
    details = client.get("/api/store/fresh-mart/details").json()
    assert details["store_name"] == "Fresh Mart"
    assert details["is_open"] is True
    assert "gateway_key_secret" not in details


def test_unknown_store_is_404(client):
    response = client.get("/api/store/nowhere/details")
    assert response.status_code == 404
    assert response.json() == {"detail": "Store not found"}


def test_place_order(client, services, add_product, open_store):
    add_product("p1", price=50, quantity=5)
    open_store()

    response = client.post("/api/orders", json={
        "items": [{"product_id": "p1", "quantity": 2}],
        "customer_info": {"name": "Asha", "phone": "98765"},
        "store_slug": "fresh-mart",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["order"]["id"] == "2025111801"
    assert body["order"]["total"] == 100.0
    assert services.catalog.get_product("p1", OWNER).quantity == 3


def test_place_order_without_slug_resolves_the_owner(client, add_product):
    add_product("p1", price=50, quantity=5)

    response = client.post("/api/orders", json={"items": [{"product_id": "p1", "quantity": 1}]})

    assert response.status_code == 200
    assert response.json()["order"]["owner_id"] == OWNER


def test_closed_store_rejects_orders(client, services, add_product, open_store):
    add_product("p1", quantity=5)
    open_store(is_live=False)

    response = client.post("/api/orders", json={
        "items": [{"product_id": "p1", "quantity": 1}], "store_slug": "fresh-mart",
    })

    assert response.status_code == 503
    assert services.catalog.get_product("p1", OWNER).quantity == 5


def test_schedule_gate_applies_to_orders(client, services, add_product, open_store):
    add_product("p1", quantity=5)
    every_day = [0, 1, 2, 3, 4, 5, 6]
    open_store(schedule_enabled=True, schedule_days=every_day, schedule_start_time="00:00", schedule_end_time="00:00")
    order = {"items": [{"product_id": "p1", "quantity": 1}], "store_slug": "fresh-mart"}

    closed = client.post("/api/orders", json=order)
    assert closed.status_code == 503
    assert client.get("/api/store/fresh-mart/details").json()["is_open"] is False
    assert services.catalog.get_product("p1", OWNER).quantity == 5

    open_store(schedule_end_time="24:00")
    assert client.post("/api/orders", json=order).status_code == 200


def test_insufficient_stock_is_409(client, services, add_product, open_store):
    add_product("p1", quantity=5, name="Mango")
    open_store()

    response = client.post("/api/orders", json={
        "items": [{"product_id": "p1", "quantity": 10}], "store_slug": "fresh-mart",
    })

    assert response.status_code == 409
    assert response.json() == {"detail": "Insufficient stock for Mango"}
    assert services.database["order"].count_documents({}) == 0


def test_empty_cart_is_400(client, open_store):
    open_store()

    response = client.post("/api/orders", json={"items": [], "store_slug": "fresh-mart"})

    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid order items"}


def test_owner_routes_require_a_token(client):
    assert client.get("/api/inventory").status_code == 401
    assert client.get("/api/orders", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_customer_token_is_not_an_owner_token(client, customer_headers):
    assert client.get("/api/inventory", headers=customer_headers).status_code == 401


def test_inventory_crud(client, owner_headers):
    created = client.post("/api/inventory", headers=owner_headers, json={
        "name": " Mango ", "price": 50, "quantity": 5, "unit": "kg",
    }).json()["product"]
    product_id = created["id"]
    assert product_id.startswith("prod_")
    assert created["name"] == "Mango"
    assert created["category"] == "Uncategorized"

    updated = client.put(f"/api/inventory/{product_id}", headers=owner_headers, json={"quantity": 8})
    assert updated.json()["quantity"] == 8
    assert updated.json()["name"] == "Mango"

    listed = client.get("/api/inventory", headers=owner_headers).json()
    assert [p["id"] for p in listed] == [product_id]

    assert client.delete(f"/api/inventory/{product_id}", headers=owner_headers).json()["success"] is True
    assert client.get(f"/api/inventory/{product_id}", headers=owner_headers).status_code == 404


def test_inventory_is_tenant_scoped(client, owner_headers, add_product):
    add_product("foreign", owner_id="owner-2")

    assert client.get("/api/inventory/foreign", headers=owner_headers).status_code == 404
    assert client.delete("/api/inventory/foreign", headers=owner_headers).status_code == 404


def test_bulk_import(client, services, owner_headers):
    response = client.post("/api/inventory/bulk", headers=owner_headers, json={"products": [
        {"id": "p1", "name": "Mango", "price": "45.5", "quantity": "12"},
        {"name": "Banana", "price": 10, "quantity": 30, "category": "Fruit"},
    ]})

    assert response.json()["count"] == 2
    assert services.catalog.get_product("p1", OWNER).price == 45.5
    assert services.catalog.get_product("p1", OWNER).quantity == 12
    assert len(services.catalog.list_products(OWNER)) == 2


def test_owner_order_listing_and_status(client, owner_headers, add_product):
    add_product("p1", quantity=5)
    order_id = client.post("/api/orders", json={"items": [{"product_id": "p1", "quantity": 1}]}).json()["order"]["id"]

    orders = client.get("/api/orders", headers=owner_headers).json()
    assert [o["id"] for o in orders] == [order_id]
    assert orders[0]["items"][0]["product_id"] == "p1"

    updated = client.put(f"/api/orders/{order_id}", headers=owner_headers, json={"status": "completed"})
    assert updated.json()["status"] == "completed"
    assert client.put("/api/orders/nope", headers=owner_headers, json={"status": "completed"}).status_code == 404


def test_customer_sees_only_own_orders(client, customer_headers, add_product):
    add_product("p1", quantity=5)
    mine = client.post("/api/orders", headers=customer_headers,
                       json={"items": [{"product_id": "p1", "quantity": 1}]}).json()["order"]
    guest = client.post("/api/orders", json={"items": [{"product_id": "p1", "quantity": 1}]}).json()["order"]

    assert mine["customer_id"] == "cust-1"
    assert [o["id"] for o in client.get("/api/customer/orders", headers=customer_headers).json()] == [mine["id"]]
    assert client.get(f"/api/customer/orders/{guest['id']}", headers=customer_headers).status_code == 404


def test_store_settings_validation(client, owner_headers):
    response = client.put("/api/store/settings", headers=owner_headers, json={"store_name": "Fresh Mart"})
    assert response.status_code == 400
    assert response.json() == {"detail": "Contact Number 1 is required"}

    response = client.put("/api/store/settings", headers=owner_headers, json={
        "store_name": "Fresh Mart", "contact_number_1": "12345", "address": "1 Market Road",
    })
    assert response.json()["settings"]["slug"] == "fresh-mart"

    live = client.put("/api/store/live-status", headers=owner_headers, json={"is_live": True})
    assert live.json() == {"success": True, "is_live": True}
    assert client.get("/api/store/settings", headers=owner_headers).json()["is_live"] is True


def test_live_status_requires_store_details(client, owner_headers):
    response = client.put("/api/store/live-status", headers=owner_headers, json={"is_live": True})
    assert response.status_code == 400


def test_online_checkout_end_to_end(client, services, owner_headers, add_product, open_store):
    add_product("p1", price=50, quantity=5)
    open_store()

    keys = client.put("/api/payment/gateway-keys", headers=owner_headers, json={
        "key_id": "rzp_test_key", "key_secret": GATEWAY_SECRET,
    })
    assert keys.json()["online_payment_enabled"] is True
    stored = services.settings_store.get(OWNER)
    assert stored.gateway_key_secret != GATEWAY_SECRET
    assert services.secret_box.decrypt(stored.gateway_key_secret) == GATEWAY_SECRET
    assert client.get("/api/store/fresh-mart/payment-key").json() == {"key": "rzp_test_key"}

    intent = client.post("/api/payments/intents", json={
        "store_slug": "fresh-mart", "items": [{"product_id": "p1", "quantity": 2}],
    }).json()
    assert intent["order"]["amount"] == 10000
    gw_id = intent["order"]["id"]

    order = client.post("/api/orders", json={
        "items": [{"product_id": "p1", "quantity": 2}], "store_slug": "fresh-mart",
        "payment_method": "online", "gateway_order_id": gw_id,
    }).json()["order"]
    assert order["payment_status"] == "pending"

    bad = client.post("/api/payments/verify", json={
        "store_slug": "fresh-mart", "gateway_order_id": gw_id, "payment_id": "pay_1", "signature": "0" * 64,
    })
    assert bad.status_code == 400

    verified = client.post("/api/payments/verify", json={
        "store_slug": "fresh-mart", "gateway_order_id": gw_id, "payment_id": "pay_1",
        "signature": compute_signature(GATEWAY_SECRET, gw_id, "pay_1"), "order_id": order["id"],
    })
    assert verified.status_code == 200
    assert verified.json()["order"]["payment_status"] == "paid"


def test_gateway_keys_keep_existing_secret(client, services, owner_headers, open_store):
    open_store()

    missing = client.put("/api/payment/gateway-keys", headers=owner_headers,
                         json={"key_id": "rzp_test_key", "keep_existing_secret": True})
    assert missing.status_code == 400

    client.put("/api/payment/gateway-keys", headers=owner_headers,
               json={"key_id": "rzp_test_key", "key_secret": GATEWAY_SECRET})
    kept = client.put("/api/payment/gateway-keys", headers=owner_headers,
                      json={"key_id": "rzp_new_key", "keep_existing_secret": True})
    assert kept.json()["gateway_key_id"] == "rzp_new_key"
    assert services.secret_box.decrypt(services.settings_store.get(OWNER).gateway_key_secret) == GATEWAY_SECRET


def test_disabling_online_payment(client, services, owner_headers, online_store):
    response = client.put("/api/payment/online-payment-status", headers=owner_headers,
                          json={"online_payment_enabled": False})

    assert response.json() == {"success": True, "online_payment_enabled": False}
    assert client.get("/api/store/fresh-mart/payment-key").status_code == 400
    services.settings_store.upsert(OWNER, SettingsPatch(online_payment_enabled=True))
    assert client.get("/api/store/fresh-mart/payment-key").status_code == 200
