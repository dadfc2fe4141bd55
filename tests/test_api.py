import json
import re

from bson import ObjectId


def create_order(api, payload):
    response = api.post("/api/orders", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_health(api):
    assert api.get("/").status_code == 200
    body = api.get("/api/test").json()
    assert body["success"] is True
    assert api.get("/api").json()["status"] == "active"


def test_create_order(api, order_payload):
    order = create_order(api, order_payload)
    assert re.match(r"^BA78-\d{6}-001$", order["orderNumber"])
    assert order["items"][0]["subtotal"] == 1298
    assert order["totals"]["total"] == 1687.5
    assert order["customer"]["email"] == "jean@email.com"
    assert order["delivery"]["estimatedDate"]
    assert order["status"] == "pending"
    assert order["itemCount"] == 3
    assert order["customerFullName"] == "Jean Dupont"
    assert order["isPaid"] is False


def test_client_totals_are_not_trusted(api, order_payload):
    order_payload["totals"] = {"subtotal": 1, "total": 1}
    order_payload["items"][0]["subtotal"] = 1
    order = create_order(api, order_payload)
    assert order["totals"]["total"] == 1687.5


def test_invalid_order_lists_every_error(api, order_payload, fake_db):
    order_payload["customer"]["email"] = "jean"
    order_payload["customer"]["phone"] = "12"
    order_payload["items"][1]["quantity"] = 101
    response = api.post("/api/orders", json=order_payload)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation error"
    assert len(body["errors"]) == 3
    assert any(e.startswith("customer.email") for e in body["errors"])
    assert fake_db["order"].docs == []


def test_order_lifecycle(api, order_payload):
    order = create_order(api, order_payload)
    order_id = order["id"]

    paid = api.post(f"/api/orders/{order_id}/pay", json={"transactionId": "txn_1"}).json()["data"]
    assert paid["isPaid"] is True
    assert paid["payment"]["amount"] == 1687.5

    confirmed = api.put(f"/api/orders/{order_id}/status", json={"status": "confirmed"}).json()["data"]
    assert confirmed["timeline"][-1]["note"] == "Status updated: confirmed"

    shipped = api.post(
        f"/api/orders/{order_id}/tracking", json={"trackingNumber": "FR42", "carrier": "Colissimo"}
    ).json()["data"]
    assert shipped["status"] == "shipped"
    assert shipped["delivery"]["trackingNumber"] == "FR42"

    delivered = api.post(f"/api/orders/{order_id}/deliver").json()["data"]
    assert delivered["isDelivered"] is True
    assert [e["status"] for e in delivered["timeline"]] == ["confirmed", "shipped", "delivered"]

    by_number = api.get(f"/api/orders/number/{order['orderNumber']}").json()["data"]
    assert by_number["id"] == order_id


def test_bad_status_is_a_validation_error(api, order_payload):
    order = create_order(api, order_payload)
    response = api.put(f"/api/orders/{order['id']}/status", json={"status": "lost"})
    assert response.status_code == 400


def test_malformed_identifier(api):
    response = api.get("/api/orders/12345")
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid identifier format"}


def test_missing_order(api):
    assert api.get(f"/api/orders/{ObjectId()}").status_code == 404


def test_seed_and_list_products(api):
    assert api.post("/seed").json() == {"inserted": 8}
    assert api.post("/seed").json() == {"inserted": 0}

    body = api.get("/api/products", params={"featured": "true"}).json()
    assert body["success"] is True
    assert body["count"] == 8
    salon = api.get("/api/products", params={"category": "salon"}).json()["data"]
    assert {p["category"] for p in salon} == {"salon"}
    assert salon[0]["discountPercentage"] > 0
    assert salon[0]["seo"]["slug"]


def test_product_endpoints(api, product_payload):
    response = api.post("/api/products", json=product_payload)
    assert response.status_code == 201
    product = response.json()["data"]
    assert product["seo"]["slug"] == "cafe-elegant"
    assert product["discountPercentage"] == 25
    assert product["isInStock"] is True

    viewed = api.get(f"/api/products/{product['id']}").json()["data"]
    assert viewed["analytics"]["views"] == 1

    stock = api.patch(f"/api/products/{product['id']}/stock", json={"delta": -5}).json()["data"]
    assert stock["stock"] == 0
    assert stock["isInStock"] is False

    added = api.post(f"/api/products/{product['id']}/cart").json()["data"]
    assert added == {"addedToCart": 1}

    by_slug = api.get("/api/products/slug/cafe-elegant").json()["data"]
    assert by_slug["id"] == product["id"]


def test_invalid_product(api, product_payload):
    product_payload["category"] = "garage"
    product_payload["images"] = [{"url": "not-a-url"}]
    response = api.post("/api/products", json=product_payload)
    assert response.status_code == 400
    assert len(response.json()["errors"]) == 2


def test_overflowing_amount_is_a_validation_error(api, order_payload, fake_db):
    order_payload["items"] = [{"name": "Canapé", "price": 1e308, "quantity": 2}]
    response = api.post("/api/orders", json=order_payload)
    assert response.status_code == 400
    assert response.json()["errors"] == ["items.0.subtotal: Amount is too large"]
    assert fake_db["order"].docs == []


def test_infinite_price_is_a_validation_error(api, order_payload):
    body = json.dumps(order_payload).replace('"price": 649', '"price": 1e999', 1)
    response = api.post("/api/orders", content=body, headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["message"] == "Validation error"
    assert any(e.startswith("items.0.price") for e in response.json()["errors"])
