import pytest

from database import PAYMENT_SETTINGS

ORDER = {
    "orderItems": [{"product": "64b7f0c2a1b2c3d4e5f60718", "name": "Oak Table", "quantity": 1, "price": 650}],
    "shippingAddress": {"address": "1 Main St", "city": "Pune", "postalCode": "411001", "country": "India"},
    "paymentMethod": "bank_transfer",
    "totalPrice": 650,
}


@pytest.fixture
def order(client, customer):
    res = client.post("/api/orders", json=ORDER, headers=customer["headers"])
    assert res.status_code == 201
    return res.json()["data"]


def test_order_belongs_to_customer(client, customer, make_user, order):
    mine = client.get("/api/orders/mine", headers=customer["headers"]).json()
    assert mine["count"] == 1
    assert order["user"] == customer["id"]
    assert order["isPaid"] is False

    stranger = make_user("Someone Else")
    assert client.get(f"/api/orders/{order['id']}", headers=stranger["headers"]).status_code == 403


def test_admin_moves_order_through_statuses(client, customer, admin, order):
    url = f"/api/orders/{order['id']}/status"
    assert client.put(url, json={"status": "shipped"}, headers=customer["headers"]).status_code == 403

    shipped = client.put(url, json={"status": "shipped"}, headers=admin["headers"])
    assert shipped.status_code == 200
    assert shipped.json()["data"]["status"] == "shipped"
    assert "deliveredAt" not in shipped.json()["data"]

    delivered = client.put(url, json={"status": "delivered"}, headers=admin["headers"]).json()["data"]
    assert delivered["status"] == "delivered"
    assert delivered["deliveredAt"]

    assert client.put(url, json={"status": "lost"}, headers=admin["headers"]).status_code == 400


def test_admin_marks_order_paid(client, customer, admin, order):
    url = f"/api/orders/{order['id']}/pay"
    payer = {"id": "PAY-42", "status": "COMPLETED", "email_address": "payer@example.com"}

    res = client.put(url, json=payer, headers=admin["headers"])

    assert res.status_code == 200
    paid = client.get(f"/api/orders/{order['id']}", headers=customer["headers"]).json()["data"]
    assert paid["isPaid"] is True
    assert paid["paidAt"]
    assert paid["paymentResult"]["id"] == "PAY-42"
    assert paid["paymentResult"]["status"] == "COMPLETED"
    assert paid["paymentResult"]["email_address"] == "payer@example.com"
    assert paid["paymentResult"]["update_time"]


def test_marking_unknown_order_paid(client, admin):
    res = client.put("/api/orders/64b7f0c2a1b2c3d4e5f60718/pay", headers=admin["headers"])

    assert res.status_code == 404


def test_order_needs_items(client, customer):
    res = client.post("/api/orders", json=dict(ORDER, orderItems=[]), headers=customer["headers"])

    assert res.status_code == 400


def test_payment_request_flow_marks_order_paid(client, customer, admin, order):
    submitted = client.post(
        "/api/payment-requests",
        json={"orderId": order["id"], "paymentMethod": "upi", "transactionId": "UPI-123"},
        headers=customer["headers"],
    )
    assert submitted.status_code == 201
    request = submitted.json()["data"]
    assert request["amount"] == 650
    assert request["status"] == "pending"

    duplicate = client.post(
        "/api/payment-requests",
        json={"orderId": order["id"], "paymentMethod": "upi"},
        headers=customer["headers"],
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "DUPLICATE_PAYMENT_REQUEST"

    pending = client.get("/api/payment-requests/all", params={"status": "pending"}, headers=admin["headers"]).json()
    assert pending["count"] == 1
    assert pending["data"][0]["orderDetails"]["id"] == order["id"]

    completed = client.put(
        f"/api/payment-requests/{request['id']}/status",
        json={"status": "completed", "notes": "Verified"},
        headers=admin["headers"],
    )
    assert completed.status_code == 200
    assert completed.json()["data"]["status"] == "completed"

    paid = client.get(f"/api/orders/{order['id']}", headers=customer["headers"]).json()["data"]
    assert paid["isPaid"] is True
    assert paid["paymentResult"]["id"] == request["id"]
    assert paid["paidAt"]


def test_rejected_request_does_not_pay_order(client, customer, admin, order):
    request = client.post(
        "/api/payment-requests", json={"orderId": order["id"], "paymentMethod": "upi"}, headers=customer["headers"]
    ).json()["data"]

    client.put(f"/api/payment-requests/{request['id']}/status", json={"status": "rejected"}, headers=admin["headers"])

    assert client.get(f"/api/orders/{order['id']}", headers=customer["headers"]).json()["data"]["isPaid"] is False
    retry = client.post(
        "/api/payment-requests", json={"orderId": order["id"], "paymentMethod": "upi"}, headers=customer["headers"]
    )
    assert retry.status_code == 201


def test_unknown_status_is_rejected(client, customer, admin, order):
    request = client.post(
        "/api/payment-requests", json={"orderId": order["id"], "paymentMethod": "upi"}, headers=customer["headers"]
    ).json()["data"]

    res = client.put(f"/api/payment-requests/{request['id']}/status", json={"status": "paid"}, headers=admin["headers"])

    assert res.status_code == 400


def test_customers_see_only_their_requests(client, customer, make_user, order):
    client.post("/api/payment-requests", json={"orderId": order["id"], "paymentMethod": "upi"}, headers=customer["headers"])
    stranger = make_user("Someone Else")

    assert client.get("/api/payment-requests", headers=customer["headers"]).json()["count"] == 1
    assert client.get("/api/payment-requests", headers=stranger["headers"]).json()["count"] == 0
    assert client.get("/api/payment-requests/all", headers=customer["headers"]).status_code == 403


def test_payment_settings_keep_one_active(client, admin, db):
    assert client.get("/api/payment-settings").status_code == 404

    first = {"accountNumber": "111", "ifscCode": "IFSC0001", "accountHolder": "Furniture Co"}
    second = {"accountNumber": "222", "ifscCode": "IFSC0002", "accountHolder": "Furniture Co", "bankName": "City Bank"}
    assert client.post("/api/payment-settings", json=first, headers=admin["headers"]).status_code == 201
    assert client.post("/api/payment-settings", json=second, headers=admin["headers"]).status_code == 201

    active = client.get("/api/payment-settings").json()["data"]
    assert active["accountNumber"] == "222"
    assert db[PAYMENT_SETTINGS].count_documents({"isActive": True}) == 1

    all_settings = client.get("/api/payment-settings/all", headers=admin["headers"]).json()
    assert all_settings["count"] == 2


def test_payment_settings_are_admin_managed(client, customer):
    body = {"accountNumber": "111", "ifscCode": "IFSC0001", "accountHolder": "Someone"}

    assert client.post("/api/payment-settings", json=body, headers=customer["headers"]).status_code == 403
