# Order API tests: checkout, order views, promo codes and payment

GUEST_ADDRESS = {"street": "1 Ocean Dr", "city": "Miami", "state": "FL", "zip_code": "33139"}


class TestGuestCheckout:
    """Checkout without an account"""

    def test_guest_order_created(self, client, guest_payload):
        response = client.post("/api/orders", json=guest_payload())
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["replayed"] is False
        assert data["guest_token"]
        assert data["order"]["total_amount"] == 36.0
        assert data["order"]["is_guest"] is True
        assert "36.00" in response.json()["message"]

    def test_replayed_session_returns_same_order(self, client, guest_payload):
        first = client.post("/api/orders", json=guest_payload()).json()["data"]
        response = client.post("/api/orders", json=guest_payload())
        assert response.status_code == 200
        assert response.json()["data"]["replayed"] is True
        assert response.json()["data"]["order"]["order_id"] == first["order"]["order_id"]

    def test_two_days_rejected(self, client, guest_payload, build_days):
        response = client.post("/api/orders", json=guest_payload(order_days=build_days(days=(1, 2))))
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error"] == "Minimum 3 days per order required"

    def test_missing_guest_details(self, client, guest_payload):
        response = client.post("/api/orders", json=guest_payload(guest_info={"email": "ana@example.com"}))
        assert response.status_code == 400

    def test_account_email_must_sign_in(self, client, guest_payload, customer):
        payload = guest_payload()
        payload["guest_info"]["email"] = "maria@example.com"
        response = client.post("/api/orders", json=payload)
        assert response.status_code == 409

    def test_unknown_menu_is_hidden_server_error(self, client, guest_payload):
        response = client.post("/api/orders", json=guest_payload(weekly_menu_id=9999))
        assert response.status_code == 500
        assert response.json()["error"] == "Something went wrong, please try again"

    def test_malformed_body(self, client, guest_payload):
        response = client.post("/api/orders", json=guest_payload(order_days="monday"))
        assert response.status_code == 422
        assert response.json()["data"][0]["field"] == "order_days"

    def test_switch_to_delivery_keeps_order(self, client, guest_payload):
        created = client.post("/api/orders", json=guest_payload()).json()["data"]["order"]
        response = client.patch(f"/api/orders/{created['order_id']}/delivery", json={
            "is_pickup": False, "guest_address": GUEST_ADDRESS, "checkout_session_id": "checkout-0001",
        })
        assert response.status_code == 200
        order = response.json()["data"]
        assert order["order_id"] == created["order_id"]
        assert order["delivery_fee"] == 6.0
        assert order["total_amount"] == 42.0

    def test_other_session_cannot_touch_order(self, client, guest_payload):
        created = client.post("/api/orders", json=guest_payload()).json()["data"]["order"]
        response = client.post(f"/api/orders/{created['order_id']}/cancel", json={"checkout_session_id": "other"})
        assert response.status_code == 404

    def test_guest_lookup_is_single_use(self, client, guest_payload):
        created = client.post("/api/orders", json=guest_payload()).json()["data"]
        first = client.get(f"/api/orders/guest/{created['guest_token']}")
        assert first.status_code == 200
        assert first.json()["data"]["order_number"] == created["order"]["order_number"]
        assert client.get(f"/api/orders/guest/{created['guest_token']}").status_code == 404


class TestPaymentFlow:
    """Promo codes and card payment through the mock processor"""

    def test_promo_then_pay(self, client, guest_payload):
        order = client.post("/api/orders", json=guest_payload()).json()["data"]["order"]
        session = {"checkout_session_id": "checkout-0001"}

        promo = client.post(f"/api/orders/{order['order_id']}/promo", json={"promo_code": "welcome10", **session})
        assert promo.status_code == 200
        assert promo.json()["data"]["total_amount"] == 32.4
        assert promo.json()["message"] == "Promo code WELCOME10 applied"

        paid = client.post(f"/api/orders/{order['order_id']}/pay", json={"payment_token": "tok_visa", **session})
        assert paid.status_code == 200
        assert paid.json()["data"]["payment_status"] == "PAID"
        assert paid.json()["data"]["status"] == "CONFIRMED"
        assert paid.json()["data"]["payments"][0]["amount_cents"] == 3240

        again = client.post(f"/api/orders/{order['order_id']}/pay", json=session)
        assert again.status_code == 400
        assert again.json()["error"] == "Order is already paid"

    def test_unknown_promo(self, client, guest_payload):
        order = client.post("/api/orders", json=guest_payload()).json()["data"]["order"]
        response = client.post(f"/api/orders/{order['order_id']}/promo",
                               json={"promo_code": "BOGUS", "checkout_session_id": "checkout-0001"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid or expired promo code"

    def test_declined_card_can_retry(self, client, guest_payload, admin_headers):
        """The mock processor declines totals ending in 02 cents"""
        client.put("/api/admin/pricing", headers=admin_headers, json={
            "completa_price": "12.34", "extra_entree_price": "7.00",
            "extra_side_price": "4.00", "delivery_fee_per_meal": "2.00",
        })
        order = client.post("/api/orders", json=guest_payload()).json()["data"]["order"]
        assert order["total_amount"] == 37.02

        response = client.post(f"/api/orders/{order['order_id']}/pay", json={"checkout_session_id": "checkout-0001"})
        assert response.status_code == 402
        assert response.json()["error"] == "Your card was declined"

        detail = client.get(f"/api/admin/orders/{order['order_id']}", headers=admin_headers).json()["data"]
        assert detail["payment_status"] == "FAILED"

        promo = client.post(f"/api/orders/{order['order_id']}/promo",
                            json={"promo_code": "LUNCH5", "checkout_session_id": "checkout-0001"})
        assert promo.json()["data"]["total_amount"] == 32.02

        client.post(f"/api/orders/{order['order_id']}/promo",
                    json={"promo_code": "WELCOME10", "checkout_session_id": "checkout-0001"})
        retry = client.post(f"/api/orders/{order['order_id']}/pay", json={"checkout_session_id": "checkout-0001"})
        assert retry.status_code == 200
        assert retry.json()["data"]["payment_status"] == "PAID"


class TestCustomerOrders:
    """Signed-in customers"""

    def test_delivery_order_to_saved_address(self, client, customer_headers, menu, build_days):
        address = client.post("/api/addresses", headers=customer_headers, json={
            "street": "12 Calle Sol", "city": "Miami", "state": "FL", "zip_code": "33101",
        })
        assert address.status_code == 201

        response = client.post("/api/orders", headers=customer_headers, json={
            "weekly_menu_id": menu["weekly_menu_id"],
            "order_days": build_days(),
            "is_pickup": False,
            "address_id": address.json()["data"]["address_id"],
        })
        assert response.status_code == 201
        order = response.json()["data"]["order"]
        assert order["total_amount"] == 42.0
        assert response.json()["data"]["guest_token"] is None

        listed = client.get("/api/orders/my", headers=customer_headers).json()["data"]["orders"]
        assert [o["order_id"] for o in listed] == [order["order_id"]]

        detail = client.get(f"/api/orders/{order['order_id']}", headers=customer_headers)
        assert detail.status_code == 200
        assert detail.json()["data"]["address"]["street"] == "12 Calle Sol"

    def test_signed_in_checkout_ignores_guest_info(self, client, customer_headers, guest_payload, customer):
        response = client.post("/api/orders", headers=customer_headers, json=guest_payload())
        assert response.status_code == 201
        assert response.json()["data"]["order"]["customer_id"] == customer["customer_id"]

    def test_other_customers_order_not_visible(self, client, customer_headers, guest_payload):
        created = client.post("/api/orders", json=guest_payload()).json()["data"]["order"]
        response = client.get(f"/api/orders/{created['order_id']}", headers=customer_headers)
        assert response.status_code == 404

    def test_customer_cancels(self, client, customer_headers, menu, build_days):
        order = client.post("/api/orders", headers=customer_headers, json={
            "weekly_menu_id": menu["weekly_menu_id"], "order_days": build_days(), "is_pickup": True,
        }).json()["data"]["order"]
        response = client.post(f"/api/orders/{order['order_id']}/cancel", headers=customer_headers,
                               json={"reason": "out of town"})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "CANCELLED"

    def test_order_requires_sign_in(self, client):
        response = client.get("/api/orders/my")
        assert response.status_code in (401, 403)
