# API test fixtures: bearer headers for the seeded accounts

import pytest


def _login(client, email, password):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['data']['access_token']}"}


@pytest.fixture
def customer_headers(client, customer):
    """Authorization header of the registered customer"""
    return _login(client, "maria@example.com", "password123")


@pytest.fixture
def admin_headers(client, admin_user):
    return _login(client, "admin@example.com", "admin-password")


@pytest.fixture
def guest_payload(menu, build_days):
    """Guest pickup checkout body for three days"""
    def build(**overrides):
        payload = {
            "weekly_menu_id": menu["weekly_menu_id"],
            "order_days": build_days(),
            "is_pickup": True,
            "guest_info": {"email": "ana@example.com", "first_name": "Ana", "last_name": "Diaz",
                           "phone": "555-987-6543"},
            "checkout_session_id": "checkout-0001",
        }
        payload.update(overrides)
        return payload

    return build
