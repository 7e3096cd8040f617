# Authentication API tests


class TestAuthRoutes:
    """Registration, login and the current-user endpoint"""

    def test_register(self, client):
        response = client.post("/api/auth/register", json={
            "email": "Luis@Example.com",
            "password": "password123",
            "first_name": "Luis",
            "last_name": "Perez",
            "phone": "555-222-3333",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["token_type"] == "Bearer"
        assert data["data"]["user_info"]["email"] == "luis@example.com"
        assert data["data"]["user_info"]["is_admin"] is False

    def test_register_existing_email(self, client, customer):
        response = client.post("/api/auth/register", json={
            "email": "maria@example.com", "password": "password123", "first_name": "M", "last_name": "L",
        })
        assert response.status_code == 409
        assert response.json()["success"] is False
        assert response.json()["error"] == "An account with this email already exists"

    def test_register_short_password(self, client):
        response = client.post("/api/auth/register", json={
            "email": "luis@example.com", "password": "short", "first_name": "Luis", "last_name": "Perez",
        })
        assert response.status_code == 422
        assert response.json()["error"] == "Invalid request"
        assert response.json()["data"][0]["field"] == "password"

    def test_register_invalid_email(self, client):
        response = client.post("/api/auth/register", json={
            "email": "not-an-email", "password": "password123", "first_name": "Luis", "last_name": "Perez",
        })
        assert response.status_code == 422

    def test_login_wrong_password(self, client, customer):
        response = client.post("/api/auth/login", json={"email": "maria@example.com", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    def test_me(self, client, customer_headers, customer):
        response = client.get("/api/auth/me", headers=customer_headers)
        assert response.status_code == 200
        assert response.json()["data"]["customer_id"] == customer["customer_id"]

    def test_me_with_bad_token(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401
        assert response.json()["error"] == "Please sign in again"

    def test_me_without_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code in (401, 403)
        assert response.json()["success"] is False


class TestServiceEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["environment"] == "testing"

    def test_info(self, client):
        assert client.get("/api/info").json()["endpoints"]["orders"] == "/api/orders"
