# Public menu and pricing API tests


class TestMenuRoutes:
    def test_list_published_menus(self, client, menu):
        response = client.get("/api/menus")
        assert response.status_code == 200
        menus = response.json()["data"]["menus"]
        assert [m["weekly_menu_id"] for m in menus] == [menu["weekly_menu_id"]]

    def test_menu_detail(self, client, menu):
        data = client.get(f"/api/menus/{menu['weekly_menu_id']}").json()["data"]
        assert data["week_start_date"] == "2025-06-02"
        assert [item["name"] for item in data["days"]["3"]] == ["Pescado Frito"]
        assert {item["name"] for item in data["days"]["0"]} >= {"Arroz Blanco", "Flan", "Sancocho"}
        assert [item["name"] for item in data["staples"]] == ["Tostones"]

    def test_unknown_menu(self, client):
        response = client.get("/api/menus/4242")
        assert response.status_code == 404
        assert response.json()["error"] == "Weekly menu not found"

    def test_pricing(self, client, pricing):
        data = client.get("/api/pricing").json()["data"]
        assert data == {
            "completa_price": 12.0,
            "extra_entree_price": 7.0,
            "extra_side_price": 4.0,
            "delivery_fee_per_meal": 2.0,
        }

    def test_pricing_not_set_up(self, client):
        response = client.get("/api/pricing")
        assert response.status_code == 500
        assert response.json()["error"] == "Something went wrong, please try again"
