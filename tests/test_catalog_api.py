from tests.conftest import OTHER_USER_ID, USER_ID, auth_headers


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "operational"
    assert body["database"] == "healthy"
    assert body["payment_service"] == "healthy"
    assert body["auth_service"] == "healthy"


def test_categories_are_active_and_ordered(client, seed):
    seed.category("Drinks", sort_order=2)
    seed.category("Pizzas", sort_order=1)
    seed.category("Archived", sort_order=0, active=False)

    names = [c["name"] for c in client.get("/api/categories").json()]
    assert names == ["Pizzas", "Drinks"]


def test_products_are_active_only(client, menu):
    products = client.get("/api/products").json()

    assert [p["name"] for p in products] == ["Margherita", "Soda"]
    assert products[0]["price"] == 25.9
    assert products[0]["category"]["name"] == "Pizzas"


def test_products_by_category(client, seed, menu):
    drinks = seed.category("Drinks")
    seed.product("Juice", "8.50", drinks)

    products = client.get(f"/api/products?category_id={drinks.id}").json()
    assert [p["name"] for p in products] == ["Juice"]


class TestAddresses:

    def address(self, number="10"):
        return {
            "street": "Rua A",
            "number": number,
            "neighborhood": "Centro",
            "city": "Campinas",
            "state": "SP",
            "zip_code": "13000-000",
        }

    def test_first_address_is_default(self, client):
        first = client.post("/api/addresses", json=self.address("1"), headers=auth_headers())
        second = client.post("/api/addresses", json=self.address("2"), headers=auth_headers())

        assert first.status_code == 201
        assert first.json()["is_default"] is True
        assert second.json()["is_default"] is False

    def test_list_default_first_and_scoped_to_user(self, client, seed):
        seed.address(OTHER_USER_ID)
        client.post("/api/addresses", json=self.address("1"), headers=auth_headers())
        second = client.post("/api/addresses", json=self.address("2"), headers=auth_headers()).json()

        client.patch(f"/api/addresses/{second['id']}/default", headers=auth_headers())

        listed = client.get("/api/addresses", headers=auth_headers(USER_ID)).json()
        assert [a["number"] for a in listed] == ["2", "1"]
        assert [a["is_default"] for a in listed] == [True, False]

    def test_set_default_on_foreign_address(self, client, seed):
        foreign = seed.address(OTHER_USER_ID)
        response = client.patch(f"/api/addresses/{foreign.id}/default", headers=auth_headers())
        assert response.status_code == 404

    def test_address_validation(self, client):
        response = client.post("/api/addresses", json={"street": "Rua A"}, headers=auth_headers())
        assert response.status_code == 422
