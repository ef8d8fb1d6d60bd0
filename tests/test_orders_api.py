from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import AlreadyPaidError
from app.models import Order, Product, utc_now
from app.services.orders import ensure_payable
from app.services.payment import MockPaymentService
from tests.conftest import ADMIN_ID, OTHER_USER_ID, USER_ID, auth_headers


@pytest.fixture
def order(seed, menu):
    return seed.order(USER_ID, "pending", [(menu["margherita"], 2), (menu["soda"], 1)])


def patch_status(client, order_id, body, user_id=USER_ID):
    return client.patch(f"/api/orders/{order_id}/status", json=body, headers=auth_headers(user_id))


class TestListOrders:

    def test_requires_token(self, client):
        assert client.get("/api/orders").status_code == 401
        response = client.get("/api/orders", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_only_callers_orders_newest_first(self, client, seed, menu):
        now = utc_now()
        older = seed.order(USER_ID, lines=[(menu["soda"], 1)], created_at=now - timedelta(days=1))
        newer = seed.order(USER_ID, lines=[(menu["soda"], 2)], created_at=now)
        seed.order(OTHER_USER_ID, lines=[(menu["soda"], 1)])

        response = client.get("/api/orders", headers=auth_headers())
        assert response.status_code == 200
        assert [o["id"] for o in response.json()["orders"]] == [newer.id, older.id]

    def test_status_filter_and_paging(self, client, seed, menu):
        now = utc_now()
        for minutes in range(3):
            seed.order(USER_ID, "delivered", [(menu["soda"], 1)], created_at=now - timedelta(minutes=minutes))
        seed.order(USER_ID, "pending", [(menu["soda"], 1)])

        delivered = client.get("/api/orders?status=delivered", headers=auth_headers()).json()["orders"]
        assert len(delivered) == 3
        assert {o["order_status"] for o in delivered} == {"delivered"}

        page = client.get("/api/orders?limit=2&offset=2", headers=auth_headers()).json()["orders"]
        assert len(page) == 2

    def test_items_carry_product(self, client, order):
        orders = client.get("/api/orders", headers=auth_headers()).json()["orders"]
        assert {i["product"]["name"] for i in orders[0]["items"]} == {"Margherita", "Soda"}

    def test_item_without_product_is_an_integrity_error(self, client, seed, order, menu):
        seed.session.delete(seed.reload(Product, menu["soda"].id))
        seed.session.commit()

        response = client.get("/api/orders", headers=auth_headers())
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}


class TestOrderDetail:

    def test_detail_with_tracker(self, client, order):
        response = client.get(f"/api/orders/{order.id}", headers=auth_headers())
        assert response.status_code == 200
        body = response.json()
        assert body["order"]["id"] == order.id
        assert [s["key"] for s in body["tracker"]["stages"]][0] == "pending"

    def test_other_users_order_is_not_found(self, client, order):
        response = client.get(f"/api/orders/{order.id}", headers=auth_headers(OTHER_USER_ID))
        assert response.status_code == 404
        assert response.json() == {"error": "Order not found"}


class TestStatusUpdate:

    def test_bogus_status_is_rejected_and_nothing_changes(self, client, seed, order):
        response = patch_status(client, order.id, {"status": "bogus"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid status"}
        stored = seed.reload(Order, order.id)
        assert stored.order_status == "pending"
        assert stored.version == 1

    def test_missing_status_is_invalid(self, client, order):
        assert patch_status(client, order.id, {}).status_code == 400

    def test_next_stage(self, client, seed, order):
        response = patch_status(client, order.id, {"status": "confirmed"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["order"]["order_status"] == "confirmed"
        assert body["order"]["version"] == 2

        stored = seed.reload(Order, order.id)
        assert stored.order_status == "confirmed"
        assert stored.updated_at >= stored.created_at

    def test_skipping_stages_conflicts(self, client, seed, order):
        response = patch_status(client, order.id, {"status": "delivered"})
        assert response.status_code == 409
        assert seed.reload(Order, order.id).order_status == "pending"

    def test_stale_version_conflicts(self, client, seed, order):
        response = patch_status(client, order.id, {"status": "confirmed", "expected_version": 4})
        assert response.status_code == 409
        assert seed.reload(Order, order.id).order_status == "pending"

    def test_matching_version_succeeds(self, client, order):
        response = patch_status(client, order.id, {"status": "cancelled", "expected_version": 1})
        assert response.status_code == 200
        assert response.json()["order"]["order_status"] == "cancelled"

    def test_force_requires_admin(self, client, order):
        response = patch_status(client, order.id, {"status": "delivered", "force": True})
        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    def test_admin_can_force_any_order(self, client, seed, order):
        seed.admin(ADMIN_ID)
        response = patch_status(
            client, order.id, {"status": "delivered", "force": True}, user_id=ADMIN_ID
        )
        assert response.status_code == 200
        assert seed.reload(Order, order.id).order_status == "delivered"

    def test_other_users_order_is_not_found(self, client, order):
        response = patch_status(client, order.id, {"status": "confirmed"}, user_id=OTHER_USER_ID)
        assert response.status_code == 404


class TestPayment:

    def test_payment_confirms_order(self, client, seed, order):
        response = client.post(
            f"/api/orders/{order.id}/payment",
            json={"paymentData": {"method": "pix", "payer": "Ana"}},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["paymentData"] == {"method": "pix", "payer": "Ana"}
        assert body["order"]["payment_status"] == "paid"
        assert body["order"]["order_status"] == "confirmed"

        stored = seed.reload(Order, order.id)
        assert stored.payment_status == "paid"
        assert stored.order_status == "confirmed"
        assert stored.version == 2

    def test_payment_requires_token(self, client, order):
        response = client.post(f"/api/orders/{order.id}/payment", json={"paymentData": {}})
        assert response.status_code == 401

    def test_payment_for_someone_elses_order(self, client, order):
        response = client.post(
            f"/api/orders/{order.id}/payment",
            json={"paymentData": {}},
            headers=auth_headers(OTHER_USER_ID),
        )
        assert response.status_code == 404

    def test_cancelled_order_cannot_be_paid(self, client, seed, menu):
        cancelled = seed.order(USER_ID, "cancelled", [(menu["soda"], 1)])
        response = client.post(
            f"/api/orders/{cancelled.id}/payment",
            json={"paymentData": {}},
            headers=auth_headers(),
        )
        assert response.status_code == 409
        assert seed.reload(Order, cancelled.id).payment_status == "pending"

    def test_paid_order_is_not_charged_again(self, client, seed, order, monkeypatch):
        charges = []
        original = MockPaymentService.process_payment

        async def counting_process_payment(self, *args, **kwargs):
            charges.append(kwargs.get("order_id"))
            return await original(self, *args, **kwargs)

        monkeypatch.setattr(MockPaymentService, "process_payment", counting_process_payment)

        def pay():
            return client.post(
                f"/api/orders/{order.id}/payment",
                json={"paymentData": {}},
                headers=auth_headers(),
            )

        assert pay().status_code == 200
        second = pay()

        assert second.status_code == 409
        assert second.json() == {"error": "Order is already paid"}
        assert charges == [order.id]
        assert seed.reload(Order, order.id).version == 2

    def test_paid_pending_order_is_not_payable(self, seed, menu):
        paid = seed.order(USER_ID, "pending", [(menu["soda"], 1)], payment_status="paid")
        with pytest.raises(AlreadyPaidError):
            ensure_payable(paid)

    def test_unpaid_pending_order_is_payable(self, order):
        ensure_payable(order)


class TestTracking:

    def test_preparing_has_no_courier(self, client, seed, menu):
        preparing = seed.order(USER_ID, "preparing", [(menu["soda"], 1)])

        response = client.get(f"/api/orders/{preparing.id}/track", headers=auth_headers())

        assert response.status_code == 200
        tracking = response.json()["tracking"]
        assert tracking["orderId"] == preparing.id
        assert tracking["status"] == "preparing"
        assert tracking["estimatedDelivery"] == 45
        assert tracking["deliveryPerson"] is None
        assert tracking["location"] is None

    def test_out_for_delivery_has_courier_and_location(self, client, seed, menu):
        on_route = seed.order(USER_ID, "out_for_delivery", [(menu["soda"], 1)])

        tracking = client.get(
            f"/api/orders/{on_route.id}/track", headers=auth_headers()
        ).json()["tracking"]

        assert tracking["deliveryPerson"]["name"]
        assert tracking["deliveryPerson"]["rating"] == pytest.approx(4.8)
        assert set(tracking["location"]) == {"lat", "lng", "address", "lastUpdate"}

    def test_unknown_order(self, client):
        response = client.get("/api/orders/missing/track", headers=auth_headers())
        assert response.status_code == 404


class TestProfile:

    def test_profile_stats(self, client, seed, menu):
        seed.profile(USER_ID, "Ana Souza")
        seed.address(USER_ID)
        seed.order(USER_ID, "delivered", [(menu["soda"], 2)])
        seed.order(USER_ID, "pending", [(menu["soda"], 1)])

        body = client.get("/api/profile", headers=auth_headers()).json()

        assert body["full_name"] == "Ana Souza"
        assert len(body["addresses"]) == 1
        assert len(body["recent_orders"]) == 2
        assert body["stats"] == {
            "total_orders": 2,
            "total_spent": pytest.approx(30.0),
            "delivered_orders": 1,
            "average_order_value": pytest.approx(15.0),
        }

    def test_profile_without_orders(self, client):
        body = client.get("/api/profile", headers=auth_headers()).json()
        assert body["full_name"] is None
        assert body["stats"]["total_orders"] == 0

    def test_profile_stats_cover_every_order(self, client, seed):
        created = utc_now()
        seed.session.add_all([
            Order(
                user_id=USER_ID,
                total_amount=Decimal("10.00"),
                payment_method="pix",
                payment_status="paid",
                order_status="delivered" if i % 2 else "pending",
                created_at=created - timedelta(minutes=i),
                updated_at=created,
            )
            for i in range(1005)
        ])
        seed.session.commit()

        body = client.get("/api/profile", headers=auth_headers()).json()

        assert len(body["recent_orders"]) == 3
        assert body["stats"] == {
            "total_orders": 1005,
            "total_spent": pytest.approx(10050.0),
            "delivered_orders": 502,
            "average_order_value": pytest.approx(10.0),
        }
