import io
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pandas as pd
import pytest

from app.services.report_export import XLSX_MEDIA_TYPE
from app.services.reports import (
    growth,
    month_start,
    monthly_sales,
    monthly_stats,
    period_start,
    top_customers,
    top_products,
)
from app.models import utc_now
from tests.conftest import ADMIN_ID, OTHER_USER_ID, USER_ID, auth_headers

NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)


def at(year, month, day=10):
    return datetime(year, month, day, 12, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "current, previous, expected",
    [(0, 0, 0), (100, 0, 100), (150, 100, 50), (50, 100, -50)],
)
def test_growth(current, previous, expected):
    assert growth(current, previous) == expected


class TestPeriods:

    def test_month_start_wraps_years(self):
        assert month_start(2026, 0) == datetime(2025, 12, 1, tzinfo=timezone.utc)
        assert month_start(2026, -11) == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert month_start(2026, 13) == datetime(2027, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "period, expected",
        [
            ("3months", datetime(2026, 7, 1, tzinfo=timezone.utc)),
            ("6months", datetime(2026, 4, 1, tzinfo=timezone.utc)),
            ("1year", datetime(2025, 10, 1, tzinfo=timezone.utc)),
            ("forever", datetime(2026, 4, 1, tzinfo=timezone.utc)),
        ],
    )
    def test_period_start(self, period, expected):
        assert period_start(period, NOW) == expected


class TestAggregations:

    def test_monthly_sales_sorted_by_month(self):
        rows = [
            {"created_at": at(2026, 9), "total_amount": Decimal("30.00")},
            {"created_at": at(2026, 8), "total_amount": Decimal("10.00")},
            {"created_at": at(2026, 9, 20), "total_amount": Decimal("12.50")},
        ]
        assert monthly_sales(rows) == [
            {"month": "2026-08", "revenue": Decimal("10.00"), "orders": 1},
            {"month": "2026-09", "revenue": Decimal("42.50"), "orders": 2},
        ]

    def test_monthly_sales_accepts_naive_timestamps(self):
        rows = [{"created_at": datetime(2026, 5, 31, 23, 0), "total_amount": 5}]
        assert monthly_sales(rows)[0]["month"] == "2026-05"

    def test_empty_inputs(self):
        assert monthly_sales([]) == []
        assert top_products([]) == []
        assert top_customers([]) == []

    def test_top_products_by_units(self):
        items = [
            {"product_id": "p1", "name": "Pizza", "image_url": None, "quantity": 1, "unit_price": Decimal("40")},
            {"product_id": "p2", "name": "Soda", "image_url": "soda.png", "quantity": 3, "unit_price": Decimal("5")},
            {"product_id": "p1", "name": "Pizza", "image_url": None, "quantity": 1, "unit_price": Decimal("45")},
        ]
        ranking = top_products(items)

        assert [p["id"] for p in ranking] == ["p2", "p1"]
        assert ranking[0]["total_sold"] == 3
        assert ranking[0]["image_url"] == "soda.png"
        assert ranking[1]["total_revenue"] == Decimal("85.00")
        assert ranking[1]["image_url"] is None

    def test_top_products_limit(self):
        items = [
            {"product_id": f"p{i}", "name": str(i), "image_url": None, "quantity": i, "unit_price": 1}
            for i in range(1, 15)
        ]
        ranking = top_products(items, limit=10)
        assert len(ranking) == 10
        assert ranking[0]["id"] == "p14"

    def test_top_customers_by_spend(self):
        orders = [
            {"user_id": "u1", "total_amount": 20, "created_at": at(2026, 9), "full_name": "Ana", "phone": "1"},
            {"user_id": "u2", "total_amount": 90, "created_at": at(2026, 8), "full_name": None, "phone": None},
            {"user_id": "u1", "total_amount": 30, "created_at": at(2026, 10), "full_name": "Ana", "phone": "1"},
        ]
        ranking = top_customers(orders)

        assert [c["id"] for c in ranking] == ["u2", "u1"]
        assert ranking[0]["full_name"] == "Customer"
        assert ranking[0]["phone"] == ""
        assert ranking[1]["total_orders"] == 2
        assert ranking[1]["total_spent"] == Decimal("50.00")
        assert ranking[1]["last_order"] == at(2026, 10)

    def test_monthly_stats(self):
        orders = [
            {"created_at": at(2026, 10, 1), "total_amount": 150, "user_id": "u1"},
            {"created_at": at(2026, 10, 5), "total_amount": 0, "user_id": "u1"},
            {"created_at": at(2026, 9, 30), "total_amount": 100, "user_id": "u2"},
            {"created_at": at(2026, 8, 30), "total_amount": 999, "user_id": "u3"},
        ]
        stats = monthly_stats(orders, NOW)

        assert stats["current_month"] == {"revenue": Decimal("150.00"), "orders": 2, "customers": 1}
        assert stats["previous_month"] == {"revenue": Decimal("100.00"), "orders": 1, "customers": 1}
        assert stats["growth"] == {"revenue": 50.0, "orders": 100.0, "customers": 0.0}

    def test_monthly_stats_without_orders(self):
        stats = monthly_stats([], NOW)
        assert stats["current_month"]["orders"] == 0
        assert stats["growth"] == {"revenue": 0.0, "orders": 0.0, "customers": 0.0}


class TestReportEndpoints:

    @pytest.fixture
    def sales(self, seed, menu):
        seed.admin(ADMIN_ID)
        seed.profile(USER_ID, "Ana Souza")
        now = utc_now()
        seed.order(USER_ID, "delivered", [(menu["margherita"], 2)], created_at=now)
        seed.order(OTHER_USER_ID, "delivered", [(menu["soda"], 3)], created_at=now)
        seed.order(USER_ID, "pending", [(menu["soda"], 10)], created_at=now)
        seed.order(USER_ID, "delivered", [(menu["soda"], 1)], created_at=now - timedelta(days=800))
        return menu

    def test_reports(self, client, sales):
        response = client.get("/api/admin/reports?period=3months", headers=auth_headers(ADMIN_ID))

        assert response.status_code == 200
        body = response.json()
        assert body["period"] == "3months"
        assert len(body["sales"]) == 1
        assert body["sales"][0]["orders"] == 2
        assert body["sales"][0]["revenue"] == pytest.approx(81.80)

        assert [p["name"] for p in body["top_products"]] == ["Soda", "Margherita"]
        assert body["top_products"][0]["total_sold"] == 3

        customers = {c["id"]: c for c in body["top_customers"]}
        assert customers[USER_ID]["full_name"] == "Ana Souza"
        assert customers[OTHER_USER_ID]["full_name"] == "Customer"

        assert body["monthly_stats"]["current_month"]["orders"] == 2
        assert body["monthly_stats"]["current_month"]["customers"] == 2

    def test_unknown_period_falls_back(self, client, sales):
        body = client.get("/api/admin/reports?period=decade", headers=auth_headers(ADMIN_ID)).json()
        assert body["period"] == "6months"

    def test_export(self, client, sales):
        response = client.get("/api/admin/reports/export", headers=auth_headers(ADMIN_ID))

        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX_MEDIA_TYPE
        assert "sales-report-6months" in response.headers["content-disposition"]

        sheets = pd.read_excel(io.BytesIO(response.content), sheet_name=None)
        assert list(sheets) == ["Monthly Sales", "Top Products", "Top Customers"]
        assert sheets["Top Products"]["name"].tolist() == ["Soda", "Margherita"]
