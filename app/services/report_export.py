"""
Report Excel Export

Renders a sales report as an .xlsx workbook (one sheet per ranking) for
download from the back office.
"""

import io
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import pandas as pd

from app.services.reports import ReportData

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ReportExporter:
    """Builds Excel workbooks from ReportData."""

    SALES_COLUMNS = ["month", "revenue", "orders"]

    PRODUCT_COLUMNS = [
        "id",
        "name",
        "total_sold",
        "total_revenue",
    ]

    CUSTOMER_COLUMNS = [
        "id",
        "full_name",
        "phone",
        "total_orders",
        "total_spent",
        "last_order",
    ]

    @staticmethod
    def _excel_value(value: Any) -> Any:
        """Excel has no timezones and no Decimal type."""
        if isinstance(value, datetime):
            return value.replace(tzinfo=None)
        if isinstance(value, Decimal):
            return float(value)
        return value

    @classmethod
    def _frame(cls, rows: list[dict[str, Any]], columns: list[str]) -> pd.DataFrame:
        cleaned = [
            {col: cls._excel_value(row.get(col)) for col in columns}
            for row in rows
        ]
        return pd.DataFrame(cleaned, columns=columns)

    @classmethod
    def filename(cls, report: ReportData) -> str:
        return f"sales-report-{report.period}-{report.start_date:%Y%m}.xlsx"

    @classmethod
    def to_workbook(cls, report: ReportData) -> bytes:
        """
        Serialize the report to .xlsx bytes.

        Sheets: Monthly Sales, Top Products, Top Customers.
        """
        buffer = io.BytesIO()

        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            cls._frame(report.sales, cls.SALES_COLUMNS).to_excel(
                writer, sheet_name="Monthly Sales", index=False
            )
            cls._frame(report.top_products, cls.PRODUCT_COLUMNS).to_excel(
                writer, sheet_name="Top Products", index=False
            )
            cls._frame(report.top_customers, cls.CUSTOMER_COLUMNS).to_excel(
                writer, sheet_name="Top Customers", index=False
            )

        logger.info(
            f"Report {report.period} exported: {len(report.sales)} months, "
            f"{len(report.top_products)} products, {len(report.top_customers)} customers"
        )
        return buffer.getvalue()
