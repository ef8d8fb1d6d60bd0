"""
Report Export Verification Script

Downloads the sales report workbook from a running server and checks
that it is consistent with the JSON report.
Run from project root: python scripts/verify.py [--period 3months]

Version: 1.0.0
"""

import argparse
import io
import os
import sys
from datetime import datetime

import httpx
import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.services.auth import make_dev_token  # noqa: E402

API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8001")
ADMIN_USER_ID = os.environ.get("ADMIN_USER_ID", "admin-sim")
EXPECTED_SHEETS = ["Monthly Sales", "Top Products", "Top Customers"]


def verify_export(period: str) -> bool:
    """Compare the .xlsx export against the JSON report of the same period."""

    print("=" * 60)
    print("REPORT EXPORT VERIFICATION")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Period: {period}")
    print("=" * 60)

    headers = {"Authorization": f"Bearer {make_dev_token(ADMIN_USER_ID)}"}
    params = {"period": period}

    with httpx.Client(base_url=API_BASE_URL, headers=headers, timeout=30.0) as client:
        report = client.get("/api/admin/reports", params=params)
        export = client.get("/api/admin/reports/export", params=params)

    if report.status_code != 200 or export.status_code != 200:
        print(f"\nRequest failed: report={report.status_code} export={export.status_code}")
        print(f"   {export.text[:200]}")
        return False

    sheets = pd.read_excel(io.BytesIO(export.content), sheet_name=None, engine="openpyxl")
    print(f"\nWorkbook loaded: {export.headers.get('content-disposition')}")

    missing = [name for name in EXPECTED_SHEETS if name not in sheets]
    if missing:
        print(f"\nMissing sheets: {missing}")
        return False
    print("All sheets present")

    data = report.json()
    ok = True

    sales = sheets["Monthly Sales"]
    json_revenue = round(sum(entry["revenue"] for entry in data["sales"]), 2)
    sheet_revenue = round(float(sales["revenue"].sum()), 2) if len(sales) else 0.0
    if json_revenue != sheet_revenue:
        print(f"\nRevenue mismatch: report {json_revenue} vs workbook {sheet_revenue}")
        ok = False
    else:
        print(f"\nRevenue: {sheet_revenue:.2f} over {len(sales)} months")

    products = sheets["Top Products"]
    if products["id"].tolist() != [p["id"] for p in data["top_products"]]:
        print("\nTop products ranking differs from the report")
        ok = False

    customers = sheets["Top Customers"]
    if customers["id"].duplicated().any():
        print("\nDuplicate customers in ranking")
        ok = False

    print("\nTOP PRODUCTS:")
    print("-" * 60)
    if len(products) > 0:
        print(products[["name", "total_sold", "total_revenue"]].head(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("VERIFICATION COMPLETE" if ok else "VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Report Export Verification")
    parser.add_argument("--period", default="3months", choices=["3months", "6months", "1year"])
    args = parser.parse_args()

    sys.exit(0 if verify_export(args.period) else 1)
