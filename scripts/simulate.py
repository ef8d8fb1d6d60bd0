"""
Storefront Simulation Script

Drives concurrent shoppers through the storefront against a running
server (development mode, dev tokens):

    browse -> cart -> checkout -> payment -> tracking

then lets the admin push every order through the kitchen, including two
racing "advance" clicks on the same order to show the version check.

Run from project root: python scripts/simulate.py [--seed] [--shoppers 20]

Version: 1.0.0
"""

import argparse
import asyncio
import os
import random
import sys
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.cart import CartStore, InMemoryCartStorage  # noqa: E402
from app.services.auth import make_dev_token  # noqa: E402

# Configuration
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8001")
TOTAL_SHOPPERS = 20
ADMIN_USER_ID = "admin-sim"

NEIGHBORHOODS = ["Centro", "Bela Vista", "Pinheiros", "Moema", "Liberdade", "Vila Mariana"]
STREETS = ["Rua Augusta", "Av. Paulista", "Rua Oscar Freire", "Rua da Consolação", "Rua Haddock Lobo"]
PAYMENT_METHODS = ["pix", "credit_card", "debit_card"]
ITEM_NOTES = [None, None, "no onions", "extra cheese", "well done"]

DEMO_MENU = {
    "Pizzas": [("Margherita", "39.90"), ("Pepperoni", "44.90"), ("Quatro Queijos", "46.50")],
    "Burgers": [("Classic Burger", "29.90"), ("Bacon Burger", "34.90")],
    "Drinks": [("Soda", "7.50"), ("Orange Juice", "9.90"), ("Sparkling Water", "5.00")],
}


def headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_dev_token(user_id)}"}


def random_address() -> dict[str, str]:
    return {
        "street": random.choice(STREETS),
        "number": str(random.randint(1, 2000)),
        "complement": random.choice(["", "Apt 12", "Casa 2"]),
        "neighborhood": random.choice(NEIGHBORHOODS),
        "city": "São Paulo",
        "state": "SP",
        "zip_code": f"0{random.randint(1000, 9999)}-{random.randint(100, 999)}",
    }


# =============================================================================
# DEMO DATA
# =============================================================================

async def seed_demo_data() -> None:
    """Create tables, a small menu and the simulation admin (direct DB access)."""
    from sqlalchemy import select

    from app.database import async_session_maker, engine, init_db
    from app.models import AdminRole, Category, Product

    await init_db()
    async with async_session_maker() as session:
        existing = await session.execute(select(Category.id).limit(1))
        if existing.first() is None:
            for sort_order, (category_name, products) in enumerate(DEMO_MENU.items()):
                category = Category(name=category_name, sort_order=sort_order)
                session.add(category)
                await session.flush()
                for name, price in products:
                    session.add(Product(name=name, price=Decimal(price), category_id=category.id))
            print(f"   Seeded {sum(len(p) for p in DEMO_MENU.values())} products")

        admin = await session.execute(select(AdminRole).where(AdminRole.user_id == ADMIN_USER_ID))
        if admin.scalar_one_or_none() is None:
            session.add(AdminRole(user_id=ADMIN_USER_ID, role="admin", permissions={}))
            print(f"   Granted admin role to {ADMIN_USER_ID}")

        await session.commit()
    await engine.dispose()


# =============================================================================
# SHOPPER FLOW
# =============================================================================

async def shop(
    client: httpx.AsyncClient,
    shopper_num: int,
    products: list[dict[str, Any]],
) -> dict[str, Any]:
    """One shopper: fill a cart, check out, pay, track."""
    user_id = f"shopper-{shopper_num:03d}"
    start_time = time.time()

    cart = CartStore(InMemoryCartStorage())
    for product in random.sample(products, k=random.randint(1, min(4, len(products)))):
        for _ in range(random.randint(1, 3)):
            cart.add(product["id"])
        cart.set_note(product["id"], random.choice(ITEM_NOTES))

    prices = {p["id"]: Decimal(str(p["price"])) for p in products}
    expected_total = cart.subtotal(prices)

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/checkout",
            json={
                "items": [
                    {"product_id": line["product_id"], "quantity": line["quantity"], "notes": line["notes"]}
                    for line in cart.checkout_lines(prices)
                ],
                "new_address": random_address(),
                "payment_method": random.choice(PAYMENT_METHODS),
            },
            headers=headers(user_id),
            timeout=30.0,
        )
        if response.status_code != 201:
            return {"shopper": shopper_num, "success": False, "error": response.text[:100]}

        order = response.json()["order"]

        response = await client.post(
            f"{API_BASE_URL}/api/orders/{order['id']}/payment",
            json={"paymentData": {"method": order["payment_method"]}},
            headers=headers(user_id),
            timeout=30.0,
        )
        if response.status_code != 200:
            return {"shopper": shopper_num, "success": False, "error": response.text[:100]}
        cart.clear()

        tracking = await client.get(
            f"{API_BASE_URL}/api/orders/{order['id']}/track",
            headers=headers(user_id),
        )

        return {
            "shopper": shopper_num,
            "success": True,
            "order_id": order["id"],
            "total": order["total_amount"],
            "total_matches_cart": Decimal(str(order["total_amount"])) == expected_total,
            "status": tracking.json()["tracking"]["status"],
            "time": round(time.time() - start_time, 3),
        }
    except httpx.HTTPError as e:
        return {"shopper": shopper_num, "success": False, "error": str(e)[:100]}


async def admin_round(client: httpx.AsyncClient, order_ids: list[str]) -> dict[str, int]:
    """Advance every order to delivered; race two advances on the first one."""
    admin = headers(ADMIN_USER_ID)
    outcome = {"advanced": 0, "conflicts": 0}

    if order_ids:
        version = 2  # bumped once by the payment
        racing = await asyncio.gather(*[
            client.post(
                f"{API_BASE_URL}/api/admin/orders/{order_ids[0]}/advance",
                json={"expected_version": version},
                headers=admin,
            )
            for _ in range(2)
        ])
        outcome["advanced"] += sum(1 for r in racing if r.status_code == 200)
        outcome["conflicts"] += sum(1 for r in racing if r.status_code == 409)

    for order_id in order_ids:
        for _ in range(5):
            response = await client.post(
                f"{API_BASE_URL}/api/admin/orders/{order_id}/advance", headers=admin
            )
            if response.status_code == 200:
                outcome["advanced"] += 1
            elif response.status_code == 409:
                outcome["conflicts"] += 1
    return outcome


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_shoppers: int = TOTAL_SHOPPERS) -> dict[str, Any]:
    print("=" * 70)
    print("STOREFRONT SIMULATION")
    print("=" * 70)
    print(f"Shoppers: {num_shoppers}")
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        health = await client.get(f"{API_BASE_URL}/health")
        print(f"\nHealth: {health.json().get('status')}")

        products = (await client.get(f"{API_BASE_URL}/api/products")).json()
        if not products:
            print("\nNo products in the catalog. Run with --seed first.")
            return {"total": 0, "successful": 0}

        print(f"\nFiring {num_shoppers} shoppers...\n")
        results = await asyncio.gather(*[
            shop(client, i + 1, products) for i in range(num_shoppers)
        ])

        successful = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]

        print("Admin pushing orders through the kitchen...")
        admin = await admin_round(client, [r["order_id"] for r in successful])

        report = await client.get(
            f"{API_BASE_URL}/api/admin/reports?period=3months", headers=headers(ADMIN_USER_ID)
        )

    total_time = round(time.time() - start_time, 2)

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    print(f"\nSuccessful checkouts: {len(successful)}/{num_shoppers}")
    print(f"Failed checkouts: {len(failed)}/{num_shoppers}")
    print(f"Total time: {total_time}s")

    if successful:
        mismatched = [r for r in successful if not r["total_matches_cart"]]
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\nAverage checkout+payment: {avg_time}s")
        print(f"Revenue: {sum(r['total'] for r in successful):.2f}")
        print(f"Totals matching cart subtotal: {len(successful) - len(mismatched)}/{len(successful)}")

    print(f"\nAdmin advances: {admin['advanced']}, version conflicts: {admin['conflicts']}")

    if report.status_code == 200:
        stats = report.json()["monthly_stats"]["current_month"]
        print(f"Delivered this month: {stats['orders']} orders, {stats['revenue']:.2f}")

    if failed:
        print("\nFailed shopper details (showing first 5):")
        for f in failed[:5]:
            print(f"   Shopper #{f['shopper']}: {f.get('error', 'Unknown error')}")

    print("=" * 70)
    return {"total": num_shoppers, "successful": len(successful), "results": results}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Storefront Simulation Script")
    parser.add_argument("--seed", action="store_true", help="Seed demo menu and admin first")
    parser.add_argument("--shoppers", type=int, default=TOTAL_SHOPPERS, help="Number of shoppers")
    args = parser.parse_args()

    if args.seed:
        print("Seeding demo data...")
        asyncio.run(seed_demo_data())

    asyncio.run(run_simulation(args.shoppers))
