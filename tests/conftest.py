"""
Shared fixtures.

The API runs against a throw-away SQLite file per test: the app sees it
through an aiosqlite engine (dependency overrides), the tests seed and
inspect it through a plain synchronous session on the same file.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENV_MODE"] = "development"
os.environ["PAYMENT_PROCESSING_DELAY_SECONDS"] = "0"

from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from app.database import Base, get_db, get_session_factory
from app.main import app
from app.models import (
    Address,
    AdminRole,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Profile,
    Promotion,
    utc_now,
)
from app.services.auth import make_dev_token

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
ADMIN_ID = "admin-1"


def auth_headers(user_id: str = USER_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_dev_token(user_id)}"}


class Seeder:
    """Inserts rows straight into the test database."""

    def __init__(self, session: Session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def reload(self, model, pk):
        self.session.expire_all()
        return self.session.get(model, pk)

    def profile(self, user_id: str = USER_ID, full_name: Optional[str] = "Ana Souza", phone: str = "11 90000-0000"):
        return self._save(Profile(id=user_id, full_name=full_name, phone=phone))

    def admin(self, user_id: str = ADMIN_ID) -> AdminRole:
        return self._save(AdminRole(user_id=user_id, role="admin", permissions={}))

    def category(self, name: str = "Pizzas", sort_order: int = 0, active: bool = True) -> Category:
        return self._save(Category(name=name, sort_order=sort_order, active=active))

    def product(
        self,
        name: str = "Margherita",
        price: str = "25.90",
        category: Optional[Category] = None,
        active: bool = True,
    ) -> Product:
        return self._save(Product(
            name=name,
            price=Decimal(price),
            category_id=category.id if category else None,
            active=active,
        ))

    def address(self, user_id: str = USER_ID, is_default: bool = True) -> Address:
        return self._save(Address(
            user_id=user_id,
            street="Rua das Flores",
            number="123",
            neighborhood="Centro",
            city="São Paulo",
            state="SP",
            zip_code="01001-000",
            is_default=is_default,
        ))

    def order(
        self,
        user_id: str = USER_ID,
        status: str = OrderStatus.PENDING.value,
        lines: tuple = (),
        created_at: Optional[datetime] = None,
        payment_status: str = "pending",
    ) -> Order:
        """``lines`` holds (product, quantity) pairs priced at the product's price."""
        total = sum((Decimal(p.price) * qty for p, qty in lines), Decimal("0"))
        created = created_at or utc_now()
        order = self._save(Order(
            user_id=user_id,
            total_amount=total,
            payment_method="pix",
            payment_status=payment_status,
            order_status=status,
            estimated_delivery_time=45,
            created_at=created,
            updated_at=created,
        ))
        for product, quantity in lines:
            self.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=quantity,
                unit_price=Decimal(product.price),
            ))
        self.session.commit()
        return order

    def promotion(self, **overrides) -> Promotion:
        values = {
            "title": "Summer Deal",
            "discount_type": "percentage",
            "discount_value": Decimal("10"),
            "min_order_value": Decimal("0"),
            "start_date": datetime(2024, 1, 1),
            "end_date": datetime(2024, 12, 31),
            "active": True,
        }
        values.update(overrides)
        return self._save(Promotion(**values))


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "storefront.db"


@pytest.fixture
def db_session(db_path):
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    with Session(engine, expire_on_commit=False) as session:
        yield session
    engine.dispose()


@pytest.fixture
def seed(db_session) -> Seeder:
    return Seeder(db_session)


@pytest.fixture
def client(db_path, db_session):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: factory

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def menu(seed):
    """A category with two active products and one inactive product."""
    pizzas = seed.category("Pizzas")
    return {
        "category": pizzas,
        "margherita": seed.product("Margherita", "25.90", pizzas),
        "soda": seed.product("Soda", "10.00", pizzas),
        "retired": seed.product("Old Special", "99.00", pizzas, active=False),
    }
