import os
import tempfile
import uuid
from datetime import date, datetime
from decimal import Decimal

os.environ.setdefault("MARKET_DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "x" * 48)
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="machine-market-uploads-"))
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from machine_market import MarketApp as app_module
from machine_market.db.base import Base
from machine_market.models.market_models import Machine, Rental


def make_token(user_id, role=None, secret=None, **extra_claims) -> str:
    claims = {"user_id": user_id}
    if role is not None:
        claims["role"] = role
    claims.update(extra_claims)
    return jwt.encode(claims, secret or os.environ["JWT_SECRET"], algorithm="HS256")


def auth_headers(user_id, role=None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


class MarketTestCase:
    """Mixin giving each test a fresh in-memory store wired into the app."""

    def setUp(self):
        self.engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
        Base.metadata.create_all(self.engine)
        self.SessionTest = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False, future=True)

        def _override_db():
            db = self.SessionTest()
            try:
                yield db
            finally:
                db.close()

        app_module.app.dependency_overrides[app_module.get_market_db] = _override_db
        self.client = TestClient(app_module.app)

    def tearDown(self):
        app_module.app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def seed_machine(self, **overrides) -> Machine:
        values = {
            "id": uuid.uuid4(),
            "seller_id": 1,
            "title": "Rentable Excavator",
            "description": "Heavy duty excavator",
            "manufacturer": "Komatsu",
            "model_number": "PC210",
            "year_of_manufacture": 2019,
            "category": "Excavator",
            "location": "Faridabad, Haryana",
            "status": "listed",
            "listing_type": "rent",
            "price_for_sale": Decimal("0"),
            "rental_price_per_day": Decimal("1000"),
            "rental_price_per_month": Decimal("25000"),
            "security_deposit": Decimal("5000"),
            "specs": {"power_kw": 110},
            "created_at": datetime(2025, 1, 1, 9, 0, 0),
            "updated_at": datetime(2025, 1, 1, 9, 0, 0),
        }
        values.update(overrides)
        with self.SessionTest() as db:
            machine = Machine(**values)
            db.add(machine)
            db.commit()
            db.refresh(machine)
            return machine

    def seed_rental(self, machine_id, renter_id=2, **overrides) -> Rental:
        values = {
            "id": uuid.uuid4(),
            "machine_id": machine_id,
            "renter_id": renter_id,
            "start_date": date(2025, 1, 1),
            "end_date": date(2025, 1, 2),
            "total_amount": Decimal("1000"),
            "security_deposit": Decimal("5000"),
            "platform_fee": Decimal("50"),
            "status": "pending",
            "created_at": datetime(2025, 1, 1, 10, 0, 0),
            "updated_at": datetime(2025, 1, 1, 10, 0, 0),
        }
        values.update(overrides)
        with self.SessionTest() as db:
            rental = Rental(**values)
            db.add(rental)
            db.commit()
            db.refresh(rental)
            return rental

    def count_rows(self, model) -> int:
        with self.SessionTest() as db:
            return db.query(model).count()

    def reload(self, model, identifier):
        with self.SessionTest() as db:
            return db.get(model, identifier)
