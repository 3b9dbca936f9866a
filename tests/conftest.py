"""Shared fixtures: per-test SQLite database file, seed helpers and an API client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.db.database import Base, build_engine
import app.models  # noqa: F401

T0 = datetime(2026, 3, 1, 3, 0, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'billing.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Seed:
    """Creates floor, customers, orders and memberships for a test."""

    def __init__(self, db):
        self.db = db

    def table(self, name="T-1", seats=2):
        from app.services import floor

        table = floor.create_table(self.db, name, seats)
        return table, list(table.seats)

    def customer(self, name="Alice", points=0):
        from app.models.customer import Customer

        customer = Customer(display_name=name, points_balance=points)
        self.db.add(customer)
        self.db.commit()
        return customer

    def order(self, customer_id=None):
        from app.services import orders

        return orders.create_order(self.db, customer_id=customer_id)

    def plan(self, hours=10.0, overage_rate_minor=30000, price_minor=400000, points=0, name="月卡"):
        from app.models.membership import MembershipPlan

        plan = MembershipPlan(
            name=name,
            price_minor=price_minor,
            hours_included=hours,
            overage_rate_minor=overage_rate_minor,
            points_on_purchase=points,
            is_active=True,
        )
        self.db.add(plan)
        self.db.commit()
        return plan

    def membership(self, customer_id, plan_id, hours_used=0.0, now=T0):
        from app.services import membership_service

        membership = membership_service.purchase(self.db, customer_id, plan_id, now=now)
        membership.hours_used = hours_used
        self.db.commit()
        return membership

    def game(self, name="Catan"):
        from app.services import floor

        return floor.create_game(self.db, name)

    def stopped_order(self, seat, minutes=90, customer_id=None, start=T0):
        """Order with one seat whose timer ran for `minutes` and was stopped."""
        from app.services import seat_sessions

        order = self.order(customer_id)
        seat_sessions.start_session(self.db, seat.id, order.id, now=start)
        seat_sessions.stop_session(self.db, seat.id, now=start + timedelta(minutes=minutes))
        self.db.refresh(order)
        return order


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def gateway():
    from app.services.tender_gateway import SandboxTerminalGateway

    return SandboxTerminalGateway()


@pytest.fixture
def client(session_factory, gateway):
    from fastapi.testclient import TestClient

    from app.db.database import get_db
    from app.main import create_app
    from app.services.tender_gateway import get_tender_gateway

    api = create_app(session_factory=session_factory)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    api.dependency_overrides[get_db] = override_get_db
    api.dependency_overrides[get_tender_gateway] = lambda: gateway
    with TestClient(api) as test_client:
        yield test_client
