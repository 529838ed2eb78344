import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.config import settings
from core.db import Base, get_db
from helpers import FakeNotifier, FakeRegistrar
from main import app
from services.order_state import OrderStateMachine
from services.order_store import OrderStore


@pytest.fixture()
def db():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def store(db):
    return OrderStore(db)


@pytest.fixture()
def notifier():
    return FakeNotifier()


@pytest.fixture()
def registrar():
    return FakeRegistrar()


@pytest.fixture()
def state_machine(store, notifier, registrar):
    return OrderStateMachine(store, notifier, registrar)


@pytest.fixture()
def make_order(store):
    """Factory creating a pending order directly in the store."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "order_number": f"FCL-TEST-{counter['n']}",
            "user_id": "user-1",
            "items": [{"sku": "X1", "title": "Tee", "price": 1000, "quantity": 2}],
            "total": 2160,
            "currency": "USD",
            "payment_method": "card",
            "billing_info": {"name": "Ada", "email": "ada@example.com"},
            "status": "pending",
        }
        fields.update(overrides)
        return store.create(**fields)

    return _make


@pytest.fixture()
def client(db, notifier, registrar):
    def _get_db():
        yield db

    saved = (app.state.notifier, app.state.registrar)
    app.dependency_overrides[get_db] = _get_db
    app.state.notifier = notifier
    app.state.registrar = registrar
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
        app.state.notifier, app.state.registrar = saved


@pytest.fixture()
def webhook_secrets():
    return {
        "stripe": settings.STRIPE_WEBHOOK_SECRET,
        "coinbase": settings.COINBASE_WEBHOOK_SECRET,
        "nowpayments": settings.NOWPAYMENTS_IPN_SECRET,
    }
