from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockdesk.app.api.deps import get_db
from stockdesk.app.db.models.models_v1 import Base, Product, ProductVariant
from stockdesk.app.main import app


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite database per test.

    One shared connection (StaticPool) so every session sees the same data;
    foreign keys are off by default in SQLite and switched on here.
    """
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_product(db_session):
    """
    Insert catalog rows directly, bypassing the ledger.

    ``variants`` is a list of variant stocks; this is how tests build products
    in states the services never produce themselves (e.g. manual stock left on
    a product that has variants).
    """

    def _make(
        name: str = "Product",
        *,
        manual_stock: int = 0,
        variants: tuple[int, ...] | list[int] = (),
        price: Decimal | str | int = Decimal("100"),
        cost: Decimal | str | int | None = None,
        low_stock_threshold: int = 5,
        track_stock: bool = True,
        is_active: bool = True,
        sku: str | None = None,
    ) -> Product:
        p = Product(
            sku=sku,
            name=name,
            price=Decimal(price),
            cost=Decimal(cost) if cost is not None else None,
            manual_stock=manual_stock,
            low_stock_threshold=low_stock_threshold,
            track_stock=track_stock,
            is_active=is_active,
        )
        db_session.add(p)
        db_session.flush()
        for i, stock in enumerate(variants, start=1):
            db_session.add(ProductVariant(product_id=p.id, name=f"{name} #{i}", stock=stock, options={}))
        db_session.commit()
        return p

    return _make


@pytest.fixture
def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
