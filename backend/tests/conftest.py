import os

# session.py crée l'engine à l'import : jamais de Postgres en test
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.db.base import Base
from backend.app.db.models.core_types import POStatus
from backend.app.db.models.models_v1 import (
    ChannelMapping,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
    Warehouse,
    WarehouseStock,
)
from backend.services.fulfillment_source import ShipmentData, ShipmentLine
from backend.services.linked_products import assign_group


@pytest.fixture(scope="function")
def engine():
    """
    SQLite en mémoire, une seule connexion (StaticPool).

    pysqlite gère mal les SAVEPOINT : on désactive son BEGIN implicite
    et on émet le nôtre (recette SQLAlchemy).
    """
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    """Session DB isolée par test (base neuve à chaque test)."""
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


class FakeSource:
    """Source fulfillment en mémoire : {shipment_ref: ShipmentData}."""

    def __init__(self, shipments=None, plans=None):
        self.shipments = dict(shipments or {})
        self.plans = dict(plans or {})
        self.calls = []

    def add(self, shipment_ref, lines, inbound_plan_id=None):
        self.shipments[shipment_ref] = ShipmentData(
            shipment_ref=shipment_ref,
            inbound_plan_id=inbound_plan_id,
            lines=[ShipmentLine(seller_sku=sku, quantity=qty) for sku, qty in lines],
        )
        if inbound_plan_id:
            self.plans.setdefault(inbound_plan_id, []).append(shipment_ref)

    def get_shipment(self, shipment_ref, inbound_plan_id=None):
        self.calls.append(shipment_ref)
        return self.shipments.get(shipment_ref)

    def list_plan_shipments(self, inbound_plan_id):
        return list(self.plans.get(inbound_plan_id, []))


@pytest.fixture
def fake_source():
    return FakeSource()


# ---------- Builders ----------
@pytest.fixture
def make_product(db_session):
    def _make(sku, title=None, cost="0", group_id=None):
        p = Product(sku=sku, title=title or sku, cost=Decimal(cost))
        db_session.add(p)
        db_session.flush()
        if group_id is not None:
            assign_group(db_session, sku, group_id)
        db_session.commit()
        return p

    return _make


@pytest.fixture
def supplier(db_session):
    s = Supplier(name="ACME Textiles", lead_time_days=14, lead_time_samples=0)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def warehouse(db_session):
    w = Warehouse(name="Main warehouse", code="MAIN")
    db_session.add(w)
    db_session.commit()
    return w


@pytest.fixture
def make_po(db_session, supplier):
    """make_po([("SKU-A", 100), ...], status=POStatus.sent) -> PurchaseOrder"""
    counter = {"n": 0}

    def _make(lines, status=POStatus.sent, expected_arrival_date=None, created_at=None, unit_cost="2.50", warehouse=None):
        counter["n"] += 1
        po = PurchaseOrder(
            po_number=f"PO-TEST-{counter['n']:03d}",
            supplier_id=supplier.id,
            warehouse_id=warehouse.id if warehouse is not None else None,
            status=status,
            expected_arrival_date=expected_arrival_date,
        )
        if created_at is not None:
            po.created_at = created_at
        for sku, qty in lines:
            po.items.append(
                PurchaseOrderItem(
                    sku=sku,
                    quantity_ordered=qty,
                    quantity_received=0,
                    quantity_damaged=0,
                    unit_cost=Decimal(unit_cost),
                    line_total=Decimal(unit_cost) * qty,
                )
            )
        db_session.add(po)
        db_session.commit()
        return po

    return _make


@pytest.fixture
def set_stock(db_session):
    def _set(warehouse_id, sku, available):
        db_session.add(WarehouseStock(warehouse_id=warehouse_id, sku=sku, available=available))
        db_session.commit()

    return _set


@pytest.fixture
def map_sku(db_session):
    def _map(seller_sku, master_sku, fnsku=None):
        db_session.add(ChannelMapping(seller_sku=seller_sku, master_sku=master_sku, fnsku=fnsku))
        db_session.commit()

    return _map


@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def today():
    return date(2026, 3, 15)


# ---------- API ----------
@pytest.fixture
def client(db_session, fake_source):
    from fastapi.testclient import TestClient

    from backend.app.api.deps import get_db, get_fulfillment_source
    from backend.app.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_fulfillment_source] = lambda: fake_source
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
