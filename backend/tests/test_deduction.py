import pytest
from sqlalchemy import select

from backend.app.db.models.models_v1 import DeductionRecord, InventoryLevel, WarehouseStock
from backend.services import deduction
from backend.services.deduction import (
    apply_deduction,
    deduct_inbound_plan,
    deduct_shipment,
    preview_deduction,
    resolve_master_sku,
)
from backend.services.exceptions import ShipmentNotFound, WarehouseNotFound
from backend.services.receiving import receive_items


def available(db_session, warehouse_id, sku):
    db_session.expire_all()
    stock = db_session.get(WarehouseStock, (warehouse_id, sku))
    return stock.available if stock else None


def records(db_session, shipment_ref):
    return db_session.execute(
        select(DeductionRecord).where(DeductionRecord.shipment_ref == shipment_ref)
    ).scalars().all()


@pytest.fixture
def shipment_x(db_session, make_product, warehouse, set_stock, fake_source):
    make_product("X", title="Ceramic mug")
    set_stock(warehouse.id, "X", 50)
    fake_source.add("FBA123", [("X", 10)])
    return "FBA123"


# ---------- Scénario FBA123 ----------
def test_dry_run_then_apply_then_repeat(db_session, warehouse, fake_source, shipment_x):
    plan = deduct_shipment(db_session, fake_source, shipment_x, warehouse.id, dry_run=True)

    [line] = plan.lines
    assert (line.warehouse_before, line.warehouse_after) == (50, 40)
    assert line.found and not line.already_deducted
    assert plan.dry_run
    assert available(db_session, warehouse.id, "X") == 50

    summary = deduct_shipment(db_session, fake_source, shipment_x, warehouse.id, dry_run=False)

    assert not summary.dry_run
    assert summary.units_deducted == 10
    assert available(db_session, warehouse.id, "X") == 40
    [record] = records(db_session, shipment_x)
    assert (record.sku, record.quantity, record.quantity_before, record.quantity_after) == ("X", 10, 50, 40)

    again = deduct_shipment(db_session, fake_source, shipment_x, warehouse.id, dry_run=False)

    assert again.lines[0].already_deducted
    assert again.already_deducted == ["X"]
    assert again.units_deducted == 0
    assert again.items_to_process == 0
    assert available(db_session, warehouse.id, "X") == 40
    assert len(records(db_session, shipment_x)) == 1


def test_dry_run_is_pure(db_session, warehouse, fake_source, shipment_x):
    for _ in range(3):
        preview_deduction(db_session, fake_source, shipment_x, warehouse.id)

    db_session.commit()
    assert available(db_session, warehouse.id, "X") == 50
    assert records(db_session, shipment_x) == []


def test_preview_after_apply_reports_already_deducted(db_session, warehouse, fake_source, shipment_x):
    apply_deduction(db_session, fake_source, shipment_x, warehouse.id)

    plan = preview_deduction(db_session, fake_source, shipment_x, warehouse.id)

    [line] = plan.lines
    assert line.already_deducted
    assert (line.warehouse_before, line.warehouse_after) == (40, 40)


def test_concurrent_insert_is_caught_by_unique_guard(db_session, warehouse, fake_source, shipment_x, monkeypatch):
    apply_deduction(db_session, fake_source, shipment_x, warehouse.id)

    # l'existence-check passe (appel concurrent) : seule la contrainte unique protège
    monkeypatch.setattr(deduction, "_already_deducted", lambda db, ref, sku: False)
    summary = apply_deduction(db_session, fake_source, shipment_x, warehouse.id)

    assert summary.lines[0].already_deducted
    assert summary.applied == []
    assert available(db_session, warehouse.id, "X") == 40
    assert len(records(db_session, shipment_x)) == 1


# ---------- Résolution des SKU ----------
def test_seller_sku_resolution_order(db_session, make_product, map_sku):
    make_product("MUG-RED")
    make_product("amz-mug")
    map_sku("AMZ-MUG", "MUG-RED", fnsku="X00MUG")

    assert resolve_master_sku(db_session, "AMZ-MUG").sku == "MUG-RED"
    assert resolve_master_sku(db_session, "X00MUG").sku == "MUG-RED"
    assert resolve_master_sku(db_session, "x00mug").sku == "MUG-RED"
    assert resolve_master_sku(db_session, "amz-mug").sku == "MUG-RED"
    assert resolve_master_sku(db_session, "MUG-RED").sku == "MUG-RED"
    assert resolve_master_sku(db_session, "mug-red").sku == "MUG-RED"
    assert resolve_master_sku(db_session, "NOPE") is None


def test_unresolved_sku_is_a_warning(db_session, make_product, warehouse, set_stock, fake_source):
    make_product("X")
    set_stock(warehouse.id, "X", 5)
    fake_source.add("FBA200", [("X", 2), ("MYSTERY", 4)])

    summary = apply_deduction(db_session, fake_source, "FBA200", warehouse.id)

    assert summary.not_found == ["MYSTERY"]
    assert summary.total_items == 2
    assert summary.items_to_process == 1
    assert summary.units_deducted == 2
    assert available(db_session, warehouse.id, "X") == 3


def test_seller_skus_for_same_master_are_merged(db_session, make_product, warehouse, set_stock, fake_source, map_sku):
    make_product("X")
    map_sku("X-AMZ", "X")
    map_sku("X-AMZ-2", "X")
    set_stock(warehouse.id, "X", 20)
    fake_source.add("FBA300", [("X-AMZ", 3), ("X-AMZ-2", 4)])

    summary = apply_deduction(db_session, fake_source, "FBA300", warehouse.id)

    [line] = summary.lines
    assert line.seller_skus == ["X-AMZ", "X-AMZ-2"]
    assert line.quantity_shipped == 7
    assert available(db_session, warehouse.id, "X") == 13
    assert len(records(db_session, "FBA300")) == 1


# ---------- Survente ----------
def test_oversell_is_kept_and_reported(db_session, make_product, warehouse, set_stock, fake_source):
    make_product("X")
    set_stock(warehouse.id, "X", 3)
    db_session.add(InventoryLevel(sku="X", warehouse_available=3, fba_available=0))
    db_session.commit()
    fake_source.add("FBA400", [("X", 10)])

    plan = preview_deduction(db_session, fake_source, "FBA400", warehouse.id)
    assert plan.oversold == ["X"]

    summary = apply_deduction(db_session, fake_source, "FBA400", warehouse.id)

    assert summary.oversold == ["X"]
    assert available(db_session, warehouse.id, "X") == -7
    assert db_session.get(InventoryLevel, "X").warehouse_available == 0


def test_missing_stock_row_starts_at_zero(db_session, make_product, warehouse, fake_source):
    make_product("X")
    fake_source.add("FBA500", [("X", 1)])

    summary = apply_deduction(db_session, fake_source, "FBA500", warehouse.id)

    assert summary.lines[0].warehouse_before == 0
    assert available(db_session, warehouse.id, "X") == -1


# ---------- Plans d'envoi ----------
def test_inbound_plan_deducts_each_shipment_once(db_session, make_product, warehouse, set_stock, fake_source):
    make_product("X")
    set_stock(warehouse.id, "X", 50)
    fake_source.add("S-1", [("X", 2)], inbound_plan_id="PLAN-1")
    fake_source.add("S-2", [("X", 3)], inbound_plan_id="PLAN-1")

    preview = deduct_inbound_plan(db_session, fake_source, "PLAN-1", warehouse.id, dry_run=True)
    assert [p.total_units for p in preview] == [2, 3]
    assert available(db_session, warehouse.id, "X") == 50

    results = deduct_inbound_plan(db_session, fake_source, "PLAN-1", warehouse.id, dry_run=False)

    assert [r.shipment_ref for r in results] == ["S-1", "S-2"]
    assert all(r.inbound_plan_id == "PLAN-1" for r in results)
    assert available(db_session, warehouse.id, "X") == 45

    rerun = deduct_inbound_plan(db_session, fake_source, "PLAN-1", warehouse.id, dry_run=False)
    assert all(r.already_deducted == ["X"] for r in rerun)
    assert available(db_session, warehouse.id, "X") == 45


def test_inbound_plan_with_missing_shipment_writes_nothing(db_session, make_product, warehouse, set_stock, fake_source):
    make_product("X")
    set_stock(warehouse.id, "X", 50)
    fake_source.add("S-1", [("X", 2)], inbound_plan_id="PLAN-2")
    fake_source.plans["PLAN-2"].append("S-MISSING")

    with pytest.raises(ShipmentNotFound) as exc:
        deduct_inbound_plan(db_session, fake_source, "PLAN-2", warehouse.id, dry_run=False)

    assert exc.value.shipment_ref == "S-MISSING"
    assert available(db_session, warehouse.id, "X") == 50
    assert records(db_session, "S-1") == []


def test_inbound_plan_shares_stock_across_shipments(db_session, make_product, warehouse, set_stock, fake_source):
    make_product("X")
    set_stock(warehouse.id, "X", 4)
    fake_source.add("S-1", [("X", 3)], inbound_plan_id="PLAN-3")
    fake_source.add("S-2", [("X", 3)], inbound_plan_id="PLAN-3")

    first, second = deduct_inbound_plan(db_session, fake_source, "PLAN-3", warehouse.id, dry_run=False)

    assert (first.lines[0].warehouse_before, first.lines[0].warehouse_after) == (4, 1)
    assert (second.lines[0].warehouse_before, second.lines[0].warehouse_after) == (1, -2)
    assert second.oversold == ["X"]
    assert available(db_session, warehouse.id, "X") == -2


# ---------- Réception puis expédition ----------
def test_received_stock_is_visible_to_deduction(db_session, make_product, make_po, warehouse, fake_source):
    make_product("X")
    po = make_po([("X", 50)], warehouse=warehouse)
    receive_items(db_session, po.id, {po.items[0].id: {"received": 50}})
    fake_source.add("FBA600", [("X", 10)])

    plan = preview_deduction(db_session, fake_source, "FBA600", warehouse.id)

    [line] = plan.lines
    assert (line.warehouse_before, line.warehouse_after) == (50, 40)
    assert plan.oversold == []

    apply_deduction(db_session, fake_source, "FBA600", warehouse.id)

    assert available(db_session, warehouse.id, "X") == 40
    assert db_session.get(InventoryLevel, "X").warehouse_available == 40


# ---------- Erreurs ----------
def test_errors(db_session, warehouse, fake_source, shipment_x):
    with pytest.raises(WarehouseNotFound):
        deduct_shipment(db_session, fake_source, shipment_x, 999, dry_run=True)
    with pytest.raises(ShipmentNotFound):
        deduct_shipment(db_session, fake_source, "NOPE", warehouse.id, dry_run=False)
    with pytest.raises(ShipmentNotFound):
        deduct_shipment(db_session, fake_source, "  ", warehouse.id, dry_run=True)
    with pytest.raises(ShipmentNotFound):
        deduct_inbound_plan(db_session, fake_source, "PLAN-EMPTY", warehouse.id, dry_run=True)
    with pytest.raises(WarehouseNotFound):
        deduct_inbound_plan(db_session, fake_source, "PLAN-EMPTY", 999, dry_run=True)

    assert available(db_session, warehouse.id, "X") == 50
