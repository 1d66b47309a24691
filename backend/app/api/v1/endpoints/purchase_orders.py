from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import PurchaseOrder
from backend.app.db.models.core_types import POStatus
from backend.services import procurement
from backend.services.backorders import outstanding_quantity
from backend.services.receiving import ReceiptQuantities, ReceivingSummary, ItemChange, receive_items

router = APIRouter(prefix="/purchase-orders")


class POItemCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    quantity_ordered: int = Field(ge=0)
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    line_total: Decimal | None = Field(default=None, ge=0)


class POCreate(BaseModel):
    po_number: str = Field(min_length=1, max_length=64)
    supplier_id: int
    warehouse_id: int | None = None
    status: POStatus = POStatus.draft
    expected_arrival_date: date | None = None
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    other_costs: Decimal = Field(default=Decimal("0"), ge=0)
    items: list[POItemCreate] = Field(default_factory=list)


class POItemUpdate(BaseModel):
    quantity_ordered: int | None = Field(default=None, ge=0)
    unit_cost: Decimal | None = Field(default=None, ge=0)
    line_total: Decimal | None = Field(default=None, ge=0)


class POItemsDelete(BaseModel):
    item_ids: list[int] = Field(min_length=1)


class POCostsUpdate(BaseModel):
    shipping_cost: Decimal | None = Field(default=None, ge=0)
    tax: Decimal | None = Field(default=None, ge=0)
    other_costs: Decimal | None = Field(default=None, ge=0)


class POStatusUpdate(BaseModel):
    status: POStatus


class ReceiveQty(BaseModel):
    received: int = Field(default=0, ge=0)
    damaged: int = Field(default=0, ge=0)
    backorder: int = Field(default=0, ge=0)


class ReceiveRequest(BaseModel):
    items: dict[int, ReceiveQty] = Field(min_length=1)
    received_date: date | None = None
    warehouse_id: int | None = None


def _new_item(ln: POItemCreate) -> procurement.NewItem:
    return procurement.NewItem(
        sku=ln.sku,
        quantity_ordered=ln.quantity_ordered,
        unit_cost=ln.unit_cost,
        line_total=ln.line_total,
    )


def _status_view(status: POStatus) -> str:
    # "closed" n'est qu'une vue de "received"
    return "closed" if status == POStatus.received else status.value


def _po_out(po: PurchaseOrder, outstanding: int | None = None) -> dict:
    out = {
        "id": po.id,
        "po_number": po.po_number,
        "supplier_id": po.supplier_id,
        "warehouse_id": po.warehouse_id,
        "status": po.status.value,
        "status_view": _status_view(po.status),
        "subtotal": float(po.subtotal),
        "shipping_cost": float(po.shipping_cost),
        "tax": float(po.tax),
        "other_costs": float(po.other_costs),
        "total": float(po.total),
        "expected_arrival_date": po.expected_arrival_date,
        "actual_arrival_date": po.actual_arrival_date,
        "created_at": po.created_at,
    }
    if outstanding is not None:
        out["outstanding_backorder_quantity"] = outstanding
    return out


def _item_out(it) -> dict:
    return {
        "id": it.id,
        "sku": it.sku,
        "quantity_ordered": it.quantity_ordered,
        "quantity_received": it.quantity_received,
        "quantity_damaged": it.quantity_damaged,
        "unit_cost": float(it.unit_cost),
        "line_total": float(it.line_total),
    }


def _change_out(ch: ItemChange) -> dict:
    out = {
        "item_id": ch.item_id,
        "sku": ch.sku,
        "received_delta": ch.received_delta,
        "damaged_delta": ch.damaged_delta,
        "quantity_received": ch.quantity_received,
        "quantity_damaged": ch.quantity_damaged,
        "quantity_ordered": ch.quantity_ordered,
    }
    if ch.linked_from:
        out["linked_from"] = ch.linked_from
    return out


def _receiving_out(s: ReceivingSummary) -> dict:
    return {
        "success": True,
        "po_id": s.po_id,
        "po_number": s.po_number,
        "previous_status": s.previous_status.value,
        "new_status": s.status.value,
        "status_changed": s.status_changed,
        "items_updated": [_change_out(ch) for ch in s.items_updated],
        "linked_items_updated": [_change_out(ch) for ch in s.linked_items_updated],
        "inventory_changes": s.inventory_changes,
        "backorders_created": s.backorders_created,
        "backorder_ids": s.backorder_ids,
        "outstanding_backorder_quantity": s.outstanding_backorder_quantity,
        "lead_time_days": s.lead_time_days,
        "warehouse_id": s.warehouse_id,
    }


@router.get("")
def list_pos(status: POStatus | None = None, db: Session = Depends(get_db)):
    stmt = select(PurchaseOrder).order_by(PurchaseOrder.id.desc())
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    rows = db.execute(stmt).scalars().all()
    return [_po_out(po) for po in rows]


@router.get("/{po_id}")
def get_po(po_id: int, db: Session = Depends(get_db)):
    po = db.get(PurchaseOrder, po_id)
    if not po:
        raise HTTPException(status_code=404, detail="PO not found")

    out = _po_out(po, outstanding=outstanding_quantity(db, po.id))
    out["items"] = [_item_out(it) for it in po.items]
    return out


@router.post("")
def create_po(payload: POCreate, db: Session = Depends(get_db)):
    po = procurement.create_purchase_order(
        db,
        po_number=payload.po_number,
        supplier_id=payload.supplier_id,
        status=payload.status,
        expected_arrival_date=payload.expected_arrival_date,
        shipping_cost=payload.shipping_cost,
        tax=payload.tax,
        other_costs=payload.other_costs,
        warehouse_id=payload.warehouse_id,
        items=[_new_item(ln) for ln in payload.items],
    )
    return {"id": po.id, "po_number": po.po_number, "total": float(po.total)}


@router.post("/{po_id}/items")
def add_po_item(po_id: int, payload: POItemCreate, db: Session = Depends(get_db)):
    item = procurement.add_item(db, po_id, _new_item(payload))
    return _item_out(item)


@router.patch("/{po_id}/items/{item_id}")
def update_po_item(po_id: int, item_id: int, payload: POItemUpdate, db: Session = Depends(get_db)):
    item = procurement.update_item(
        db,
        po_id,
        item_id,
        quantity_ordered=payload.quantity_ordered,
        unit_cost=payload.unit_cost,
        line_total=payload.line_total,
    )
    return _item_out(item)


@router.delete("/{po_id}/items")
def delete_po_items(po_id: int, payload: POItemsDelete, db: Session = Depends(get_db)):
    removed = procurement.remove_items(db, po_id, payload.item_ids)
    return {"success": True, "removed": removed}


@router.patch("/{po_id}/costs")
def update_po_costs(po_id: int, payload: POCostsUpdate, db: Session = Depends(get_db)):
    po = procurement.update_costs(
        db,
        po_id,
        shipping_cost=payload.shipping_cost,
        tax=payload.tax,
        other_costs=payload.other_costs,
    )
    return _po_out(po)


@router.post("/{po_id}/status")
def update_po_status(po_id: int, payload: POStatusUpdate, db: Session = Depends(get_db)):
    po = procurement.set_status(db, po_id, payload.status)
    return _po_out(po)


@router.delete("/{po_id}")
def delete_po(po_id: int, db: Session = Depends(get_db)):
    procurement.delete_purchase_order(db, po_id)
    return {"success": True}


@router.post("/{po_id}/receive")
def receive_po_items(po_id: int, payload: ReceiveRequest, db: Session = Depends(get_db)):
    items = {
        item_id: ReceiptQuantities(received=q.received, damaged=q.damaged, backorder=q.backorder)
        for item_id, q in payload.items.items()
    }
    summary = receive_items(
        db, po_id, items, received_date=payload.received_date, warehouse_id=payload.warehouse_id,
    )
    return _receiving_out(summary)
