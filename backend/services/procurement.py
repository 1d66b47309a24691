"""
Procurement service.

Création et édition des PO (lignes, coûts, suppression). Les lignes ne
bougent qu'en draft / pending ; la réception est dans
backend.services.receiving.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.core_types import POStatus
from backend.app.db.models.models_v1 import Product, PurchaseOrder, PurchaseOrderItem, Supplier, Warehouse
from backend.services.exceptions import (
    InvalidState,
    ItemNotInOrder,
    PONotFound,
    ProductNotFound,
    QuantityExceeded,
    SupplierNotFound,
    ValidationError,
    WarehouseNotFound,
)
from backend.services.po_status import ensure_editable, recalculate_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewItem:
    sku: str
    quantity_ordered: int
    unit_cost: Decimal
    line_total: Decimal | None = None


def _get_po(db: Session, po_id: int, *, lock: bool = False) -> PurchaseOrder:
    stmt = select(PurchaseOrder).where(PurchaseOrder.id == po_id)
    if lock:
        stmt = stmt.with_for_update()
    po = db.execute(stmt).scalar_one_or_none()
    if not po:
        raise PONotFound(po_id)
    return po


def _build_item(db: Session, po: PurchaseOrder, new: NewItem) -> PurchaseOrderItem:
    if not new.sku:
        raise ValidationError("SKU is required")
    if new.quantity_ordered < 0:
        raise ValidationError(f"quantity_ordered must be >= 0 for {new.sku}")
    if not db.execute(select(Product.id).where(Product.sku == new.sku)).scalar_one_or_none():
        raise ProductNotFound(new.sku)

    unit_cost = Decimal(str(new.unit_cost or 0))
    line_total = (
        Decimal(str(new.line_total))
        if new.line_total is not None
        else unit_cost * new.quantity_ordered
    )
    return PurchaseOrderItem(
        po=po,
        sku=new.sku,
        quantity_ordered=new.quantity_ordered,
        quantity_received=0,
        quantity_damaged=0,
        unit_cost=unit_cost,
        line_total=line_total,
    )


def create_purchase_order(
    db: Session,
    *,
    po_number: str,
    supplier_id: int,
    items: Iterable[NewItem] = (),
    status: POStatus = POStatus.draft,
    expected_arrival_date: date | None = None,
    shipping_cost: Decimal = Decimal("0"),
    tax: Decimal = Decimal("0"),
    other_costs: Decimal = Decimal("0"),
    warehouse_id: int | None = None,
) -> PurchaseOrder:
    exists = db.execute(select(PurchaseOrder.id).where(PurchaseOrder.po_number == po_number)).scalar_one_or_none()
    if exists:
        raise ValidationError(f"PO number {po_number} already exists")
    if not db.get(Supplier, supplier_id):
        raise SupplierNotFound(supplier_id)
    if warehouse_id is not None and not db.get(Warehouse, warehouse_id):
        raise WarehouseNotFound(warehouse_id)

    try:
        po = PurchaseOrder(
            po_number=po_number,
            supplier_id=supplier_id,
            warehouse_id=warehouse_id,
            status=status,
            expected_arrival_date=expected_arrival_date,
            shipping_cost=Decimal(str(shipping_cost)),
            tax=Decimal(str(tax)),
            other_costs=Decimal(str(other_costs)),
        )
        db.add(po)
        db.flush()

        for new in items:
            db.add(_build_item(db, po, new))

        db.flush()
        recalculate_totals(po)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(po)
    logger.info("PO %s created (%s item(s), status %s)", po.po_number, len(po.items), po.status.value)
    return po


def add_item(db: Session, po_id: int, new: NewItem) -> PurchaseOrderItem:
    try:
        po = _get_po(db, po_id, lock=True)
        ensure_editable(po)

        item = _build_item(db, po, new)
        db.add(item)
        db.flush()

        recalculate_totals(po)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(item)
    return item


def update_item(
    db: Session,
    po_id: int,
    item_id: int,
    *,
    quantity_ordered: int | None = None,
    unit_cost: Decimal | None = None,
    line_total: Decimal | None = None,
) -> PurchaseOrderItem:
    """
    Édite une ligne (draft / pending). La quantité commandée ne descend
    jamais sous received + damaged ; line_total est recalculé sauf s'il
    est fourni.
    """
    try:
        po = _get_po(db, po_id, lock=True)
        ensure_editable(po)

        item = next((it for it in po.items if it.id == item_id), None)
        if item is None:
            raise ItemNotInOrder(po_id, item_id)

        if quantity_ordered is not None:
            if quantity_ordered < 0:
                raise ValidationError(f"quantity_ordered must be >= 0 for {item.sku}")
            accounted = item.quantity_received + item.quantity_damaged
            if quantity_ordered < accounted:
                raise QuantityExceeded(item.sku, ordered=quantity_ordered, attempted=accounted)
            item.quantity_ordered = quantity_ordered
        if unit_cost is not None:
            if Decimal(str(unit_cost)) < 0:
                raise ValidationError(f"unit_cost must be >= 0 for {item.sku}")
            item.unit_cost = Decimal(str(unit_cost))

        if line_total is not None:
            item.line_total = Decimal(str(line_total))
        else:
            item.line_total = Decimal(item.unit_cost) * item.quantity_ordered

        db.flush()
        recalculate_totals(po)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(item)
    logger.info("PO %s item %s updated (ordered=%s)", po_id, item.sku, item.quantity_ordered)
    return item


def remove_items(db: Session, po_id: int, item_ids: Iterable[int]) -> int:
    ids = {int(i) for i in item_ids}
    if not ids:
        raise ValidationError("itemIds array is required")

    try:
        po = _get_po(db, po_id, lock=True)
        ensure_editable(po)

        to_remove = [it for it in po.items if it.id in ids]
        for it in to_remove:
            po.items.remove(it)

        db.flush()
        recalculate_totals(po)
        db.commit()
    except Exception:
        db.rollback()
        raise

    return len(to_remove)


def update_costs(
    db: Session,
    po_id: int,
    *,
    shipping_cost: Decimal | None = None,
    tax: Decimal | None = None,
    other_costs: Decimal | None = None,
) -> PurchaseOrder:
    try:
        po = _get_po(db, po_id, lock=True)
        if shipping_cost is not None:
            po.shipping_cost = Decimal(str(shipping_cost))
        if tax is not None:
            po.tax = Decimal(str(tax))
        if other_costs is not None:
            po.other_costs = Decimal(str(other_costs))
        recalculate_totals(po)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(po)
    return po


def set_status(db: Session, po_id: int, status: POStatus) -> PurchaseOrder:
    """
    Transitions manuelles avant réception (pending, sent, confirmed,
    shipped, cancelled). `partial` / `received` sont dérivés par la réception.
    """
    if status in (POStatus.partial, POStatus.received):
        raise InvalidState(f"Status {status.value} is derived from receiving")

    try:
        po = _get_po(db, po_id, lock=True)
        if po.status in (POStatus.received, POStatus.cancelled):
            raise InvalidState(f"Purchase order {po.po_number} is {po.status.value}")
        if status == POStatus.draft and po.status != POStatus.draft:
            raise InvalidState(f"Purchase order {po.po_number} cannot go back to draft")
        po.status = status
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(po)
    return po


def delete_purchase_order(db: Session, po_id: int) -> None:
    try:
        po = _get_po(db, po_id, lock=True)
        if po.status not in (POStatus.draft, POStatus.pending):
            raise InvalidState(
                f"Purchase order {po.po_number} is {po.status.value}; only draft or pending orders can be deleted"
            )
        db.delete(po)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("PO %s deleted", po_id)
