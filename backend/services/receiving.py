"""
Réception d'un PO (inbound).

Un appel = un lot { item_id: {received, damaged, backorder} } appliqué en
une seule transaction :

1. chaque ligne est validée (ledger) AVANT toute écriture ;
2. les compteurs de la ligne sont incrémentés (deltas, jamais absolus) ;
3. les SKU liés (même groupe physique) reçoivent le même delta :
   - la ligne du SKU lié dans ce PO (si présente et hors lot) ;
   - le stock de chaque SKU du groupe, une seule fois (agrégat +
     entrepôt de réception) ;
4. les reliquats déclarés deviennent des backorders ;
5. le statut du PO est re-dérivé des totaux.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.core_types import POStatus
from backend.app.db.models.models_v1 import PurchaseOrder, PurchaseOrderItem, Warehouse, utcnow
from backend.services.backorders import create_backorder, outstanding_quantity
from backend.services.exceptions import ItemNotInOrder, PONotFound, ValidationError, WarehouseNotFound
from backend.services.inventory import increment_warehouse_available, increment_warehouse_stock
from backend.services.linked_products import resolve_groups
from backend.services.po_status import derive_status, ensure_receivable, record_lead_time
from backend.services.quantity_ledger import ReceiptTotals, order_totals, outstanding, validate_receipt
from backend.services.transaction import unit_of_work

logger = logging.getLogger(__name__)


def _whole(value) -> int:
    """Quantité entière ; 2.9 est refusé, jamais tronqué."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise TypeError("boolean quantity")
    if isinstance(value, str):
        return int(value.strip())
    number = Decimal(str(value))
    if number != number.to_integral_value():
        raise ValueError(f"non-integral quantity {value!r}")
    return int(number)


@dataclass(frozen=True)
class ReceiptQuantities:
    received: int = 0
    damaged: int = 0
    backorder: int = 0

    @classmethod
    def coerce(cls, value: "ReceiptQuantities | Mapping[str, int]") -> "ReceiptQuantities":
        if isinstance(value, ReceiptQuantities):
            return value
        try:
            return cls(
                received=_whole(value.get("received", 0)),
                damaged=_whole(value.get("damaged", 0)),
                backorder=_whole(value.get("backorder", 0)),
            )
        except (AttributeError, TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError(f"Invalid receipt quantities: {value!r}") from e


@dataclass
class ItemChange:
    item_id: int
    sku: str
    received_delta: int
    damaged_delta: int
    quantity_received: int
    quantity_damaged: int
    quantity_ordered: int
    linked_from: list[str] = field(default_factory=list)


@dataclass
class ReceivingSummary:
    po_id: int
    po_number: str
    previous_status: POStatus
    status: POStatus
    items_updated: list[ItemChange]
    linked_items_updated: list[ItemChange]
    inventory_changes: dict[str, int]
    backorders_created: int
    backorder_ids: list[int]
    outstanding_backorder_quantity: int
    lead_time_days: int | None = None
    warehouse_id: int | None = None

    @property
    def status_changed(self) -> bool:
        return self.status != self.previous_status


def _normalize_items(items: Mapping[int | str, object]) -> dict[int, ReceiptQuantities]:
    if not isinstance(items, Mapping) or not items:
        raise ValidationError("Items data is required")

    out: dict[int, ReceiptQuantities] = {}
    for raw_id, raw_qty in items.items():
        try:
            item_id = int(raw_id)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid item id {raw_id!r}") from e
        if item_id in out:
            raise ValidationError(f"Item {item_id} submitted twice")
        out[item_id] = ReceiptQuantities.coerce(raw_qty)
    return out


def _receiving_warehouse(db: Session, po: PurchaseOrder, warehouse_id: int | None) -> Warehouse | None:
    """
    Entrepôt crédité : celui de la requête, sinon celui du PO, sinon
    l'unique entrepôt existant. None si ambigu (agrégat seul).
    """
    if warehouse_id is not None:
        warehouse = db.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise WarehouseNotFound(warehouse_id)
        return warehouse
    if po.warehouse_id is not None:
        return db.get(Warehouse, po.warehouse_id)
    candidates = db.execute(select(Warehouse).order_by(Warehouse.id).limit(2)).scalars().all()
    return candidates[0] if len(candidates) == 1 else None


def receive_items(
    db: Session,
    po_id: int,
    items: Mapping[int | str, object],
    received_date: date | None = None,
    now: datetime | None = None,
    warehouse_id: int | None = None,
) -> ReceivingSummary:
    batch = _normalize_items(items)
    now = now or utcnow()

    with unit_of_work(db, f"receive PO {po_id}"):
        po = (
            db.execute(
                select(PurchaseOrder)
                .where(PurchaseOrder.id == po_id)
                .with_for_update()
            )
            .scalar_one_or_none()
        )
        if not po:
            raise PONotFound(po_id)
        ensure_receivable(po)
        warehouse = _receiving_warehouse(db, po, warehouse_id)

        previous_status = po.status
        lines: dict[int, PurchaseOrderItem] = {it.id: it for it in po.items}

        # ---------- 1-2. VALIDATION (aucune écriture) ----------
        validated: list[tuple[PurchaseOrderItem, ReceiptQuantities, ReceiptTotals]] = []
        for item_id, qty in batch.items():
            item = lines.get(item_id)
            if item is None:
                raise ItemNotInOrder(po_id, item_id)
            validated.append((item, qty, validate_receipt(item, qty.received, qty.damaged, qty.backorder)))

        # ---------- 3-5. FILE D'ÉCRITURES ----------
        explicit_ids = {item.id for item, _, _ in validated}
        groups = resolve_groups(db, {item.sku for item, qty, _ in validated if qty.received > 0})

        propagated: dict[int, int] = defaultdict(int)
        propagated_from: dict[int, list[str]] = defaultdict(list)
        inventory_delta: dict[str, int] = defaultdict(int)

        for item, qty, _ in validated:
            if qty.received <= 0:
                continue

            group = groups.get(item.sku, {item.sku})
            for sku in group:
                inventory_delta[sku] += qty.received

            for linked_sku in sorted(group - {item.sku}):
                target = next(
                    (ln for ln in po.items if ln.sku == linked_sku and ln.id not in explicit_ids),
                    None,
                )
                if target is None:
                    continue
                propagated[target.id] += qty.received
                propagated_from[target.id].append(item.sku)

        # ---------- 6. BACKORDERS ----------
        backorders = [
            create_backorder(db, po, item.sku, qty.backorder, item.unit_cost)
            for item, qty, _ in validated
            if qty.backorder > 0
        ]

        # ---------- 7. APPLICATION ----------
        items_updated: list[ItemChange] = []
        for item, qty, totals in validated:
            item.quantity_received = totals.received
            item.quantity_damaged = totals.damaged
            items_updated.append(
                ItemChange(
                    item_id=item.id,
                    sku=item.sku,
                    received_delta=qty.received,
                    damaged_delta=qty.damaged,
                    quantity_received=item.quantity_received,
                    quantity_damaged=item.quantity_damaged,
                    quantity_ordered=item.quantity_ordered,
                )
            )

        linked_updated: list[ItemChange] = []
        for target_id, delta in propagated.items():
            target = lines[target_id]
            applied = min(delta, outstanding(target))
            if applied < delta:
                logger.warning(
                    "PO %s: linked item %s (%s) capped at %s of %s mirrored units",
                    po.po_number, target.id, target.sku, applied, delta,
                )
            if applied <= 0:
                continue
            target.quantity_received += applied
            linked_updated.append(
                ItemChange(
                    item_id=target.id,
                    sku=target.sku,
                    received_delta=applied,
                    damaged_delta=0,
                    quantity_received=target.quantity_received,
                    quantity_damaged=target.quantity_damaged,
                    quantity_ordered=target.quantity_ordered,
                    linked_from=propagated_from[target_id],
                )
            )

        if inventory_delta and warehouse is None:
            logger.warning(
                "PO %s: no receiving warehouse, only aggregate stock credited", po.po_number,
            )
        for sku in sorted(inventory_delta):
            increment_warehouse_available(db, sku, inventory_delta[sku], now)
            if warehouse is not None:
                increment_warehouse_stock(db, warehouse.id, sku, inventory_delta[sku])

        db.flush()

        # ---------- 8. STATUT ----------
        totals = order_totals(po.items)
        new_status = derive_status(po.status, totals, backorders_created=bool(backorders))

        lead_time = None
        if new_status != po.status:
            po.status = new_status
            po.actual_arrival_date = received_date or now.date()
            if new_status == POStatus.received:
                lead_time = record_lead_time(po.supplier, po, now)
            db.flush()

        summary = ReceivingSummary(
            po_id=po.id,
            po_number=po.po_number,
            previous_status=previous_status,
            status=po.status,
            items_updated=items_updated,
            linked_items_updated=linked_updated,
            inventory_changes=dict(inventory_delta),
            backorders_created=len(backorders),
            backorder_ids=[bo.id for bo in backorders],
            outstanding_backorder_quantity=outstanding_quantity(db, po.id),
            lead_time_days=lead_time,
            warehouse_id=warehouse.id if warehouse is not None else None,
        )

    logger.info(
        "PO %s received: %s item(s), %s linked, %s backorder(s), status %s -> %s",
        summary.po_number,
        len(summary.items_updated),
        len(summary.linked_items_updated),
        summary.backorders_created,
        summary.previous_status.value,
        summary.status.value,
    )
    return summary
