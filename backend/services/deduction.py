"""
Déduction idempotente des expéditions fulfillment (outbound).

Pour une expédition (shipment_ref) et un entrepôt :
- chaque SKU vendeur est résolu vers un SKU maître (channel_mappings) ;
- une ligne déjà présente dans deduction_records (shipment_ref, sku) est
  marquée already_deducted et n'est jamais re-déduite ;
- preview = plan complet, aucune écriture ;
- apply = insertion du DeductionRecord (contrainte unique, SAVEPOINT)
  PUIS décrément du stock, le tout dans une seule transaction.

La survente (after < 0) est conservée sur warehouse_stock et signalée.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import (
    ChannelMapping,
    DeductionRecord,
    Product,
    Warehouse,
    utcnow,
)
from backend.services.exceptions import ShipmentNotFound, WarehouseNotFound
from backend.services.fulfillment_source import FulfillmentSource, ShipmentData
from backend.services.inventory import (
    decrement_warehouse_available,
    get_or_create_warehouse_stock,
    warehouse_available,
)
from backend.services.transaction import unit_of_work

logger = logging.getLogger(__name__)


@dataclass
class DeductionLine:
    seller_skus: list[str]
    master_sku: str | None
    product_title: str
    quantity_shipped: int
    quantity_to_deduct: int
    warehouse_before: int
    warehouse_after: int
    found: bool
    already_deducted: bool = False

    @property
    def processable(self) -> bool:
        return self.found and not self.already_deducted

    @property
    def oversold(self) -> bool:
        return self.processable and self.warehouse_after < 0


@dataclass
class DeductionPlan:
    shipment_ref: str
    inbound_plan_id: str | None
    warehouse_id: int
    warehouse_name: str
    warehouse_code: str
    dry_run: bool
    lines: list[DeductionLine] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return sum(len(ln.seller_skus) for ln in self.lines)

    @property
    def items_to_process(self) -> int:
        return sum(1 for ln in self.lines if ln.processable)

    @property
    def total_units(self) -> int:
        return sum(ln.quantity_to_deduct for ln in self.lines if ln.processable)

    @property
    def not_found(self) -> list[str]:
        return [sku for ln in self.lines if not ln.found for sku in ln.seller_skus]

    @property
    def already_deducted(self) -> list[str]:
        return [sku for ln in self.lines if ln.found and ln.already_deducted for sku in ln.seller_skus]

    @property
    def oversold(self) -> list[str]:
        return [ln.master_sku for ln in self.lines if ln.oversold]


@dataclass
class DeductionSummary(DeductionPlan):
    applied: list[DeductionLine] = field(default_factory=list)

    @property
    def units_deducted(self) -> int:
        return sum(ln.quantity_to_deduct for ln in self.applied)


# ---------- Résolution SKU vendeur -> SKU maître ----------
def resolve_master_sku(db: Session, seller_sku: str) -> Product | None:
    """
    Ordre : seller_sku exact, fnsku exact, puis insensible à la casse,
    puis un produit dont le SKU maître est directement le SKU vendeur.
    """
    mapping = (
        db.execute(select(ChannelMapping).where(ChannelMapping.seller_sku == seller_sku))
        .scalars()
        .first()
    )
    if not mapping:
        mapping = (
            db.execute(select(ChannelMapping).where(ChannelMapping.fnsku == seller_sku))
            .scalars()
            .first()
        )
    if not mapping:
        lowered = seller_sku.lower()
        mapping = (
            db.execute(
                select(ChannelMapping)
                .where(
                    or_(
                        func.lower(ChannelMapping.seller_sku) == lowered,
                        func.lower(ChannelMapping.fnsku) == lowered,
                    )
                )
                .order_by(ChannelMapping.id)
            )
            .scalars()
            .first()
        )

    sku = mapping.master_sku if mapping else seller_sku
    product = db.execute(select(Product).where(Product.sku == sku)).scalar_one_or_none()
    if product is None and not mapping:
        product = (
            db.execute(select(Product).where(func.lower(Product.sku) == seller_sku.lower()).order_by(Product.id))
            .scalars()
            .first()
        )
    return product


def _already_deducted(db: Session, shipment_ref: str, sku: str) -> bool:
    return (
        db.execute(
            select(DeductionRecord.id)
            .where(DeductionRecord.shipment_ref == shipment_ref)
            .where(DeductionRecord.sku == sku)
        ).first()
        is not None
    )


def _fetch_shipment(source: FulfillmentSource, shipment_ref: str, inbound_plan_id: str | None) -> ShipmentData:
    shipment = source.get_shipment(shipment_ref, inbound_plan_id)
    if shipment is None or not shipment.lines:
        raise ShipmentNotFound(shipment_ref)
    return shipment


def _build_plan(
    db: Session,
    source: FulfillmentSource,
    shipment_ref: str,
    warehouse_id: int,
    inbound_plan_id: str | None,
    *,
    dry_run: bool,
    plan_cls: type[DeductionPlan] = DeductionPlan,
    shipment: ShipmentData | None = None,
) -> DeductionPlan:
    shipment_ref = (shipment_ref or "").strip()
    if not shipment_ref:
        raise ShipmentNotFound(shipment_ref)

    warehouse = db.get(Warehouse, warehouse_id)
    if not warehouse:
        raise WarehouseNotFound(warehouse_id)

    if shipment is None:
        shipment = _fetch_shipment(source, shipment_ref, inbound_plan_id)

    plan = plan_cls(
        shipment_ref=shipment_ref,
        inbound_plan_id=shipment.inbound_plan_id or inbound_plan_id,
        warehouse_id=warehouse.id,
        warehouse_name=warehouse.name,
        warehouse_code=warehouse.code,
        dry_run=dry_run,
    )

    # Plusieurs SKU vendeur peuvent pointer vers le même SKU maître
    by_master: dict[str, DeductionLine] = {}
    for line in shipment.lines:
        product = resolve_master_sku(db, line.seller_sku)
        if product is None:
            plan.lines.append(
                DeductionLine(
                    seller_skus=[line.seller_sku],
                    master_sku=None,
                    product_title="Unknown",
                    quantity_shipped=line.quantity,
                    quantity_to_deduct=0,
                    warehouse_before=0,
                    warehouse_after=0,
                    found=False,
                )
            )
            continue

        existing = by_master.get(product.sku)
        if existing:
            existing.seller_skus.append(line.seller_sku)
            existing.quantity_shipped += line.quantity
            continue

        entry = DeductionLine(
            seller_skus=[line.seller_sku],
            master_sku=product.sku,
            product_title=product.title,
            quantity_shipped=line.quantity,
            quantity_to_deduct=0,
            warehouse_before=0,
            warehouse_after=0,
            found=True,
        )
        by_master[product.sku] = entry
        plan.lines.append(entry)

    for entry in by_master.values():
        before = warehouse_available(db, warehouse.id, entry.master_sku)
        entry.warehouse_before = before
        if _already_deducted(db, shipment_ref, entry.master_sku):
            entry.already_deducted = True
            entry.warehouse_after = before
            continue
        entry.quantity_to_deduct = entry.quantity_shipped
        entry.warehouse_after = before - entry.quantity_shipped

    return plan


def _log_warnings(plan: DeductionPlan) -> None:
    if plan.not_found:
        logger.warning("Shipment %s: unresolved seller SKUs %s", plan.shipment_ref, plan.not_found)
    if plan.already_deducted:
        logger.warning("Shipment %s: already deducted %s", plan.shipment_ref, plan.already_deducted)
    if plan.oversold:
        logger.warning(
            "Shipment %s: warehouse %s oversold for %s",
            plan.shipment_ref, plan.warehouse_code, plan.oversold,
        )


def preview_deduction(
    db: Session,
    source: FulfillmentSource,
    shipment_ref: str,
    warehouse_id: int,
    inbound_plan_id: str | None = None,
) -> DeductionPlan:
    """Dry-run : calcule le plan sans aucune écriture."""
    plan = _build_plan(db, source, shipment_ref, warehouse_id, inbound_plan_id, dry_run=True)
    _log_warnings(plan)
    return plan


def _apply_plan(db: Session, summary: DeductionSummary, now: datetime) -> None:
    """Écritures d'un plan, dans la transaction de l'appelant."""
    for line in summary.lines:
        if not line.processable:
            continue

        stock = get_or_create_warehouse_stock(db, summary.warehouse_id, line.master_sku)
        line.warehouse_before = stock.available
        line.warehouse_after = stock.available - line.quantity_to_deduct

        record = DeductionRecord(
            shipment_ref=summary.shipment_ref,
            sku=line.master_sku,
            warehouse_id=summary.warehouse_id,
            inbound_plan_id=summary.inbound_plan_id,
            quantity=line.quantity_to_deduct,
            quantity_before=line.warehouse_before,
            quantity_after=line.warehouse_after,
        )
        # insert-if-absent : la contrainte unique tranche les appels concurrents
        try:
            with db.begin_nested():
                db.add(record)
                db.flush()
        except IntegrityError:
            logger.warning(
                "Shipment %s: %s deducted concurrently, skipped", summary.shipment_ref, line.master_sku
            )
            line.already_deducted = True
            line.quantity_to_deduct = 0
            line.warehouse_after = line.warehouse_before
            continue

        stock.available = line.warehouse_after
        decrement_warehouse_available(db, line.master_sku, line.quantity_to_deduct, now)
        summary.applied.append(line)

    db.flush()


def _log_applied(summary: DeductionSummary) -> None:
    _log_warnings(summary)
    logger.info(
        "Shipment %s deducted from %s: %s item(s), %s unit(s)",
        summary.shipment_ref, summary.warehouse_code, len(summary.applied), summary.units_deducted,
    )


def apply_deduction(
    db: Session,
    source: FulfillmentSource,
    shipment_ref: str,
    warehouse_id: int,
    inbound_plan_id: str | None = None,
    now: datetime | None = None,
) -> DeductionSummary:
    now = now or utcnow()

    with unit_of_work(db, f"deduct shipment {shipment_ref}"):
        summary = _build_plan(
            db, source, shipment_ref, warehouse_id, inbound_plan_id,
            dry_run=False, plan_cls=DeductionSummary,
        )
        _apply_plan(db, summary, now)

    _log_applied(summary)
    return summary


def deduct_shipment(
    db: Session,
    source: FulfillmentSource,
    shipment_ref: str,
    warehouse_id: int,
    *,
    dry_run: bool,
    inbound_plan_id: str | None = None,
) -> DeductionPlan:
    if dry_run:
        return preview_deduction(db, source, shipment_ref, warehouse_id, inbound_plan_id)
    return apply_deduction(db, source, shipment_ref, warehouse_id, inbound_plan_id)


def deduct_inbound_plan(
    db: Session,
    source: FulfillmentSource,
    inbound_plan_id: str,
    warehouse_id: int,
    *,
    dry_run: bool,
    now: datetime | None = None,
) -> list[DeductionPlan]:
    """
    Toutes les expéditions du plan sont récupérées avant la moindre
    écriture : une expédition introuvable rejette le plan entier. Les
    déductions sont ensuite appliquées dans une seule transaction, la
    garde d'idempotence restant par shipment_ref.
    """
    if not db.get(Warehouse, warehouse_id):
        raise WarehouseNotFound(warehouse_id)

    refs = [(ref or "").strip() for ref in source.list_plan_shipments(inbound_plan_id)]
    if not refs:
        raise ShipmentNotFound(inbound_plan_id)
    shipments = [_fetch_shipment(source, ref, inbound_plan_id) for ref in refs]

    if dry_run:
        plans = [
            _build_plan(db, source, ref, warehouse_id, inbound_plan_id, dry_run=True, shipment=shipment)
            for ref, shipment in zip(refs, shipments)
        ]
        for plan in plans:
            _log_warnings(plan)
        return plans

    now = now or utcnow()
    summaries: list[DeductionSummary] = []
    with unit_of_work(db, f"deduct inbound plan {inbound_plan_id}"):
        for ref, shipment in zip(refs, shipments):
            summary = _build_plan(
                db, source, ref, warehouse_id, inbound_plan_id,
                dry_run=False, plan_cls=DeductionSummary, shipment=shipment,
            )
            _apply_plan(db, summary, now)
            summaries.append(summary)

    for summary in summaries:
        _log_applied(summary)
    return summaries
