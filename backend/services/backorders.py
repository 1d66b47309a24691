"""
Backorders : reliquats non livrés d'un PO, suivis hors des compteurs
de la ligne. Jamais résolus automatiquement ici.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from backend.app.db.models.core_types import BackorderStatus
from backend.app.db.models.models_v1 import Backorder, PurchaseOrder, Product
from backend.services.exceptions import PONotFound, ProductNotFound, ValidationError

logger = logging.getLogger(__name__)


def create_backorder(
    db: Session,
    po: PurchaseOrder,
    sku: str,
    quantity: int,
    unit_cost: Decimal | float | int,
) -> Backorder:
    if quantity <= 0:
        raise ValidationError(f"Backorder quantity must be > 0 for {sku}")

    bo = Backorder(
        po_id=po.id,
        po_number=po.po_number,
        supplier_id=po.supplier_id,
        sku=sku,
        quantity=quantity,
        unit_cost=Decimal(str(unit_cost or 0)),
        status=BackorderStatus.pending,
    )
    db.add(bo)
    logger.info("Backorder queued: PO %s sku=%s qty=%s", po.po_number, sku, quantity)
    return bo


def create_manual_backorder(
    db: Session,
    *,
    po_id: int,
    sku: str,
    quantity: int,
    unit_cost: Decimal | float | int | None = None,
) -> Backorder:
    po = db.get(PurchaseOrder, po_id)
    if not po:
        raise PONotFound(po_id)
    if not db.execute(select(Product.id).where(Product.sku == sku)).scalar_one_or_none():
        raise ProductNotFound(sku)

    bo = create_backorder(db, po, sku, quantity, unit_cost or 0)
    db.flush()
    return bo


def list_pending_backorders(db: Session) -> list[Backorder]:
    return list(
        db.execute(
            select(Backorder)
            .where(Backorder.status == BackorderStatus.pending)
            .order_by(Backorder.created_at.desc(), Backorder.id.desc())
        )
        .scalars()
        .all()
    )


def outstanding_quantity(db: Session, po_id: int) -> int:
    """Quantité encore attendue via backorders `pending` pour ce PO."""
    value = db.execute(
        select(func.coalesce(func.sum(Backorder.quantity), 0))
        .where(Backorder.po_id == po_id)
        .where(Backorder.status == BackorderStatus.pending)
    ).scalar_one()
    return int(value)
