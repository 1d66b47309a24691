from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Backorder
from backend.services.backorders import create_manual_backorder, list_pending_backorders

router = APIRouter(prefix="/backorders")


class BackorderCreate(BaseModel):
    po_id: int
    sku: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)
    unit_cost: Decimal | None = Field(default=None, ge=0)


def _backorder_out(bo: Backorder) -> dict:
    return {
        "id": bo.id,
        "po_id": bo.po_id,
        "po_number": bo.po_number,
        "supplier_id": bo.supplier_id,
        "sku": bo.sku,
        "quantity": bo.quantity,
        "unit_cost": float(bo.unit_cost),
        "status": bo.status.value,
        "created_at": bo.created_at,
    }


@router.get("")
def list_backorders(db: Session = Depends(get_db)):
    return [_backorder_out(bo) for bo in list_pending_backorders(db)]


@router.post("")
def create_backorder(payload: BackorderCreate, db: Session = Depends(get_db)):
    try:
        bo = create_manual_backorder(
            db,
            po_id=payload.po_id,
            sku=payload.sku,
            quantity=payload.quantity,
            unit_cost=payload.unit_cost,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(bo)
    return _backorder_out(bo)
