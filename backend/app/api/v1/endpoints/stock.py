from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import InventoryLevel, Product, utcnow
from backend.app.schemas.stock_level import InventoryLevelRead
from backend.services.inventory import get_or_create_inventory_level

router = APIRouter(prefix="/inventory")


class InventorySync(BaseModel):
    warehouse_available: int | None = Field(default=None, ge=0)
    fba_available: int | None = Field(default=None, ge=0)


@router.get(
    "",
    response_model=list[InventoryLevelRead],
)
def get_inventory(
    sku: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Niveaux de stock agrégés par SKU (READ ONLY).
    Modifiés uniquement par réception, déduction et synchro externe.
    """
    stmt = select(InventoryLevel).order_by(InventoryLevel.sku)
    if sku is not None:
        stmt = stmt.where(InventoryLevel.sku == sku)
    return db.execute(stmt).scalars().all()


@router.put("/{sku}", response_model=InventoryLevelRead)
def sync_inventory(sku: str, payload: InventorySync, db: Session = Depends(get_db)):
    if not db.execute(select(Product.id).where(Product.sku == sku)).scalar_one_or_none():
        raise HTTPException(status_code=404, detail="Product not found")

    level = get_or_create_inventory_level(db, sku)
    if payload.warehouse_available is not None:
        level.warehouse_available = payload.warehouse_available
        level.warehouse_last_sync = utcnow()
    if payload.fba_available is not None:
        level.fba_available = payload.fba_available
    db.commit()
    db.refresh(level)
    return level
