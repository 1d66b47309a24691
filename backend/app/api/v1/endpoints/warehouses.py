from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Product, Warehouse, WarehouseStock
from backend.app.schemas.stock_level import WarehouseStockRead
from backend.services.inventory import get_or_create_warehouse_stock

router = APIRouter(prefix="/warehouses")


class WarehouseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    code: str = Field(min_length=1, max_length=32)


class WarehouseStockSet(BaseModel):
    available: int


@router.get("")
def list_warehouses(db: Session = Depends(get_db)):
    rows = db.execute(select(Warehouse).order_by(Warehouse.id)).scalars().all()
    return [{"id": w.id, "name": w.name, "code": w.code} for w in rows]


@router.post("")
def create_warehouse(payload: WarehouseCreate, db: Session = Depends(get_db)):
    exists = db.execute(
        select(Warehouse).where((Warehouse.name == payload.name) | (Warehouse.code == payload.code))
    ).scalars().first()
    if exists:
        raise HTTPException(status_code=409, detail="Warehouse already exists")

    w = Warehouse(name=payload.name, code=payload.code)
    db.add(w)
    db.commit()
    db.refresh(w)
    return {"id": w.id, "name": w.name, "code": w.code}


@router.get("/{warehouse_id}/stock", response_model=list[WarehouseStockRead])
def get_warehouse_stock(warehouse_id: int, db: Session = Depends(get_db)):
    if not db.get(Warehouse, warehouse_id):
        raise HTTPException(status_code=404, detail="Warehouse not found")
    return (
        db.execute(
            select(WarehouseStock)
            .where(WarehouseStock.warehouse_id == warehouse_id)
            .order_by(WarehouseStock.sku)
        )
        .scalars()
        .all()
    )


@router.put("/{warehouse_id}/stock/{sku}", response_model=WarehouseStockRead)
def set_warehouse_stock(warehouse_id: int, sku: str, payload: WarehouseStockSet, db: Session = Depends(get_db)):
    """Comptage / synchro externe : écrase la valeur disponible."""
    if not db.get(Warehouse, warehouse_id):
        raise HTTPException(status_code=404, detail="Warehouse not found")
    if not db.execute(select(Product.id).where(Product.sku == sku)).scalar_one_or_none():
        raise HTTPException(status_code=404, detail="Product not found")

    stock = get_or_create_warehouse_stock(db, warehouse_id, sku)
    stock.available = payload.available
    db.commit()
    db.refresh(stock)
    return stock
