from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Product
from backend.services.linked_products import assign_group, clear_group, resolve_group

router = APIRouter(prefix="/products")


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=255)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    physical_product_group_id: str | None = Field(default=None, max_length=64)


class ProductGroupUpdate(BaseModel):
    group_id: str = Field(min_length=1, max_length=64)
    group_name: str | None = Field(default=None, max_length=255)


def _product_out(p: Product) -> dict:
    return {
        "id": p.id,
        "sku": p.sku,
        "title": p.title,
        "cost": float(p.cost),
        "physical_product_group_id": p.physical_product_group_id,
    }


@router.get("")
def list_products(db: Session = Depends(get_db)):
    rows = db.execute(select(Product).order_by(Product.sku)).scalars().all()
    return [_product_out(p) for p in rows]


@router.post("")
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Product).where(Product.sku == payload.sku)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="SKU already exists")

    p = Product(sku=payload.sku, title=payload.title, cost=payload.cost)
    db.add(p)
    db.flush()

    try:
        if payload.physical_product_group_id:
            assign_group(db, p.sku, payload.physical_product_group_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(p)
    return _product_out(p)


@router.put("/{sku}/group")
def link_product(sku: str, payload: ProductGroupUpdate, db: Session = Depends(get_db)):
    try:
        p = assign_group(db, sku, payload.group_id, payload.group_name)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(p)
    return _product_out(p)


@router.delete("/{sku}/group")
def unlink_product(sku: str, db: Session = Depends(get_db)):
    try:
        p = clear_group(db, sku)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(p)
    return _product_out(p)


@router.get("/{sku}/linked")
def list_linked(sku: str, db: Session = Depends(get_db)):
    if not db.execute(select(Product.id).where(Product.sku == sku)).scalar_one_or_none():
        raise HTTPException(status_code=404, detail="Product not found")
    group = resolve_group(db, sku)
    return {"sku": sku, "group": sorted(group), "linked": sorted(group - {sku})}
