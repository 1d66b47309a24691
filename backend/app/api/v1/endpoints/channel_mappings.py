from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.core_types import SalesChannel
from backend.app.db.models.models_v1 import ChannelMapping, Product

router = APIRouter(prefix="/channel-mappings")


class ChannelMappingCreate(BaseModel):
    seller_sku: str = Field(min_length=1, max_length=64)
    master_sku: str = Field(min_length=1, max_length=64)
    fnsku: str | None = Field(default=None, max_length=32)
    channel: SalesChannel = SalesChannel.amazon


def _mapping_out(m: ChannelMapping) -> dict:
    return {
        "id": m.id,
        "channel": m.channel.value,
        "seller_sku": m.seller_sku,
        "fnsku": m.fnsku,
        "master_sku": m.master_sku,
    }


@router.get("")
def list_mappings(master_sku: str | None = None, db: Session = Depends(get_db)):
    stmt = select(ChannelMapping).order_by(ChannelMapping.seller_sku)
    if master_sku is not None:
        stmt = stmt.where(ChannelMapping.master_sku == master_sku)
    return [_mapping_out(m) for m in db.execute(stmt).scalars().all()]


@router.post("")
def create_mapping(payload: ChannelMappingCreate, db: Session = Depends(get_db)):
    if not db.execute(select(Product.id).where(Product.sku == payload.master_sku)).scalar_one_or_none():
        raise HTTPException(status_code=404, detail=f"Product with SKU {payload.master_sku} not found")

    exists = db.execute(
        select(ChannelMapping).where(ChannelMapping.seller_sku == payload.seller_sku)
    ).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Seller SKU already mapped")

    m = ChannelMapping(
        channel=payload.channel,
        seller_sku=payload.seller_sku,
        fnsku=payload.fnsku,
        master_sku=payload.master_sku,
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    return _mapping_out(m)
