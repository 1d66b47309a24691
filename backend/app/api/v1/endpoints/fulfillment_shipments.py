from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db, get_fulfillment_source
from backend.app.db.models.models_v1 import DeductionRecord, OutboundShipment, OutboundShipmentLine
from backend.services.deduction import (
    DeductionLine,
    DeductionPlan,
    DeductionSummary,
    deduct_inbound_plan,
    deduct_shipment,
)
from backend.services.fulfillment_source import FulfillmentSource

router = APIRouter(prefix="/fulfillment-shipments")


class OutboundLineCreate(BaseModel):
    seller_sku: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)


class OutboundShipmentCreate(BaseModel):
    shipment_ref: str = Field(min_length=1, max_length=64)
    inbound_plan_id: str | None = Field(default=None, max_length=64)
    lines: list[OutboundLineCreate] = Field(min_length=1)


class DeductRequest(BaseModel):
    shipment_ref: str = Field(min_length=1, max_length=64)
    warehouse_id: int
    dry_run: bool = False
    inbound_plan_id: str | None = Field(default=None, max_length=64)


class PlanDeductRequest(BaseModel):
    warehouse_id: int
    dry_run: bool = False


def _line_out(ln: DeductionLine) -> dict:
    return {
        "seller_skus": ln.seller_skus,
        "master_sku": ln.master_sku,
        "product_title": ln.product_title,
        "quantity_shipped": ln.quantity_shipped,
        "quantity_to_deduct": ln.quantity_to_deduct,
        "warehouse_before": ln.warehouse_before,
        "warehouse_after": ln.warehouse_after,
        "found": ln.found,
        "already_deducted": ln.already_deducted,
    }


def _plan_out(plan: DeductionPlan) -> dict:
    warnings = []
    if plan.not_found:
        warnings.append({"type": "not_found", "skus": plan.not_found})
    if plan.already_deducted:
        warnings.append({"type": "already_deducted", "skus": plan.already_deducted})
    if plan.oversold:
        warnings.append({"type": "oversold", "skus": plan.oversold})

    out = {
        "success": True,
        "dry_run": plan.dry_run,
        "shipment_ref": plan.shipment_ref,
        "inbound_plan_id": plan.inbound_plan_id,
        "warehouse": {"id": plan.warehouse_id, "name": plan.warehouse_name, "code": plan.warehouse_code},
        "summary": {
            "total_items": plan.total_items,
            "items_to_process": plan.items_to_process,
            "total_units": plan.total_units,
        },
        "items": [_line_out(ln) for ln in plan.lines],
        "warnings": warnings,
    }
    if isinstance(plan, DeductionSummary):
        out["summary"]["items_deducted"] = len(plan.applied)
        out["summary"]["units_deducted"] = plan.units_deducted
    return out


def _shipment_out(s: OutboundShipment) -> dict:
    return {
        "id": s.id,
        "shipment_ref": s.shipment_ref,
        "inbound_plan_id": s.inbound_plan_id,
        "created_at": s.created_at,
        "lines": [{"seller_sku": ln.seller_sku, "quantity": ln.quantity} for ln in s.lines],
    }


@router.get("")
def list_outbound_shipments(inbound_plan_id: str | None = None, db: Session = Depends(get_db)):
    stmt = select(OutboundShipment).order_by(OutboundShipment.id.desc())
    if inbound_plan_id is not None:
        stmt = stmt.where(OutboundShipment.inbound_plan_id == inbound_plan_id)
    return [_shipment_out(s) for s in db.execute(stmt).scalars().all()]


@router.post("")
def create_outbound_shipment(payload: OutboundShipmentCreate, db: Session = Depends(get_db)):
    exists = db.execute(
        select(OutboundShipment).where(OutboundShipment.shipment_ref == payload.shipment_ref)
    ).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Shipment already exists")

    s = OutboundShipment(shipment_ref=payload.shipment_ref, inbound_plan_id=payload.inbound_plan_id)
    for ln in payload.lines:
        s.lines.append(OutboundShipmentLine(seller_sku=ln.seller_sku, quantity=ln.quantity))
    db.add(s)
    db.commit()
    db.refresh(s)
    return _shipment_out(s)


@router.get("/deduct")
def preview_shipment_deduction(
    shipment_ref: str,
    warehouse_id: int,
    inbound_plan_id: str | None = None,
    db: Session = Depends(get_db),
    source: FulfillmentSource = Depends(get_fulfillment_source),
):
    plan = deduct_shipment(db, source, shipment_ref, warehouse_id, dry_run=True, inbound_plan_id=inbound_plan_id)
    return _plan_out(plan)


@router.post("/deduct")
def deduct_outbound_shipment(
    payload: DeductRequest,
    db: Session = Depends(get_db),
    source: FulfillmentSource = Depends(get_fulfillment_source),
):
    plan = deduct_shipment(
        db,
        source,
        payload.shipment_ref,
        payload.warehouse_id,
        dry_run=payload.dry_run,
        inbound_plan_id=payload.inbound_plan_id,
    )
    return _plan_out(plan)


@router.post("/inbound-plans/{inbound_plan_id}/deduct")
def deduct_plan_shipments(
    inbound_plan_id: str,
    payload: PlanDeductRequest,
    db: Session = Depends(get_db),
    source: FulfillmentSource = Depends(get_fulfillment_source),
):
    plans = deduct_inbound_plan(db, source, inbound_plan_id, payload.warehouse_id, dry_run=payload.dry_run)
    return {
        "success": True,
        "inbound_plan_id": inbound_plan_id,
        "dry_run": payload.dry_run,
        "shipments": [_plan_out(p) for p in plans],
    }


@router.get("/{shipment_ref}/deductions")
def list_deductions(shipment_ref: str, db: Session = Depends(get_db)):
    rows = (
        db.execute(
            select(DeductionRecord)
            .where(DeductionRecord.shipment_ref == shipment_ref)
            .order_by(DeductionRecord.id)
        )
        .scalars()
        .all()
    )
    return [
        {
            "id": r.id,
            "shipment_ref": r.shipment_ref,
            "sku": r.sku,
            "warehouse_id": r.warehouse_id,
            "inbound_plan_id": r.inbound_plan_id,
            "quantity": r.quantity,
            "quantity_before": r.quantity_before,
            "quantity_after": r.quantity_after,
            "created_at": r.created_at,
        }
        for r in rows
    ]
