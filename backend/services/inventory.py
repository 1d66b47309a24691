from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import InventoryLevel, WarehouseStock


def get_or_create_inventory_level(db: Session, sku: str) -> InventoryLevel:
    """
    Ligne inventory_levels verrouillée (FOR UPDATE), créée à 0 si absente.
    """
    level = (
        db.execute(
            select(InventoryLevel)
            .where(InventoryLevel.sku == sku)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if level:
        return level

    level = InventoryLevel(
        sku=sku,
        warehouse_available=0,
        fba_available=0,
    )
    db.add(level)
    db.flush()
    return level


def increment_warehouse_available(db: Session, sku: str, qty: int, now: datetime) -> InventoryLevel:
    """Upsert : incrémente le stock entrepôt agrégé (réceptions)."""
    level = get_or_create_inventory_level(db, sku)
    level.warehouse_available += qty
    level.warehouse_last_sync = now
    return level


def decrement_warehouse_available(db: Session, sku: str, qty: int, now: datetime) -> InventoryLevel | None:
    """
    Décrémente l'agrégat, plancher à 0. La survente reste visible
    sur warehouse_stock (par entrepôt).
    """
    level = (
        db.execute(
            select(InventoryLevel)
            .where(InventoryLevel.sku == sku)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if not level:
        return None

    level.warehouse_available = max(0, level.warehouse_available - qty)
    level.warehouse_last_sync = now
    return level


def get_or_create_warehouse_stock(db: Session, warehouse_id: int, sku: str) -> WarehouseStock:
    stock = (
        db.execute(
            select(WarehouseStock)
            .where(WarehouseStock.warehouse_id == warehouse_id)
            .where(WarehouseStock.sku == sku)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if stock:
        return stock

    stock = WarehouseStock(warehouse_id=warehouse_id, sku=sku, available=0)
    db.add(stock)
    db.flush()
    return stock


def increment_warehouse_stock(db: Session, warehouse_id: int, sku: str, qty: int) -> WarehouseStock:
    """Crédite l'entrepôt de réception (même stock que la déduction)."""
    stock = get_or_create_warehouse_stock(db, warehouse_id, sku)
    stock.available += qty
    return stock


def warehouse_available(db: Session, warehouse_id: int, sku: str) -> int:
    """Lecture seule (aperçu) : 0 si aucune ligne."""
    value = db.execute(
        select(WarehouseStock.available)
        .where(WarehouseStock.warehouse_id == warehouse_id)
        .where(WarehouseStock.sku == sku)
    ).scalar_one_or_none()
    return int(value or 0)
