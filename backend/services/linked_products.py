"""
Produits liés : plusieurs SKU qui partagent le même stock physique.

Le groupe est porté par Product.physical_product_group_id (FK vers
inventory_groups). Un produit sans groupe forme un groupe à lui seul.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import InventoryGroup, Product
from backend.services.exceptions import ProductNotFound, ValidationError

logger = logging.getLogger(__name__)


def resolve_group(db: Session, sku: str) -> set[str]:
    group_id = db.execute(
        select(Product.physical_product_group_id).where(Product.sku == sku)
    ).scalar_one_or_none()

    if group_id is None:
        return {sku}

    members = db.execute(
        select(Product.sku).where(Product.physical_product_group_id == group_id)
    ).scalars().all()
    return set(members) | {sku}


def linked_skus(db: Session, sku: str) -> set[str]:
    """Les autres SKU du groupe (sans `sku` lui-même)."""
    return resolve_group(db, sku) - {sku}


def resolve_groups(db: Session, skus: set[str]) -> dict[str, set[str]]:
    """resolve_group pour plusieurs SKU, en deux requêtes."""
    if not skus:
        return {}

    rows = db.execute(
        select(Product.sku, Product.physical_product_group_id).where(Product.sku.in_(skus))
    ).all()
    group_of = {sku: gid for sku, gid in rows}

    group_ids = {gid for gid in group_of.values() if gid is not None}
    members: dict[str, set[str]] = {}
    if group_ids:
        for sku, gid in db.execute(
            select(Product.sku, Product.physical_product_group_id)
            .where(Product.physical_product_group_id.in_(group_ids))
        ).all():
            members.setdefault(gid, set()).add(sku)

    out: dict[str, set[str]] = {}
    for sku in skus:
        gid = group_of.get(sku)
        out[sku] = (members.get(gid, set()) | {sku}) if gid is not None else {sku}
    return out


# ---------- Administration des groupes ----------
def assign_group(db: Session, sku: str, group_id: str, group_name: str | None = None) -> Product:
    """Rattache un produit à un groupe (créé au besoin). Action admin explicite."""
    group_id = (group_id or "").strip()
    if not group_id:
        raise ValidationError("group_id is required")

    product = db.execute(select(Product).where(Product.sku == sku)).scalar_one_or_none()
    if not product:
        raise ProductNotFound(sku)

    group = db.get(InventoryGroup, group_id)
    if not group:
        group = InventoryGroup(id=group_id, name=group_name)
        db.add(group)
        db.flush()

    previous = product.physical_product_group_id
    product.physical_product_group_id = group.id
    db.flush()

    if previous and previous != group.id:
        logger.info("Product %s moved from group %s to %s", sku, previous, group.id)
    else:
        logger.info("Product %s linked to group %s", sku, group.id)
    return product


def clear_group(db: Session, sku: str) -> Product:
    product = db.execute(select(Product).where(Product.sku == sku)).scalar_one_or_none()
    if not product:
        raise ProductNotFound(sku)

    if product.physical_product_group_id is not None:
        logger.info("Product %s unlinked from group %s", sku, product.physical_product_group_id)
    product.physical_product_group_id = None
    db.flush()
    return product
