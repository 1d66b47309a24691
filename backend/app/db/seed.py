from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import ChannelMapping, Product, Supplier, Warehouse
from backend.services.linked_products import assign_group


def run_seed():
    db = SessionLocal()
    try:
        # 1) Entrepôt principal
        warehouse = db.scalar(select(Warehouse).where(Warehouse.code == "MAIN"))
        if not warehouse:
            warehouse = Warehouse(name="Main warehouse", code="MAIN")
            db.add(warehouse)
            db.commit()

        # 2) Fournisseur par défaut
        supplier = db.scalar(select(Supplier).where(Supplier.name == "Default supplier"))
        if not supplier:
            supplier = Supplier(name="Default supplier", lead_time_days=14, lead_time_samples=0)
            db.add(supplier)
            db.commit()

        # 3) Deux SKU physiquement identiques + mapping Amazon
        for sku, title in (("MUG-RED", "Red mug"), ("MUG-RED-GIFT", "Red mug (gift box)")):
            if not db.scalar(select(Product).where(Product.sku == sku)):
                db.add(Product(sku=sku, title=title, cost=Decimal("3.20")))
                db.flush()
                assign_group(db, sku, "mug-red", "Red mug")
        if not db.scalar(select(ChannelMapping).where(ChannelMapping.seller_sku == "MUG-RED-AMZ")):
            db.add(ChannelMapping(seller_sku="MUG-RED-AMZ", master_sku="MUG-RED"))
        db.commit()

        print(f"SEED OK: warehouse={warehouse.code}, supplier={supplier.name}")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
