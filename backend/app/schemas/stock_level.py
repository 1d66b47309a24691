from datetime import datetime

from pydantic import BaseModel


class InventoryLevelRead(BaseModel):
    sku: str

    warehouse_available: int
    fba_available: int
    warehouse_last_sync: datetime | None = None

    class Config:
        from_attributes = True


class WarehouseStockRead(BaseModel):
    warehouse_id: int
    sku: str

    available: int  # peut être négatif : survente visible
    updated_at: datetime

    class Config:
        from_attributes = True
