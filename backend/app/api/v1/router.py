from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.products import router as products_router
from backend.app.api.v1.endpoints.channel_mappings import router as channel_mappings_router
from backend.app.api.v1.endpoints.suppliers import router as suppliers_router
from backend.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from backend.app.api.v1.endpoints.backorders import router as backorders_router
from backend.app.api.v1.endpoints.warehouses import router as warehouses_router
from backend.app.api.v1.endpoints.stock import router as inventory_router
from backend.app.api.v1.endpoints.fulfillment_shipments import router as fulfillment_shipments_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(channel_mappings_router, tags=["channel_mappings"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(backorders_router, tags=["backorders"])
router.include_router(warehouses_router, tags=["warehouses"])
router.include_router(inventory_router, tags=["inventory"])
router.include_router(fulfillment_shipments_router, tags=["fulfillment_shipments"])
