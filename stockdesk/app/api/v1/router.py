from fastapi import APIRouter

from stockdesk.app.api.v1.endpoints.health import router as health_router
from stockdesk.app.api.v1.endpoints.products import router as products_router
from stockdesk.app.api.v1.endpoints.stock_movements import router as stock_movements_router
from stockdesk.app.api.v1.endpoints.stock_sync import router as stock_sync_router
from stockdesk.app.api.v1.endpoints.inventory import router as inventory_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(stock_movements_router, tags=["stock_movements"])
router.include_router(stock_sync_router, tags=["stock_sync"])
router.include_router(inventory_router, tags=["inventory"])
