from fastapi import APIRouter

from pharmapos.app.api.v1.endpoints.health import router as health_router
from pharmapos.app.api.v1.endpoints.medicines import router as medicines_router
from pharmapos.app.api.v1.endpoints.sales import router as sales_router
from pharmapos.app.api.v1.endpoints.stock_movements import router as stock_movements_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(medicines_router, tags=["medicines"])
router.include_router(sales_router, tags=["sales"])
router.include_router(stock_movements_router, tags=["stock_movements"])
