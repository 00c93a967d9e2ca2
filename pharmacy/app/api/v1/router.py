from fastapi import APIRouter

from pharmacy.app.api.v1.endpoints.health import router as health_router
from pharmacy.app.api.v1.endpoints.medicines import router as medicines_router
from pharmacy.app.api.v1.endpoints.vendors import router as vendors_router
from pharmacy.app.api.v1.endpoints.stock import router as stock_router
from pharmacy.app.api.v1.endpoints.stock_transactions import router as stock_transactions_router
from pharmacy.app.api.v1.endpoints.prescriptions import router as prescriptions_router
from pharmacy.app.api.v1.endpoints.patients import router as patients_router
from pharmacy.app.api.v1.endpoints.reports import router as reports_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(medicines_router, tags=["medicines"])
router.include_router(vendors_router, tags=["vendors"])
router.include_router(stock_transactions_router, tags=["stock_transactions"])
router.include_router(stock_router, tags=["stock"])
router.include_router(prescriptions_router, tags=["prescriptions"])
router.include_router(patients_router, tags=["patients"])
router.include_router(reports_router, tags=["reports"])
