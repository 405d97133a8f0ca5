from fastapi import APIRouter
from seatplan.api.v1.tables import router as tables_router
from seatplan.api.v1.reservations import router as reservations_router
from seatplan.api.v1.customers import router as customers_router

api_router = APIRouter(prefix="/api/v1")

# Include all routers
api_router.include_router(tables_router, prefix="/tables", tags=["Tables"])
api_router.include_router(reservations_router, prefix="/reservations", tags=["Reservations"])
api_router.include_router(customers_router, prefix="/customers", tags=["Customers"])
