from fastapi import APIRouter
from app.api.routes.bookings import router as bookings_router
from app.api.routes.tours import router as tours_router
from app.api.routes.payments import router as payments_router
from app.api.routes.webhooks import router as webhooks_router

api_router = APIRouter(prefix="/api")
api_router.include_router(bookings_router)
api_router.include_router(tours_router)
api_router.include_router(payments_router)
api_router.include_router(webhooks_router)
