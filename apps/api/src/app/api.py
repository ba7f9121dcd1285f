from fastapi import APIRouter

from app.modules.documents import router as documents_router
from app.modules.notifications import router as notifications_router

api_router = APIRouter()

api_router.include_router(documents_router, prefix="/process", tags=["Document Processing"])

api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
