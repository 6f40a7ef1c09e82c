"""API Routes module"""
from fastapi import APIRouter

from .cron import router as cron_router
from .webhooks import router as webhooks_router
from .notification_logs import router as notification_logs_router

# Main API router
api_router = APIRouter()

api_router.include_router(cron_router, prefix="/cron", tags=["Cron"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])
api_router.include_router(notification_logs_router, prefix="/notification-logs", tags=["Reminder Log"])

__all__ = ["api_router"]
