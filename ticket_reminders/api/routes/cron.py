"""Cron Trigger API - Run the notification scheduler on demand

Called every 15 minutes by an external cron service. The endpoint never lets
an exception escape: every outcome is a JSON body with an `ok` flag.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Header, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..deps import check_trigger_secret, get_coordinator, provided_secret
from ...domain.errors import AuthenticationError
from ...engine.coordinator import SchedulerCoordinator
from ...utils.logger import get_logger
from ...utils.time import format_iso, utc_now

logger = get_logger(__name__)

router = APIRouter()


class ManualTriggerRequest(BaseModel):
    """Body of a manual trigger"""
    secret: Optional[str] = None


def _unauthorized() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"ok": False, "error": "Unauthorized"}
    )


async def _run(coordinator: SchedulerCoordinator) -> JSONResponse:
    try:
        summary = await coordinator.run()
    except Exception as e:
        logger.error(f"Scheduler error: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"ok": False, "error": str(e)}
        )

    if not summary.ok:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "ok": False,
                "timestamp": format_iso(summary.timestamp),
                "error": summary.error
            }
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "ok": True,
            "timestamp": format_iso(utc_now()),
            "result": summary.to_result()
        }
    )


@router.get("/notifications")
async def run_notifications(
    authorization: Optional[str] = Header(None),
    secret: Optional[str] = Query(None),
    coordinator: SchedulerCoordinator = Depends(get_coordinator)
):
    """
    Run one scheduler pass.

    The secret is accepted as `Authorization: Bearer <secret>` or `?secret=`.
    """
    try:
        check_trigger_secret(provided_secret(authorization, secret))
    except AuthenticationError:
        return _unauthorized()

    logger.info("Starting notification scheduler run")
    return await _run(coordinator)


@router.post("/notifications")
async def trigger_notifications(
    request: ManualTriggerRequest,
    coordinator: SchedulerCoordinator = Depends(get_coordinator)
):
    """Manual trigger with the secret in the JSON body"""
    try:
        check_trigger_secret(request.secret)
    except AuthenticationError:
        return _unauthorized()

    logger.info("Manual notification scheduler trigger")
    return await _run(coordinator)
