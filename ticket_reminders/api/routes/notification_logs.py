"""Reminder Log API - Admin read access to sent reminders"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from ..deps import get_ticket_repository, verify_cron_secret
from ...domain.enums import DeliveryStatus, RuleKind
from ...repositories.ticket_repo import TicketRepository
from ...utils.time import parse_iso

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ReminderLogListResponse(BaseModel):
    ok: bool = True
    data: List[Dict[str, Any]]
    pagination: Pagination


class ReminderLogStatsResponse(BaseModel):
    ok: bool = True
    by_status: Dict[str, int]
    by_kind: Dict[str, int]


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    """Accept full ISO timestamps or plain dates (midnight UTC)"""
    if not value:
        return None
    try:
        return parse_iso(value)
    except (ValueError, OverflowError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid '{name}' date: {value}"
        )


@router.get("", response_model=ReminderLogListResponse)
async def list_reminder_log(
    ticket_ref: Optional[str] = Query(None),
    rule_kind: Optional[RuleKind] = Query(None),
    delivery_status: Optional[DeliveryStatus] = Query(None),
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    tickets: TicketRepository = Depends(get_ticket_repository)
):
    """
    List reminder log entries, newest first.

    Filters: ticket, rule kind, delivery status and a sent_at date range.
    """
    items, total = await tickets.list_reminder_log(
        ticket_ref=ticket_ref,
        rule_kind=rule_kind,
        delivery_status=delivery_status,
        from_date=_parse_date(from_date, "from"),
        to_date=_parse_date(to_date, "to"),
        skip=(page - 1) * limit,
        limit=limit
    )
    return ReminderLogListResponse(
        data=items,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=(total + limit - 1) // limit
        )
    )


@router.get("/stats", response_model=ReminderLogStatsResponse)
async def reminder_log_stats(
    tickets: TicketRepository = Depends(get_ticket_repository)
):
    """Entry counts by delivery status and by rule kind"""
    stats = await tickets.reminder_log_stats()
    return ReminderLogStatsResponse(by_status=stats["by_status"], by_kind=stats["by_kind"])
