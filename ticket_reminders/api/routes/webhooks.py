"""Delivery Webhook API - WhatsApp message status callbacks

GET answers Meta's subscription handshake. POST receives status events
(sent, delivered, read, failed) and updates the reminder log entry that
carries the message id.
"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from ..deps import get_ticket_repository
from ...config.settings import settings
from ...domain.enums import DeliveryStatus
from ...domain.errors import WebhookVerificationError
from ...repositories.ticket_repo import TicketRepository
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

STATUS_MAP: Dict[str, DeliveryStatus] = {
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "read": DeliveryStatus.READ,
    "failed": DeliveryStatus.FAILED,
}


def extract_status_events(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten entry[].changes[].value.statuses[] of a webhook payload"""
    events = []
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") != "messages":
                continue
            value = change.get("value") or {}
            events.extend(value.get("statuses") or [])
    return events


def failure_reason(event: Dict[str, Any]) -> Optional[str]:
    errors = event.get("errors") or []
    if not errors:
        return None
    error = errors[0]
    return f"{error.get('code')}: {error.get('title')} - {error.get('message')}"


@router.get("/whatsapp", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge")
):
    """Subscription handshake: echo the challenge when the verify token matches"""
    expected = settings.whatsapp_webhook_verify_token
    if mode == "subscribe" and expected and token == expected:
        logger.info("WhatsApp webhook verification successful")
        return PlainTextResponse(challenge or "")

    raise WebhookVerificationError("Webhook verification failed - token mismatch")


@router.post("/whatsapp")
async def receive_webhook(
    request: Request,
    tickets: TicketRepository = Depends(get_ticket_repository)
):
    """Apply delivery status events to the reminder log"""
    body = await request.json()
    updated = 0
    ignored = 0

    for event in extract_status_events(body):
        message_id = event.get("id")
        delivery_status = STATUS_MAP.get(event.get("status", ""))
        if not message_id or delivery_status is None:
            logger.info(f"Ignoring status event: {event.get('status')}")
            ignored += 1
            continue

        matched = await tickets.update_delivery_by_message_id(
            message_id,
            delivery_status,
            failure_reason=failure_reason(event)
        )
        if matched:
            updated += 1
        else:
            ignored += 1
        logger.info(
            f"Message {message_id} -> {delivery_status.value}",
            extra={"message_id": message_id, "outcome": "updated" if matched else "unmatched"}
        )

    return {"ok": True, "updated": updated, "ignored": ignored}
