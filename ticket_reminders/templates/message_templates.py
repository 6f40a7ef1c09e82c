"""
Message Templates - WhatsApp template parameters and plain-text fallbacks

Each builder returns the approved template name, its body parameters (in the
order the template declares them) and a fallback text used when the template
is rejected by the channel.
"""
from datetime import datetime
from typing import Callable, Dict

from ..domain.enums import RuleKind
from ..domain.models import DueNotification, OutboundMessage
from ..utils.time import format_duration, format_visit_date

DESCRIPTION_PREVIEW = 150


def _preview(text: str, limit: int = DESCRIPTION_PREVIEW) -> str:
    return (text or "")[:limit]


def build_pending_reminder(item: DueNotification, now: datetime) -> OutboundMessage:
    """Template: Ticket still pending - reminder to the responsible user"""
    ticket = item.ticket
    elapsed = now - ticket.last_status_change_at
    hours_elapsed = int(elapsed.total_seconds() // 3600)
    sub_category = ticket.sub_category or "N/A"

    return OutboundMessage(
        template_name=item.rule.template_id or "ticket_reminder",
        template_params={
            "ticket_id": ticket.label,
            "subcategory": sub_category,
            "hours": str(hours_elapsed),
            "reminder_number": str(item.sequence),
        },
        fallback_text=(
            f"⏰ Reminder #{item.sequence}: Ticket #{ticket.label} ({sub_category}) "
            f"is still pending for {format_duration(elapsed)}.\n\n"
            f"\U0001f4dd {_preview(ticket.description)}\n\n"
            f"Please take necessary action."
        ),
        ticket_ref=ticket.ticket_ref,
    )


def build_agency_visit_reminder(item: DueNotification, now: datetime) -> OutboundMessage:
    """Template: Upcoming agency visit"""
    ticket = item.ticket
    visit_date = format_visit_date(ticket.agency_visit_at)
    category = ticket.category or "Unknown"
    location = ticket.location or "Not specified"

    return OutboundMessage(
        template_name=item.rule.template_id or "agency_visit_reminder",
        template_params={
            "ticket_id": ticket.label,
            "visit_date": visit_date,
            "location": location,
            "category": category,
        },
        fallback_text=(
            f"\U0001f4c5 Visit Reminder\n\n"
            f"You are scheduled to visit on {visit_date} for Ticket #{ticket.label}.\n\n"
            f"\U0001f4c2 Category: {category}\n"
            f"\U0001f4cd Location: {location}\n\n"
            f"Please ensure timely arrival."
        ),
        ticket_ref=ticket.ticket_ref,
    )


def build_missed_visit_alert(item: DueNotification, now: datetime) -> OutboundMessage:
    """Template: Agency missed its scheduled visit"""
    ticket = item.ticket
    visit_date = format_visit_date(ticket.agency_visit_at)
    category = ticket.category or "Unknown"

    return OutboundMessage(
        template_name=item.rule.template_id or "agency_missed_visit",
        template_params={
            "ticket_id": ticket.label,
            "scheduled_date": visit_date,
            "category": category,
        },
        fallback_text=(
            f"⚠️ Missed Visit Alert\n\n"
            f"You missed your scheduled visit for Ticket #{ticket.label} on {visit_date}.\n\n"
            f"\U0001f4c2 Category: {category}\n"
            f"\U0001f4cd Location: {ticket.location or 'Not specified'}\n\n"
            f"Please update your status or reschedule immediately."
        ),
        ticket_ref=ticket.ticket_ref,
    )


TEMPLATE_REGISTRY: Dict[RuleKind, Callable[[DueNotification, datetime], OutboundMessage]] = {
    RuleKind.USER_REMINDER: build_pending_reminder,
    RuleKind.AGENCY_VISIT_REMINDER: build_agency_visit_reminder,
    RuleKind.MISSED_VISIT_ALERT: build_missed_visit_alert,
}


def build_message(item: DueNotification, now: datetime) -> OutboundMessage:
    """Render the outbound message for a due notification"""
    return TEMPLATE_REGISTRY[item.rule.kind](item, now)
