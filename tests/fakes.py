"""In-memory stand-ins for the store, lock and channel protocols"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

from ticket_reminders.domain.enums import DeliveryStatus, RecipientType, RuleKind, TicketStatus
from ticket_reminders.domain.errors import ChannelError, StoreError
from ticket_reminders.domain.models import (
    ChannelReceipt, NotificationRule, OutboundMessage, ReminderLogEntry, TicketNotificationState
)

T0 = datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)


def make_rule(
    rule_id: str = "rule-user",
    kind: RuleKind = RuleKind.USER_REMINDER,
    target_ref: str = "user-1",
    **overrides
) -> NotificationRule:
    fields = {
        "rule_id": rule_id,
        "kind": kind,
        "target_ref": target_ref,
        "max_reminders": 3,
    }
    if kind == RuleKind.USER_REMINDER:
        fields["reminder_interval"] = timedelta(hours=12)
    elif kind == RuleKind.AGENCY_VISIT_REMINDER:
        fields["lead_time"] = timedelta(hours=24)
    fields.update(overrides)
    return NotificationRule(**fields)


def make_ticket(
    ticket_ref: str = "TKT-1",
    status: TicketStatus = TicketStatus.PENDING,
    last_status_change_at: datetime = T0,
    **overrides
) -> TicketNotificationState:
    fields = {
        "ticket_ref": ticket_ref,
        "display_id": ticket_ref.replace("TKT-", "T-"),
        "status": status,
        "sub_category": "Plumbing",
        "category": "Maintenance",
        "description": "Leaking tap in block B",
        "location": "Block B",
        "last_status_change_at": last_status_change_at,
    }
    fields.update(overrides)
    return TicketNotificationState(**fields)


class InMemoryRuleSource:
    def __init__(self, rules: List[NotificationRule], error: Optional[Exception] = None):
        self.rules = rules
        self.error = error

    async def get_active_rules(self, kind: Optional[RuleKind] = None) -> List[NotificationRule]:
        if self.error:
            raise self.error
        return [r for r in self.rules if kind is None or r.kind == kind]


class InMemoryTicketStore:
    """
    Ticket store whose conditional append mirrors the MongoDB update: the
    check and the append run without an await in between.
    """

    def __init__(self, tickets: List[TicketNotificationState]):
        self.tickets: Dict[str, TicketNotificationState] = {t.ticket_ref: t for t in tickets}
        self.fail_append_for: Set[str] = set()
        self.fail_load = False

    async def get_notification_candidates(self) -> List[TicketNotificationState]:
        await asyncio.sleep(0)
        if self.fail_load:
            raise StoreError("Failed to load ticket snapshot: connection refused")
        return [t.model_copy(deep=True) for t in self.tickets.values()]

    async def append_reminder(
        self,
        ticket_ref: str,
        entry: ReminderLogEntry,
        expected_count: int,
        cycle_start: datetime
    ) -> bool:
        await asyncio.sleep(0)
        if ticket_ref in self.fail_append_for:
            raise StoreError(f"Failed to append reminder for ticket {ticket_ref}")

        ticket = self.tickets.get(ticket_ref)
        if ticket is None:
            return False
        if any(e.dedupe_key == entry.dedupe_key for e in ticket.reminder_log):
            return False
        if len(ticket.cycle_entries(entry.rule_id, cycle_start)) != expected_count:
            return False
        ticket.reminder_log.append(entry.model_copy())
        return True

    async def record_delivery(
        self,
        ticket_ref: str,
        entry_id: str,
        status: DeliveryStatus,
        message_id: Optional[str] = None,
        failure_reason: Optional[str] = None
    ) -> bool:
        for entry in self.tickets[ticket_ref].reminder_log:
            if entry.entry_id == entry_id:
                entry.delivery_status = status
                entry.delivery_confirmed = status != DeliveryStatus.FAILED
                entry.message_id = message_id
                entry.failure_reason = failure_reason
                return True
        return False

    def log(self, ticket_ref: str) -> List[ReminderLogEntry]:
        return self.tickets[ticket_ref].reminder_log


class InMemoryRunLock:
    def __init__(self):
        self.owner: Optional[str] = None
        self.locked_until: Optional[datetime] = None
        self.released = 0

    async def acquire(self, name: str, owner: str, ttl: timedelta) -> bool:
        now = datetime.now(timezone.utc)
        if self.owner and self.locked_until and self.locked_until > now:
            return False
        self.owner = owner
        self.locked_until = now + ttl
        return True

    async def release(self, name: str, owner: str) -> bool:
        if self.owner != owner:
            return False
        self.owner = None
        self.locked_until = None
        self.released += 1
        return True


class FakeChannel:
    """Records every message; fails for recipients listed in fail_for"""

    def __init__(self, fail_for: Optional[Set[str]] = None):
        self.sent: List[tuple] = []
        self.fail_for = fail_for or set()

    async def send(
        self,
        recipient_type: RecipientType,
        recipient_ref: str,
        message: OutboundMessage
    ) -> ChannelReceipt:
        await asyncio.sleep(0)
        if recipient_ref in self.fail_for:
            raise ChannelError("Recipient phone number not in allowed list")
        self.sent.append((recipient_type, recipient_ref, message))
        return ChannelReceipt(message_id=f"wamid.{len(self.sent)}")


def make_entry(
    rule_id: str = "rule-user",
    sent_at: datetime = T0,
    sequence: int = 1,
    kind: RuleKind = RuleKind.USER_REMINDER,
    recipient_ref: str = "user-1"
) -> ReminderLogEntry:
    return ReminderLogEntry(
        entry_id=f"RLOG-{rule_id}-{sequence}-{sent_at.timestamp():.0f}",
        rule_id=rule_id,
        rule_kind=kind,
        recipient_ref=recipient_ref,
        sequence=sequence,
        dedupe_key=f"{rule_id}|{sent_at.isoformat()}|reminder-{sequence}",
        sent_at=sent_at,
        delivery_status=DeliveryStatus.SENT,
        delivery_confirmed=True,
    )
