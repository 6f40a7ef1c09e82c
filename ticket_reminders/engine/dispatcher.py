"""Reminder Dispatcher - Record, then send, one due notification

Order of operations per item:
1. Conditional append to the ticket's reminder log. If the store rejects it
   (another run already recorded this reminder) the item is ALREADY_SENT.
2. Send through the outbound channel.
3. Annotate the log entry with the delivery result.

The log entry is never rolled back: a failed send leaves a recorded but
unconfirmed reminder. At-most-once delivery wins over duplicate sends.
"""
from datetime import datetime
from typing import Optional

from ..domain.enums import DeliveryStatus, DispatchOutcome
from ..domain.errors import DomainError, StoreError
from ..domain.models import DispatchResult, DueNotification
from ..repositories.interfaces import NotificationChannel, TicketSnapshotStore
from ..templates import build_message
from ..utils.idgen import generate_log_entry_id
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class ReminderDispatcher:
    """Dispatch due notifications with a store-enforced at-most-once guarantee"""

    def __init__(self, store: TicketSnapshotStore, channel: NotificationChannel):
        self.store = store
        self.channel = channel

    async def dispatch(self, item: DueNotification, now: Optional[datetime] = None) -> DispatchResult:
        """
        Dispatch a single due notification

        Store errors propagate; the coordinator isolates them per item.
        """
        now = now or utc_now()
        entry = item.build_log_entry(generate_log_entry_id(), sent_at=now)
        log_extra = {
            "ticket_ref": item.ticket_ref,
            "rule_id": item.rule.rule_id,
            "rule_kind": item.rule.kind.value,
            "recipient_ref": item.recipient_ref,
            "sequence": item.sequence,
        }

        appended = await self.store.append_reminder(
            item.ticket_ref,
            entry,
            expected_count=item.expected_count,
            cycle_start=item.cycle_start
        )
        if not appended:
            logger.debug(
                f"Reminder already recorded for ticket {item.ticket_ref}",
                extra={**log_extra, "outcome": DispatchOutcome.ALREADY_SENT.value}
            )
            return self._result(item, DispatchOutcome.ALREADY_SENT)

        message = build_message(item, now)

        try:
            receipt = await self.channel.send(item.rule.recipient_type, item.recipient_ref, message)
        except DomainError as e:
            await self._annotate(item, entry.entry_id, DeliveryStatus.FAILED, failure_reason=e.message)
            logger.warning(
                f"Reminder recorded but not delivered for ticket {item.ticket_ref}: {e.message}",
                extra={**log_extra, "outcome": DispatchOutcome.FAILED.value, "error_code": e.error_code}
            )
            return self._result(item, DispatchOutcome.FAILED, reason=e.message)

        await self._annotate(item, entry.entry_id, DeliveryStatus.SENT, message_id=receipt.message_id)
        logger.info(
            f"Sent {item.rule.kind.value} #{item.sequence} for ticket {item.ticket.label}",
            extra={**log_extra, "outcome": DispatchOutcome.SENT.value, "message_id": receipt.message_id}
        )
        return self._result(item, DispatchOutcome.SENT)

    async def _annotate(
        self,
        item: DueNotification,
        entry_id: str,
        status: DeliveryStatus,
        message_id: Optional[str] = None,
        failure_reason: Optional[str] = None
    ) -> None:
        """Best-effort delivery annotation; the send outcome stands either way"""
        try:
            await self.store.record_delivery(
                item.ticket_ref,
                entry_id,
                status,
                message_id=message_id,
                failure_reason=failure_reason
            )
        except StoreError as e:
            logger.error(
                f"Could not record delivery status for ticket {item.ticket_ref}: {e.message}",
                extra={"ticket_ref": item.ticket_ref, "rule_id": item.rule.rule_id, "error_code": e.error_code}
            )

    @staticmethod
    def _result(item: DueNotification, outcome: DispatchOutcome, reason: Optional[str] = None) -> DispatchResult:
        return DispatchResult(
            ticket_ref=item.ticket_ref,
            rule_id=item.rule.rule_id,
            rule_kind=item.rule.kind,
            outcome=outcome,
            reason=reason,
        )
