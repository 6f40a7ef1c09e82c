"""Repository interfaces the scheduler engine depends on

The coordinator and dispatcher receive these collaborators explicitly; the
MongoDB repositories in this package are the production implementations.
"""
from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from ..domain.enums import DeliveryStatus, RecipientType, RuleKind
from ..domain.models import (
    ChannelReceipt, NotificationRule, OutboundMessage, ReminderLogEntry,
    TicketNotificationState
)


class RuleSource(Protocol):
    async def get_active_rules(self, kind: Optional[RuleKind] = None) -> List[NotificationRule]:
        ...


class TicketSnapshotStore(Protocol):
    async def get_notification_candidates(self) -> List[TicketNotificationState]:
        ...

    async def append_reminder(
        self,
        ticket_ref: str,
        entry: ReminderLogEntry,
        expected_count: int,
        cycle_start: datetime
    ) -> bool:
        """Append only if the rule's cycle count still equals expected_count"""
        ...

    async def record_delivery(
        self,
        ticket_ref: str,
        entry_id: str,
        status: DeliveryStatus,
        message_id: Optional[str] = None,
        failure_reason: Optional[str] = None
    ) -> bool:
        ...


class RunLock(Protocol):
    async def acquire(self, name: str, owner: str, ttl: timedelta) -> bool:
        ...

    async def release(self, name: str, owner: str) -> bool:
        ...


class ContactDirectory(Protocol):
    async def get_phone(self, recipient_type: RecipientType, recipient_ref: str) -> Optional[str]:
        ...


class NotificationChannel(Protocol):
    async def send(
        self,
        recipient_type: RecipientType,
        recipient_ref: str,
        message: OutboundMessage
    ) -> ChannelReceipt:
        """Raise ChannelError when the message is not accepted"""
        ...
