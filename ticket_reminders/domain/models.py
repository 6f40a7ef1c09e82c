"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from .enums import (
    TicketStatus, RuleKind, DispatchOutcome, DeliveryStatus, RecipientType,
    RULE_RECIPIENT_TYPE
)
from ..utils.time import ensure_utc, format_iso


# ============================================================================
# Notification Rules (read-only configuration)
# ============================================================================

class NotificationRule(BaseModel):
    """Reminder rule configured by an administrator"""
    model_config = ConfigDict(extra="ignore")

    rule_id: str
    kind: RuleKind
    target_ref: str = Field(..., description="User id (USER_REMINDER) or agency id (agency kinds)")
    scope_ids: List[str] = Field(default_factory=list, description="Sub-category ids; empty = all")
    lead_time: Optional[timedelta] = Field(None, description="Offset before a visit (AGENCY_VISIT_REMINDER)")
    reminder_interval: Optional[timedelta] = Field(None, description="Spacing between reminders (USER_REMINDER)")
    grace_period: timedelta = Field(default=timedelta(0), description="Delay after a visit (MISSED_VISIT_ALERT)")
    max_reminders: int = Field(default=3)
    template_id: Optional[str] = None
    active: bool = True

    @property
    def recipient_type(self) -> RecipientType:
        return RULE_RECIPIENT_TYPE[self.kind]

    def applies_to(self, sub_category_id: Optional[str]) -> bool:
        """Check whether a ticket's sub-category falls within the rule scope"""
        if not self.scope_ids:
            return True
        return sub_category_id is not None and sub_category_id in self.scope_ids

    def configuration_problem(self) -> Optional[str]:
        """
        Describe what is wrong with this rule, or None if it can be evaluated.

        A rule with a problem is skipped; other rules keep running.
        """
        if not self.target_ref:
            return "target_ref is required"
        if self.max_reminders < 1:
            return "max_reminders must be at least 1"
        if self.kind == RuleKind.USER_REMINDER:
            if self.reminder_interval is None:
                return "reminder_interval is required for USER_REMINDER"
            if self.reminder_interval <= timedelta(0):
                return "reminder_interval must be positive"
        elif self.kind == RuleKind.AGENCY_VISIT_REMINDER:
            if self.lead_time is None:
                return "lead_time is required for AGENCY_VISIT_REMINDER"
            if self.lead_time <= timedelta(0):
                return "lead_time must be positive"
        elif self.kind == RuleKind.MISSED_VISIT_ALERT:
            if self.grace_period < timedelta(0):
                return "grace_period must not be negative"
        return None


# ============================================================================
# Ticket Notification State
# ============================================================================

class ReminderLogEntry(BaseModel):
    """Reminder log entry (append-only; only delivery fields are annotated later)"""
    model_config = ConfigDict(extra="ignore")

    entry_id: str
    rule_id: str
    rule_kind: RuleKind
    recipient_ref: str
    sequence: int = Field(default=1, description="Reminder number within the rule cycle")
    dedupe_key: str
    sent_at: datetime
    delivery_confirmed: bool = False
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    message_id: Optional[str] = None
    failure_reason: Optional[str] = None
    delivered_at: Optional[datetime] = None

    @field_validator("sent_at", "delivered_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class TicketNotificationState(BaseModel):
    """Scheduler view of a ticket"""
    model_config = ConfigDict(extra="ignore")

    ticket_ref: str
    display_id: Optional[str] = Field(None, description="Human ticket number, e.g. T-12")
    status: TicketStatus
    sub_category_id: Optional[str] = None
    sub_category: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    agency_ref: Optional[str] = None
    agency_name: Optional[str] = None
    agency_visit_at: Optional[datetime] = None
    last_status_change_at: datetime
    reminder_log: List[ReminderLogEntry] = Field(default_factory=list)

    @field_validator("agency_visit_at", "last_status_change_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @property
    def label(self) -> str:
        return self.display_id or self.ticket_ref

    def cycle_entries(self, rule_id: str, since: datetime) -> List[ReminderLogEntry]:
        """Log entries for a rule recorded at or after the start of the current cycle"""
        return [
            entry for entry in self.reminder_log
            if entry.rule_id == rule_id and entry.sent_at >= since
        ]


# ============================================================================
# Scheduler Run Artifacts
# ============================================================================

class DueNotification(BaseModel):
    """A notification that should be sent in this run"""
    model_config = ConfigDict(extra="forbid")

    ticket_ref: str
    rule: NotificationRule
    recipient_ref: str
    fire_at: datetime
    sequence: int
    expected_count: int = Field(..., description="Cycle log length observed at selection time")
    cycle_start: datetime
    dedupe_key: str
    ticket: TicketNotificationState

    def build_log_entry(self, entry_id: str, sent_at: datetime) -> ReminderLogEntry:
        return ReminderLogEntry(
            entry_id=entry_id,
            rule_id=self.rule.rule_id,
            rule_kind=self.rule.kind,
            recipient_ref=self.recipient_ref,
            sequence=self.sequence,
            dedupe_key=self.dedupe_key,
            sent_at=sent_at,
        )


class OutboundMessage(BaseModel):
    """Message handed to the outbound channel"""
    template_name: str
    template_params: Dict[str, str] = Field(default_factory=dict)
    fallback_text: str
    ticket_ref: str


class ChannelReceipt(BaseModel):
    """Channel acknowledgement of an accepted message"""
    message_id: Optional[str] = None
    used_fallback: bool = False


class DispatchResult(BaseModel):
    """Outcome of dispatching one due notification"""
    ticket_ref: str
    rule_id: str
    rule_kind: RuleKind
    outcome: DispatchOutcome
    reason: Optional[str] = None


class KindStats(BaseModel):
    """Per-rule-kind counters"""
    due: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


class RunSummary(BaseModel):
    """Result of one scheduler run"""
    ok: bool
    run_id: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None
    due_count: int = 0
    sent_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    by_kind: Dict[str, KindStats] = Field(default_factory=dict)
    duration_ms: float = 0
    timestamp: datetime
    error: Optional[str] = None

    def to_result(self) -> Dict[str, Any]:
        """Counters exposed through the trigger endpoint"""
        result: Dict[str, Any] = {
            "runId": self.run_id,
            "sentCount": self.sent_count,
            "skippedCount": self.skipped_count,
            "failedCount": self.failed_count,
            "dueCount": self.due_count,
            "byKind": {kind: stats.model_dump() for kind, stats in self.by_kind.items()},
            "durationMs": round(self.duration_ms, 2),
            "timestamp": format_iso(self.timestamp),
        }
        if self.skipped:
            result["skipped"] = True
            result["reason"] = self.reason
        return result
