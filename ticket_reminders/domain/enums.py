"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class TicketStatus(str, Enum):
    """Ticket lifecycle status (owned by the ticket workflow)"""
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    COMPLETED = "COMPLETED"
    REOPENED = "REOPENED"


class RuleKind(str, Enum):
    """Notification rule kinds"""
    USER_REMINDER = "USER_REMINDER"  # Staff reminder while a ticket stays pending
    AGENCY_VISIT_REMINDER = "AGENCY_VISIT_REMINDER"  # Agency reminder before a scheduled visit
    MISSED_VISIT_ALERT = "MISSED_VISIT_ALERT"  # Agency alert once a visit date has passed


class DispatchOutcome(str, Enum):
    """Per-item dispatch outcome"""
    SENT = "SENT"
    ALREADY_SENT = "ALREADY_SENT"
    FAILED = "FAILED"


class DeliveryStatus(str, Enum):
    """Delivery status of a reminder log entry"""
    PENDING = "PENDING"  # Recorded, channel not called yet
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"
    FAILED = "FAILED"


class RunState(str, Enum):
    """Scheduler coordinator state"""
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class RecipientType(str, Enum):
    """Who a reminder is addressed to"""
    USER = "USER"
    AGENCY = "AGENCY"


RULE_RECIPIENT_TYPE = {
    RuleKind.USER_REMINDER: RecipientType.USER,
    RuleKind.AGENCY_VISIT_REMINDER: RecipientType.AGENCY,
    RuleKind.MISSED_VISIT_ALERT: RecipientType.AGENCY,
}
