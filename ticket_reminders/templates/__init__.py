"""
Message Templates Package

WhatsApp template parameters and fallback texts for every reminder kind.
"""
from .message_templates import (
    build_message,
    build_pending_reminder,
    build_agency_visit_reminder,
    build_missed_visit_alert,
    TEMPLATE_REGISTRY
)

__all__ = [
    "build_message",
    "build_pending_reminder",
    "build_agency_visit_reminder",
    "build_missed_visit_alert",
    "TEMPLATE_REGISTRY"
]
