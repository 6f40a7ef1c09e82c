"""API module - Routes and dependencies"""
from .deps import get_coordinator, get_ticket_repository, verify_cron_secret

__all__ = ["get_coordinator", "get_ticket_repository", "verify_cron_secret"]
