"""API Dependencies - Common dependencies for routes"""
import hmac
from typing import Optional
from fastapi import Header, Query

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from ..engine.coordinator import SchedulerCoordinator, build_coordinator
from ..repositories.ticket_repo import TicketRepository
from ..utils.logger import get_logger

logger = get_logger(__name__)

_coordinator: Optional[SchedulerCoordinator] = None


def get_coordinator() -> SchedulerCoordinator:
    """Process-wide coordinator wired to MongoDB and WhatsApp"""
    global _coordinator
    if _coordinator is None:
        _coordinator = build_coordinator()
    return _coordinator


def get_ticket_repository() -> TicketRepository:
    return TicketRepository()


def provided_secret(authorization: Optional[str], secret: Optional[str] = None) -> Optional[str]:
    """Secret from `Authorization: Bearer <secret>` (or a bare header value), else `?secret=`"""
    token = None
    if authorization:
        scheme, _, credentials = authorization.strip().partition(" ")
        token = credentials.strip() if scheme.lower() == "bearer" else authorization.strip()
    return token or secret


def check_trigger_secret(provided: Optional[str]) -> None:
    """
    Validate a caller-supplied trigger secret

    With no secret configured the trigger is open, except in production.

    Raises:
        AuthenticationError: Secret missing or wrong
    """
    expected = settings.cron_secret
    if not expected:
        if settings.is_production:
            logger.error("Trigger refused: CRON_SECRET is not configured in production")
            raise AuthenticationError("Trigger secret not configured")
        return

    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Unauthorized trigger request - invalid secret")
        raise AuthenticationError("Invalid or missing trigger secret")


async def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    secret: Optional[str] = Query(None)
) -> None:
    """Accept the secret as `Authorization: Bearer <secret>` or `?secret=`"""
    check_trigger_secret(provided_secret(authorization, secret))
