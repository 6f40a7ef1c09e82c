"""Repository modules - Data access layer"""
from .async_mongo import get_async_database, get_async_collection, close_async_connection
from .rule_repo import RuleRepository
from .ticket_repo import TicketRepository
from .contact_repo import ContactRepository
from .run_lock_repo import RunLockRepository

__all__ = [
    "get_async_database",
    "get_async_collection",
    "close_async_connection",
    "RuleRepository",
    "TicketRepository",
    "ContactRepository",
    "RunLockRepository",
]
