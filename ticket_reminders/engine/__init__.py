"""Reminder Engine - Selection, dispatch and run coordination"""
from .selector import DueItemSelector, select_due_notifications
from .dispatcher import ReminderDispatcher
from .coordinator import SchedulerCoordinator, build_coordinator

__all__ = [
    "DueItemSelector",
    "select_due_notifications",
    "ReminderDispatcher",
    "SchedulerCoordinator",
    "build_coordinator",
]
