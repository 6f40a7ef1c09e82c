"""Ticket Repository - Scheduler view of tickets and their reminder logs

The ticket workflow owns every ticket field except `reminder_log`. The
scheduler appends to that array through a single conditional update so two
overlapping runs can never both record the same reminder.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from .async_mongo import get_async_collection
from ..domain.enums import DeliveryStatus, RuleKind, TicketStatus
from ..domain.errors import StoreError
from ..domain.models import ReminderLogEntry, TicketNotificationState
from ..utils.logger import get_logger
from ..utils.time import ensure_utc, utc_now

logger = get_logger(__name__)

CONFIRMED_STATUSES = {DeliveryStatus.SENT, DeliveryStatus.DELIVERED, DeliveryStatus.READ}

# Statuses a channel callback may move an entry out of; status only moves forward
STATUS_PREDECESSORS = {
    DeliveryStatus.SENT: {DeliveryStatus.PENDING},
    DeliveryStatus.DELIVERED: {DeliveryStatus.PENDING, DeliveryStatus.SENT},
    DeliveryStatus.READ: {DeliveryStatus.PENDING, DeliveryStatus.SENT, DeliveryStatus.DELIVERED},
    DeliveryStatus.FAILED: {DeliveryStatus.PENDING, DeliveryStatus.SENT},
}


def _last_status_change(doc: Dict[str, Any]) -> Optional[datetime]:
    """Latest of explicit status change, last reopen and creation time"""
    if doc.get("last_status_change_at"):
        return ensure_utc(doc["last_status_change_at"])

    reopened = [
        ensure_utc(item.get("reopened_at"))
        for item in doc.get("reopened_history") or []
        if item.get("reopened_at")
    ]
    if reopened:
        return max(reopened)

    return ensure_utc(doc.get("created_at"))


def ticket_from_document(doc: Dict[str, Any]) -> TicketNotificationState:
    """Convert a stored ticket document into the scheduler view"""
    return TicketNotificationState(
        ticket_ref=str(doc["ticket_id"]),
        display_id=doc.get("ticket_number") or str(doc["ticket_id"]),
        status=TicketStatus(str(doc.get("status", "PENDING")).upper()),
        sub_category_id=doc.get("sub_category_id") and str(doc["sub_category_id"]),
        sub_category=doc.get("sub_category"),
        category=doc.get("category"),
        description=doc.get("description"),
        location=doc.get("location"),
        agency_ref=doc.get("agency_id") and str(doc["agency_id"]),
        agency_name=doc.get("agency_name"),
        agency_visit_at=doc.get("agency_date"),
        last_status_change_at=_last_status_change(doc),
        reminder_log=doc.get("reminder_log") or [],
    )


def entry_to_document(entry: ReminderLogEntry) -> Dict[str, Any]:
    """Serialize a log entry, keeping datetimes native for range queries"""
    doc = entry.model_dump(mode="json")
    doc["sent_at"] = entry.sent_at
    doc["delivered_at"] = entry.delivered_at
    return doc


class TicketRepository:
    """Repository for ticket snapshots and reminder log writes"""

    def __init__(self, collection=None):
        self._tickets = collection if collection is not None else get_async_collection("tickets")

    async def get_notification_candidates(self) -> List[TicketNotificationState]:
        """
        Get tickets that are pending or have an open agency visit.

        Tickets whose documents cannot be read are logged and left out.
        """
        query = {
            "$or": [
                {"status": TicketStatus.PENDING.value},
                {
                    "agency_date": {"$ne": None},
                    "status": {"$ne": TicketStatus.COMPLETED.value}
                }
            ]
        }

        try:
            docs = await self._tickets.find(query).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(f"Failed to load ticket snapshot: {e}") from e

        tickets: List[TicketNotificationState] = []
        for doc in docs:
            try:
                tickets.append(ticket_from_document(doc))
            except (ValidationError, KeyError, ValueError) as e:
                logger.warning(
                    f"Skipping unreadable ticket document: {e}",
                    extra={"ticket_ref": str(doc.get("ticket_id") or doc.get("_id"))}
                )

        logger.debug(f"Loaded {len(tickets)} notification candidate tickets")
        return tickets

    async def append_reminder(
        self,
        ticket_ref: str,
        entry: ReminderLogEntry,
        expected_count: int,
        cycle_start: datetime
    ) -> bool:
        """
        Conditionally append a reminder log entry.

        The filter and the $push run as one atomic document update:
        - the rule's entries since cycle_start must still number expected_count
        - no entry may carry the same dedupe_key

        Returns:
            True if appended, False if another run got there first
        """
        cycle_count = {
            "$size": {
                "$filter": {
                    "input": {"$ifNull": ["$reminder_log", []]},
                    "as": "e",
                    "cond": {
                        "$and": [
                            {"$eq": ["$$e.rule_id", entry.rule_id]},
                            {"$gte": ["$$e.sent_at", cycle_start]}
                        ]
                    }
                }
            }
        }

        try:
            result = await self._tickets.update_one(
                {
                    "ticket_id": ticket_ref,
                    "reminder_log.dedupe_key": {"$ne": entry.dedupe_key},
                    "$expr": {"$eq": [cycle_count, expected_count]}
                },
                {"$push": {"reminder_log": entry_to_document(entry)}}
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to append reminder for ticket {ticket_ref}: {e}") from e

        appended = result.modified_count == 1
        if appended:
            logger.debug(
                f"Reminder recorded for ticket {ticket_ref}",
                extra={"ticket_ref": ticket_ref, "rule_id": entry.rule_id, "sequence": entry.sequence}
            )
        return appended

    async def record_delivery(
        self,
        ticket_ref: str,
        entry_id: str,
        status: DeliveryStatus,
        message_id: Optional[str] = None,
        failure_reason: Optional[str] = None
    ) -> bool:
        """Annotate the delivery fields of one of our log entries"""
        update: Dict[str, Any] = {
            "reminder_log.$.delivery_status": status.value,
            "reminder_log.$.delivery_confirmed": status in CONFIRMED_STATUSES,
            "reminder_log.$.failure_reason": failure_reason,
        }
        if message_id:
            update["reminder_log.$.message_id"] = message_id

        try:
            result = await self._tickets.update_one(
                {"ticket_id": ticket_ref, "reminder_log.entry_id": entry_id},
                {"$set": update}
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to record delivery for ticket {ticket_ref}: {e}") from e

        return result.modified_count > 0

    async def update_delivery_by_message_id(
        self,
        message_id: str,
        status: DeliveryStatus,
        failure_reason: Optional[str] = None
    ) -> bool:
        """
        Apply a channel status callback to the entry that sent message_id.

        Late or repeated callbacks (a `sent` after `delivered`) leave the
        entry untouched and return False.
        """
        predecessors = STATUS_PREDECESSORS.get(status, set())
        update: Dict[str, Any] = {
            "reminder_log.$.delivery_status": status.value,
            "reminder_log.$.delivery_confirmed": status in CONFIRMED_STATUSES,
        }
        if status == DeliveryStatus.FAILED:
            update["reminder_log.$.failure_reason"] = failure_reason or "Unknown failure"
        elif status in (DeliveryStatus.DELIVERED, DeliveryStatus.READ):
            update["reminder_log.$.delivered_at"] = utc_now()

        try:
            result = await self._tickets.update_one(
                {
                    "reminder_log": {
                        "$elemMatch": {
                            "message_id": message_id,
                            "delivery_status": {"$in": sorted(s.value for s in predecessors)}
                        }
                    }
                },
                {"$set": update}
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to update delivery status for {message_id}: {e}") from e

        return result.modified_count > 0

    # =========================================================================
    # Admin Read Access
    # =========================================================================

    async def list_reminder_log(
        self,
        ticket_ref: Optional[str] = None,
        rule_kind: Optional[RuleKind] = None,
        delivery_status: Optional[DeliveryStatus] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        List reminder log entries across tickets, newest first.

        Returns:
            Tuple of (entries, total count)
        """
        ticket_match: Dict[str, Any] = {"reminder_log.0": {"$exists": True}}
        if ticket_ref:
            ticket_match["ticket_id"] = ticket_ref

        entry_match: Dict[str, Any] = {}
        if rule_kind:
            entry_match["reminder_log.rule_kind"] = rule_kind.value
        if delivery_status:
            entry_match["reminder_log.delivery_status"] = delivery_status.value
        if from_date or to_date:
            sent_range: Dict[str, Any] = {}
            if from_date:
                sent_range["$gte"] = from_date
            if to_date:
                sent_range["$lte"] = to_date
            entry_match["reminder_log.sent_at"] = sent_range

        pipeline = [
            {"$match": ticket_match},
            {"$unwind": "$reminder_log"},
            {"$match": entry_match},
            {"$sort": {"reminder_log.sent_at": -1}},
            {"$facet": {
                "items": [
                    {"$skip": skip},
                    {"$limit": limit},
                    {"$project": {
                        "_id": 0,
                        "ticket_ref": "$ticket_id",
                        "ticket_number": "$ticket_number",
                        "entry": "$reminder_log"
                    }}
                ],
                "total": [{"$count": "count"}]
            }}
        ]

        try:
            result = await self._tickets.aggregate(pipeline).to_list(length=1)
        except PyMongoError as e:
            raise StoreError(f"Failed to list reminder log: {e}") from e

        if not result:
            return [], 0

        facet = result[0]
        total = facet["total"][0]["count"] if facet["total"] else 0
        items = []
        for row in facet["items"]:
            entry = ReminderLogEntry.model_validate(row["entry"])
            items.append({
                "ticket_ref": row["ticket_ref"],
                "ticket_number": row.get("ticket_number"),
                **entry.model_dump(mode="json")
            })
        return items, total

    async def reminder_log_stats(self) -> Dict[str, Dict[str, int]]:
        """Count reminder log entries by delivery status and by rule kind"""
        async def group_by(field: str) -> Dict[str, int]:
            pipeline = [
                {"$unwind": "$reminder_log"},
                {"$group": {"_id": f"$reminder_log.{field}", "count": {"$sum": 1}}}
            ]
            rows = await self._tickets.aggregate(pipeline).to_list(length=None)
            return {str(row["_id"]): row["count"] for row in rows}

        try:
            return {
                "by_status": await group_by("delivery_status"),
                "by_kind": await group_by("rule_kind"),
            }
        except PyMongoError as e:
            raise StoreError(f"Failed to aggregate reminder log stats: {e}") from e
