"""Run Lock Repository - Lease-based mutual exclusion for scheduler runs

Uses a single MongoDB document per lock name. Acquisition is one atomic
find-and-modify with upsert; an expired lease can be taken over by any
process, so a crashed run never blocks later runs for longer than the TTL.
"""
from datetime import timedelta
from typing import Any, Dict, Optional
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .async_mongo import get_async_collection
from ..domain.errors import StoreError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class RunLockRepository:
    """Repository for scheduler run locks"""

    def __init__(self, collection=None):
        self._locks = collection if collection is not None else get_async_collection("scheduler_locks")

    async def acquire(self, name: str, owner: str, ttl: timedelta) -> bool:
        """
        Try to acquire the named lock.

        Args:
            name: Lock name (one per scheduler)
            owner: Unique identifier of this run
            ttl: Lease duration; the lock auto-releases after this

        Returns:
            True if acquired, False if held by a live lease
        """
        now = utc_now()
        locked_until = now + ttl

        try:
            doc = await self._locks.find_one_and_update(
                {
                    "_id": name,
                    "$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]
                },
                {
                    "$set": {
                        "locked_until": locked_until,
                        "locked_by": owner,
                        "lock_acquired_at": now
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Upsert raced with a live lock document: someone else holds it
            return False
        except PyMongoError as e:
            raise StoreError(f"Failed to acquire run lock {name}: {e}") from e

        acquired = doc is not None and doc.get("locked_by") == owner
        if acquired:
            logger.debug(
                f"Run lock {name} acquired",
                extra={"owner": owner}
            )
        return acquired

    async def release(self, name: str, owner: str) -> bool:
        """Release the lock if this owner still holds it"""
        try:
            result = await self._locks.update_one(
                {"_id": name, "locked_by": owner},
                {
                    "$set": {"locked_until": None, "locked_by": None},
                    "$unset": {"lock_acquired_at": ""}
                }
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to release run lock {name}: {e}") from e

        if result.modified_count == 0:
            logger.warning(
                f"Run lock {name} was not held by this run at release (lease expired?)",
                extra={"owner": owner}
            )
            return False
        return True

    async def get_status(self, name: str) -> Optional[Dict[str, Any]]:
        """Current lock document, for health reporting"""
        try:
            doc = await self._locks.find_one({"_id": name})
        except PyMongoError as e:
            raise StoreError(f"Failed to read run lock {name}: {e}") from e
        if not doc:
            return None
        locked_until = doc.get("locked_until")
        return {
            "locked": bool(doc.get("locked_by")) and locked_until is not None and locked_until > utc_now(),
            "locked_by": doc.get("locked_by"),
            "locked_until": locked_until,
        }
