"""Contact Repository - Phone numbers of staff users and agencies"""
from typing import Any, Dict, Optional
from bson import ObjectId
from pymongo.errors import PyMongoError

from .async_mongo import get_async_collection
from ..domain.enums import RecipientType
from ..domain.errors import StoreError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _id_query(ref: str, id_field: str) -> Dict[str, Any]:
    candidates: list = [{id_field: ref}, {"_id": ref}]
    if ObjectId.is_valid(ref):
        candidates.append({"_id": ObjectId(ref)})
    return {"$or": candidates}


class ContactRepository:
    """Resolves reminder recipients to phone numbers"""

    def __init__(self, users=None, agencies=None):
        self._users = users if users is not None else get_async_collection("users")
        self._agencies = agencies if agencies is not None else get_async_collection("agencies")

    async def get_phone(self, recipient_type: RecipientType, recipient_ref: str) -> Optional[str]:
        """Get the phone number on file, or None if the recipient has none"""
        if recipient_type == RecipientType.USER:
            collection, query = self._users, _id_query(recipient_ref, "user_id")
        else:
            query = _id_query(recipient_ref, "agency_id")
            query["is_active"] = {"$ne": False}
            collection = self._agencies

        try:
            doc = await collection.find_one(query, {"phone": 1})
        except PyMongoError as e:
            raise StoreError(f"Failed to look up contact {recipient_ref}: {e}") from e

        phone = (doc or {}).get("phone")
        if not phone:
            logger.info(
                f"{recipient_type.value.title()} {recipient_ref} has no phone number",
                extra={"recipient_ref": recipient_ref}
            )
            return None
        return str(phone)
