"""
BIODATA RECORD STORE

Motor-backed persistence for biodata records (collection `user_biodata`).

All post-creation writes are conditional:
- payment confirmation only matches while payment_status != SUCCESS
- fulfillment bookkeeping only matches while pdf_generated != True
- transaction_id is covered by a unique partial index

so concurrent writers degrade to no-ops instead of overwriting each other.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from bson import ObjectId
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

from .duplicate_protection import DuplicateTransactionError
from .state_machine import PaymentStatus

logger = logging.getLogger(__name__)

COLLECTION = "user_biodata"

LIST_PROJECTION = {
    "form_data": 1,
    "template_id": 1,
    "image_path": 1,
    "created_at": 1,
}


class InvalidRecordIdError(ValueError):
    """Raised when a record id is not a valid ObjectId"""
    def __init__(self, record_id: Any):
        self.record_id = record_id
        super().__init__(f"Invalid id format: {record_id!r}")


def to_object_id(record_id: Any) -> ObjectId:
    if isinstance(record_id, ObjectId):
        return record_id
    if not isinstance(record_id, str) or not ObjectId.is_valid(record_id):
        raise InvalidRecordIdError(record_id)
    return ObjectId(record_id)


def to_record(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Swap Mongo's _id for a string id"""
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class BiodataStore:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db[COLLECTION]

    async def ensure_indexes(self):
        await self.collection.create_index("user_id", name="user_id_idx")
        await self.collection.create_index([("created_at", -1)], name="created_at_idx")
        await self.collection.create_index(
            "transaction_id",
            unique=True,
            partialFilterExpression={"transaction_id": {"$type": "string"}},
            name="unique_transaction_id"
        )
        logger.info("[STORE] Biodata indexes ensured")

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        doc = {
            "payment_status": PaymentStatus.INITIATED.value,
            "payment_provider_type": None,
            "transaction_id": None,
            "app_user_id": None,
            "pdf_generated": False,
            "pdf_generated_at": None,
            "created_at": datetime.utcnow(),
            "state_history": [],
            **fields,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return to_record(doc)

    async def set_app_user_id(self, record_id: str, app_user_id: str):
        await self.collection.update_one(
            {"_id": to_object_id(record_id), "app_user_id": None},
            {"$set": {"app_user_id": app_user_id}}
        )

    async def find_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        doc = await self.collection.find_one({"_id": to_object_id(record_id)})
        return to_record(doc)

    async def find_by_id_and_owner(self, record_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
        doc = await self.collection.find_one({
            "_id": to_object_id(record_id),
            "user_id": owner_id
        })
        return to_record(doc)

    async def find_by_transaction_id(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        doc = await self.collection.find_one({"transaction_id": transaction_id})
        return to_record(doc)

    async def list_by_owner(self, owner_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        cursor = self.collection.find(
            {"user_id": owner_id}, LIST_PROJECTION
        ).sort("created_at", -1).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [to_record(doc) for doc in docs]

    async def confirm_payment(
        self,
        record_id: str,
        owner_id: str,
        update: Dict[str, Any],
        history_entry: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Apply the INITIATED -> SUCCESS write.

        Returns the updated record, or None when the record was already
        SUCCESS (another writer got there first).
        Raises DuplicateTransactionError if the transaction id is held by
        another record.
        """
        mutation: Dict[str, Any] = {"$set": update}
        if history_entry:
            mutation["$push"] = {"state_history": history_entry}

        try:
            doc = await self.collection.find_one_and_update(
                {
                    "_id": to_object_id(record_id),
                    "user_id": owner_id,
                    "payment_status": {"$ne": PaymentStatus.SUCCESS.value}
                },
                mutation,
                return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError as e:
            logger.warning(
                f"[STORE] Transaction {update.get('transaction_id')} already "
                f"claimed; record {record_id} left unchanged"
            )
            raise DuplicateTransactionError(
                transaction_id=update.get("transaction_id"),
                existing_record_id=None
            ) from e

        return to_record(doc)

    async def mark_fulfilled(self, record_id: str) -> bool:
        result = await self.collection.update_one(
            {"_id": to_object_id(record_id), "pdf_generated": {"$ne": True}},
            {"$set": {"pdf_generated": True, "pdf_generated_at": datetime.utcnow()}}
        )
        return result.modified_count == 1
