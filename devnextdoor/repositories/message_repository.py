from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from devnextdoor.models.message import MessageDocument


CHRONOLOGICAL = [("sent_at", ASCENDING), ("_id", ASCENDING)]


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("sent_at", ASCENDING)])
        await self.collection.create_index([("receiver_id", ASCENDING), ("read", ASCENDING)])

    async def insert(self, doc: MessageDocument) -> None:
        await self.collection.insert_one(doc)

    async def find_since(self, conversation_id: str, since_ms: int) -> List[MessageDocument]:
        cursor = self.collection.find(
            {"conversation_id": conversation_id, "sent_at": {"$gte": since_ms}},
            sort=CHRONOLOGICAL,
        )
        return await cursor.to_list(length=None)

    async def list_for_conversation(self, conversation_id: str) -> List[MessageDocument]:
        cursor = self.collection.find({"conversation_id": conversation_id}, sort=CHRONOLOGICAL)
        return await cursor.to_list(length=None)

    async def mark_read(self, conversation_id: str, receiver_id: str) -> int:
        result = await self.collection.update_many(
            {"conversation_id": conversation_id, "receiver_id": receiver_id, "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count or 0

    async def rename_participant(self, old: str, new: str) -> int:
        modified = 0
        for field in ("sender_id", "receiver_id"):
            result = await self.collection.update_many({field: old}, {"$set": {field: new}})
            modified += result.modified_count or 0
        return modified
