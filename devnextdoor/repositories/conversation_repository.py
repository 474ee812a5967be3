from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from devnextdoor.models.conversation import ConversationDocument


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participant_a", ASCENDING)])
        await self.collection.create_index([("participant_b", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])

    async def get(self, conversation_id: str) -> Optional[ConversationDocument]:
        return await self.collection.find_one({"_id": conversation_id})

    async def exists(self, conversation_id: str) -> bool:
        doc = await self.collection.find_one({"_id": conversation_id}, {"_id": 1})
        return doc is not None

    async def get_or_create(
        self,
        conversation_id: str,
        participant_a: str,
        participant_b: str,
        created_at: int,
    ) -> Tuple[ConversationDocument, bool]:
        existing = await self.get(conversation_id)
        if existing:
            return existing, False
        doc: ConversationDocument = {
            "_id": conversation_id,
            "participant_a": participant_a,
            "participant_b": participant_b,
            "last_message_text": "",
            "last_message_at": created_at,
            "last_message_sender": "",
        }
        try:
            await self.collection.insert_one(doc)
        except DuplicateKeyError:
            # created by another client after our check; the first record stays
            existing = await self.get(conversation_id)
            return existing, False
        return doc, True

    async def update_last_message(
        self,
        conversation_id: str,
        text: str,
        sent_at: int,
        sender_id: str,
        receiver_id: str,
    ) -> None:
        # upsert covers a first send into a conversation nobody opened yet
        await self.collection.update_one(
            {"_id": conversation_id},
            {
                "$set": {
                    "last_message_text": text,
                    "last_message_at": sent_at,
                    "last_message_sender": sender_id,
                },
                "$setOnInsert": {
                    "participant_a": sender_id,
                    "participant_b": receiver_id,
                },
            },
            upsert=True,
        )

    async def list_for_user(self, username: str) -> List[ConversationDocument]:
        query = {"$or": [{"participant_a": username}, {"participant_b": username}]}
        cursor = self.collection.find(query, sort=[("last_message_at", DESCENDING), ("_id", ASCENDING)])
        return await cursor.to_list(length=None)

    async def rename_participant(self, old: str, new: str) -> int:
        modified = 0
        for field in ("participant_a", "participant_b", "last_message_sender"):
            result = await self.collection.update_many({field: old}, {"$set": {field: new}})
            modified += result.modified_count or 0
        return modified
