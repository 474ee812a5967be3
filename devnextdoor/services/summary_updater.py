import logging
from typing import Tuple

from pymongo.errors import PyMongoError

from devnextdoor.core.errors import StoreError
from devnextdoor.repositories.conversation_repository import ConversationRepository
from devnextdoor.schemas.chat import Conversation, Message
from devnextdoor.utils.identity import canonical_id
from devnextdoor.utils.realtime_bus import CONVERSATIONS_CHANNEL


logger = logging.getLogger(__name__)


class ConversationSummaryUpdater:
    """Sole writer of conversation records.

    ``ensure`` creates the record for a participant pair, ``apply`` keeps its
    last-message projection in step with the message log.
    """

    def __init__(self, conversation_repo: ConversationRepository, bus) -> None:
        self._conversation_repo = conversation_repo
        self._bus = bus

    async def ensure(self, username: str, other_user: str, created_at: int) -> Tuple[Conversation, bool]:
        conversation_id = canonical_id(username, other_user)
        try:
            doc, created = await self._conversation_repo.get_or_create(
                conversation_id,
                participant_a=username,
                participant_b=other_user,
                created_at=created_at,
            )
        except PyMongoError as exc:
            logger.error("Resolving conversation %s failed: %s", conversation_id, exc)
            raise StoreError(str(exc)) from exc
        if created:
            logger.info("Created conversation %s", conversation_id)
            await self._bus.publish(CONVERSATIONS_CHANNEL, conversation_id)
        return Conversation.from_document(doc), created

    async def apply(self, message: Message) -> None:
        try:
            await self._conversation_repo.update_last_message(
                message.conversation_id,
                text=message.content,
                sent_at=message.sent_at,
                sender_id=message.sender_id,
                receiver_id=message.receiver_id,
            )
        except PyMongoError as exc:
            # the message itself is already persisted at this point
            logger.error("Summary update for %s failed after append of %s: %s", message.conversation_id, message.id, exc)
            raise StoreError(str(exc)) from exc
        await self._bus.publish(CONVERSATIONS_CHANNEL, message.conversation_id)
