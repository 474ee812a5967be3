import logging
from typing import Any, Callable, List, Optional

from pymongo.errors import PyMongoError

from devnextdoor.core.config import Settings, get_settings
from devnextdoor.core.errors import StoreError
from devnextdoor.repositories.conversation_repository import ConversationRepository
from devnextdoor.repositories.message_repository import MessageRepository
from devnextdoor.schemas.chat import Conversation, ConversationListItem, Message, SendResult
from devnextdoor.services.chat_session import ChatSession
from devnextdoor.services.conversation_list import ConversationListProvider
from devnextdoor.services.duplicate_filter import ClientThrottle, DuplicateFilter
from devnextdoor.services.message_store import MessageStore
from devnextdoor.services.summary_updater import ConversationSummaryUpdater
from devnextdoor.utils.clock import now_ms
from devnextdoor.utils.identity import canonical_id
from devnextdoor.utils.realtime_bus import CONVERSATIONS_CHANNEL


logger = logging.getLogger(__name__)


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        bus,
        settings: Optional[Settings] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._bus = bus
        self._settings = settings or get_settings()
        self._clock = clock
        self.summary_updater = ConversationSummaryUpdater(conversation_repo, bus)
        self.store = MessageStore(
            message_repo,
            self.summary_updater,
            bus,
            duplicate_filter=DuplicateFilter(
                query_window_ms=self._settings.DUPLICATE_QUERY_WINDOW_MS,
                match_window_ms=self._settings.DUPLICATE_MATCH_WINDOW_MS,
            ),
        )
        self.conversations = ConversationListProvider(conversation_repo, bus)

    def new_session(
        self,
        username: str,
        on_messages_updated: Optional[Callable[[List[Message]], Any]] = None,
        on_send_result: Optional[Callable[[SendResult], Any]] = None,
    ) -> ChatSession:
        return ChatSession(
            username,
            self.store,
            self.summary_updater,
            on_messages_updated=on_messages_updated,
            on_send_result=on_send_result,
            throttle=ClientThrottle(self._settings.CLIENT_THROTTLE_MS),
            clock=self._clock,
        )

    async def start_chat(self, username: str, other_user: str) -> Conversation:
        if not username or not other_user:
            raise ValueError("Both participants are required")
        conversation, _ = await self.summary_updater.ensure(username, other_user, self._clock())
        return conversation

    async def check_chat_exists(self, user_a: str, user_b: str) -> tuple[bool, str]:
        conversation_id = canonical_id(user_a, user_b)
        try:
            exists = await self._conversation_repo.exists(conversation_id)
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        return exists, conversation_id

    async def get_history(self, conversation_id: str) -> List[Message]:
        return await self.store.history(conversation_id)

    async def list_conversations(self, username: str) -> List[ConversationListItem]:
        conversations = await self.conversations.list_for_user(username)
        return [self.to_list_item(c, username) for c in conversations]

    @staticmethod
    def to_list_item(conversation: Conversation, username: str) -> ConversationListItem:
        return ConversationListItem(
            **conversation.model_dump(),
            other_user=conversation.other_participant(username),
            preview=conversation.preview_for(username),
        )

    async def mark_read(self, conversation_id: str, username: str) -> int:
        return await self.store.mark_read(conversation_id, username)

    async def rename_participant(self, old: str, new: str) -> int:
        """Rewrite a username across conversations and messages.

        Conversation ids keep the old name; they are keys, not display data.
        """
        if not old or not new:
            raise ValueError("Both usernames are required")
        try:
            modified = await self._conversation_repo.rename_participant(old, new)
            modified += await self._message_repo.rename_participant(old, new)
        except PyMongoError as exc:
            logger.error("Renaming %s to %s failed: %s", old, new, exc)
            raise StoreError(str(exc)) from exc
        logger.info("Renamed %s to %s in %d records", old, new, modified)
        await self._bus.publish(CONVERSATIONS_CHANNEL, f"rename:{old}")
        return modified
