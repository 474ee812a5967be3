import logging
from typing import Any, Callable, List, Optional

from pymongo.errors import PyMongoError

from devnextdoor.core.errors import ChatError, StoreError
from devnextdoor.repositories.conversation_repository import ConversationRepository
from devnextdoor.schemas.chat import Conversation
from devnextdoor.services.message_store import SubscriptionHandle, invoke_callback, open_subscription
from devnextdoor.utils.realtime_bus import CONVERSATIONS_CHANNEL


logger = logging.getLogger(__name__)


class ConversationListProvider:
    """Conversations of one user, most recent first.

    The live feed listens on the shared conversation channel, so every change
    to any conversation re-runs the user's query.
    """

    def __init__(self, conversation_repo: ConversationRepository, bus) -> None:
        self._conversation_repo = conversation_repo
        self._bus = bus

    async def list_for_user(self, username: str) -> List[Conversation]:
        try:
            docs = await self._conversation_repo.list_for_user(username)
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        conversations = [Conversation.from_document(doc) for doc in docs]
        conversations = [c for c in conversations if c.has_participant(username)]
        conversations.sort(key=lambda c: c.last_message_at, reverse=True)
        return conversations

    async def subscribe(
        self,
        username: str,
        on_update: Callable[[List[Conversation]], Any],
        on_error: Optional[Callable[[ChatError], Any]] = None,
    ) -> SubscriptionHandle:
        handle: Optional[SubscriptionHandle] = None

        async def deliver(_: str = "") -> None:
            if handle is not None and not handle.active:
                return
            try:
                conversations = await self.list_for_user(username)
            except StoreError as exc:
                logger.error("Reloading conversations of %s failed: %s", username, exc.message)
                await invoke_callback(on_error, exc)
                return
            await invoke_callback(on_update, conversations)

        handle = await open_subscription(self._bus, CONVERSATIONS_CHANNEL, deliver)
        try:
            await deliver()
        except Exception:
            await handle.cancel()
            raise
        return handle

    async def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        if handle is not None:
            await handle.cancel()
