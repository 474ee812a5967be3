import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from devnextdoor.core.errors import ChatError, EmptyContent, IdGenerationFailure, StoreError
from devnextdoor.repositories.message_repository import MessageRepository
from devnextdoor.schemas.chat import Message
from devnextdoor.services.duplicate_filter import DuplicateFilter
from devnextdoor.services.summary_updater import ConversationSummaryUpdater
from devnextdoor.utils.realtime_bus import conversation_channel


logger = logging.getLogger(__name__)

MessagesCallback = Callable[[List[Message]], Any]
ErrorCallback = Callable[[ChatError], Any]


async def invoke_callback(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class SubscriptionHandle:
    """Live registration on one channel. ``cancel`` may be called any number of times."""

    def __init__(self, channel: str, subscription, task: "asyncio.Task[Any]") -> None:
        self.channel = channel
        self._subscription = subscription
        self._task = task
        self.active = True

    async def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        await self._subscription.cancel()
        if not self._task.done():
            self._task.cancel()
        logger.debug("Subscription on %s released", self.channel)


async def open_subscription(bus, channel: str, on_change: Callable[[str], Any]) -> SubscriptionHandle:
    subscription = await bus.subscribe(channel, on_change)
    task = asyncio.create_task(subscription.run())
    return SubscriptionHandle(channel, subscription, task)


class MessageStore:
    """Per-conversation ordered message log with live, full-snapshot subscriptions.

    Every change re-reads the whole conversation and hands the ordered list
    to the subscriber, so each delivery costs O(n) in the conversation size.
    """

    def __init__(
        self,
        message_repo: MessageRepository,
        summary_updater: ConversationSummaryUpdater,
        bus,
        duplicate_filter: Optional[DuplicateFilter] = None,
        key_factory: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self._message_repo = message_repo
        self._summary_updater = summary_updater
        self._bus = bus
        self._duplicate_filter = duplicate_filter or DuplicateFilter()
        self._key_factory = key_factory or (lambda: str(ObjectId()))

    def new_message_id(self, sent_at: int) -> str:
        try:
            key = self._key_factory()
        except Exception as exc:
            raise IdGenerationFailure(f"Failed to generate message ID: {exc}") from exc
        if not key:
            raise IdGenerationFailure("Failed to generate message ID")
        # the timestamp suffix keeps ids unique even if a key repeats
        return f"{key}_{sent_at}"

    async def append(self, conversation_id: str, message: Message) -> Message:
        if message.conversation_id != conversation_id:
            message = message.model_copy(update={"conversation_id": conversation_id})
        try:
            await self._message_repo.insert(message.to_document())
        except PyMongoError as exc:
            logger.error("Append to %s failed: %s", conversation_id, exc)
            raise StoreError(str(exc)) from exc
        await self._bus.publish(conversation_channel(conversation_id), message.id)
        return message

    async def send(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        sent_at: int,
        kind: str = "text",
    ) -> Message:
        content = (content or "").strip()
        if not content:
            raise EmptyContent("Message content cannot be empty")
        message_id = self.new_message_id(sent_at)

        try:
            recent = await self._message_repo.find_since(conversation_id, self._duplicate_filter.since(sent_at))
        except PyMongoError as exc:
            logger.error("Duplicate check on %s failed: %s", conversation_id, exc)
            raise StoreError(str(exc)) from exc
        # not atomic with the append below; concurrent identical sends can both pass
        self._duplicate_filter.check(recent, sender_id, content, sent_at)

        message = Message(
            id=message_id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            sent_at=sent_at,
            kind=kind,
        )
        await self.append(conversation_id, message)
        await self._summary_updater.apply(message)
        return message

    async def history(self, conversation_id: str) -> List[Message]:
        try:
            docs = await self._message_repo.list_for_conversation(conversation_id)
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        return [Message.from_document(doc) for doc in docs]

    async def subscribe(
        self,
        conversation_id: str,
        on_update: MessagesCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> SubscriptionHandle:
        handle: Optional[SubscriptionHandle] = None

        async def deliver(_: str = "") -> None:
            if handle is not None and not handle.active:
                return
            try:
                messages = await self.history(conversation_id)
            except StoreError as exc:
                logger.error("Reloading %s failed: %s", conversation_id, exc.message)
                await invoke_callback(on_error, exc)
                return
            await invoke_callback(on_update, messages)

        handle = await open_subscription(self._bus, conversation_channel(conversation_id), deliver)
        logger.debug("Subscribed to %s", conversation_id)
        try:
            await deliver()
        except Exception:
            # the caller never receives the handle, so release it here
            await handle.cancel()
            raise
        return handle

    async def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        if handle is not None:
            await handle.cancel()

    async def mark_read(self, conversation_id: str, reader: str) -> int:
        try:
            updated = await self._message_repo.mark_read(conversation_id, reader)
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        if updated:
            await self._bus.publish(conversation_channel(conversation_id), f"read:{reader}")
        return updated
