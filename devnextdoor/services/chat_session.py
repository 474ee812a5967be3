import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from devnextdoor.core.errors import ChatError, DuplicateMessage, ErrorKind
from devnextdoor.schemas.chat import Conversation, Message, SendResult
from devnextdoor.services.duplicate_filter import ClientThrottle
from devnextdoor.services.message_store import MessageStore, SubscriptionHandle, invoke_callback
from devnextdoor.services.summary_updater import ConversationSummaryUpdater
from devnextdoor.utils.clock import now_ms


logger = logging.getLogger(__name__)


class ChatState(str, Enum):

    IDLE = "idle"
    SENDING = "sending"


class ChatSession:
    """Controller for one open conversation view.

    ``open`` resolves (and if needed creates) the conversation and starts the
    live message feed; ``send`` runs one throttled send attempt and reports it
    through ``on_send_result``; ``close`` releases the feed. Results of sends
    still in flight when the view closes are returned but not reported.
    """

    def __init__(
        self,
        username: str,
        store: MessageStore,
        summary_updater: ConversationSummaryUpdater,
        on_messages_updated: Optional[Callable[[List[Message]], Any]] = None,
        on_send_result: Optional[Callable[[SendResult], Any]] = None,
        throttle: Optional[ClientThrottle] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if not username:
            raise ValueError("username cannot be empty")
        self.username = username
        self._store = store
        self._summary_updater = summary_updater
        self._on_messages_updated = on_messages_updated
        self._on_send_result = on_send_result
        self._throttle = throttle or ClientThrottle()
        self._clock = clock
        self._subscription: Optional[SubscriptionHandle] = None

        self.state = ChatState.IDLE
        self.closed = False
        self.conversation_id: Optional[str] = None
        self.other_user: Optional[str] = None
        self.input_text = ""
        self.messages: List[Message] = []

    async def open(self, other_user: str) -> Conversation:
        if not other_user:
            raise ValueError("other_user cannot be empty")
        if other_user == self.username:
            raise ValueError("Cannot chat with yourself.")
        conversation, _ = await self._summary_updater.ensure(self.username, other_user, self._clock())
        self.conversation_id = conversation.id
        self.other_user = other_user
        self.closed = False

        if self._subscription is not None:
            await self._store.unsubscribe(self._subscription)
        self._subscription = await self._store.subscribe(conversation.id, self._handle_messages)
        return conversation

    async def _handle_messages(self, messages: List[Message]) -> None:
        self.messages = messages
        await invoke_callback(self._on_messages_updated, messages)

    async def send(self, content: Optional[str] = None) -> SendResult:
        text = (self.input_text if content is None else content).strip()
        if not text:
            return await self._report(
                SendResult(success=False, error=ErrorKind.EMPTY_CONTENT, detail="Message content cannot be empty")
            )
        if self.conversation_id is None or self.other_user is None or self.closed:
            return await self._report(
                SendResult(success=False, error=ErrorKind.NOT_INITIALIZED, detail="Chat not properly initialized")
            )

        now = self._clock()
        if self._throttle.in_flight:
            logger.info("Send from %s in %s rejected while another send is in flight", self.username, self.conversation_id)
            return await self._report(
                SendResult(success=False, error=ErrorKind.DUPLICATE_MESSAGE, detail="Send in flight")
            )
        if not self._throttle.allows(text, now):
            logger.info("Send from %s in %s suppressed by client throttle", self.username, self.conversation_id)
            return await self._report(
                SendResult(success=False, error=ErrorKind.DUPLICATE_MESSAGE, detail="Send throttled"),
                sent_text=text,
            )

        self._throttle.begin(text, now)
        self.state = ChatState.SENDING
        try:
            message = await self._store.send(self.conversation_id, self.username, self.other_user, text, now)
        except DuplicateMessage as exc:
            logger.info("Duplicate send from %s in %s suppressed", self.username, self.conversation_id)
            result = SendResult(success=False, error=exc.kind, detail=exc.message)
        except ChatError as exc:
            logger.warning("Send from %s in %s failed: %s", self.username, self.conversation_id, exc.message)
            result = SendResult(success=False, error=exc.kind, detail=exc.message)
        else:
            result = SendResult(success=True, message=message)
        finally:
            self._throttle.finish()
            self.state = ChatState.IDLE
        return await self._report(result, sent_text=text)

    async def _report(self, result: SendResult, sent_text: Optional[str] = None) -> SendResult:
        # input typed after the attempt started is left alone
        delivered = result.success or result.error == ErrorKind.DUPLICATE_MESSAGE
        if delivered and sent_text is not None and self.input_text.strip() == sent_text:
            self.input_text = ""
        if self.closed:
            logger.debug("Dropping send result for closed session of %s", self.username)
            return result
        await invoke_callback(self._on_send_result, result)
        return result

    async def mark_read(self) -> int:
        if self.conversation_id is None:
            return 0
        return await self._store.mark_read(self.conversation_id, self.username)

    async def close(self) -> None:
        self.closed = True
        subscription, self._subscription = self._subscription, None
        await self._store.unsubscribe(subscription)
