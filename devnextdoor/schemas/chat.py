from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from devnextdoor.core.errors import ErrorKind


class Message(BaseModel):

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    sent_at: int
    read: bool = False
    kind: str = "text"

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Message":
        return cls(
            id=str(doc["_id"]),
            conversation_id=doc["conversation_id"],
            sender_id=doc["sender_id"],
            receiver_id=doc["receiver_id"],
            content=doc["content"],
            sent_at=int(doc["sent_at"]),
            read=bool(doc.get("read", False)),
            kind=doc.get("kind") or "text",
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "content": self.content,
            "sent_at": self.sent_at,
            "read": self.read,
            "kind": self.kind,
        }


class Conversation(BaseModel):

    id: str
    participant_a: str
    participant_b: str
    last_message_text: str = ""
    last_message_at: int = 0
    last_message_sender: str = ""

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Conversation":
        return cls(
            id=str(doc["_id"]),
            participant_a=doc["participant_a"],
            participant_b=doc["participant_b"],
            last_message_text=doc.get("last_message_text") or "",
            last_message_at=int(doc.get("last_message_at") or 0),
            last_message_sender=doc.get("last_message_sender") or "",
        )

    def has_participant(self, username: str) -> bool:
        return username in (self.participant_a, self.participant_b)

    def other_participant(self, username: str) -> Optional[str]:
        if username == self.participant_a:
            return self.participant_b
        if username == self.participant_b:
            return self.participant_a
        return None

    def preview_for(self, username: str) -> str:
        """Line shown under the other user's name in the conversation list."""
        if not self.last_message_text:
            return "No messages yet"
        if not self.last_message_sender:
            return self.last_message_text
        sender = "You" if self.last_message_sender == username else self.last_message_sender
        return f"{sender}: {self.last_message_text}"


class ConversationListItem(Conversation):

    other_user: Optional[str] = None
    preview: str = ""


class SendResult(BaseModel):

    success: bool
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None
    message: Optional[Message] = None

    @property
    def user_visible(self) -> bool:
        # duplicates and blank input are dropped quietly
        return not self.success and self.error not in (
            ErrorKind.DUPLICATE_MESSAGE,
            ErrorKind.EMPTY_CONTENT,
        )


class ChatFrame(BaseModel):
    """Client frame on the chat socket."""

    type: Literal["open", "send", "read", "close"]
    to: Optional[str] = None
    content: Optional[str] = None


class StartChatRequest(BaseModel):

    username: str = Field(min_length=1)
    other_user: str = Field(min_length=1)


class MarkReadRequest(BaseModel):

    conversation_id: str = Field(min_length=1)
    username: str = Field(min_length=1)


class ConversationExists(BaseModel):

    exists: bool
    conversation_id: str


class MessageList(BaseModel):

    items: List[Message]


class RenameParticipantRequest(BaseModel):

    old_username: str = Field(min_length=1)
    new_username: str = Field(min_length=1)
