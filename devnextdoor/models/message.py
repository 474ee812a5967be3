from typing import TypedDict


class MessageDocument(TypedDict, total=False):
    # _id is "<push key>_<sent_at>"
    _id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    sent_at: int
    read: bool
    kind: str
