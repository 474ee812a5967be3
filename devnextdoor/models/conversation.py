from typing import TypedDict


class ConversationDocument(TypedDict, total=False):
    # _id is the canonical id of the participant pair
    _id: str
    participant_a: str
    participant_b: str
    last_message_text: str
    last_message_at: int
    last_message_sender: str
