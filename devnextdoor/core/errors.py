from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):

    DUPLICATE_MESSAGE = "duplicate_message"
    NOT_INITIALIZED = "not_initialized"
    STORE_ERROR = "store_error"
    ID_GENERATION_FAILURE = "id_generation_failure"
    EMPTY_CONTENT = "empty_content"


class ChatError(Exception):
    """Base class for chat failures; ``kind`` decides how the caller reacts."""

    kind: ErrorKind = ErrorKind.STORE_ERROR

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class DuplicateMessage(ChatError):

    kind = ErrorKind.DUPLICATE_MESSAGE


class NotInitialized(ChatError):

    kind = ErrorKind.NOT_INITIALIZED


class StoreError(ChatError):

    kind = ErrorKind.STORE_ERROR


class IdGenerationFailure(ChatError):

    kind = ErrorKind.ID_GENERATION_FAILURE


class EmptyContent(ChatError):

    kind = ErrorKind.EMPTY_CONTENT
