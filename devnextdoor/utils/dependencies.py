from fastapi import Depends, HTTPException

from devnextdoor.core.errors import ChatError, ErrorKind
from devnextdoor.database.connection import mongo_db_dependency
from devnextdoor.repositories.conversation_repository import ConversationRepository
from devnextdoor.repositories.message_repository import MessageRepository
from devnextdoor.services.chat_service import ChatService
from devnextdoor.utils.realtime_bus import get_bus


HTTP_STATUS = {
    ErrorKind.EMPTY_CONTENT: 400,
    ErrorKind.NOT_INITIALIZED: 400,
    ErrorKind.DUPLICATE_MESSAGE: 409,
    ErrorKind.ID_GENERATION_FAILURE: 500,
    ErrorKind.STORE_ERROR: 502,
}


def get_chat_service(db = Depends(mongo_db_dependency), bus = Depends(get_bus)) -> ChatService:
    msg_repo = MessageRepository(db)
    convo_repo = ConversationRepository(db)
    return ChatService(msg_repo, convo_repo, bus)


def to_http_exception(exc: ChatError) -> HTTPException:
    return HTTPException(status_code=HTTP_STATUS.get(exc.kind, 500), detail={"error": exc.kind.value, "message": exc.message})
