import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from devnextdoor.core.errors import ChatError
from devnextdoor.schemas.chat import (
    Conversation,
    ConversationExists,
    ConversationListItem,
    RenameParticipantRequest,
    StartChatRequest,
)
from devnextdoor.services.chat_service import ChatService
from devnextdoor.utils.dependencies import get_chat_service, to_http_exception


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("", response_model=List[ConversationListItem])
async def list_conversations(username: str = Query(..., min_length=1), service: ChatService = Depends(get_chat_service)):
    try:
        return await service.list_conversations(username)
    except ChatError as exc:
        raise to_http_exception(exc) from exc


@router.post("", response_model=Conversation)
async def start_chat(body: StartChatRequest, service: ChatService = Depends(get_chat_service)):
    if body.username == body.other_user:
        raise HTTPException(status_code=400, detail="Cannot chat with yourself.")
    try:
        return await service.start_chat(body.username, body.other_user)
    except ChatError as exc:
        raise to_http_exception(exc) from exc


@router.get("/exists", response_model=ConversationExists)
async def chat_exists(user_a: str = Query(..., min_length=1), user_b: str = Query(..., min_length=1), service: ChatService = Depends(get_chat_service)):
    try:
        exists, conversation_id = await service.check_chat_exists(user_a, user_b)
    except ChatError as exc:
        raise to_http_exception(exc) from exc
    return {"exists": exists, "conversation_id": conversation_id}


@router.post("/rename")
async def rename_participant(body: RenameParticipantRequest, service: ChatService = Depends(get_chat_service)):
    try:
        modified = await service.rename_participant(body.old_username, body.new_username)
    except ChatError as exc:
        raise to_http_exception(exc) from exc
    return {"modified": modified}


@router.websocket("/ws/{username}")
async def conversations_socket(websocket: WebSocket, username: str, service: ChatService = Depends(get_chat_service)):
    await websocket.accept()

    async def push(conversations: List[Conversation]) -> None:
        items = [service.to_list_item(c, username).model_dump() for c in conversations]
        await websocket.send_json({"type": "conversations", "items": items})

    async def push_error(exc: ChatError) -> None:
        await websocket.send_json({"type": "error", "error": exc.kind.value, "detail": exc.message})

    handle = await service.conversations.subscribe(username, push, push_error)
    try:
        while True:
            # the client only listens; incoming frames keep the socket alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Conversation list socket of %s disconnected", username)
    finally:
        await service.conversations.unsubscribe(handle)
