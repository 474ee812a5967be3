import json
import logging
from typing import List

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from devnextdoor.core.errors import ChatError
from devnextdoor.schemas.chat import ChatFrame, MarkReadRequest, Message, MessageList, SendResult
from devnextdoor.services.chat_service import ChatService
from devnextdoor.utils.dependencies import get_chat_service, to_http_exception


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


@router.websocket("/ws/chat/{username}")
async def chat_socket(websocket: WebSocket, username: str, service: ChatService = Depends(get_chat_service)):
    await websocket.accept()

    async def push_messages(messages: List[Message]) -> None:
        await websocket.send_json({"type": "messages", "items": [m.model_dump() for m in messages]})

    async def push_send_result(result: SendResult) -> None:
        payload = result.model_dump(mode="json")
        payload.update({"type": "send_result", "user_visible": result.user_visible})
        await websocket.send_json(payload)

    session = service.new_session(username, push_messages, push_send_result)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                msg = json.loads(data)
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "Invalid JSON"})
                continue
            try:
                frame = ChatFrame.model_validate(msg)
            except ValidationError as exc:
                fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
                await websocket.send_json({"type": "error", "detail": "Invalid frame", "fields": fields})
                continue
            kind = frame.type
            try:
                if kind == "open":
                    conversation = await session.open(frame.to or "")
                    await websocket.send_json({"type": "opened", "conversation": conversation.model_dump()})
                elif kind == "send":
                    await session.send(frame.content)
                elif kind == "read":
                    updated = await session.mark_read()
                    await websocket.send_json({"type": "read", "updated": updated})
                else:
                    await session.close()
                    await websocket.send_json({"type": "closed"})
            except ValueError as exc:
                await websocket.send_json({"type": "error", "detail": str(exc)})
            except ChatError as exc:
                await websocket.send_json({"type": "error", "error": exc.kind.value, "detail": exc.message})
    except WebSocketDisconnect:
        logger.info("Chat socket of %s disconnected", username)
    finally:
        await session.close()


@router.get("/{conversation_id}", response_model=MessageList)
async def get_history(conversation_id: str, service: ChatService = Depends(get_chat_service)):
    try:
        messages = await service.get_history(conversation_id)
    except ChatError as exc:
        raise to_http_exception(exc) from exc
    return {"items": messages}


@router.post("/mark_read")
async def mark_read(body: MarkReadRequest, service: ChatService = Depends(get_chat_service)):
    try:
        count = await service.mark_read(body.conversation_id, body.username)
    except ChatError as exc:
        raise to_http_exception(exc) from exc
    return {"updated": count}
