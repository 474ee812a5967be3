from contextlib import asynccontextmanager

from fastapi import FastAPI

from devnextdoor.core.config import get_settings
from devnextdoor.core.logging_config import configure_logging
from devnextdoor.database.connection import close_mongo_connection, connect_to_mongo, get_database
from devnextdoor.repositories.conversation_repository import ConversationRepository
from devnextdoor.repositories.message_repository import MessageRepository
from devnextdoor.routers.chat import router as chat_router
from devnextdoor.routers.conversations import router as conversations_router
from devnextdoor.utils.realtime_bus import close_bus, get_bus


@asynccontextmanager
async def lifespan(app: FastAPI):

    configure_logging(get_settings().LOG_LEVEL)
    db = await connect_to_mongo()
    await MessageRepository(db).ensure_indexes()
    await ConversationRepository(db).ensure_indexes()
    await get_bus()
    try:
        yield
    finally:
        await close_bus()
        await close_mongo_connection()


app = FastAPI(title="DevNextDoor Chat", lifespan=lifespan)


app.include_router(chat_router)
app.include_router(conversations_router)


@app.get("/")
async def root():

    db = get_database()
    collections = await db.list_collection_names()
    return {"message": "Connected to MongoDB!", "collections": collections}
