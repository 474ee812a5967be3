"""
Shared fixtures: an in-memory Motor database, the in-process bus and a
controllable millisecond clock.
"""

import pytest
from mongomock_motor import AsyncMongoMockClient

from devnextdoor.core.config import Settings
from devnextdoor.repositories.conversation_repository import ConversationRepository
from devnextdoor.repositories.message_repository import MessageRepository
from devnextdoor.services.chat_service import ChatService
from devnextdoor.utils.realtime_bus import LocalBus


class FakeClock:

    def __init__(self, now: int = 1000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def db():
    return AsyncMongoMockClient()["devnextdoor_test"]


@pytest.fixture
def bus():
    return LocalBus()


@pytest.fixture
def clock():
    return FakeClock(1000)


@pytest.fixture
def settings():
    return Settings(REDIS_URL=None)


@pytest.fixture
def service(db, bus, clock, settings):
    return ChatService(MessageRepository(db), ConversationRepository(db), bus, settings=settings, clock=clock)


@pytest.fixture
def store(service):
    return service.store
