import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis

from devnextdoor.core.config import get_settings


logger = logging.getLogger(__name__)

MessageHandler = Callable[[str], Awaitable[None]]

CONVERSATIONS_CHANNEL = "conversations"


def conversation_channel(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


class LocalBus:
    """In-process fanout. ``publish`` awaits every listener before returning."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[MessageHandler]] = {}

    async def publish(self, channel: str, message: str) -> None:
        for handler in list(self._listeners.get(channel, ())):
            try:
                await handler(message)
            except Exception:
                logger.exception("Listener on %s failed", channel)

    async def subscribe(self, channel: str, on_message: MessageHandler):
        self._listeners.setdefault(channel, []).append(on_message)
        bus = self

        class _Sub:
            _running = True

            def __init__(self_inner) -> None:
                self_inner._stopped = asyncio.Event()

            async def run(self_inner):
                await self_inner._stopped.wait()

            async def cancel(self_inner):
                if not self_inner._running:
                    return
                self_inner._running = False
                bus._remove(channel, on_message)
                self_inner._stopped.set()

        return _Sub()

    def listener_count(self, channel: str) -> int:
        return len(self._listeners.get(channel, ()))

    def _remove(self, channel: str, on_message: MessageHandler) -> None:
        handlers = self._listeners.get(channel)
        if not handlers:
            return
        try:
            handlers.remove(on_message)
        except ValueError:
            pass
        if not handlers:
            del self._listeners[channel]

    async def close(self) -> None:
        self._listeners.clear()


class RedisBus:

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        try:
            await self._redis.publish(channel, message)
        except redis.RedisError as exc:
            # stored data is already written; only the live notification is lost
            logger.warning("Publish on %s failed: %s", channel, exc)

    async def subscribe(self, channel: str, on_message: MessageHandler):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    try:
                        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                        if msg and msg.get("type") == "message":
                            data = msg.get("data")
                            if isinstance(data, bytes):
                                data = data.decode("utf-8")
                            await on_message(data)
                    except asyncio.CancelledError:
                        raise
                    except Exception:
                        logger.exception("Redis subscription on %s failed, retrying", channel)
                        await asyncio.sleep(0.5)

            async def cancel(self_inner):
                if not self_inner._running:
                    return
                self_inner._running = False
                try:
                    await pubsub.unsubscribe(channel)
                    await pubsub.aclose()
                except redis.RedisError:
                    logger.warning("Failed to close Redis subscription on %s", channel)

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()


_bus = None


async def get_bus():
    global _bus
    if _bus is not None:
        return _bus
    url: Optional[str] = get_settings().REDIS_URL
    if url:
        _bus = RedisBus(url)
        logger.info("Realtime bus backed by Redis")
    else:
        _bus = LocalBus()
        logger.info("REDIS_URL not set, using in-process realtime bus")
    return _bus


async def close_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
    _bus = None
