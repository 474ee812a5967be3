import logging
from typing import Any, Dict, Iterable, Optional

from devnextdoor.core.errors import DuplicateMessage


logger = logging.getLogger(__name__)


class DuplicateFilter:
    """Store-side guard against repeats of a very recent message.

    The caller reads the recent messages and appends afterwards; the two round
    trips are not atomic, so two concurrent sends can both pass the check.
    """

    def __init__(self, query_window_ms: int = 3000, match_window_ms: int = 2000) -> None:
        self.query_window_ms = query_window_ms
        self.match_window_ms = match_window_ms

    def since(self, now: int) -> int:
        return now - self.query_window_ms

    def check(self, recent: Iterable[Dict[str, Any]], sender_id: str, content: str, now: int) -> None:
        for existing in recent:
            if (
                existing.get("sender_id") == sender_id
                and existing.get("content") == content
                and abs(int(existing.get("sent_at", 0)) - now) < self.match_window_ms
            ):
                logger.info("Duplicate of message %s from %s rejected", existing.get("_id"), sender_id)
                raise DuplicateMessage("Duplicate message detected")


class ClientThrottle:
    """Per-session throttle: one send in flight, no identical resend inside the window."""

    def __init__(self, throttle_ms: int = 2000) -> None:
        self.throttle_ms = throttle_ms
        self.in_flight = False
        self.last_content: Optional[str] = None
        self.last_attempt_at: Optional[int] = None

    def allows(self, content: str, now: int) -> bool:
        if self.in_flight:
            return False
        if (
            self.last_content == content
            and self.last_attempt_at is not None
            and now - self.last_attempt_at < self.throttle_ms
        ):
            return False
        return True

    def begin(self, content: str, now: int) -> None:
        self.in_flight = True
        self.last_content = content
        self.last_attempt_at = now

    def finish(self) -> None:
        self.in_flight = False
