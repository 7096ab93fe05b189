import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from vnotes.models.notes import format_timestamp, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageEvent:
    key: str
    origin: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ts: str = field(default_factory=lambda: format_timestamp(utc_now()))


Listener = Callable[[StorageEvent], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", key: str, listener: Listener):
        self._feed = feed
        self.key = key
        self.listener = listener
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._feed._remove(self)
            self.active = False


class ChangeFeed:
    """Change notifications shared by every context writing the same store.

    A publisher never hears its own events: listeners registered under the
    publishing origin are skipped.
    """

    def __init__(self) -> None:
        self._subs: dict[str, list[tuple[str, Subscription]]] = {}

    def subscribe(self, key: str, origin: str, listener: Listener) -> Subscription:
        sub = Subscription(self, key, listener)
        self._subs.setdefault(key, []).append((origin, sub))
        return sub

    def _remove(self, sub: Subscription) -> None:
        entries = self._subs.get(sub.key, [])
        self._subs[sub.key] = [(o, s) for o, s in entries if s is not sub]

    def publish(self, key: str, origin: str) -> Optional[StorageEvent]:
        entries = list(self._subs.get(key, []))
        if not entries:
            return None
        event = StorageEvent(key=key, origin=origin)
        for sub_origin, sub in entries:
            if sub_origin == origin or not sub.active:
                continue
            try:
                sub.listener(event)
            except Exception:
                logger.exception("Change listener for %s failed", key)
        logger.debug("Published change on %s from %s", key, origin)
        return event

    def subscriber_count(self, key: str) -> int:
        return len(self._subs.get(key, []))
