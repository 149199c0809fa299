"""In-process event bus for best-effort downstream notifications.

Topics are ``<prefix><event_type>`` (e.g. ``claims.claim.created``).  A broker
integration plugs in as a subscriber; the bus itself keeps a record of what it
published so operators and tests can inspect it.
"""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from claim_engine.schemas.events import BusEvent

Subscriber = Callable[[str, BusEvent], None]

CLAIM_CREATED = "claim.created"
CLAIM_SETTLED = "claim.settled"
SALVAGE_CREATED = "salvage.created"
SALVAGE_LISTED = "salvage.listed"
SALVAGE_RECOVERED = "salvage.recovered"


class EventBus:
    def __init__(
        self,
        topic_prefix: str = "claims.",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.topic_prefix = topic_prefix
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._published: list[BusEvent] = []
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Subscriber) -> None:
        """Register *handler* for *event_type* (``"*"`` receives everything)."""
        self._subscribers[event_type].append(handler)

    def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        correlation_id: str,
        claim_id: str | None = None,
        item_id: str | None = None,
    ) -> str:
        """Publish an event and return its id.

        Subscriber exceptions propagate; callers choose whether a failed
        publish is fatal.
        """
        event = BusEvent(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            event_type=event_type,
            occurred_at=self._clock(),
            correlation_id=correlation_id,
            payload=payload,
            claim_id=claim_id,
            item_id=item_id,
        )
        topic = f"{self.topic_prefix}{event_type}"
        with self._lock:
            self._published.append(event)

        for handler in [*self._subscribers.get(event_type, []), *self._subscribers.get("*", [])]:
            handler(topic, event)

        logger.info(
            "Published {type} to {topic} (claim={claim})",
            type=event_type,
            topic=topic,
            claim=claim_id,
        )
        return event.event_id

    @property
    def published(self) -> list[BusEvent]:
        with self._lock:
            return list(self._published)

    def clear(self) -> None:
        with self._lock:
            self._published.clear()
