"""
In-memory status/update channel.

Subscribers get the last known status of every source on connect, then live
events. Delivery is at-least-once and last-value-wins; nothing is persisted.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from unified_ledger.domain.enums import RefreshState

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 25.0


@dataclass(frozen=True)
class FinanceStreamEvent:
    """One event on the channel: `status`, `update` or `ping`."""
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def status(cls, source: str, state: RefreshState, error: Optional[str] = None) -> "FinanceStreamEvent":
        payload = {"source": source, "state": state.value}
        if error is not None:
            payload["error"] = error
        return cls("status", payload)

    @classmethod
    def update(cls, source: str, data: Any) -> "FinanceStreamEvent":
        return cls("update", {"source": source, "data": data})

    @classmethod
    def ping(cls) -> "FinanceStreamEvent":
        return cls("ping", {})

    @property
    def source(self) -> Optional[str]:
        return self.payload.get("source")

    def to_sse(self) -> str:
        """Encode as a server-sent-events frame."""
        return f"event: {self.type}\ndata: {json.dumps(self.payload, default=str)}\n\n"


class Subscription:
    """
    Async iterator over the events of one subscriber.

    Emits a ping whenever nothing arrived for `keepalive_seconds`.
    """

    def __init__(self, stream: "FinanceStream", keepalive_seconds: float):
        self._stream = stream
        self._queue: "asyncio.Queue[Optional[FinanceStreamEvent]]" = asyncio.Queue()
        self.keepalive_seconds = keepalive_seconds
        self.closed = False

    def put(self, event: FinanceStreamEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    async def get(self) -> Optional[FinanceStreamEvent]:
        """Next event; a ping on idle timeout; None once closed."""
        if self.closed and self._queue.empty():
            return None
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=self.keepalive_seconds)
        except asyncio.TimeoutError:
            return FinanceStreamEvent.ping()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._stream.unsubscribe(self)
        self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> FinanceStreamEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class FinanceStream:
    """Subscriber registry plus the last status and update per source."""

    def __init__(self, keepalive_seconds: float = KEEPALIVE_SECONDS):
        self.keepalive_seconds = keepalive_seconds
        self._subscribers: Set[Subscription] = set()
        self._last_status: Dict[str, FinanceStreamEvent] = {}
        self._last_update: Dict[str, FinanceStreamEvent] = {}

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.keepalive_seconds)
        for event in self._last_status.values():
            subscription.put(event)
        self._subscribers.add(subscription)
        logger.debug("Subscriber added (%d active)", len(self._subscribers))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)
        logger.debug("Subscriber removed (%d active)", len(self._subscribers))

    def broadcast(self, event: FinanceStreamEvent) -> None:
        source = event.source
        if source is not None:
            if event.type == "status":
                self._last_status[source] = event
            elif event.type == "update":
                self._last_update[source] = event
                self._last_status[source] = FinanceStreamEvent.status(source, RefreshState.READY)

        for subscription in list(self._subscribers):
            subscription.put(event)

    def publish_status(self, source: str, state: RefreshState, error: Optional[str] = None) -> None:
        self.broadcast(FinanceStreamEvent.status(source, state, error))

    def publish_update(self, source: str, data: Any) -> None:
        self.broadcast(FinanceStreamEvent.update(source, data))

    def last_status(self, source: str) -> Optional[FinanceStreamEvent]:
        return self._last_status.get(source)

    def last_update(self, source: str) -> Optional[FinanceStreamEvent]:
        return self._last_update.get(source)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
