from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any


PAYMENT_COMPLETED = "payment.completed"


@dataclass
class _Subscription:
    events: set[str]
    queue: "asyncio.Queue[dict[str, Any]]"
    loop: asyncio.AbstractEventLoop


class InMemoryEventBus:
    """Best-effort in-process event bus.

    Post-payment consumers (e-mail dispatch, notifications) subscribe here.
    Delivery is at-most-once to currently registered subscribers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: list[_Subscription] = []

    async def subscribe(self, *, events: list[str], maxsize: int = 100) -> _Subscription:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        sub = _Subscription(events=set(events), queue=queue, loop=loop)
        with self._lock:
            self._subs.append(sub)
        return sub

    async def unsubscribe(self, sub: _Subscription) -> None:
        with self._lock:
            try:
                self._subs.remove(sub)
            except ValueError:
                return

    def publish(self, *, event: str, payload: dict[str, Any]) -> int:
        """Queue the event for every matching subscriber; returns the number targeted."""
        with self._lock:
            subs = [s for s in self._subs if event in s.events]

        message = {"event": event, "payload": payload}
        for sub in subs:
            sub.loop.call_soon_threadsafe(_put_nowait_or_drop, sub.queue, message)
        return len(subs)


def _put_nowait_or_drop(queue: "asyncio.Queue[dict[str, Any]]", message: dict[str, Any]) -> None:
    # Drop on overload (best-effort).
    if queue.full():
        return
    queue.put_nowait(message)


event_bus = InMemoryEventBus()
