"""
Change notifier: best-effort, per-shop ordered fan-out of change events.

Delivery behavior:
1. publish() snapshots the shop's current subscribers and enqueues the event on
   that shop's bounded channel, then returns immediately
2. one dispatcher thread per shop delivers events in publish order
3. each subscriber callback runs in turn; failures are logged, never re-raised
4. a subscriber that joins after publish() never sees that event (no replay)
5. when a shop's queue is full the event is dropped and logged

publish() never raises and never blocks the mutation that triggered it. Losing
a notification never rolls back or retries the underlying state change.
Events of different shops have no ordering relative to each other.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from domain.events import ChangeEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[ChangeEvent], None]

_STOP = object()


@dataclass(frozen=True, slots=True)
class Subscription:
    shop_id: str
    subscription_id: int


class _ShopChannel:
    """Bounded queue plus dispatcher thread for a single shop."""

    def __init__(self, shop_id: str, maxsize: int):
        self.shop_id = shop_id
        self.subscribers: Dict[int, Subscriber] = {}
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._pending = 0
        self._retired = False
        self._idle = threading.Condition()
        self._thread = threading.Thread(
            target=self._run,
            name=f"notifier-{shop_id}",
            daemon=True,
        )
        self._thread.start()

    def offer(self, event: ChangeEvent, targets: Tuple[Subscriber, ...]) -> bool:
        with self._idle:
            try:
                self._queue.put_nowait((event, targets))
            except queue.Full:
                return False
            self._pending += 1
        return True

    def wait_idle(self, timeout: Optional[float]) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def stop(self) -> None:
        # Blocking put: the sentinel must not be dropped.
        self._queue.put(_STOP)
        self._thread.join(timeout=5)

    def retire(self) -> None:
        """
        Let the dispatcher thread exit once everything already queued is delivered.

        Never blocks. The channel must already be unreachable for publish().
        """

        with self._idle:
            self._retired = True
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            # A full queue means deliveries are still pending; _run sees the flag after them.
            pass

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            event, targets = item  # type: ignore[misc]
            try:
                _deliver(event, targets)
            finally:
                with self._idle:
                    self._pending -= 1
                    if not self._pending:
                        self._idle.notify_all()
                    done = self._retired and self._queue.empty()
            if done:
                return


def _deliver(event: ChangeEvent, targets: Tuple[Subscriber, ...]) -> None:
    for callback in targets:
        callback_name = getattr(callback, "__qualname__", repr(callback))
        try:
            callback(event)
        except Exception as exc:
            logger.error(
                f"Subscriber failed: {callback_name} for {event.name} (shop: {event.shop_id}): {exc}",
                exc_info=True,
                extra={"shop_id": event.shop_id, "event": event.name},
            )
            # Continue to next subscriber


class ChangeNotifier:
    """
    Per-shop publish/subscribe hub.

    A shop's channel (and its dispatcher thread) is created on its first
    subscribe and retired when its last subscriber leaves; events already
    queued on a retired channel are still delivered.
    """

    def __init__(self, queue_size: int = 1000):
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._channels: Dict[str, _ShopChannel] = {}
        self._ids = itertools.count(1)
        self._closed = False

    def _channel(self, shop_id: str) -> _ShopChannel:
        # Caller holds self._lock.
        channel = self._channels.get(shop_id)
        if channel is None:
            channel = _ShopChannel(shop_id, self._queue_size)
            self._channels[shop_id] = channel
        return channel

    def subscribe(self, shop_id: str, callback: Subscriber) -> Subscription:
        with self._lock:
            if self._closed:
                raise RuntimeError("ChangeNotifier is closed")
            channel = self._channel(shop_id)
            subscription_id = next(self._ids)
            channel.subscribers[subscription_id] = callback
        logger.debug(f"Subscriber {subscription_id} joined shop channel {shop_id}")
        return Subscription(shop_id=shop_id, subscription_id=subscription_id)

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber. A shop's channel is retired when its last subscriber leaves."""

        retired: Optional[_ShopChannel] = None
        with self._lock:
            channel = self._channels.get(subscription.shop_id)
            if channel is not None:
                channel.subscribers.pop(subscription.subscription_id, None)
                if not channel.subscribers:
                    retired = self._channels.pop(subscription.shop_id)
        logger.debug(f"Subscriber {subscription.subscription_id} left shop channel {subscription.shop_id}")

        if retired is not None:
            retired.retire()
            logger.debug(f"Retired idle shop channel {subscription.shop_id}")

    def subscriber_count(self, shop_id: str) -> int:
        with self._lock:
            channel = self._channels.get(shop_id)
            return len(channel.subscribers) if channel is not None else 0

    def publish(self, shop_id: str, event: ChangeEvent) -> bool:
        """
        Enqueue `event` for the shop's current subscribers.

        Returns True if the event was queued, False if it was dropped. Never raises.
        """

        try:
            with self._lock:
                if self._closed:
                    logger.warning(f"Notifier closed; dropping {event.name} for shop {shop_id}")
                    return False
                channel = self._channels.get(shop_id)
                if channel is None or not channel.subscribers:
                    # Nobody is listening: at-most-once means nothing to deliver.
                    return True
                targets = tuple(channel.subscribers.values())
                queued = channel.offer(event, targets)
        except Exception:
            logger.exception(f"Failed to publish {event.name} for shop {shop_id}")
            return False

        if not queued:
            logger.warning(
                f"Notification queue full; dropping {event.name} for shop {shop_id}",
                extra={"shop_id": shop_id, "event": event.name},
            )
        return queued

    def wait_idle(self, shop_id: str, timeout: Optional[float] = None) -> bool:
        """Block until every event queued for the shop has been delivered."""

        with self._lock:
            channel = self._channels.get(shop_id)
        if channel is None:
            return True
        return channel.wait_idle(timeout)

    def close(self) -> None:
        """Stop all dispatcher threads. Undelivered events queued before close are still delivered."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            channels = list(self._channels.values())
            self._channels.clear()
        for channel in channels:
            channel.stop()


__all__ = ["ChangeNotifier", "Subscriber", "Subscription"]
