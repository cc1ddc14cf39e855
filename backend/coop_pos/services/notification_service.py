"""
Out-of-band sale notifications.

WHY: Staff want to hear about low stock and member purchases, but a sale
that has committed is a fact; nothing that happens while telling people
about it may change or fail it.

CONTRACT:
- Events are plain data, built from values the sale already computed. The
  worker never touches the database session.
- Dispatch runs on a detached worker thread. Notifier exceptions are logged
  and dropped; they never reach the caller of create_transaction.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone


KIND_LOW_STOCK = "low_stock"
KIND_PURCHASE = "purchase"


@dataclass(frozen=True)
class LowStockEvent:
    product_id: int
    name: str
    remaining_stock: int


@dataclass(frozen=True)
class PurchaseEvent:
    transaction_id: str
    customer_name: str
    total: str
    item_count: int


class Notifier(ABC):
    """Receiver interface for sale notifications."""

    @abstractmethod
    def notify_low_stock(self, product_id: int, name: str, remaining_stock: int) -> None:
        ...

    @abstractmethod
    def notify_purchase(self, transaction_id: str, customer_name: str, total: str, item_count: int) -> None:
        ...


@dataclass
class Notification:
    id: str
    kind: str
    title: str
    message: str
    created_at: datetime
    data: dict = field(default_factory=dict)
    read: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat().replace("+00:00", "Z"),
            "data": self.data,
            "read": self.read,
        }


class InMemoryNotifier(Notifier):
    """
    Keeps the most recent notifications in process memory for the POS feed.

    A low-stock alert for a product is not repeated while an unread one for
    the same product is still in the feed.
    """

    def __init__(self, max_items: int = 200):
        self._items: deque[Notification] = deque(maxlen=max_items)
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def notify_low_stock(self, product_id: int, name: str, remaining_stock: int) -> None:
        with self._lock:
            for existing in self._items:
                if (
                    existing.kind == KIND_LOW_STOCK
                    and not existing.read
                    and existing.data.get("product_id") == product_id
                ):
                    existing.data["remaining_stock"] = remaining_stock
                    existing.message = f"{name} is running low ({remaining_stock} left)"
                    return
            self._add(
                KIND_LOW_STOCK,
                "Low stock",
                f"{name} is running low ({remaining_stock} left)",
                {"product_id": product_id, "name": name, "remaining_stock": remaining_stock},
            )

    def notify_purchase(self, transaction_id: str, customer_name: str, total: str, item_count: int) -> None:
        with self._lock:
            self._add(
                KIND_PURCHASE,
                "New purchase",
                f"{customer_name} bought {item_count} item(s) for {total} ({transaction_id})",
                {
                    "transaction_id": transaction_id,
                    "customer_name": customer_name,
                    "total": total,
                    "item_count": item_count,
                },
            )

    def recent(self, limit: int = 50) -> list[Notification]:
        with self._lock:
            return list(reversed(self._items))[:limit]

    def mark_read(self, notification_id: str) -> bool:
        with self._lock:
            for item in self._items:
                if item.id == notification_id:
                    item.read = True
                    return True
        return False

    def _add(self, kind: str, title: str, message: str, data: dict) -> None:
        self._items.append(Notification(
            id=f"n-{next(self._ids)}",
            kind=kind,
            title=title,
            message=message,
            created_at=datetime.now(timezone.utc),
            data=data,
        ))


def deliver(notifier: Notifier, events, logger: logging.Logger) -> None:
    """Send each event; a failing event is logged and the rest still go out."""
    for event in events:
        try:
            if isinstance(event, LowStockEvent):
                notifier.notify_low_stock(event.product_id, event.name, event.remaining_stock)
            elif isinstance(event, PurchaseEvent):
                notifier.notify_purchase(
                    event.transaction_id, event.customer_name, event.total, event.item_count
                )
            else:
                logger.warning("Unknown notification event %r", event)
        except Exception:
            logger.exception("Notification delivery failed for %r", event)


class NotificationDispatcher:
    """
    Flask extension owning the notifier and its detached worker.

    init_app() wires the notifier (an InMemoryNotifier unless one was given)
    and reads NOTIFICATIONS_ENABLED.
    """

    def __init__(self, notifier: Notifier | None = None):
        self.notifier = notifier
        self.enabled = True
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def init_app(self, app) -> None:
        if self.notifier is None:
            self.notifier = InMemoryNotifier()
        self.enabled = bool(app.config.get("NOTIFICATIONS_ENABLED", True))
        self._logger = app.logger
        app.extensions["notifications"] = self

    def dispatch(self, events, *, notifier: Notifier | None = None) -> Future | None:
        """Queue events for delivery and return immediately."""
        events = list(events)
        target = notifier or self.notifier
        if not events or target is None or not self.enabled:
            return None

        logger = self._logger
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notify")
            future = self._executor.submit(deliver, target, events, logger)
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def wait_idle(self, timeout: float | None = 5.0) -> None:
        """Block until queued deliveries finish (tests and shutdown)."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
