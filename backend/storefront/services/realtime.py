# Overview: In-process change feed; publishes row changes to subscribers filtered by table and column value.

"""
Realtime Change Feed

Consumers embedding the app subscribe to a table, optionally narrowed to
rows where one column equals a value, and get a callback for every
INSERT / UPDATE / DELETE the services publish. The HTTP API only reports
the subscriber count on /health.

Nothing here knows about Flask request lifecycles: a subscriber is any
callable taking a ChangeEvent. Callbacks run synchronously on the publishing
thread after the write has been committed. A failing subscriber is logged and
skipped; it never fails the write that triggered it.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
VALID_EVENTS = {EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    record: dict = field(default_factory=dict)


@dataclass
class Subscription:
    id: int
    table: str
    callback: Callable[[ChangeEvent], Any]
    column: str | None = None
    value: Any = None
    feed: "ChangeFeed | None" = None

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.column is None:
            return True
        return change.record.get(self.column) == self.value

    def unsubscribe(self) -> None:
        if self.feed is not None:
            self.feed.unsubscribe(self)


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscriptions: dict[int, Subscription] = {}

    def subscribe(
        self,
        table: str,
        callback: Callable[[ChangeEvent], Any],
        column: str | None = None,
        value: Any = None,
    ) -> Subscription:
        """Register callback for changes on table (optionally where record[column] == value)."""
        with self._lock:
            sub = Subscription(
                id=next(self._ids),
                table=table,
                callback=callback,
                column=column,
                value=value,
                feed=self,
            )
            self._subscriptions[sub.id] = sub
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)

    def publish(self, table: str, event: str, record: dict) -> int:
        """Deliver a change to every matching subscriber. Returns how many were called."""
        if event not in VALID_EVENTS:
            raise ValueError(f"event must be one of {sorted(VALID_EVENTS)}")

        change = ChangeEvent(table=table, event=event, record=dict(record))
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.matches(change)]

        delivered = 0
        for sub in targets:
            try:
                sub.callback(change)
                delivered += 1
            except Exception:
                logger.exception("Change feed subscriber %s failed for %s %s", sub.id, table, event)
        return delivered

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
