# File: cityfix/services/realtime.py
"""Row-level change notifications for the issue tables.

The row store publishes a :class:`ChangeEvent` after every committed write.
Listeners are delivered on their own asyncio task so a write never waits on
(or interleaves with) the work a listener does in response.
"""
from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from fastapi import WebSocket

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

ISSUES = "issues"
ISSUE_COMMENTS = "issue_comments"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    kind: str
    record_id: str
    issue_id: Optional[str] = None

    def as_message(self) -> dict:
        return {
            "type": "reports_changed",
            "table": self.table,
            "event": self.kind,
            "id": self.record_id,
            "issue_id": self.issue_id,
        }


Listener = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


@dataclass
class _Registration:
    callback: Listener
    table: Optional[str]
    issue_id: Optional[str]

    def matches(self, event: ChangeEvent) -> bool:
        if self.table is not None and event.table != self.table:
            return False
        if self.issue_id is not None and event.issue_id != self.issue_id:
            return False
        return True


class Subscription:
    def __init__(self, feed: "ChangeFeed", key: int) -> None:
        self._feed = feed
        self._key = key

    @property
    def active(self) -> bool:
        return self._key in self._feed._listeners

    def unsubscribe(self) -> None:
        self._feed._listeners.pop(self._key, None)


class ChangeFeed:
    def __init__(self) -> None:
        self._listeners: Dict[int, _Registration] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._keys = itertools.count(1)

    def subscribe(self, callback: Listener, table: Optional[str] = None,
                  issue_id: Optional[str] = None) -> Subscription:
        key = next(self._keys)
        self._listeners[key] = _Registration(callback, table, issue_id)
        return Subscription(self, key)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, event: ChangeEvent) -> None:
        targets = [r.callback for r in list(self._listeners.values()) if r.matches(event)]
        if not targets:
            return
        loop = asyncio.get_running_loop()
        for callback in targets:
            task = loop.create_task(self._deliver(callback, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, callback: Listener, event: ChangeEvent) -> None:
        try:
            result = callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("change listener failed for %s %s", event.table, event.kind)

    async def drain(self) -> None:
        """Wait until every scheduled delivery (including ones they schedule) finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ConnectionManager:
    """Fans change events out to connected WebSocket clients."""

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def broadcast(self, message: Dict[str, Any]) -> None:
        for ws in list(self._clients):
            try:
                await ws.send_json(message)
            except Exception:
                logger.warning("dropping websocket client after failed send", exc_info=True)
                self.disconnect(ws)
