import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from cityfix.services.realtime import (
    DELETE, INSERT, ISSUE_COMMENTS, ISSUES,
    ChangeEvent, ChangeFeed, ConnectionManager,
)


def _event(table=ISSUES, kind=INSERT, record_id="r1", issue_id="r1"):
    return ChangeEvent(table=table, kind=kind, record_id=record_id, issue_id=issue_id)


@pytest.mark.asyncio
async def test_delivery_is_not_inline():
    feed = ChangeFeed()
    seen = []
    feed.subscribe(seen.append)

    feed.publish(_event())
    assert seen == []

    await feed.drain()
    assert seen == [_event()]


@pytest.mark.asyncio
async def test_async_listeners_are_awaited():
    feed = ChangeFeed()
    seen = []

    async def listener(event):
        await asyncio.sleep(0)
        seen.append(event.kind)

    feed.subscribe(listener)
    feed.publish(_event(kind=DELETE))
    await feed.drain()

    assert seen == [DELETE]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    feed = ChangeFeed()
    seen = []
    sub = feed.subscribe(seen.append)
    assert sub.active and feed.listener_count == 1

    sub.unsubscribe()
    sub.unsubscribe()
    feed.publish(_event())
    await feed.drain()

    assert not sub.active
    assert feed.listener_count == 0
    assert seen == []


@pytest.mark.asyncio
async def test_table_and_issue_filters():
    feed = ChangeFeed()
    issues, comments_r1 = [], []
    feed.subscribe(issues.append, table=ISSUES)
    feed.subscribe(comments_r1.append, table=ISSUE_COMMENTS, issue_id="r1")

    feed.publish(_event(table=ISSUES))
    feed.publish(_event(table=ISSUE_COMMENTS, record_id="c1", issue_id="r1"))
    feed.publish(_event(table=ISSUE_COMMENTS, record_id="c2", issue_id="r2"))
    await feed.drain()

    assert [e.table for e in issues] == [ISSUES]
    assert [e.record_id for e in comments_r1] == ["c1"]


@pytest.mark.asyncio
async def test_failing_listener_does_not_block_others(caplog):
    feed = ChangeFeed()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe(broken)
    feed.subscribe(seen.append)

    with caplog.at_level(logging.ERROR, logger="cityfix.services.realtime"):
        feed.publish(_event())
        await feed.drain()

    assert seen == [_event()]
    assert "change listener failed" in caplog.text


@pytest.mark.asyncio
async def test_drain_waits_for_nested_deliveries():
    feed = ChangeFeed()
    seen = []

    def first(event):
        if event.kind == INSERT:
            feed.publish(_event(kind=DELETE))

    feed.subscribe(first)
    feed.subscribe(lambda e: seen.append(e.kind))
    feed.publish(_event())
    await feed.drain()

    assert seen == [INSERT, DELETE]


def test_publish_without_listeners_needs_no_loop():
    ChangeFeed().publish(_event())


def test_event_message_shape():
    assert _event(kind=DELETE).as_message() == {
        "type": "reports_changed",
        "table": ISSUES,
        "event": DELETE,
        "id": "r1",
        "issue_id": "r1",
    }


@pytest.mark.asyncio
async def test_broadcast_drops_failed_clients():
    manager = ConnectionManager()
    good = MagicMock(accept=AsyncMock(), send_json=AsyncMock())
    bad = MagicMock(accept=AsyncMock(), send_json=AsyncMock(side_effect=RuntimeError("closed")))
    await manager.connect(good)
    await manager.connect(bad)

    await manager.broadcast({"type": "reports_changed"})

    good.send_json.assert_awaited_once_with({"type": "reports_changed"})
    assert manager.client_count == 1
