"""
Tests for the change feed and the change stream watcher.
"""
import threading
import time
from unittest.mock import MagicMock

from notifications import ChangeFeed, ChangeStreamWatcher


def test_publish_reaches_table_subscribers_only():
    feed = ChangeFeed()
    orders, menus = [], []
    feed.subscribe("orders", orders.append)
    feed.subscribe("menus", menus.append)

    feed.publish("orders", {"order_id": "ORD1"})

    assert orders == [{"table": "orders", "order_id": "ORD1"}]
    assert menus == []


def test_unsubscribe():
    feed = ChangeFeed()
    events = []
    unsubscribe = feed.subscribe("orders", events.append)
    unsubscribe()
    unsubscribe()

    feed.publish("orders")
    assert events == []
    assert feed.subscriber_count("orders") == 0


def test_failing_subscriber_does_not_stop_others(caplog):
    feed = ChangeFeed()
    events = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe("orders", broken)
    feed.subscribe("orders", events.append)
    feed.publish("orders")

    assert len(events) == 1
    assert "Change listener for orders failed" in caplog.text


def test_watcher_republishes_change_stream_events():
    published = threading.Event()
    feed = ChangeFeed()
    events = []

    def on_change(event):
        events.append(event)
        published.set()

    feed.subscribe("orders", on_change)

    changes = [None, {"operationType": "update", "documentKey": {"_id": "ORD1"}}]

    def try_next():
        if changes:
            return changes.pop(0)
        time.sleep(0.01)
        return None

    stream = MagicMock()
    stream.__enter__.return_value = stream
    stream.try_next.side_effect = try_next
    collection = MagicMock()
    collection.watch.return_value = stream

    watcher = ChangeStreamWatcher(collection, feed)
    watcher.start()
    assert published.wait(5)
    watcher.stop()

    assert events[0] == {"table": "orders", "operation": "update", "order_id": "ORD1"}
