"""
Change notification

Writers publish "table changed" events; readers (the order service cache)
subscribe and resync. ChangeStreamWatcher forwards changes made by other
processes from a MongoDB change stream onto the same feed.
"""
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Dict[str, Any]], None]


class ChangeFeed:
    def __init__(self):
        self._subscribers: Dict[str, List[ChangeCallback]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, table: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register a callback for changes to `table`. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers[table].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[table]:
                    self._subscribers[table].remove(callback)

        return unsubscribe

    def publish(self, table: str, event: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(table, ()))
        payload = {"table": table, **(event or {})}
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                # a broken listener must not fail the write that triggered it
                logger.exception("Change listener for %s failed", table)

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscribers.get(table, ()))


class ChangeStreamWatcher:
    """Tail a collection's change stream in a daemon thread.

    Requires a replica set or sharded cluster; a standalone server rejects
    `watch()` and the watcher stops after logging the error.
    """

    def __init__(self, collection, feed: ChangeFeed, table: str = "orders"):
        self.collection = collection
        self.feed = feed
        self.table = table
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=f"change-stream-{self.table}", daemon=True)
        self._thread.start()
        logger.info("Change stream watcher started for %s", self.table)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        try:
            with self.collection.watch(max_await_time_ms=1000) as stream:
                while not self._stop.is_set():
                    change = stream.try_next()
                    if change is None:
                        continue
                    self.feed.publish(self.table, {
                        "operation": change.get("operationType"),
                        "order_id": (change.get("documentKey") or {}).get("_id"),
                    })
        except PyMongoError as e:
            logger.error("Change stream for %s stopped: %s", self.table, e)
