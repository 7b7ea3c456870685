"""List+watch source of node events backed by a local node cache."""

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from kubernetes import watch
from kubernetes.client.rest import ApiException

from .models import EventType, Node, NodeEvent

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30
WATCH_TIMEOUT_SECONDS = 300

EventHandler = Callable[[NodeEvent], None]


class NodeStore:
    """Thread-safe local copy of the cluster's nodes, keyed by node name."""

    def __init__(self):
        self._items: Dict[str, Node] = {}
        self._lock = threading.Lock()

    def get_by_key(self, key: str) -> Optional[Node]:
        with self._lock:
            return self._items.get(key)

    def list(self) -> List[Node]:
        with self._lock:
            return list(self._items.values())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def upsert(self, node: Node) -> Optional[Node]:
        """Store a node, returning the snapshot it replaced."""
        with self._lock:
            previous = self._items.get(node.name)
            self._items[node.name] = node
            return previous

    def delete(self, key: str) -> Optional[Node]:
        with self._lock:
            return self._items.pop(key, None)

    def replace(self, nodes: List[Node]) -> Dict[str, Node]:
        """Swap the whole cache for a fresh listing; returns the previous contents."""
        with self._lock:
            previous = self._items
            self._items = {node.name: node for node in nodes}
            return previous


class NodeInformer:
    """
    Keep a :class:`NodeStore` in sync with the API server and emit node events.

    Runs list-then-watch: the initial list fills the store and marks the
    informer as synced, then a watch streams changes from the list's
    resource version. An expired resource version (410) triggers a re-list.
    Every ``resync_period`` seconds each cached node is re-delivered as an
    ``UPDATED`` event so missed notifications are eventually acted on.
    """

    def __init__(
        self,
        core_api: Any,
        resync_period: float = 60.0,
        watch_factory: Callable[[], Any] = watch.Watch,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.core_api = core_api
        self.resync_period = resync_period
        self.store = NodeStore()
        self._watch_factory = watch_factory
        self._clock = clock
        self._handlers: List[EventHandler] = []
        self._synced = threading.Event()
        self._stop = threading.Event()
        self._active_watcher: Optional[Any] = None
        self._watcher_lock = threading.Lock()
        self._next_resync = 0.0

    def add_event_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def has_synced(self) -> bool:
        return self._synced.is_set()

    def wait_for_sync(self, stop_event: threading.Event, poll_interval: float = 0.1) -> bool:
        """Block until the initial list completed; False if stopped first."""
        while not self._synced.wait(poll_interval):
            if stop_event.is_set() or self._stop.is_set():
                return False
        return True

    def stop(self) -> None:
        """Stop the informer and interrupt any open watch stream."""
        self._stop.set()
        with self._watcher_lock:
            active_watcher = self._active_watcher
        if active_watcher is not None:
            active_watcher.stop()

    def _should_stop(self, stop_event: threading.Event) -> bool:
        return stop_event.is_set() or self._stop.is_set()

    def _dispatch(self, event: NodeEvent) -> None:
        for handler in self._handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler failed for node {event.node.name}")

    def list_and_replace(self) -> Optional[str]:
        """List all nodes, refresh the store and emit the differences; return the resource version."""
        response = self.core_api.list_node()
        nodes = [Node.from_k8s(item) for item in (response.items or [])]
        previous = self.store.replace(nodes)

        for node in nodes:
            event_type = EventType.UPDATED if node.name in previous else EventType.ADDED
            self._dispatch(NodeEvent(event_type, node))
        listed = {node.name for node in nodes}
        for name, node in previous.items():
            if name not in listed:
                self._dispatch(NodeEvent(EventType.DELETED, node))

        self._synced.set()
        self._next_resync = self._clock() + self.resync_period
        resource_version = getattr(getattr(response, "metadata", None), "resource_version", None)
        logger.debug(f"Listed {len(nodes)} nodes at resourceVersion {resource_version}")
        return resource_version

    def handle_watch_event(self, event: Dict[str, Any]) -> Optional[str]:
        """
        Apply one raw watch event to the store and emit it.

        Returns:
            The resource version carried by the event, if any

        Raises:
            ApiException: If the stream reported an error such as 410 Gone
        """
        event_type = str(event.get("type", ""))
        if event_type == "ERROR":
            raw = event.get("raw_object") or {}
            raise ApiException(status=raw.get("code"), reason=raw.get("message"))

        obj = event.get("object")
        metadata = getattr(obj, "metadata", None)
        if metadata is None:
            return None
        if event_type == "BOOKMARK":
            return metadata.resource_version

        node = Node.from_k8s(obj)
        if event_type == EventType.DELETED.value:
            self.store.delete(node.name)
            self._dispatch(NodeEvent(EventType.DELETED, node))
        elif event_type in (EventType.ADDED.value, EventType.UPDATED.value):
            previous = self.store.upsert(node)
            kind = EventType.ADDED if previous is None else EventType.UPDATED
            self._dispatch(NodeEvent(kind, node))
        else:
            logger.debug(f"Ignoring watch event of type {event_type!r}")
        return metadata.resource_version

    def resync_if_due(self) -> bool:
        """Re-deliver every cached node as an update once the resync period has elapsed."""
        now = self._clock()
        if now < self._next_resync:
            return False
        self._next_resync = now + self.resync_period
        nodes = self.store.list()
        logger.debug(f"Resyncing {len(nodes)} cached nodes")
        for node in nodes:
            self._dispatch(NodeEvent(EventType.UPDATED, node))
        return True

    def _watch_timeout(self) -> int:
        remaining = self._next_resync - self._clock()
        return max(1, min(WATCH_TIMEOUT_SECONDS, int(remaining) + 1))

    def run(self, stop_event: threading.Event) -> None:
        """List and watch nodes until ``stop_event`` is set or :meth:`stop` is called."""
        resource_version: Optional[str] = None
        backoff_seconds = 1

        while not self._should_stop(stop_event):
            try:
                if resource_version is None:
                    resource_version = self.list_and_replace()

                watcher = self._watch_factory()
                with self._watcher_lock:
                    self._active_watcher = watcher
                stream = watcher.stream(
                    self.core_api.list_node,
                    resource_version=resource_version,
                    timeout_seconds=self._watch_timeout(),
                )
                for event in stream:
                    if self._should_stop(stop_event):
                        break
                    resource_version = self.handle_watch_event(event) or resource_version
                    self.resync_if_due()
                self.resync_if_due()
                backoff_seconds = 1
            except ApiException as e:
                if e.status == 410:
                    logger.warning("Node watch resource version expired, re-listing")
                    resource_version = None
                    continue
                if e.status in (401, 403):
                    logger.error(
                        f"Kubernetes API access denied watching nodes (status={e.status}). "
                        "Check the controller's RBAC permissions."
                    )
                else:
                    logger.error(f"Node watch failed: {e}")
                resource_version = None
                self._backoff(stop_event, backoff_seconds)
                backoff_seconds = min(backoff_seconds * 2, MAX_BACKOFF_SECONDS)
            except Exception:
                logger.exception("Unexpected error watching nodes")
                resource_version = None
                self._backoff(stop_event, backoff_seconds)
                backoff_seconds = min(backoff_seconds * 2, MAX_BACKOFF_SECONDS)
            finally:
                with self._watcher_lock:
                    self._active_watcher = None

        logger.info("Node informer stopped")

    def _backoff(self, stop_event: threading.Event, seconds: float) -> None:
        jittered = seconds * (0.5 + random.random())
        deadline = self._clock() + jittered
        while not self._should_stop(stop_event):
            remaining = deadline - self._clock()
            if remaining <= 0:
                return
            stop_event.wait(min(remaining, 0.5))
