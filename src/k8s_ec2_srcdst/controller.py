"""Controller that disables EC2 source/destination checks on Kubernetes nodes."""

import logging
import threading
import time
from typing import Any, Callable, List, Optional

from .client import EC2Client
from .errors import (
    ConflictError,
    NodeNotFoundError,
    ProviderIDError,
    RemoteError,
    UnsupportedProviderError,
)
from .informer import NodeInformer
from .marker import is_marked
from .models import DEFAULT_ANNOTATION_KEY, EventType, NodeEvent, ReconcileResult
from .nodes import NodeWriter, persist_marker
from .provider_id import parse_instance_id
from .workqueue import WorkQueue

logger = logging.getLogger(__name__)


class SrcDstController:
    """
    Watches nodes and disables the source/destination check on their EC2 instances.

    Node events only enqueue the node name. Workers take names off the
    queue, look the node up in the informer cache, and when the marker
    annotation is missing they disable the check through EC2 and record the
    marker on the node. The queue guarantees a node is never handled by two
    workers at the same time.
    """

    def __init__(
        self,
        ec2_client: EC2Client,
        node_writer: NodeWriter,
        informer: NodeInformer,
        workers: int = 1,
        annotation_key: str = DEFAULT_ANNOTATION_KEY,
        max_retries: int = 5,
        conflict_retries: int = 5,
        queue: Optional[WorkQueue] = None,
        conflict_wait: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.ec2_client = ec2_client
        self.node_writer = node_writer
        self.informer = informer
        self.workers = workers
        self.annotation_key = annotation_key
        self.max_retries = max_retries
        self.conflict_retries = conflict_retries
        self.queue = queue or WorkQueue()
        self._conflict_wait = conflict_wait
        self._sleep = sleep
        self._worker_threads: List[threading.Thread] = []

        self.informer.add_event_handler(self.handle_event)

    def handle_event(self, event: NodeEvent) -> None:
        """Queue the node for reconciliation; deletions need no action."""
        if event.type == EventType.DELETED:
            return
        logger.debug(f"Received {event.type.name.lower()} event for node {event.node.name}")
        self.queue.add(event.node.name)

    def reconcile(self, key: str) -> ReconcileResult:
        """
        Bring one node to the desired state.

        Always works from the cached node as it is now, not from the event
        that queued it.

        Raises:
            ProviderIDError: If the node's provider ID has no EC2 instance ID
            RemoteError: If EC2 rejected the request
            ConflictError: If the marker write kept conflicting
        """
        node = self.informer.store.get_by_key(key)
        if node is None:
            logger.debug(f"Node {key} no longer in cache; skipping")
            return ReconcileResult.NOT_FOUND

        if is_marked(node, self.annotation_key):
            logger.debug(f"Skipping node {key} because it already has the {self.annotation_key} annotation")
            return ReconcileResult.ALREADY_MARKED

        instance_id = parse_instance_id(node.provider_id)
        self.ec2_client.disable_source_dest_check(instance_id)

        logger.info(f"Marking node {key} (instance {instance_id}) with {self.annotation_key}")
        try:
            persist_marker(
                self.node_writer,
                key,
                annotation_key=self.annotation_key,
                attempts=self.conflict_retries,
                wait=self._conflict_wait,
                sleep=self._sleep,
            )
        except NodeNotFoundError:
            logger.info(f"Node {key} was deleted before it could be marked")
            return ReconcileResult.NOT_FOUND
        return ReconcileResult.MARKED

    def process_next_item(self) -> bool:
        """Handle one queued node; False once the queue has shut down."""
        key, shutdown = self.queue.get()
        if shutdown:
            return False
        try:
            self._process(key)
        finally:
            self.queue.done(key)
        return True

    def _process(self, key: str) -> None:
        try:
            self.reconcile(key)
        except UnsupportedProviderError as e:
            logger.error(f"Not disabling source/destination check for node {key}: {e}")
            self.queue.forget(key)
            return
        except ProviderIDError as e:
            logger.error(f"Failed to retrieve instance ID for node {key}: {e}")
            self.queue.forget(key)
            return
        except RemoteError as e:
            logger.error(f"Failed to disable source/destination check for node {key}: {e}")
            self._requeue(key)
            return
        except ConflictError as e:
            logger.error(f"Failed to set {self.annotation_key} annotation on node {key}: {e}")
            self._requeue(key)
            return
        except Exception as e:
            logger.exception(f"Failed to reconcile node {key}: {e}")
            self._requeue(key)
            return
        self.queue.forget(key)

    def _requeue(self, key: str) -> None:
        retries = self.queue.num_requeues(key)
        if retries < self.max_retries:
            logger.warning(f"Requeueing node {key} (retry {retries + 1}/{self.max_retries})")
            self.queue.add_rate_limited(key)
        else:
            logger.error(f"Dropping node {key} after {retries} retries")
            self.queue.forget(key)

    def _run_worker(self) -> None:
        while self.process_next_item():
            pass

    def start_workers(self) -> None:
        for index in range(self.workers):
            thread = threading.Thread(
                target=self._run_worker,
                name=f"srcdst-worker-{index}",
                daemon=True,
            )
            thread.start()
            self._worker_threads.append(thread)

    def shutdown(self) -> None:
        """Stop taking work, let in-flight items finish and wait for every worker to exit."""
        self.queue.shut_down()
        self.informer.stop()
        for thread in self._worker_threads:
            thread.join()
        self._worker_threads = []

    def run(self, stop_event: threading.Event) -> None:
        """Run the informer and workers until ``stop_event`` is set."""
        logger.info(f"Starting source/destination check controller with {self.workers} worker(s)")
        informer_thread = threading.Thread(
            target=self.informer.run,
            args=(stop_event,),
            name="node-informer",
            daemon=True,
        )
        informer_thread.start()

        if not self.informer.wait_for_sync(stop_event):
            logger.warning("Stopped before the node cache finished syncing")
        else:
            logger.info("Node cache synced; starting workers")
            self.start_workers()
            stop_event.wait()

        logger.info("Shutting down source/destination check controller")
        self.shutdown()
        informer_thread.join(timeout=5)
        logger.info("Controller stopped")
