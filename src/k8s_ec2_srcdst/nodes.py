"""Conflict-safe writes of the marker annotation to Kubernetes nodes."""

import logging
import time
from typing import Any, Callable, Dict, Optional

from kubernetes.client.rest import ApiException
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from .errors import ConflictError, NodeNotFoundError
from .marker import is_marked, mark
from .models import DEFAULT_ANNOTATION_KEY, Node, WriteStrategy

logger = logging.getLogger(__name__)

# Returns the annotations to store, or None when nothing needs writing.
Mutator = Callable[[Node], Optional[Dict[str, str]]]


class NodeWriter:
    """Read a node from the API server, apply a mutation and write it back."""

    def __init__(self, core_api: Any):
        self.core_api = core_api

    def write(self, name: str, mutate: Mutator) -> Node:
        """
        Apply ``mutate`` to the current state of a node.

        Raises:
            ConflictError: If the node changed between read and write
            NodeNotFoundError: If the node no longer exists
        """
        try:
            obj = self.core_api.read_node(name)
            node = Node.from_k8s(obj)
            annotations = mutate(node)
            if annotations is None:
                return node
            return Node.from_k8s(self._store(obj, node, annotations))
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(name, f"Conflict writing node {name}: {e.reason}") from e
            if e.status == 404:
                raise NodeNotFoundError(name) from e
            raise

    def _store(self, obj: Any, node: Node, annotations: Dict[str, str]) -> Any:
        raise NotImplementedError


class UpdateNodeWriter(NodeWriter):
    """Replace the whole node object; the resource version read is sent back."""

    def _store(self, obj: Any, node: Node, annotations: Dict[str, str]) -> Any:
        obj.metadata.annotations = annotations
        return self.core_api.replace_node(node.name, obj)


class PatchNodeWriter(NodeWriter):
    """Patch only the annotations, using the resource version read as a precondition."""

    def _store(self, obj: Any, node: Node, annotations: Dict[str, str]) -> Any:
        changed = {
            key: value for key, value in annotations.items()
            if node.annotations.get(key) != value
        }
        body = {
            "metadata": {
                "resourceVersion": node.resource_version,
                "annotations": changed,
            }
        }
        return self.core_api.patch_node(node.name, body)


def create_node_writer(core_api: Any, strategy: WriteStrategy = WriteStrategy.UPDATE) -> NodeWriter:
    """Create the node writer for a write strategy."""
    if WriteStrategy(strategy) == WriteStrategy.PATCH:
        return PatchNodeWriter(core_api)
    return UpdateNodeWriter(core_api)


def _log_conflict(retry_state) -> None:
    exc = retry_state.outcome.exception()
    logger.warning(f"Retrying marker write after conflict (attempt {retry_state.attempt_number}): {exc}")


def persist_marker(
    writer: NodeWriter,
    name: str,
    annotation_key: str = DEFAULT_ANNOTATION_KEY,
    attempts: int = 5,
    wait: Any = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Node:
    """
    Set the marker annotation on a node, retrying on write conflicts.

    Every attempt re-reads the node, so a marker written concurrently by
    someone else ends the loop without another write.

    Raises:
        ConflictError: If every attempt hit a conflict
        NodeNotFoundError: If the node was deleted
    """
    def _mutate(node: Node) -> Optional[Dict[str, str]]:
        if is_marked(node, annotation_key):
            return None
        return mark(node, annotation_key)

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait if wait is not None else wait_fixed(0.01),
        retry=retry_if_exception_type(ConflictError),
        before_sleep=_log_conflict,
        sleep=sleep,
        reraise=True,
    )
    return retrying(writer.write, name, _mutate)
