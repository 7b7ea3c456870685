"""Read and write the annotation recording that a node has been handled."""

from typing import Dict

from .models import DEFAULT_ANNOTATION_KEY, Node

MARKER_VALUE = "true"


def is_marked(node: Node, annotation_key: str = DEFAULT_ANNOTATION_KEY) -> bool:
    """Check if the node already carries the marker, whatever its value."""
    return annotation_key in (node.annotations or {})


def mark(node: Node, annotation_key: str = DEFAULT_ANNOTATION_KEY) -> Dict[str, str]:
    """Return a new annotation mapping for the node with the marker set."""
    annotations = dict(node.annotations or {})
    annotations[annotation_key] = MARKER_VALUE
    return annotations
