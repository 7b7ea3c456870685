"""Data models for the source/destination check controller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ANNOTATION_KEY = "kubernetes-ec2-srcdst-controller.ottoyiu.com/srcdst-check-disabled"


class EventType(str, Enum):
    """Kinds of node notifications delivered by the watch source."""
    ADDED = "ADDED"
    UPDATED = "MODIFIED"
    DELETED = "DELETED"


class WriteStrategy(str, Enum):
    """How the marker annotation is written back to the node."""
    UPDATE = "update"
    PATCH = "patch"


class DisableMode(str, Enum):
    """Which EC2 API is used to turn the check off."""
    INSTANCE = "instance"
    INTERFACES = "interfaces"


@dataclass(frozen=True)
class Node:
    """Read-only snapshot of the node fields the controller cares about."""
    name: str
    provider_id: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)
    resource_version: Optional[str] = None

    @classmethod
    def from_k8s(cls, obj: Any) -> "Node":
        """Build a snapshot from a ``kubernetes.client.V1Node``."""
        metadata = obj.metadata
        spec = getattr(obj, "spec", None)
        return cls(
            name=metadata.name,
            provider_id=(getattr(spec, "provider_id", None) or "") if spec else "",
            annotations=dict(metadata.annotations or {}),
            resource_version=metadata.resource_version,
        )


@dataclass(frozen=True)
class NodeEvent:
    """A single notification from the node watch source."""
    type: EventType
    node: Node


class ControllerConfig(BaseModel):
    """Controller configuration with validation."""
    model_config = ConfigDict(validate_assignment=True)

    kubeconfig: Optional[str] = None
    region: Optional[str] = None
    profile_name: Optional[str] = None
    workers: int = Field(default=1, ge=1)
    resync_period: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=5, ge=0)
    conflict_retries: int = Field(default=5, ge=1)
    write_strategy: WriteStrategy = WriteStrategy.UPDATE
    disable_mode: DisableMode = DisableMode.INSTANCE
    annotation_key: str = DEFAULT_ANNOTATION_KEY
    log_level: str = "INFO"

    def uses_in_cluster_config(self) -> bool:
        """Check if the cluster client should come from the pod's service account."""
        return not self.kubeconfig


class ReconcileResult(str, Enum):
    """Outcome of a single reconcile pass over one node."""
    NOT_FOUND = "not_found"
    ALREADY_MARKED = "already_marked"
    MARKED = "marked"
