"""Kubernetes controller that disables EC2 source/destination checks on cluster nodes."""

__version__ = "0.3.0"

from .controller import SrcDstController
from .provider_id import parse_instance_id

__all__ = ["SrcDstController", "parse_instance_id", "__version__"]
