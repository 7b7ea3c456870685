"""Exception types raised by the source/destination check controller."""

from typing import Optional


class SrcDstError(Exception):
    """Base class for controller errors."""
    pass


class ProviderIDError(SrcDstError):
    """A node's provider ID cannot be turned into an EC2 instance ID."""

    def __init__(self, provider_id: str, message: str):
        super().__init__(message)
        self.provider_id = provider_id


class UnsupportedProviderError(ProviderIDError):
    """The node is not hosted on AWS EC2."""
    pass


class MalformedProviderIDError(ProviderIDError):
    """The provider ID claims AWS but does not end in a usable instance ID."""
    pass


class RemoteError(SrcDstError):
    """An EC2 API call failed."""

    def __init__(self, instance_id: str, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.instance_id = instance_id
        self.code = code


class ConflictError(SrcDstError):
    """A node write was rejected because the stored resource version changed."""

    def __init__(self, node_name: str, message: str = ""):
        super().__init__(message or f"Conflict writing node {node_name}")
        self.node_name = node_name


class NodeNotFoundError(SrcDstError):
    """The node no longer exists in the cluster."""

    def __init__(self, node_name: str):
        super().__init__(f"Node {node_name} not found")
        self.node_name = node_name
