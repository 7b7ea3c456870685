"""Extract EC2 instance IDs from Kubernetes node provider IDs."""

from urllib.parse import urlparse

from .errors import MalformedProviderIDError, UnsupportedProviderError

AWS_PROVIDER_PREFIX = "aws"
INSTANCE_ID_PREFIX = "i-"


def parse_instance_id(provider_id: str) -> str:
    """
    Return the EC2 instance ID encoded in a node's provider ID.

    Provider IDs look like ``aws:///us-west-2a/i-0123456789abcdef0``. The
    kubelet emits an empty host (three slashes), which is collapsed so the
    availability zone parses as the host and the instance ID as the path.
    Both the 8 and 17 character instance ID forms are accepted.

    Raises:
        UnsupportedProviderError: If the node is not hosted on AWS
        MalformedProviderIDError: If no instance ID can be found
    """
    if not provider_id.startswith(AWS_PROVIDER_PREFIX):
        raise UnsupportedProviderError(
            provider_id, f"Node is not hosted in AWS EC2 (provider ID {provider_id!r})"
        )

    normalized = provider_id.replace("///", "//", 1)
    try:
        path = urlparse(normalized).path
    except ValueError as e:
        raise MalformedProviderIDError(provider_id, f"Invalid provider ID {provider_id!r}: {e}")

    instance_id = path.strip("/")
    if "/" in instance_id or not instance_id.startswith(INSTANCE_ID_PREFIX):
        raise MalformedProviderIDError(
            provider_id, f"Invalid format for AWS instance ID: {instance_id!r}"
        )

    return instance_id
