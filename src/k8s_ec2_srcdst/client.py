"""EC2 client used to disable source/destination checks."""

import logging
from typing import Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import RemoteError
from .models import DisableMode

logger = logging.getLogger(__name__)

DEFAULT_RETRY_CONFIG = Config(retries={"max_attempts": 3, "mode": "standard"})


class EC2Client:
    """Thin EC2 wrapper that turns the source/destination check off for an instance."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile_name: Optional[str] = None,
        disable_mode: DisableMode = DisableMode.INSTANCE,
        session: Optional[boto3.session.Session] = None,
        retry_config: Optional[Config] = None,
        ec2_client: Optional[Any] = None,
    ):
        """
        Initialize the EC2 client.

        Args:
            region: AWS region name; boto3's default chain is used when omitted
            profile_name: Optional AWS shared-credentials profile
            disable_mode: Disable the instance attribute or each attached interface
            session: Optional pre-built boto3 session
            retry_config: Optional botocore retry configuration for API calls
            ec2_client: Optional pre-built EC2 service client
        """
        self.region = region
        self.profile_name = profile_name
        self.disable_mode = DisableMode(disable_mode)
        self.retry_config = retry_config or DEFAULT_RETRY_CONFIG
        self._session = session
        self._ec2_client = ec2_client

    @property
    def session(self) -> boto3.session.Session:
        """Lazy-load the boto3 session."""
        if not self._session:
            self._session = boto3.session.Session(
                region_name=self.region,
                profile_name=self.profile_name,
            )
        return self._session

    @property
    def ec2_client(self) -> Any:
        """Lazy-load the EC2 service client."""
        if not self._ec2_client:
            self._ec2_client = self.session.client("ec2", config=self.retry_config)
        return self._ec2_client

    def disable_source_dest_check(self, instance_id: str) -> None:
        """
        Disable the source/destination check for an instance.

        Safe to call on an instance whose check is already off.

        Raises:
            RemoteError: If the EC2 API rejects the request or cannot be reached
        """
        try:
            if self.disable_mode == DisableMode.INTERFACES:
                self._disable_interface_checks(instance_id)
            else:
                self._disable_instance_check(instance_id)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            raise RemoteError(
                instance_id,
                f"Failed to disable source/destination check for {instance_id}: {e}",
                code=code,
            ) from e
        except BotoCoreError as e:
            raise RemoteError(
                instance_id,
                f"Failed to reach EC2 for {instance_id}: {e}",
            ) from e

    def _disable_instance_check(self, instance_id: str) -> None:
        self.ec2_client.modify_instance_attribute(
            InstanceId=instance_id,
            SourceDestCheck={"Value": False},
        )
        logger.debug(f"Disabled source/destination check on instance {instance_id}")

    def _disable_interface_checks(self, instance_id: str) -> None:
        for interface_id in self.list_checked_interfaces(instance_id):
            self.ec2_client.modify_network_interface_attribute(
                NetworkInterfaceId=interface_id,
                SourceDestCheck={"Value": False},
            )
            logger.debug(
                f"Disabled source/destination check on interface {interface_id} of {instance_id}"
            )

    def list_checked_interfaces(self, instance_id: str) -> List[str]:
        """List the network interfaces of an instance that still have the check enabled."""
        response = self.ec2_client.describe_instances(InstanceIds=[instance_id])

        interface_ids = []
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                for interface in instance.get("NetworkInterfaces", []):
                    if interface.get("SourceDestCheck", True):
                        interface_ids.append(interface["NetworkInterfaceId"])
        return interface_ids
