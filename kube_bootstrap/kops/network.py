"""VPC DNS settings and private Route 53 hosted zone for a kops cluster.

kops tags the VPC it creates with ``Name=<cluster name>``. Once the VPC
exists this module turns on DNS support and hostnames, creates the
private hosted zone for the cluster's DNS zone if it is missing, and
associates the zone with the VPC under the bounded retry policy.
"""

from typing import Any, Dict, Optional
import logging
import time
from botocore.exceptions import ClientError

from ..core.aws_client import AWSClientManager
from ..core.config import Configuration
from ..core.idempotency import EnsureResult, ensure_exists
from ..core.retry import RetryOutcome, run_with_retry


logger = logging.getLogger(__name__)

HOSTED_ZONE_PREFIX = '/hostedzone/'


class NetworkConfigurationError(Exception):
    """Raised when VPC or DNS configuration fails."""
    pass


class VpcNotFoundError(NetworkConfigurationError):
    """Raised when no VPC is tagged with the cluster name."""
    pass


def strip_zone_prefix(zone_id: str) -> str:
    """Turn '/hostedzone/Z123' into 'Z123'."""
    if zone_id.startswith(HOSTED_ZONE_PREFIX):
        return zone_id[len(HOSTED_ZONE_PREFIX):]
    return zone_id


def _fqdn(name: str) -> str:
    return name if name.endswith('.') else f"{name}."


class ClusterNetworkManager:
    """Manages VPC DNS attributes and the cluster's private hosted zone."""

    def __init__(self, config: Configuration, aws_client: AWSClientManager):
        """Initialize network manager.

        Args:
            config: Configuration instance
            aws_client: AWS client manager instance
        """
        self.config = config
        self.aws_client = aws_client
        self.region = config.get_region()
        self.cluster_name = config.get_cluster_name()
        self.dns_zone = config.get_dns_zone()

    @property
    def ec2_client(self):
        return self.aws_client.get_client('ec2', self.region)

    @property
    def route53_client(self):
        return self.aws_client.get_client('route53', self.region)

    def find_cluster_vpc(self) -> str:
        """Find the VPC tagged with the cluster name.

        Returns:
            VPC ID

        Raises:
            VpcNotFoundError: When no VPC carries the tag
            NetworkConfigurationError: When the lookup fails
        """
        try:
            response = self.ec2_client.describe_vpcs(
                Filters=[{'Name': 'tag:Name', 'Values': [self.cluster_name]}]
            )
        except ClientError as e:
            raise NetworkConfigurationError(f"Failed to look up VPC: {e}")

        vpcs = response.get('Vpcs', [])
        if not vpcs:
            raise VpcNotFoundError(f"VPC not found for the cluster '{self.cluster_name}'")

        vpc_id = vpcs[0]['VpcId']
        logger.info(f"Cluster VPC: {vpc_id}")
        return vpc_id

    def enable_vpc_dns(self, vpc_id: str) -> None:
        """Enable DNS resolution and DNS hostnames on the VPC.

        EC2 accepts only one attribute per ModifyVpcAttribute call.
        """
        print("Enabling DNS hostnames and DNS resolution for VPC...")
        try:
            self.ec2_client.modify_vpc_attribute(
                VpcId=vpc_id, EnableDnsSupport={'Value': True}
            )
            self.ec2_client.modify_vpc_attribute(
                VpcId=vpc_id, EnableDnsHostnames={'Value': True}
            )
        except ClientError as e:
            raise NetworkConfigurationError(f"Failed to enable DNS on VPC {vpc_id}: {e}")
        logger.info(f"DNS support and hostnames enabled on {vpc_id}")

    def configure_vpc_dns(self) -> str:
        """Find the cluster VPC and enable DNS on it.

        Returns:
            VPC ID
        """
        vpc_id = self.find_cluster_vpc()
        self.enable_vpc_dns(vpc_id)
        return vpc_id

    def find_private_zone(self) -> Optional[str]:
        """Find an existing private hosted zone named exactly like the DNS zone.

        Returns:
            Hosted zone ID without the '/hostedzone/' prefix, or None

        Raises:
            NetworkConfigurationError: When Route 53 cannot be queried
        """
        print(f"Checking for existing private DNS hosted zone for {self.dns_zone}...")
        try:
            response = self.route53_client.list_hosted_zones_by_name(
                DNSName=self.dns_zone
            )
        except ClientError as e:
            raise NetworkConfigurationError(f"Failed to list hosted zones: {e}")

        # Results start at DNSName but continue with later zones in order
        wanted = _fqdn(self.dns_zone)
        for zone in response.get('HostedZones', []):
            if zone['Name'] == wanted and zone.get('Config', {}).get('PrivateZone'):
                return strip_zone_prefix(zone['Id'])
        return None

    def create_private_zone(self, vpc_id: str) -> str:
        """Create a private hosted zone attached to the VPC.

        Returns:
            New hosted zone ID without the '/hostedzone/' prefix
        """
        try:
            response = self.route53_client.create_hosted_zone(
                Name=self.dns_zone,
                VPC={'VPCRegion': self.region, 'VPCId': vpc_id},
                CallerReference=f"{self.cluster_name}-{int(time.time())}",
                HostedZoneConfig={'PrivateZone': True},
            )
        except ClientError as e:
            raise NetworkConfigurationError(f"Failed to create hosted zone {self.dns_zone}: {e}")

        zone_id = strip_zone_prefix(response['HostedZone']['Id'])
        print(f"Private DNS hosted zone created with ID: {zone_id}")
        return zone_id

    def ensure_private_zone(self, vpc_id: str) -> EnsureResult:
        """Reuse the private hosted zone if it exists, otherwise create it."""
        result = ensure_exists(
            probe=self.find_private_zone,
            create=lambda: self.create_private_zone(vpc_id),
            description=f"Private hosted zone '{self.dns_zone}'",
        )
        if not result.created:
            print(f"Existing private DNS hosted zone found with ID: {result.identifier}")
        return result

    def is_vpc_associated(self, zone_id: str, vpc_id: str) -> bool:
        """Check whether the VPC is already associated with the zone."""
        try:
            response = self.route53_client.get_hosted_zone(Id=zone_id)
        except ClientError as e:
            raise NetworkConfigurationError(f"Failed to get hosted zone {zone_id}: {e}")

        return any(vpc.get('VPCId') == vpc_id for vpc in response.get('VPCs', []))

    def associate_vpc(self, zone_id: str, vpc_id: str) -> Dict[str, Any]:
        """Associate the VPC with the zone unless already associated.

        Each attempt is a real AssociateVPCWithHostedZone call, retried
        under the configured policy.

        Returns:
            Dict with the association state and attempts used

        Raises:
            RetryExhaustedError: When every attempt failed
        """
        if self.is_vpc_associated(zone_id, vpc_id):
            print("DNS hosted zone already associated with the VPC.")
            return {'associated': True, 'attempts': 0}

        print("Associating DNS hosted zone with VPC...")

        def attempt() -> bool:
            self.route53_client.associate_vpc_with_hosted_zone(
                HostedZoneId=zone_id,
                VPC={'VPCRegion': self.region, 'VPCId': vpc_id},
            )
            return True

        outcome: RetryOutcome = run_with_retry(
            attempt,
            self.config.get_retry_policy(),
            f"Association of hosted zone {zone_id} with VPC {vpc_id}",
            retry_on=(ClientError,),
        )
        logger.info(f"Hosted zone {zone_id} associated with {vpc_id}")
        return {'associated': True, 'attempts': outcome.attempts}
