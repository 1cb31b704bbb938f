"""boto3 session and client management.

One session is shared by the S3 state store, the EC2 VPC lookups and the
Route 53 hosted zone calls of a provisioning run. Credentials are checked
once, up front, so a run never gets halfway before discovering that the
token has expired.
"""

from typing import Any, Dict, Optional, Tuple
import boto3
from botocore.exceptions import NoCredentialsError, ClientError


DEFAULT_REGION = "us-east-1"

INVALID_CREDENTIAL_CODES = ("InvalidClientTokenId", "ExpiredToken", "InvalidUserID.NotFound")


class AWSClientManager:
    """Shared boto3 session with per-service, per-region client cache."""

    def __init__(
        self,
        profile_name: Optional[str] = None,
        region_name: Optional[str] = None,
    ) -> None:
        """Create the session and verify the caller identity.

        Args:
            profile_name: Optional AWS profile name for credentials
            region_name: Region for clients requested without one

        Raises:
            NoCredentialsError: When credentials are missing, invalid or expired
            ProfileNotFound: When the named profile doesn't exist
        """
        self._profile_name = profile_name
        self._region_name = region_name
        self._session: Optional[boto3.Session] = None
        self._clients: Dict[Tuple[str, str], Any] = {}
        self._identity = self._fetch_identity()

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            if self._profile_name:
                self._session = boto3.Session(profile_name=self._profile_name)
            else:
                self._session = boto3.Session()
        return self._session

    def _fetch_identity(self) -> Dict[str, Any]:
        try:
            return self.session.client("sts").get_caller_identity()
        except ClientError as e:
            # botocore exceptions take keyword arguments only
            if e.response["Error"]["Code"] in INVALID_CREDENTIAL_CODES:
                raise NoCredentialsError() from e
            raise

    def get_client(self, service_name: str, region_name: Optional[str] = None):
        """Get a cached client for a service.

        Args:
            service_name: AWS service name, e.g. 's3', 'ec2', 'route53'
            region_name: Region; defaults to get_current_region()

        Returns:
            boto3 client
        """
        key = (service_name, region_name or self.get_current_region())
        if key not in self._clients:
            self._clients[key] = self.session.client(service_name, region_name=key[1])
        return self._clients[key]

    def get_current_region(self) -> str:
        """Explicit region, else the profile's region, else us-east-1."""
        return self._region_name or self.session.region_name or DEFAULT_REGION

    def get_account_id(self) -> str:
        """Account ID of the verified caller."""
        return self._identity["Account"]
