"""S3 state store management for kops.

This module handles creating the state store bucket if absent, enabling
versioning and default encryption, and emptying and deleting the bucket
during teardown. Error codes returned by S3 are inspected: "already
exists" and "not found" are only concluded from the matching codes.
"""

from typing import Any, Dict, List
import logging
from botocore.exceptions import ClientError

from ..core.aws_client import AWSClientManager
from ..core.config import Configuration
from ..core.idempotency import EnsureResult, ensure_exists


logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ("404", "NoSuchBucket", "NotFound")

# DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000


class StateStoreError(Exception):
    """Raised when a state store operation fails."""
    pass


class StateStoreManager:
    """Manages the S3 bucket holding kops cluster state."""

    def __init__(self, config: Configuration, aws_client: AWSClientManager):
        """Initialize state store manager.

        Args:
            config: Configuration instance
            aws_client: AWS client manager instance
        """
        self.config = config
        self.aws_client = aws_client
        self.bucket = config.get_state_store_bucket()
        self.region = config.get_region()

    @property
    def s3_client(self):
        return self.aws_client.get_client('s3', self.region)

    def bucket_exists(self) -> bool:
        """Check whether the bucket exists and is accessible.

        Returns:
            True if the bucket exists, False if S3 reports it missing

        Raises:
            StateStoreError: For any other error, including a bucket owned
                             by another account
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket)
            return True
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code in NOT_FOUND_CODES:
                return False
            if error_code in ('403', 'AccessDenied', 'Forbidden'):
                raise StateStoreError(
                    f"Bucket '{self.bucket}' exists but is not accessible with these credentials"
                )
            raise StateStoreError(f"Failed to check bucket '{self.bucket}': {e}")

    def ensure_bucket(self) -> EnsureResult:
        """Create the state store bucket unless it already exists.

        Returns:
            EnsureResult with the bucket name and whether it was created
        """
        print(f"Creating S3 bucket {self.bucket} for kops state store...")
        return ensure_exists(
            probe=lambda: self.bucket if self.bucket_exists() else None,
            create=self._create_bucket,
            description=f"State store bucket '{self.bucket}'",
        )

    def _create_bucket(self) -> str:
        params: Dict[str, Any] = {'Bucket': self.bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if self.region != 'us-east-1':
            params['CreateBucketConfiguration'] = {'LocationConstraint': self.region}

        try:
            self.s3_client.create_bucket(**params)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code == 'BucketAlreadyOwnedByYou':
                logger.info(f"Bucket {self.bucket} already owned by this account")
                return self.bucket
            if error_code == 'BucketAlreadyExists':
                raise StateStoreError(
                    f"Bucket name '{self.bucket}' is already taken by another account"
                )
            raise StateStoreError(f"Failed to create bucket '{self.bucket}': {e}")

        logger.info(f"State store bucket created: {self.bucket}")
        return self.bucket

    def enable_versioning(self) -> None:
        """Enable object versioning on the bucket."""
        try:
            self.s3_client.put_bucket_versioning(
                Bucket=self.bucket,
                VersioningConfiguration={'Status': 'Enabled'}
            )
            logger.info(f"Versioning enabled on {self.bucket}")
        except ClientError as e:
            raise StateStoreError(f"Failed to enable versioning on '{self.bucket}': {e}")

    def enable_encryption(self, algorithm: str = 'AES256') -> None:
        """Enable default server-side encryption on the bucket."""
        try:
            self.s3_client.put_bucket_encryption(
                Bucket=self.bucket,
                ServerSideEncryptionConfiguration={
                    'Rules': [
                        {'ApplyServerSideEncryptionByDefault': {'SSEAlgorithm': algorithm}}
                    ]
                }
            )
            logger.info(f"{algorithm} encryption enabled on {self.bucket}")
        except ClientError as e:
            raise StateStoreError(f"Failed to enable encryption on '{self.bucket}': {e}")

    def prepare(self) -> Dict[str, Any]:
        """Ensure the bucket exists and apply the configured settings.

        Returns:
            Dict with the bucket name, created flag and applied settings
        """
        ensured = self.ensure_bucket()
        if self.config.get('state_store.versioning', True):
            self.enable_versioning()
        encryption = self.config.get('state_store.encryption')
        if encryption:
            self.enable_encryption(encryption)

        return {
            'bucket': ensured.identifier,
            'created': ensured.created,
            'versioning': bool(self.config.get('state_store.versioning', True)),
            'encryption': encryption,
        }

    def delete_bucket(self) -> int:
        """Delete every object version and then the bucket itself.

        Returns:
            Number of object versions and delete markers removed; 0 when
            the bucket was already gone

        Raises:
            StateStoreError: When deletion fails
        """
        print(f"Deleting S3 bucket '{self.bucket}'...")
        if not self.bucket_exists():
            logger.info(f"Bucket {self.bucket} does not exist, nothing to delete")
            return 0

        try:
            removed = self._empty_bucket()
            self.s3_client.delete_bucket(Bucket=self.bucket)
        except ClientError as e:
            raise StateStoreError(f"Failed to delete bucket '{self.bucket}': {e}")

        logger.info(f"Bucket {self.bucket} deleted ({removed} object version(s) removed)")
        return removed

    def _empty_bucket(self) -> int:
        paginator = self.s3_client.get_paginator('list_object_versions')
        pending: List[Dict[str, str]] = []
        removed = 0

        for page in paginator.paginate(Bucket=self.bucket):
            for entry in page.get('Versions', []) + page.get('DeleteMarkers', []):
                pending.append({'Key': entry['Key'], 'VersionId': entry['VersionId']})
                if len(pending) == DELETE_BATCH_SIZE:
                    removed += self._delete_objects(pending)
                    pending = []

        if pending:
            removed += self._delete_objects(pending)

        return removed

    def _delete_objects(self, objects: List[Dict[str, str]]) -> int:
        response = self.s3_client.delete_objects(
            Bucket=self.bucket,
            Delete={'Objects': objects, 'Quiet': True}
        )
        errors = response.get('Errors', [])
        if errors:
            first = errors[0]
            raise StateStoreError(
                f"Failed to delete {len(errors)} object(s) from '{self.bucket}', "
                f"first error: {first.get('Key')}: {first.get('Message')}"
            )
        return len(objects)

    def verify_deleted(self) -> None:
        """Confirm the bucket no longer exists.

        Raises:
            StateStoreError: When the bucket is still present
        """
        if self.bucket_exists():
            raise StateStoreError(f"S3 bucket '{self.bucket}' could not be deleted")
        print(f"S3 bucket '{self.bucket}' successfully deleted.")

