"""Unit tests for AWS Client Manager."""

import pytest
from unittest.mock import Mock, patch
from botocore.exceptions import ClientError, NoCredentialsError, ProfileNotFound

from kube_bootstrap.core.aws_client import AWSClientManager


def _session_with_sts(region_name=None):
    mock_session = Mock()
    mock_session.region_name = region_name
    mock_sts_client = Mock()
    mock_sts_client.get_caller_identity.return_value = {
        "Account": "123456789012"
    }
    mock_session.client.return_value = mock_sts_client
    return mock_session, mock_sts_client


class TestAWSClientManager:
    """Test cases for AWSClientManager class."""

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_init_success(self, mock_session_class):
        """Test successful initialization."""
        mock_session, mock_sts_client = _session_with_sts()
        mock_session_class.return_value = mock_session

        manager = AWSClientManager()

        assert manager._profile_name is None
        mock_sts_client.get_caller_identity.assert_called_once()

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_init_with_profile(self, mock_session_class):
        """Test initialization with profile."""
        mock_session, _ = _session_with_sts()
        mock_session_class.return_value = mock_session

        manager = AWSClientManager(profile_name="test-profile")

        assert manager._profile_name == "test-profile"
        mock_session_class.assert_called_with(profile_name="test-profile")

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_init_no_credentials(self, mock_session_class):
        """Test initialization with no credentials."""
        mock_session, mock_sts_client = _session_with_sts()
        mock_sts_client.get_caller_identity.side_effect = NoCredentialsError()
        mock_session_class.return_value = mock_session

        with pytest.raises(NoCredentialsError):
            AWSClientManager()

    @pytest.mark.parametrize("code", ["ExpiredToken", "InvalidClientTokenId"])
    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_init_invalid_token(self, mock_session_class, code):
        mock_session, mock_sts_client = _session_with_sts()
        error = ClientError({"Error": {"Code": code, "Message": "bad token"}}, "GetCallerIdentity")
        mock_sts_client.get_caller_identity.side_effect = error
        mock_session_class.return_value = mock_session

        with pytest.raises(NoCredentialsError) as exc_info:
            AWSClientManager()

        assert exc_info.value.__cause__ is error

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_init_other_client_error_propagates(self, mock_session_class):
        mock_session, mock_sts_client = _session_with_sts()
        mock_sts_client.get_caller_identity.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetCallerIdentity"
        )
        mock_session_class.return_value = mock_session

        with pytest.raises(ClientError):
            AWSClientManager()

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_init_profile_not_found(self, mock_session_class):
        """Test initialization with invalid profile."""
        mock_session_class.side_effect = ProfileNotFound(profile="invalid")

        with pytest.raises(ProfileNotFound):
            AWSClientManager(profile_name="invalid")

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_get_client_caching(self, mock_session_class):
        """Test client caching functionality."""
        mock_session, mock_sts_client = _session_with_sts()
        mock_s3_client = Mock()

        def client_side_effect(service_name, region_name=None):
            if service_name == "sts":
                return mock_sts_client
            elif service_name == "s3":
                return mock_s3_client
            return Mock()

        mock_session.client.side_effect = client_side_effect
        mock_session_class.return_value = mock_session

        manager = AWSClientManager()

        client1 = manager.get_client("s3", "us-east-2")
        client2 = manager.get_client("s3", "us-east-2")

        assert client1 is client2
        assert client1 is mock_s3_client

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_get_client_uses_default_region(self, mock_session_class):
        mock_session, _ = _session_with_sts()
        mock_session_class.return_value = mock_session

        manager = AWSClientManager(region_name="us-east-2")
        manager.get_client("route53")

        mock_session.client.assert_called_with("route53", region_name="us-east-2")

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_get_current_region(self, mock_session_class):
        """Test getting current region."""
        mock_session, _ = _session_with_sts(region_name="us-west-2")
        mock_session_class.return_value = mock_session

        manager = AWSClientManager()

        assert manager.get_current_region() == "us-west-2"

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_explicit_region_wins(self, mock_session_class):
        mock_session, _ = _session_with_sts(region_name="us-west-2")
        mock_session_class.return_value = mock_session

        manager = AWSClientManager(region_name="eu-central-1")

        assert manager.get_current_region() == "eu-central-1"

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_get_current_region_default(self, mock_session_class):
        """Test getting current region with default fallback."""
        mock_session, _ = _session_with_sts()
        mock_session_class.return_value = mock_session

        manager = AWSClientManager()

        assert manager.get_current_region() == "us-east-1"

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_get_account_id(self, mock_session_class):
        """Account ID comes from the identity verified at startup."""
        mock_session, mock_sts_client = _session_with_sts(region_name="us-east-1")
        mock_session_class.return_value = mock_session

        manager = AWSClientManager()

        assert manager.get_account_id() == "123456789012"
        mock_sts_client.get_caller_identity.assert_called_once()

    @patch("kube_bootstrap.core.aws_client.boto3.Session")
    def test_clients_cached_per_region(self, mock_session_class):
        mock_session, _ = _session_with_sts()
        mock_session_class.return_value = mock_session

        manager = AWSClientManager()
        manager.get_client("ec2", "us-east-1")
        manager.get_client("ec2", "us-east-2")
        manager.get_client("ec2", "us-east-2")

        assert len(manager._clients) == 2
