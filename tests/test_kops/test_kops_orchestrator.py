"""Unit tests for the kops provisioning workflows."""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from kube_bootstrap.core.command import CommandResult
from kube_bootstrap.core.config import ConfigurationError
from kube_bootstrap.core.environment import EnvironmentFile
from kube_bootstrap.core.safety import SafetyManager
from kube_bootstrap.kops.orchestrator import (
    DestroyAbortedError,
    KopsProvisioner,
    KopsProvisioningError,
)


@pytest.fixture
def ssh_key(tmp_path):
    key_dir = tmp_path / "ssh"
    key_dir.mkdir()
    (key_dir / "id_rsa").write_text("private")
    (key_dir / "id_rsa.pub").write_text("ssh-rsa AAAA test")
    return key_dir / "id_rsa.pub"


@pytest.fixture
def provisioner(kops_config, mock_aws_client, mock_runner):
    return KopsProvisioner(kops_config, mock_aws_client, mock_runner)


def not_found():
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")


def declining_safety_manager():
    manager = SafetyManager(enable_confirmations=True)
    manager._get_user_confirmation = Mock(return_value=False)
    return manager


class TestInitialization:

    def test_requires_cluster_name_and_bucket(self, make_config, mock_aws_client, mock_runner):
        config = make_config({"cluster": {"name": "dominionclass37.example.com"}})

        with pytest.raises(ConfigurationError, match="state_store.bucket"):
            KopsProvisioner(config, mock_aws_client, mock_runner)


class TestCreatePipeline:

    def test_private_dns_steps(self, provisioner):
        assert provisioner.build_create_pipeline().step_names == [
            "install_tools",
            "state_store",
            "environment",
            "ssh_key",
            "create_cluster",
            "update_cluster",
            "configure_vpc_dns",
            "export_kubecfg",
            "hosted_zone",
            "associate_hosted_zone",
            "validate_cluster",
        ]

    def test_gossip_steps_skip_dns(self, gossip_config, mock_aws_client, mock_runner):
        provisioner = KopsProvisioner(gossip_config, mock_aws_client, mock_runner)

        assert provisioner.build_create_pipeline(install_tools=False).step_names == [
            "state_store",
            "environment",
            "ssh_key",
            "create_cluster",
            "update_cluster",
            "export_kubecfg",
            "validate_cluster",
        ]

    def test_create_reuses_existing_hosted_zone(self, provisioner, mock_aws_client, ssh_key):
        ec2 = mock_aws_client.get_client("ec2")
        route53 = mock_aws_client.get_client("route53")
        ec2.describe_vpcs.return_value = {"Vpcs": [{"VpcId": "vpc-0abc"}]}
        route53.list_hosted_zones_by_name.return_value = {
            "HostedZones": [{
                "Id": "/hostedzone/Z123",
                "Name": "dominionclass37.example.com.",
                "Config": {"PrivateZone": True},
            }]
        }
        route53.get_hosted_zone.return_value = {"VPCs": []}

        result = provisioner.create(install_tools=False)

        assert result.succeeded, result.errors
        assert result.outputs["hosted_zone"] == "Z123"
        assert result.outputs["ssh_key"] == str(ssh_key)
        route53.create_hosted_zone.assert_not_called()
        route53.associate_vpc_with_hosted_zone.assert_called_once_with(
            HostedZoneId="Z123",
            VPC={"VPCRegion": "us-east-2", "VPCId": "vpc-0abc"},
        )
        assert provisioner.state == {
            "public_key_path": ssh_key,
            "vpc_id": "vpc-0abc",
            "hosted_zone_id": "Z123",
        }

    def test_environment_file_is_written(self, provisioner, kops_config):
        path = provisioner._persist_environment()

        assert EnvironmentFile(path).read() == {
            "NAME": "dominionclass37.example.com",
            "KOPS_STATE_STORE": "s3://dominionclass37-state-store",
        }
        assert path == str(kops_config.get_environment_file())

    def test_state_store_failure_stops_before_kops(self, provisioner, mock_aws_client, mock_runner):
        s3 = mock_aws_client.get_client("s3")
        s3.head_bucket.side_effect = ClientError(
            {"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket"
        )

        result = provisioner.create(install_tools=False)

        assert result.succeeded is False
        assert result.failed_step == "state_store"
        assert result.steps_completed == []
        mock_runner.run.assert_not_called()

    def test_create_cluster_requires_ssh_key(self, provisioner):
        with pytest.raises(KopsProvisioningError, match="SSH public key"):
            provisioner._create_cluster()


class TestDestroy:

    def test_declined_confirmation_makes_no_destructive_calls(
        self, provisioner, mock_aws_client, mock_runner
    ):
        with pytest.raises(DestroyAbortedError):
            provisioner.destroy(declining_safety_manager())

        mock_runner.run.assert_not_called()
        s3 = mock_aws_client.get_client("s3")
        s3.delete_objects.assert_not_called()
        s3.delete_bucket.assert_not_called()

    def test_destroy_pipeline_steps(self, provisioner):
        assert provisioner.build_destroy_pipeline().step_names == [
            "delete_cluster",
            "verify_cluster_deleted",
            "delete_state_store",
            "verify_state_store_deleted",
        ]

    def test_cluster_still_running_stops_before_bucket_deletion(
        self, provisioner, mock_aws_client
    ):
        result = provisioner.destroy(SafetyManager(enable_confirmations=False))

        assert result.succeeded is False
        assert result.failed_step == "verify_cluster_deleted"
        mock_aws_client.get_client("s3").delete_bucket.assert_not_called()

    def test_rerun_after_cluster_already_deleted(self, provisioner, mock_aws_client, mock_runner):
        mock_runner.run.side_effect = lambda args, **kwargs: CommandResult(
            list(args), 1, "", 'cluster "dominionclass37.example.com" not found'
        )
        s3 = mock_aws_client.get_client("s3")
        s3.head_bucket.side_effect = [None, None, not_found()]
        s3.get_paginator.return_value.paginate.return_value = [
            {"Versions": [{"Key": "dominionclass37.example.com/config", "VersionId": "v1"}]}
        ]
        s3.delete_objects.return_value = {}

        result = provisioner.destroy(SafetyManager(enable_confirmations=False))

        assert result.succeeded, result.errors
        assert result.outputs["delete_cluster"] is False
        kops_verbs = [c.args[0][1:3] for c in mock_runner.run.call_args_list]
        assert ["delete", "cluster"] not in kops_verbs
        s3.delete_bucket.assert_called_once_with(Bucket="dominionclass37-state-store")

    def test_rerun_after_everything_was_deleted(self, provisioner, mock_aws_client, mock_runner):
        mock_runner.run.side_effect = lambda args, **kwargs: CommandResult(list(args), 1, "", "")
        s3 = mock_aws_client.get_client("s3")
        s3.head_bucket.side_effect = not_found()

        result = provisioner.destroy(SafetyManager(enable_confirmations=False))

        assert result.succeeded, result.errors
        assert result.outputs["delete_state_store"] == 0
        kops_verbs = [c.args[0][1:3] for c in mock_runner.run.call_args_list]
        assert kops_verbs == [["validate", "cluster"]]
        s3.delete_bucket.assert_not_called()
