"""Shared fixtures for kube-bootstrap tests."""

import pytest
import yaml
from unittest.mock import Mock

from kube_bootstrap.core.aws_client import AWSClientManager
from kube_bootstrap.core.command import CommandResult, CommandRunner
from kube_bootstrap.core.config import Configuration


OVERRIDE_VARIABLES = ("AWS_REGION", "AWS_PROFILE", "CLUSTER_NAME", "KOPS_STATE_STORE")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the caller's AWS/kops variables out of configuration tests."""
    for name in OVERRIDE_VARIABLES:
        # setenv first so teardown also removes values set during the test
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def make_config(tmp_path):
    """Build a Configuration from a dict written to a temporary YAML file."""

    def _make(data=None):
        data = data if data is not None else {}
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump(data))
        return Configuration(str(config_path))

    return _make


@pytest.fixture
def kops_config(make_config, tmp_path):
    """Configuration for a private-DNS kops cluster."""
    return make_config({
        "aws": {"region": "us-east-2"},
        "cluster": {
            "name": "dominionclass37.example.com",
            "dns_zone": "dominionclass37.example.com",
        },
        "state_store": {"bucket": "dominionclass37-state-store"},
        "ssh": {"private_key_path": str(tmp_path / "ssh" / "id_rsa")},
        "retry": {"max_attempts": 3, "delay_seconds": 0},
        "environment": {"file": str(tmp_path / "env")},
    })


@pytest.fixture
def gossip_config(make_config, tmp_path):
    """Configuration for a gossip-DNS kops cluster."""
    return make_config({
        "aws": {"region": "us-east-2"},
        "cluster": {"name": "dominionclass37.k8s.local", "dns": "gossip"},
        "state_store": {"bucket": "dominionclass37-state-store"},
        "ssh": {"private_key_path": str(tmp_path / "ssh" / "id_rsa")},
        "retry": {"max_attempts": 3, "delay_seconds": 0},
        "environment": {"file": str(tmp_path / "env")},
    })


@pytest.fixture
def mock_aws_client():
    """AWS client manager returning one mock client per service."""
    manager = Mock(spec=AWSClientManager)
    clients = {}

    def get_client(service_name, region_name=None):
        return clients.setdefault(service_name, Mock(name=service_name))

    manager.get_client.side_effect = get_client
    manager.clients = clients
    return manager


@pytest.fixture
def mock_runner():
    """Command runner that succeeds without running anything."""
    runner = Mock(spec=CommandRunner)
    runner.run.side_effect = lambda args, **kwargs: CommandResult(list(args), 0, "", "")
    runner.is_available.return_value = True
    return runner
