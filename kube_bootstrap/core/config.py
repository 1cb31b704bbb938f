"""Configuration management for cluster provisioning.

This module handles YAML configuration loading, default values,
validation, and environment variable override support. Region, bucket,
cluster name, node sizing, versions and the retry budget are all read
from here rather than fixed in code.
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
import yaml

from .retry import RetryPolicy


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


DNS_MODES = ("private", "gossip")

GOSSIP_SUFFIX = ".k8s.local"

DEFAULTS: Dict[str, Any] = {
    "aws": {
        "region": "us-east-2",
    },
    "cluster": {
        "kubernetes_version": "1.29.6",
        "node_count": 2,
        "node_size": "t3.medium",
        "control_plane_size": "t3.medium",
        "networking": "calico",
        "dns": "private",
    },
    "state_store": {
        "versioning": True,
        "encryption": "AES256",
    },
    "ssh": {
        "private_key_path": "~/.ssh/id_rsa",
        "key_type": "rsa",
        "key_bits": 4096,
    },
    "retry": {
        "max_attempts": 3,
        "delay_seconds": 10,
    },
    "validation": {
        "wait": "15m",
    },
    "tools": {
        "package_manager": "yum",
        "packages": ["jq", "curl", "unzip", "awscli"],
        "install_dir": "/usr/local/bin",
        "arch": "amd64",
        "kops_version": "latest",
    },
    "environment": {
        "file": "~/.kube-bootstrap/env",
    },
    "kubeadm": {
        "hostname": "kubemaster",
        "pod_network_cidr": "10.244.0.0/16",
        "repository_version": "v1.29",
        "network_manifest": (
            "https://raw.githubusercontent.com/coreos/flannel/master/"
            "Documentation/kube-flannel.yml"
        ),
        "prerequisite_packages": [
            "apt-transport-https",
            "ca-certificates",
            "curl",
            "software-properties-common",
            "gnupg2",
        ],
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Configuration:
    """Configuration management with YAML loading and validation.

    This class loads configuration from a YAML file, layers it over the
    built-in defaults, applies environment variable overrides and
    validates the result.
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_path: Optional path to configuration file.
                        If None, auto-detects config.yaml in current directory.

        Raises:
            ConfigurationError: When configuration file is invalid
        """
        self._config: Dict[str, Any] = {}
        self._config_path = self._resolve_config_path(config_path)
        self._load_configuration()
        self._apply_environment_overrides()
        self._validate_configuration()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path.

        Args:
            config_path: Optional path to configuration file

        Returns:
            Resolved Path object to configuration file

        Raises:
            ConfigurationError: When configuration file not found
        """
        if config_path:
            path = Path(config_path)
        else:
            path = Path("config.yaml")
            if not path.exists():
                path = Path("config/settings.yaml")

        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}. "
                "Please create a configuration file or specify a valid path."
            )

        return path

    def _load_configuration(self) -> None:
        """Load configuration from YAML file.

        Raises:
            ConfigurationError: When YAML file is invalid
        """
        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file {self._config_path}: {e}"
            )
        except IOError as e:
            raise ConfigurationError(
                f"Unable to read configuration file {self._config_path}: {e}"
            )

        if not isinstance(loaded, dict):
            raise ConfigurationError(
                f"Configuration file {self._config_path} must contain a mapping"
            )

        self._config = _merge(DEFAULTS, loaded)

    def _apply_environment_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        if "AWS_REGION" in os.environ:
            self._set_nested_value("aws.region", os.environ["AWS_REGION"])

        if "AWS_PROFILE" in os.environ:
            self._set_nested_value("aws.profile_name", os.environ["AWS_PROFILE"])

        if "CLUSTER_NAME" in os.environ:
            self._set_nested_value("cluster.name", os.environ["CLUSTER_NAME"])

        if "KOPS_STATE_STORE" in os.environ:
            bucket = os.environ["KOPS_STATE_STORE"]
            if bucket.startswith("s3://"):
                bucket = bucket[len("s3://"):]
            self._set_nested_value("state_store.bucket", bucket.rstrip("/"))

    def _validate_configuration(self) -> None:
        """Validate field types and allowed values.

        Raises:
            ConfigurationError: When a field is malformed
        """
        region = self.get("aws.region")
        if not isinstance(region, str) or not region:
            raise ConfigurationError("Field 'aws.region' must be a non-empty string")

        dns_mode = self.get("cluster.dns")
        if dns_mode not in DNS_MODES:
            raise ConfigurationError(
                f"Field 'cluster.dns' must be one of {', '.join(DNS_MODES)}, "
                f"got '{dns_mode}'"
            )

        node_count = self.get("cluster.node_count")
        if not isinstance(node_count, int) or isinstance(node_count, bool) or node_count < 1:
            raise ConfigurationError("Field 'cluster.node_count' must be a positive integer")

        for key_path in ("cluster.kubernetes_version", "tools.kubectl_version"):
            version = self.get(key_path)
            # unquoted YAML versions such as 1.30 load as floats
            if version is not None and not isinstance(version, str):
                raise ConfigurationError(
                    f"Field '{key_path}' must be a quoted string, got {version!r}"
                )

        zones = self.get("cluster.zones")
        if zones is not None and (not isinstance(zones, list) or not zones):
            raise ConfigurationError("Field 'cluster.zones' must be a non-empty list")

        try:
            self.get_retry_policy()
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid 'retry' section: {e}")

    def _set_nested_value(self, key_path: str, value: Any) -> None:
        """Set nested configuration value using dot notation.

        Args:
            key_path: Dot-separated key path (e.g., 'aws.region')
            value: Value to set
        """
        keys = key_path.split(".")
        current = self._config

        for key in keys[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key_path: Dot-separated key path (e.g., 'cluster.name')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        current = self._config

        try:
            for key in keys:
                current = current[key]
            return current
        except (KeyError, TypeError):
            return default

    def require(self, *key_paths: str) -> None:
        """Ensure the given fields are set.

        Workflows call this for the fields they need, so a kubeadm-only
        configuration does not have to describe a kops cluster.

        Raises:
            ConfigurationError: When any field is missing or empty
        """
        missing = [path for path in key_paths if self.get(path) in (None, "")]
        if missing:
            raise ConfigurationError(
                "Required configuration field(s) missing: " + ", ".join(missing)
            )

    def get_region(self) -> str:
        """Get AWS region."""
        return self.get("aws.region")

    def get_profile_name(self) -> Optional[str]:
        """Get AWS profile name, if any."""
        return self.get("aws.profile_name")

    def get_cluster_name(self) -> str:
        """Get cluster name."""
        return self.get("cluster.name")

    def get_zones(self) -> List[str]:
        """Get availability zones for the cluster.

        Returns:
            Configured zones, or zones a/b/c of the configured region
        """
        zones = self.get("cluster.zones")
        if zones:
            return list(zones)
        region = self.get_region()
        return [f"{region}{suffix}" for suffix in ("a", "b", "c")]

    def get_dns_mode(self) -> str:
        """Get DNS mode ('private' or 'gossip')."""
        return self.get("cluster.dns")

    def get_dns_zone(self) -> str:
        """Get DNS zone name; defaults to the cluster name."""
        return self.get("cluster.dns_zone") or self.get_cluster_name()

    def get_state_store_bucket(self) -> str:
        """Get state store bucket name."""
        return self.get("state_store.bucket")

    def get_state_store_url(self) -> str:
        """Get state store URL as understood by kops."""
        return f"s3://{self.get_state_store_bucket()}"

    def get_retry_policy(self) -> RetryPolicy:
        """Get retry policy for flaky operations."""
        return RetryPolicy(
            max_attempts=self.get("retry.max_attempts"),
            delay_seconds=self.get("retry.delay_seconds"),
        )

    def get_validation_wait(self) -> str:
        """Get the wait duration passed to cluster validation."""
        return str(self.get("validation.wait"))

    def get_ssh_private_key_path(self) -> Path:
        """Get SSH private key path with the home directory expanded."""
        return Path(self.get("ssh.private_key_path")).expanduser()

    def get_environment_file(self) -> Path:
        """Get path of the persisted environment file."""
        return Path(self.get("environment.file")).expanduser()
