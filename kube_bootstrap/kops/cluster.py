"""Thin wrapper over the kops command line.

Every call passes ``--name`` and ``--state`` explicitly and runs with
the kops environment from the configuration, so nothing depends on the
invoking shell having exported NAME or KOPS_STATE_STORE.
"""

import logging
from pathlib import Path
from typing import List, Optional

from ..core.command import CommandError, CommandRunner
from ..core.config import Configuration
from ..core.environment import kops_environment
from ..core.idempotency import EnsureResult, ensure_exists
from ..core.retry import RetryOutcome, run_with_retry


logger = logging.getLogger(__name__)


class KopsError(Exception):
    """Raised when a kops command fails."""

    pass


class KopsCluster:
    """kops operations for the configured cluster."""

    def __init__(self, config: Configuration, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner
        self.name = config.get_cluster_name()
        self.state = config.get_state_store_url()
        self.env = kops_environment(config)

    def _kops(self, *args: str, check: bool = True, capture_output: bool = False):
        command = ["kops"] + list(args) + ["--name", self.name, "--state", self.state]
        try:
            return self.runner.run(
                command, check=check, capture_output=capture_output, env=self.env
            )
        except CommandError as e:
            raise KopsError(str(e)) from e

    def exists(self) -> bool:
        """Check whether the cluster configuration is in the state store."""
        result = self._kops("get", "cluster", check=False, capture_output=True)
        if result.succeeded:
            return True
        # kops exits 1 with this message for an unknown cluster
        if "not found" in (result.stderr + result.stdout).lower():
            return False
        raise KopsError(
            f"Unable to query cluster '{self.name}' (exit status {result.returncode}): "
            f"{result.stderr.strip()}"
        )

    def create_arguments(self, public_key_path: Path) -> List[str]:
        """Build the 'kops create cluster' arguments from configuration."""
        args = [
            "create", "cluster",
            "--cloud=aws",
            "--zones", ",".join(self.config.get_zones()),
            "--control-plane-size", self.config.get("cluster.control_plane_size"),
            f"--node-count={self.config.get('cluster.node_count')}",
            "--node-size", self.config.get("cluster.node_size"),
            "--kubernetes-version", str(self.config.get("cluster.kubernetes_version")),
            "--ssh-public-key", str(public_key_path),
        ]

        networking = self.config.get("cluster.networking")
        if networking:
            args += ["--networking", networking]

        volume_size = self.config.get("cluster.control_plane_volume_size")
        if volume_size:
            args.append(f"--control-plane-volume-size={volume_size}")

        if self.config.get_dns_mode() == "private":
            args += ["--dns-zone", self.config.get_dns_zone()]

        return args

    def create(self, public_key_path: Path) -> EnsureResult:
        """Create the cluster configuration unless it already exists."""

        def create_cluster() -> str:
            print(f"Creating Kubernetes cluster {self.name} configuration with kops...")
            self._kops(*self.create_arguments(public_key_path))
            return self.name

        return ensure_exists(
            probe=lambda: self.name if self.exists() else None,
            create=create_cluster,
            description=f"kops cluster '{self.name}'",
        )

    def update(self) -> None:
        """Build the cloud resources for the cluster."""
        print("Building the cluster...")
        self._kops("update", "cluster", "--yes", "--admin")

    def export_kubecfg(self) -> None:
        """Write admin credentials for the cluster into the kubeconfig."""
        print("Setting up kubectl access to the cluster...")
        self._kops("export", "kubecfg", "--admin")

    def validate(self, wait: Optional[str] = None) -> bool:
        """Run one cluster validation.

        Args:
            wait: Duration kops keeps retrying internally, e.g. '15m'

        Returns:
            True if kops reports the cluster healthy
        """
        args = ["validate", "cluster"]
        if wait:
            args += ["--wait", wait]
        return self._kops(*args, check=False).succeeded

    def validate_with_retry(self) -> RetryOutcome:
        """Validate the cluster under the configured retry policy.

        Raises:
            RetryExhaustedError: When every validation attempt failed
        """
        print("Validating the cluster. This may take several minutes...")
        wait = self.config.get_validation_wait()
        return run_with_retry(
            lambda: self.validate(wait),
            self.config.get_retry_policy(),
            f"Validation of cluster '{self.name}'",
            retry_on=(KopsError,),
        )

    def delete(self) -> bool:
        """Delete the cluster and all of its cloud resources.

        Returns:
            True if kops deleted the cluster, False if it was already gone
        """
        if not self.exists():
            logger.info(f"Cluster {self.name} not found in {self.state}, nothing to delete")
            print(f"Cluster '{self.name}' does not exist. Skipping deletion.")
            return False

        print(f"Deleting Kubernetes cluster '{self.name}'...")
        self._kops("delete", "cluster", "--yes")
        return True

    def verify_deleted(self) -> None:
        """Confirm the cluster no longer validates.

        Raises:
            KopsError: When validation still succeeds
        """
        print("Verifying cluster deletion...")
        if self.validate():
            raise KopsError(f"Cluster '{self.name}' deletion may not have completed successfully")
        print(f"Cluster '{self.name}' successfully deleted.")
