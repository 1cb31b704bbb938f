"""kops cluster provisioning and teardown orchestration.

This module provides the KopsProvisioner class, which assembles the
create and destroy workflows as pipelines of named steps: tool
installation, state store preparation, SSH keys, cluster creation, VPC
and hosted zone configuration, and validation; or deletion and
verification of the cluster and its state store.
"""

from typing import Dict, Any, Optional
import logging

from ..core.aws_client import AWSClientManager
from ..core.command import CommandRunner
from ..core.config import Configuration
from ..core.environment import EnvironmentFile, kops_environment
from ..core.pipeline import Pipeline, PipelineResult
from ..core.safety import SafetyManager
from ..provisioning.ssh_keys import ensure_ssh_key
from ..provisioning.tools import ToolInstaller
from .cluster import KopsCluster
from .network import ClusterNetworkManager
from .state_store import StateStoreManager


logger = logging.getLogger(__name__)


class KopsProvisioningError(Exception):
    """Raised when a kops workflow cannot be started."""
    pass


class DestroyAbortedError(KopsProvisioningError):
    """Raised when the operator declines the teardown confirmation."""
    pass


class KopsProvisioner:
    """Orchestrates kops cluster creation and teardown."""

    REQUIRED_FIELDS = ('cluster.name', 'state_store.bucket')

    def __init__(self, config: Configuration, aws_client: AWSClientManager,
                 runner: Optional[CommandRunner] = None) -> None:
        """Initialize the kops provisioner.

        Args:
            config: Configuration instance
            aws_client: AWS client manager instance
            runner: Command runner for external tools
        """
        config.require(*self.REQUIRED_FIELDS)

        self.config = config
        self.aws_client = aws_client
        self.runner = runner or CommandRunner()

        self.state_store = StateStoreManager(config, aws_client)
        self.network = ClusterNetworkManager(config, aws_client)
        self.cluster = KopsCluster(config, self.runner)
        self.tool_installer = ToolInstaller(config, self.runner)

        # Values produced by one step and consumed by later ones
        self.state: Dict[str, Any] = {
            'public_key_path': None,
            'vpc_id': None,
            'hosted_zone_id': None,
        }

    @property
    def uses_private_dns(self) -> bool:
        return self.config.get_dns_mode() == 'private'

    def build_create_pipeline(self, install_tools: bool = True) -> Pipeline:
        """Assemble the cluster creation steps.

        Args:
            install_tools: Install host packages, kops and kubectl first

        Returns:
            Pipeline ready to run
        """
        pipeline = Pipeline(f"kops cluster creation for {self.config.get_cluster_name()}")

        if install_tools:
            pipeline.add_step('install_tools', "Installing kops, kubectl and prerequisites",
                              self.tool_installer.install_all)

        pipeline.add_step('state_store', "Preparing S3 state store", self.state_store.prepare)
        pipeline.add_step('environment', "Persisting kops environment", self._persist_environment)
        pipeline.add_step('ssh_key', "Ensuring SSH key pair", self._ensure_ssh_key)
        pipeline.add_step('create_cluster', "Creating cluster configuration", self._create_cluster)
        pipeline.add_step('update_cluster', "Building cluster resources", self.cluster.update)

        if self.uses_private_dns:
            pipeline.add_step('configure_vpc_dns', "Configuring VPC DNS", self._configure_vpc_dns)

        pipeline.add_step('export_kubecfg', "Exporting kubeconfig", self.cluster.export_kubecfg)

        if self.uses_private_dns:
            pipeline.add_step('hosted_zone', "Ensuring private hosted zone", self._ensure_hosted_zone)
            pipeline.add_step('associate_hosted_zone', "Associating hosted zone with VPC",
                              self._associate_hosted_zone)

        pipeline.add_step('validate_cluster', "Validating cluster", self._validate_cluster)
        return pipeline

    def build_destroy_pipeline(self) -> Pipeline:
        """Assemble the teardown steps."""
        pipeline = Pipeline(f"kops cluster teardown for {self.config.get_cluster_name()}")
        pipeline.add_step('delete_cluster', "Deleting cluster", self._delete_cluster)
        pipeline.add_step('verify_cluster_deleted', "Verifying cluster deletion",
                          self.cluster.verify_deleted)
        pipeline.add_step('delete_state_store', "Deleting S3 state store",
                          self.state_store.delete_bucket)
        pipeline.add_step('verify_state_store_deleted', "Verifying state store deletion",
                          self.state_store.verify_deleted)
        return pipeline

    def create(self, install_tools: bool = True) -> PipelineResult:
        """Run the cluster creation workflow."""
        result = self.build_create_pipeline(install_tools).run()
        if result.succeeded:
            print(f"Cluster {self.config.get_cluster_name()} deployed and validated successfully!")
        return result

    def destroy(self, safety_manager: SafetyManager) -> PipelineResult:
        """Confirm with the operator, then run the teardown workflow.

        Raises:
            DestroyAbortedError: When the operator does not confirm; no
                                 destructive call has been made
        """
        request = safety_manager.create_destroy_confirmation(
            self.config.get_cluster_name(), self.config.get_state_store_bucket()
        )
        if not safety_manager.request_confirmation(request):
            raise DestroyAbortedError("Teardown cancelled by user")

        result = self.build_destroy_pipeline().run()
        if result.succeeded:
            print(f"All resources associated with the kops cluster "
                  f"'{self.config.get_cluster_name()}' have been destroyed.")
        return result

    def _persist_environment(self) -> str:
        values = kops_environment(self.config)
        path = EnvironmentFile(self.config.get_environment_file()).write(values)
        print(f"kops environment saved; run 'source {path}' in new shells")
        return str(path)

    def _ensure_ssh_key(self) -> str:
        public_key = ensure_ssh_key(
            self.runner,
            self.config.get_ssh_private_key_path(),
            key_type=self.config.get('ssh.key_type'),
            key_bits=self.config.get('ssh.key_bits'),
        )
        self.state['public_key_path'] = public_key
        return str(public_key)

    def _create_cluster(self) -> bool:
        if self.state['public_key_path'] is None:
            raise KopsProvisioningError("SSH public key has not been prepared")
        return self.cluster.create(self.state['public_key_path']).created

    def _configure_vpc_dns(self) -> str:
        self.state['vpc_id'] = self.network.configure_vpc_dns()
        return self.state['vpc_id']

    def _ensure_hosted_zone(self) -> str:
        result = self.network.ensure_private_zone(self.state['vpc_id'])
        self.state['hosted_zone_id'] = result.identifier
        return result.identifier

    def _associate_hosted_zone(self) -> Dict[str, Any]:
        return self.network.associate_vpc(self.state['hosted_zone_id'], self.state['vpc_id'])

    def _delete_cluster(self) -> bool:
        # Without a state store kops has nothing to look the cluster up in
        if not self.state_store.bucket_exists():
            print(f"State store '{self.config.get_state_store_bucket()}' not found. "
                  "Skipping cluster deletion.")
            return False
        return self.cluster.delete()

    def _validate_cluster(self) -> int:
        return self.cluster.validate_with_retry().attempts
