"""Prerequisites validation framework.

This module checks, before any workflow touches infrastructure, that AWS
credentials work, that the external tools the workflow shells out to are
installed, and that the cluster naming matches the selected DNS mode.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Any, Sequence
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from .aws_client import AWSClientManager
from .command import CommandRunner
from .config import Configuration, GOSSIP_SUFFIX


class ValidationStatus(Enum):
    """Validation result status."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    WARNING = "WARNING"
    SKIPPED = "SKIPPED"


@dataclass
class ValidationResult:
    """Result of a validation check."""

    validator_name: str
    status: ValidationStatus
    message: str
    remediation_steps: Optional[List[str]] = None
    details: Optional[Dict[str, Any]] = None


class BaseValidator(ABC):
    """Base class for all validators."""

    @abstractmethod
    def validate(self) -> ValidationResult:
        """Perform validation check.

        Returns:
            ValidationResult with status and details
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Get validator name."""
        pass


class CredentialsValidator(BaseValidator):
    """Validates AWS credentials."""

    def __init__(self, aws_client: Optional[AWSClientManager]) -> None:
        self.aws_client = aws_client

    @property
    def name(self) -> str:
        """Get validator name."""
        return "AWS Credentials"

    def validate(self) -> ValidationResult:
        """Validate AWS credentials are working.

        Returns:
            ValidationResult indicating credential status
        """
        if self.aws_client is None:
            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.SKIPPED,
                message="No AWS access required",
            )

        try:
            account_id = self.aws_client.get_account_id()
            region = self.aws_client.get_current_region()

            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.PASSED,
                message=f"AWS credentials valid for account {account_id} in region {region}",
                details={"account_id": account_id, "region": region},
            )

        except NoCredentialsError as e:
            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.FAILED,
                message=str(e),
                remediation_steps=[
                    "Configure AWS credentials using one of these methods:",
                    "1. AWS CLI: Run 'aws configure'",
                    "2. Environment variables: Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY",
                    "3. IAM roles: Attach an instance profile to this host",
                    "4. AWS profiles: Set AWS_PROFILE or pass --profile",
                ],
            )
        except (ClientError, BotoCoreError) as e:
            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.FAILED,
                message=f"Credential validation failed: {str(e)}",
                remediation_steps=[
                    "Check AWS credential configuration",
                    "Verify IAM permissions for STS GetCallerIdentity",
                ],
            )


class ToolsValidator(BaseValidator):
    """Validates that required command-line tools are on PATH."""

    def __init__(
        self,
        runner: CommandRunner,
        tools: Sequence[str],
        installable: Sequence[str] = (),
    ) -> None:
        """Initialize tools validator.

        Args:
            runner: Command runner used to look tools up
            tools: Programs the workflow needs
            installable: Programs the workflow installs itself; missing
                         ones only produce a warning
        """
        self.runner = runner
        self.tools = list(tools)
        self.installable = set(installable)

    @property
    def name(self) -> str:
        """Get validator name."""
        return "Command-line Tools"

    def validate(self) -> ValidationResult:
        """Check every tool is installed.

        Returns:
            ValidationResult listing missing tools
        """
        missing = [tool for tool in self.tools if not self.runner.is_available(tool)]
        blocking = [tool for tool in missing if tool not in self.installable]

        if blocking:
            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.FAILED,
                message=f"Required tools not found on PATH: {', '.join(blocking)}",
                remediation_steps=[f"Install '{tool}' and make sure it is on PATH" for tool in blocking],
                details={"missing": missing},
            )

        if missing:
            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.WARNING,
                message=f"Tools will be installed: {', '.join(missing)}",
                details={"missing": missing},
            )

        return ValidationResult(
            validator_name=self.name,
            status=ValidationStatus.PASSED,
            message=f"All required tools available: {', '.join(self.tools)}",
        )


class ClusterNamingValidator(BaseValidator):
    """Validates the cluster name against the DNS mode."""

    def __init__(self, config: Configuration) -> None:
        self.config = config

    @property
    def name(self) -> str:
        """Get validator name."""
        return "Cluster Naming"

    def validate(self) -> ValidationResult:
        """Gossip clusters need a .k8s.local name; private DNS ones must not use it."""
        cluster_name = self.config.get_cluster_name() or ""
        dns_mode = self.config.get_dns_mode()
        is_gossip_name = cluster_name.endswith(GOSSIP_SUFFIX)

        if dns_mode == "gossip" and not is_gossip_name:
            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.FAILED,
                message=f"Gossip DNS requires a cluster name ending in '{GOSSIP_SUFFIX}'",
                remediation_steps=[
                    f"Rename the cluster to '<name>{GOSSIP_SUFFIX}'",
                    "Or set cluster.dns to 'private' and provide cluster.dns_zone",
                ],
            )

        if dns_mode == "private" and is_gossip_name and not self.config.get("cluster.dns_zone"):
            return ValidationResult(
                validator_name=self.name,
                status=ValidationStatus.WARNING,
                message=(
                    f"Private DNS zone '{cluster_name}' uses the gossip suffix; "
                    "consider setting cluster.dns_zone explicitly"
                ),
            )

        return ValidationResult(
            validator_name=self.name,
            status=ValidationStatus.PASSED,
            message=f"Cluster '{cluster_name}' uses {dns_mode} DNS",
        )


class PrerequisitesValidator:
    """Main validator orchestrator for all prerequisites."""

    KOPS_TOOLS = ["kops", "kubectl", "ssh-keygen"]
    KUBEADM_TOOLS = ["apt-get", "systemctl", "gpg"]

    def __init__(self, validators: List[BaseValidator]) -> None:
        self.validators = validators

    @classmethod
    def for_kops(
        cls,
        config: Configuration,
        aws_client: Optional[AWSClientManager],
        runner: CommandRunner,
        install_tools: bool = True,
    ) -> "PrerequisitesValidator":
        """Build the validator set for the kops workflows."""
        installable = ["kops", "kubectl"] if install_tools else []
        return cls(
            [
                CredentialsValidator(aws_client),
                ToolsValidator(runner, cls.KOPS_TOOLS, installable),
                ClusterNamingValidator(config),
            ]
        )

    @classmethod
    def for_kubeadm(cls, runner: CommandRunner) -> "PrerequisitesValidator":
        """Build the validator set for the kubeadm workflow."""
        tools = list(cls.KUBEADM_TOOLS)
        # root runs commands directly
        if runner.use_sudo:
            tools.insert(0, "sudo")
        return cls([ToolsValidator(runner, tools)])

    def validate_all(self) -> List[ValidationResult]:
        """Run all validation checks.

        Returns:
            List of ValidationResult objects
        """
        results = []

        for validator in self.validators:
            try:
                result = validator.validate()
            except Exception as e:
                result = ValidationResult(
                    validator_name=validator.name,
                    status=ValidationStatus.FAILED,
                    message=f"Validation error: {str(e)}",
                )
            results.append(result)

            # Nothing else can be checked reliably without credentials
            if (
                result.status == ValidationStatus.FAILED
                and validator.name == "AWS Credentials"
            ):
                break

        return results

    def is_ready_for_deployment(self, results: List[ValidationResult]) -> bool:
        """Check if all prerequisites are met for deployment.

        Args:
            results: List of validation results

        Returns:
            True if ready for deployment, False otherwise
        """
        for result in results:
            if result.status == ValidationStatus.FAILED:
                return False
        return True
