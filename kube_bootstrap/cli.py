#!/usr/bin/env python3
"""kube-bootstrap - Main Entry Point.

Single entry point for creating, validating and destroying kops clusters
on AWS and for setting up a kubeadm control plane on the local host.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from . import __version__
from .core.aws_client import AWSClientManager
from .core.command import CommandRunner
from .core.config import Configuration, ConfigurationError
from .core.pipeline import PipelineResult
from .core.retry import RetryExhaustedError
from .core.safety import SafetyManager
from .core.validator import PrerequisitesValidator
from .kops.cluster import KopsError
from .kops.orchestrator import DestroyAbortedError, KopsProvisioner
from .kubeadm.control_plane import ControlPlaneBootstrapper


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="kube-bootstrap",
        description="Provision, validate and tear down Kubernetes clusters",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s create                   # Create the kops cluster from config.yaml
  %(prog)s -c prod.yaml create --skip-install
  %(prog)s validate --cluster       # Check prerequisites and cluster health
  %(prog)s destroy                  # Delete cluster and state store (asks first)
  %(prog)s kubeadm                  # Set up this host as a control plane
        """,
    )

    parser.add_argument(
        "-c", "--config",
        dest="config_file",
        help="Path to configuration file (default: auto-detect config.yaml)",
    )
    parser.add_argument("--profile", help="AWS profile name to use for credentials")
    parser.add_argument("--region", help="AWS region to use (overrides configuration file)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version", action="version", version=f"kube-bootstrap v{__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create and validate a kops cluster")
    create.add_argument(
        "--skip-install",
        action="store_true",
        help="Do not install host packages, kops or kubectl",
    )

    destroy = subparsers.add_parser("destroy", help="Delete a kops cluster and its state store")
    destroy.add_argument(
        "--yes", action="store_true", help="Skip the confirmation prompt"
    )

    validate = subparsers.add_parser("validate", help="Validate prerequisites")
    validate.add_argument(
        "--cluster",
        action="store_true",
        help="Also validate the running kops cluster",
    )

    subparsers.add_parser("kubeadm", help="Set up this host as a kubeadm control plane")

    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    """Configure root logging for the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def display_banner() -> None:
    """Display application banner."""
    print(
        """
╔══════════════════════════════════════════════════════════════════════════════╗
║                              kube-bootstrap                                  ║
║                                                                              ║
║         Kubernetes cluster provisioning with kops and kubeadm               ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
    """
    )


def validate_prerequisites(validator: PrerequisitesValidator) -> bool:
    """Run prerequisite checks and print their results.

    Args:
        validator: Configured prerequisites validator

    Returns:
        True if all prerequisites are met, False otherwise
    """
    print("Validating prerequisites...")
    print("-" * 50)

    results = validator.validate_all()

    for result in results:
        status_symbol = {
            "PASSED": "✅",
            "FAILED": "❌",
            "WARNING": "⚠️",
            "SKIPPED": "⏭️",
        }.get(result.status.value, "❓")

        print(f"{status_symbol} {result.validator_name}: {result.message}")

        if result.remediation_steps:
            print("   Remediation steps:")
            for step in result.remediation_steps:
                print(f"   • {step}")
            print()

    print("-" * 50)

    is_ready = validator.is_ready_for_deployment(results)
    if is_ready:
        print("✅ All prerequisites validated successfully!")
    else:
        print("❌ Prerequisites validation failed.")
        print("   Please address the issues above before proceeding.")

    return is_ready


def report_result(result: PipelineResult) -> int:
    """Print a pipeline summary and map it to an exit code."""
    if result.succeeded:
        return EXIT_SUCCESS

    print(f"\n❌ {result.pipeline} failed at step '{result.failed_step}'")
    for error in result.errors:
        print(f"   {error}")
    if result.steps_completed:
        print(f"   Completed steps: {', '.join(result.steps_completed)}")
    return EXIT_FAILURE


def build_runner() -> CommandRunner:
    """Create a command runner; sudo is only used when not already root."""
    return CommandRunner(use_sudo=os.geteuid() != 0)


def run_kops_command(args: argparse.Namespace, config: Configuration) -> int:
    """Run the create, destroy or validate command."""
    try:
        aws_client = AWSClientManager(
            profile_name=config.get_profile_name(),
            region_name=config.get_region(),
        )
    except (BotoCoreError, ClientError) as e:
        print(f"❌ AWS client initialization failed: {e}")
        return EXIT_FAILURE

    runner = build_runner()
    provisioner = KopsProvisioner(config, aws_client, runner)

    if args.command == "destroy":
        safety_manager = SafetyManager(enable_confirmations=not args.yes)
        try:
            return report_result(provisioner.destroy(safety_manager))
        except DestroyAbortedError:
            return EXIT_FAILURE

    install_tools = args.command == "create" and not args.skip_install
    validator = PrerequisitesValidator.for_kops(config, aws_client, runner, install_tools)
    if not validate_prerequisites(validator):
        return EXIT_FAILURE

    if args.command == "create":
        return report_result(provisioner.create(install_tools=install_tools))

    if args.cluster:
        try:
            provisioner.cluster.validate_with_retry()
        except (RetryExhaustedError, KopsError) as e:
            print(f"❌ {e}")
            return EXIT_FAILURE
        print("✅ Cluster is healthy")

    return EXIT_SUCCESS


def run_kubeadm_command(config: Configuration) -> int:
    """Set up the local host as a kubeadm control plane."""
    runner = build_runner()
    if not validate_prerequisites(PrerequisitesValidator.for_kubeadm(runner)):
        return EXIT_FAILURE
    return report_result(ControlPlaneBootstrapper(config, runner).run())


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    try:
        args = parse_arguments(argv)
        configure_logging(args.verbose)
        display_banner()

        if args.region:
            os.environ["AWS_REGION"] = args.region
        if args.profile:
            os.environ["AWS_PROFILE"] = args.profile

        try:
            config = Configuration(args.config_file)
        except ConfigurationError as e:
            print(f"❌ Configuration error: {e}")
            return EXIT_FAILURE

        try:
            if args.command == "kubeadm":
                return run_kubeadm_command(config)
            return run_kops_command(args, config)
        except ConfigurationError as e:
            print(f"❌ Configuration error: {e}")
            return EXIT_FAILURE

    except KeyboardInterrupt:
        print("\n\n👋 Operation cancelled by user.")
        return EXIT_INTERRUPTED

    except Exception as e:
        logging.getLogger(__name__).debug("Unexpected error", exc_info=True)
        print(f"\n❌ Unexpected error: {e}")
        print("   Please check your configuration and try again.")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
