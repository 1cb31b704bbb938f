"""Confirmation gate for destructive operations.

Tearing down a cluster and its state store cannot be undone, so the
operator has to type the literal word ``yes`` before anything is deleted.
Every decision is recorded in an in-memory audit log.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from dataclasses import dataclass


CONFIRMATION_WORD = "yes"


@dataclass
class ConfirmationRequest:
    """Request for user confirmation."""

    operation: str
    description: str
    warnings: Optional[List[str]] = None


class SafetyManager:
    """Safety and confirmation manager for destructive operations."""

    def __init__(self, enable_confirmations: bool = True) -> None:
        """Initialize safety manager.

        Args:
            enable_confirmations: Whether to enable confirmation prompts
                                 (disabled by --yes and in automated tests)
        """
        self.enable_confirmations = enable_confirmations
        self.audit_log: List[Dict[str, Any]] = []

    def request_confirmation(self, request: ConfirmationRequest) -> bool:
        """Request user confirmation for an operation.

        Args:
            request: ConfirmationRequest with operation details

        Returns:
            True only if the user typed 'yes', False otherwise
        """
        if not self.enable_confirmations:
            self._log_confirmation(request, True, "Auto-confirmed (--yes)")
            return True

        print("\n" + "=" * 60)
        print("CONFIRMATION REQUIRED")
        print("=" * 60)
        print(f"Operation: {request.operation}")
        print(f"WARNING: {request.description}")

        if request.warnings:
            print("\n⚠️  WARNINGS:")
            for warning in request.warnings:
                print(f"   • {warning}")

        confirmed = self._get_user_confirmation()

        self._log_confirmation(
            request,
            confirmed,
            "User confirmed" if confirmed else "User declined",
        )

        if not confirmed:
            print("Aborting.")

        return confirmed

    def _get_user_confirmation(self) -> bool:
        """Read one answer from the user.

        Returns:
            True if the answer is exactly 'yes'
        """
        print("\nAre you sure you want to proceed? (yes/no): ", end="")
        try:
            response = input().strip()
        except EOFError:
            return False
        return response == CONFIRMATION_WORD

    def _log_confirmation(
        self, request: ConfirmationRequest, confirmed: bool, reason: str
    ) -> None:
        """Log confirmation request and result.

        Args:
            request: The confirmation request
            confirmed: Whether the operation was confirmed
            reason: Reason for the confirmation result
        """
        self.audit_log.append(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "operation": request.operation,
                "confirmed": confirmed,
                "reason": reason,
                "description": request.description,
            }
        )

    def get_audit_log(self) -> List[Dict[str, Any]]:
        """Get complete audit log of confirmations.

        Returns:
            List of audit log entries
        """
        return self.audit_log.copy()

    def create_destroy_confirmation(
        self, cluster_name: str, bucket: str
    ) -> ConfirmationRequest:
        """Create confirmation request for tearing down a kops cluster.

        Args:
            cluster_name: Cluster to delete
            bucket: State store bucket to delete

        Returns:
            ConfirmationRequest for the teardown
        """
        return ConfirmationRequest(
            operation="Destroy kops cluster",
            description=(
                f"This will delete the Kubernetes cluster '{cluster_name}' "
                f"and the S3 state store bucket '{bucket}'."
            ),
            warnings=[
                "All cluster instances, volumes and networking will be removed",
                "Every object version in the state store bucket will be deleted",
            ],
        )
