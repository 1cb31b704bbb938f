"""Create-if-absent helper.

Before creating an external resource, probe whether it already exists
and reuse its identifier. A failing probe is an error in its own right:
it is never read as "the resource does not exist".
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class IdempotencyError(Exception):
    """Raised when a create-if-absent operation cannot complete."""

    pass


class ProbeError(IdempotencyError):
    """Raised when the existence probe itself fails."""

    pass


@dataclass
class EnsureResult:
    """Identifier of the ensured resource and whether it was created."""

    identifier: str
    created: bool


def ensure_exists(
    probe: Callable[[], Optional[str]],
    create: Callable[[], str],
    description: str,
) -> EnsureResult:
    """Return the existing resource identifier, creating the resource if absent.

    Args:
        probe: Returns the existing identifier, or None/"" when absent
        create: Creates the resource and returns its new identifier
        description: Human readable resource name for log lines

    Returns:
        EnsureResult with the identifier and a created flag

    Raises:
        ProbeError: When the probe raises
        IdempotencyError: When creation returns no identifier
    """
    try:
        existing = probe()
    except Exception as e:
        raise ProbeError(f"Unable to determine whether {description} exists: {e}") from e

    if existing:
        logger.info(f"{description} already exists: {existing}")
        return EnsureResult(identifier=existing, created=False)

    logger.info(f"{description} not found, creating")
    identifier = create()
    if not identifier:
        raise IdempotencyError(f"Creating {description} returned no identifier")

    logger.info(f"{description} created: {identifier}")
    return EnsureResult(identifier=identifier, created=True)
