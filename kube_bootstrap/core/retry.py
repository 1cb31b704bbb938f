"""Bounded retry with a fixed delay between attempts.

Used for operations that talk to eventually-consistent external systems,
such as associating a VPC with a hosted zone right after the VPC was
created, or validating a cluster whose nodes are still booting. The
wrapped operation must be safe to repeat: a failed attempt is never
rolled back.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type


logger = logging.getLogger(__name__)


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retried operation failed."""

    def __init__(
        self,
        description: str,
        attempts: int,
        last_error: Optional[BaseException] = None,
    ) -> None:
        message = f"{description} failed after {attempts} attempt(s)"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and fixed delay for a retried operation."""

    max_attempts: int = 3
    delay_seconds: float = 10

    def __post_init__(self) -> None:
        if not isinstance(self.max_attempts, int) or isinstance(self.max_attempts, bool):
            raise TypeError("max_attempts must be an integer")
        if not isinstance(self.delay_seconds, (int, float)) or isinstance(
            self.delay_seconds, bool
        ):
            raise TypeError("delay_seconds must be a number")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")


@dataclass
class RetryOutcome:
    """Result of a retried operation."""

    succeeded: bool
    attempts: int
    result: Any = None


def run_with_retry(
    operation: Callable[[], Any],
    policy: RetryPolicy,
    description: str,
    is_success: Callable[[Any], bool] = bool,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    fatal: bool = True,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome:
    """Run an operation until it succeeds or the attempt budget runs out.

    Args:
        operation: Callable performing one attempt
        policy: Attempt budget and delay
        description: Human readable name used in log lines and errors
        is_success: Predicate applied to the operation's return value
        retry_on: Exception types counted as a failed attempt; anything
                  else propagates immediately
        fatal: Raise on exhaustion instead of returning a failed outcome
        sleep: Sleep function, injectable for tests

    Returns:
        RetryOutcome of the first successful attempt, or of the last
        attempt when not fatal

    Raises:
        RetryExhaustedError: When all attempts failed and fatal is True
    """
    result = None
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = operation()
            last_error = None
            if is_success(result):
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}")
                return RetryOutcome(succeeded=True, attempts=attempt, result=result)
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} of {description} failed"
            )
        except retry_on as e:
            last_error = e
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} of {description} failed: {e}"
            )

        if attempt < policy.max_attempts:
            logger.info(f"Retrying {description} in {policy.delay_seconds} seconds...")
            sleep(policy.delay_seconds)

    if fatal:
        logger.error(f"{description} exhausted {policy.max_attempts} attempt(s)")
        raise RetryExhaustedError(description, policy.max_attempts, last_error)

    logger.warning(
        f"{description} exhausted {policy.max_attempts} attempt(s), continuing"
    )
    return RetryOutcome(succeeded=False, attempts=policy.max_attempts, result=result)
