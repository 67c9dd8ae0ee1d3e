# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License"). You
# may not use this file except in compliance with the License. A copy of
# the License is located at
#
#     http://aws.amazon.com/apache2.0/
#
# or in the "license" file accompanying this file. This file is
# distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF
# ANY KIND, either express or implied. See the License for the specific
# language governing permissions and limitations under the License.
"""
Bounded retry with exponential backoff.

Both the Terraform runner and the AWS helpers retry through
``retry_with_backoff``. Callers decide what is retryable by passing a
``classify`` callable that maps an exception to a reason string, or to
``None`` when the exception must be raised immediately.
"""

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_SECONDS = 1
DEFAULT_MAX_DELAY_SECONDS = 30


class RetriesExhausted(Exception):
    """Raised when a retryable error persists after the last attempt."""

    def __init__(self, reason: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"{reason}: still failing after {attempts} attempts ({last_error})"
        )
        self.reason = reason
        self.attempts = attempts
        self.last_error = last_error


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
) -> float:
    """
    Calculate exponential backoff delay for retries.

    Args:
        attempt: The current retry attempt number (0-indexed).
        base_delay: Base delay in seconds.
        max_delay: Maximum delay in seconds.

    Returns:
        The delay in seconds before the next retry.
    """
    delay = base_delay * (2**attempt)
    return min(delay, max_delay)


def retry_with_backoff(
    func: Callable[[], T],
    classify: Callable[[BaseException], Optional[str]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Execute a function with exponential backoff retry logic.

    Args:
        func: The function to execute.
        classify: Returns a human-readable reason if the error is retryable,
            ``None`` otherwise.
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds between retries.
        max_delay: Maximum delay in seconds between retries.
        retry_on: Exception types handed to ``classify``. Anything else
            propagates untouched.

    Returns:
        The result of the function call.

    Raises:
        RetriesExhausted: If a retryable error persists after all retries.
        Exception: The original error when it is not retryable.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be non-negative, got {max_retries}")

    for attempt in range(max_retries + 1):
        try:
            return func()
        except retry_on as e:
            reason = classify(e)
            if reason is None:
                raise
            if attempt >= max_retries:
                raise RetriesExhausted(reason, attempt + 1, e) from e

            delay = calculate_backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"Retryable error encountered ({reason}). "
                f"Retrying in {delay:.1f} seconds (attempt {attempt + 1}/{max_retries})"
            )
            time.sleep(delay)

    # Not reached: the last attempt either returns or raises
    raise AssertionError("retry loop exited without a result")
