"""
Exponential backoff for retryable recognition failures.
"""

import time
from typing import Callable, Optional, TypeVar

from expense_reconciliation.error_messages import is_retryable
from expense_reconciliation.models import FileProcessingError, RecognitionError

import logging
logger = logging.getLogger(__name__)

T = TypeVar('T')


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before retry number ``attempt + 1`` (attempt counts from 0)."""
    return base_delay * (2 ** attempt)


def retry_with_backoff(operation: Callable[[], T], max_retries: int = 3, base_delay: float = 1.0,
                       sleep: Callable[[float], None] = time.sleep,
                       description: Optional[str] = None) -> T:
    """
    Run ``operation``, retrying the errors ``is_retryable`` accepts.

    The operation runs once, then up to ``max_retries`` more times while it
    keeps failing with a retryable error, sleeping ``base_delay * 2**n``
    before retry ``n + 1``. Non-retryable errors propagate immediately.

    Args:
        operation: Zero-argument callable to run
        max_retries: Number of retries after the first attempt
        base_delay: Delay in seconds before the first retry
        sleep: Sleep function (injectable for tests)
        description: Label for log records

    Returns:
        The operation's result

    Raises:
        RecognitionError, FileProcessingError: The last error once retries
            are exhausted, or the first non-retryable error
    """
    label = description or getattr(operation, '__name__', 'operation')
    attempt = 0
    while True:
        try:
            return operation()
        except (RecognitionError, FileProcessingError) as e:
            if not is_retryable(e) or attempt >= max_retries:
                raise
            delay = backoff_delay(base_delay, attempt)
            attempt += 1
            logger.warning(f"{label}: {e.error_type.value} ({e}); retry {attempt}/{max_retries} "
                           f"in {delay:.2f}s")
            sleep(delay)
