"""
Retry loop for optimistic concurrency on protocol documents.

Every mutation of a protocol is a read-modify-write cycle against the version
read at the start of the cycle. When another writer saved a newer version in
between, the whole cycle is run again from a fresh read, up to
``max_attempts`` times, sleeping ``base_delay * attempt`` seconds between
attempts. Any other error aborts immediately.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from protocols_api.config import settings
from protocols_api.errors import ContentionError, WriteConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    description: str = "protocol update",
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """
    Run a read-modify-write operation, retrying on version conflicts.

    Args:
        operation: Callable performing the full cycle (read, mutate, versioned write)
        description: Label used in log messages
        max_attempts: Attempt ceiling (default: settings.max_conflict_retries)
        base_delay: Backoff unit in seconds (default: settings.conflict_retry_base_delay)
        sleep: Sleep function (default: time.sleep)

    Returns:
        Whatever ``operation`` returns on its first successful attempt

    Raises:
        ContentionError: every attempt hit a version conflict
    """
    max_attempts = max_attempts or settings.max_conflict_retries
    base_delay = settings.conflict_retry_base_delay if base_delay is None else base_delay
    sleep = sleep or time.sleep

    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except WriteConflictError as e:
            last_error = e
            logger.warning(
                f"Version conflict on {description} (attempt {attempt}/{max_attempts}): {e.message}"
            )
            if attempt < max_attempts:
                sleep(base_delay * attempt)

    logger.error(f"All {max_attempts} attempts exhausted for {description}")
    raise ContentionError(
        "No se pudo guardar el cambio: el protocolo está siendo modificado por otro usuario. "
        "Intente nuevamente."
    ) from last_error
