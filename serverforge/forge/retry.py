import logging
import time
from typing import Any, Callable

from pydantic import BaseModel

from .errors import DownloadError, ProcessException

logger = logging.getLogger(__name__)

RETRYABLE = (ProcessException, DownloadError, OSError)


class RetryResult(BaseModel):
    ok: bool
    attempts: int
    value: Any | None = None
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class RetryExecutor:
    """
    Bounded retry with a fixed delay between attempts.

    run() never raises for retryable failures; the caller decides whether a
    failed result is fatal.
    """

    def __init__(self, max_attempts: int = 3, delay: float = 5.0,
                 sleep: Callable[[float], None] = time.sleep, retry_on: tuple = RETRYABLE) -> None:
        self.max_attempts = max_attempts
        self.delay = delay
        self.sleep = sleep
        self.retry_on = retry_on

    def run(self, operation: Callable[[], Any], title: str | None = None,
            max_attempts: int | None = None, delay: float | None = None) -> RetryResult:
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        delay = self.delay if delay is None else delay
        title = title or getattr(operation, "__name__", "operation")
        error = None

        for attempt in range(1, max_attempts + 1):
            try:
                value = operation()
            except self.retry_on as e:
                error = str(e)
                if attempt < max_attempts:
                    logger.warning(f"{title} failed (attempt {attempt}/{max_attempts}), retrying in {delay}s: {e}")
                    self.sleep(delay)
                else:
                    logger.warning(f"{title} failed (attempt {attempt}/{max_attempts}): {e}")
                continue
            return RetryResult(ok=True, attempts=attempt, value=value)

        logger.error(f"{title} failed after {max_attempts} attempts")
        return RetryResult(ok=False, attempts=max_attempts, error=error)
