"""
Retry policy for classifier calls.

Each attempt runs under a hard timeout; timeouts and errors consume an attempt
and are followed by a fixed backoff. The outcome is returned as a tagged
result instead of raising.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Optional
import logging
import time

from tenacity import Retrying, retry_if_not_exception_type, stop_after_attempt, wait_fixed

from settings import (
    CLASSIFIER_BACKOFF,
    CLASSIFIER_MAX_ATTEMPTS,
    CLASSIFIER_TIMEOUT,
    ConfigurationError,
)

logger = logging.getLogger(__name__)


class AttemptTimeout(TimeoutError):
    """A single attempt exceeded its time limit."""


@dataclass
class Success:
    value: Any
    attempts: int


@dataclass
class Exhausted:
    error: Optional[BaseException]
    attempts: int


class RetryPolicy:
    """
    Bounded retry with per-attempt timeout and fixed backoff.

    ConfigurationError is never retried and propagates to the caller.
    """

    def __init__(
        self,
        max_attempts: int = None,
        timeout_seconds: float = None,
        backoff_seconds: float = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.max_attempts = max_attempts if max_attempts is not None else CLASSIFIER_MAX_ATTEMPTS
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else CLASSIFIER_TIMEOUT
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else CLASSIFIER_BACKOFF
        self.sleep = sleep

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def _call_with_timeout(self, fn: Callable, *args, **kwargs):
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            raise AttemptTimeout(f"attempt exceeded {self.timeout_seconds}s")
        finally:
            # A timed out call is abandoned, not awaited
            executor.shutdown(wait=False)

    def _log_retry(self, retry_state):
        logger.warning(
            "Attempt %d/%d failed: %s",
            retry_state.attempt_number,
            self.max_attempts,
            retry_state.outcome.exception()
        )

    def execute(self, fn: Callable, *args, **kwargs):
        """
        Run fn under the policy.

        Returns:
            Success(value, attempts) or Exhausted(last_error, attempts)

        Raises:
            ConfigurationError: Propagated without retrying
        """
        attempts = 0

        def attempt():
            nonlocal attempts
            attempts += 1
            return self._call_with_timeout(fn, *args, **kwargs)

        retryer = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.backoff_seconds),
            retry=retry_if_not_exception_type(ConfigurationError),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            retry_error_callback=lambda state: Exhausted(state.outcome.exception(), state.attempt_number),
        )

        result = retryer(attempt)
        if isinstance(result, Exhausted):
            logger.error("Giving up after %d attempts: %s", result.attempts, result.error)
            return result
        return Success(result, attempts)
