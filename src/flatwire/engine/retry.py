# src/flatwire/engine/retry.py
"""RetryManager: sink write retries with tenacity integration.

Baseline behavior is a single attempt: a failed batch is dropped and
reported. Raising RetrySettings.max_attempts enables exponential backoff
with jitter for retryable sink errors.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

if TYPE_CHECKING:
    from flatwire.core.config import RetrySettings

T = TypeVar("T")


class MaxRetriesExceeded(Exception):
    """Raised when max retry attempts are exceeded."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries ({attempts}) exceeded: {last_error}")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    max_attempts is the TOTAL number of tries, not the number of retries.
    So max_attempts=3 means: try, retry, retry (3 total).
    """

    max_attempts: int = 1
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    jitter: float = 1.0  # seconds
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        """Factory for no-retry configuration (single attempt)."""
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryConfig":
        """Factory from RetrySettings config model."""
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=1.0,  # Fixed jitter, not exposed in settings
            exponential_base=settings.exponential_base,
        )


class RetryManager:
    """Runs sink writes with tenacity exponential backoff.

    Only errors the caller classifies as retryable are tried again.
    Anything else propagates unchanged on the first failure.

    Example:
        manager = RetryManager(RetryConfig(max_attempts=3))

        manager.execute_with_retry(
            lambda: sink.write(index, records),
            is_retryable=lambda e: isinstance(e, SinkError) and e.retryable,
            on_retry=lambda attempt, error: logger.warning("sink_retry", attempt=attempt),
        )
    """

    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _retrying(
        self,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None,
    ) -> Retrying:
        def before_sleep(retry_state: RetryCallState) -> None:
            # before_sleep only fires when another attempt is scheduled
            if on_retry is not None and retry_state.outcome is not None:
                error = retry_state.outcome.exception()
                if error is not None:
                    on_retry(retry_state.attempt_number, error)

        return Retrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_exponential_jitter(
                initial=self._config.base_delay,
                max=self._config.max_delay,
                exp_base=self._config.exponential_base,
                jitter=self._config.jitter,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep,
            reraise=False,
        )

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Execute operation with retry logic.

        Args:
            operation: Operation to execute
            is_retryable: Function to check if error is retryable
            on_retry: Optional callback before each retry (1-based attempt that failed, error)

        Returns:
            Result of operation

        Raises:
            MaxRetriesExceeded: If every attempt failed with a retryable error
            Exception: If non-retryable error occurs
        """
        try:
            return self._retrying(is_retryable, on_retry)(operation)
        except RetryError as e:
            last_attempt = e.last_attempt
            error = last_attempt.exception()
            assert error is not None, "RetryError raised without a failed attempt"
            raise MaxRetriesExceeded(last_attempt.attempt_number, error) from e
