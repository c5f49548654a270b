"""
Rate-limited, retrying batch executor for remote writes.

Replays a list of items through an async handler against a rate-limited,
unreliable remote API:
- items run in fixed-size batches with a pause between batches
- within a batch, up to `parallel` workers pull the next unclaimed item
- each item may be followed by a fixed pacing delay
- a failed item is classified; retryable failures back off exponentially
  and retry in place, permanent ones are recorded and the run moves on
- progress is reported after every item's terminal outcome

One item's failure never aborts the run; all failures come back together.
The same executor drives category creation and product writes.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar
import structlog

from config import settings
from exceptions import AppError, RemoteStoreError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Handler = Callable[[T, int], Awaitable[None]]
RetryPredicate = Callable[[BaseException, T], bool]
ProgressCallback = Callable[[int, int], None]
Sleeper = Callable[[float], Awaitable[Any]]

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})

RETRYABLE_MESSAGE_PATTERNS = (
    "429",
    "too many requests",
    "rate limit",
    "timeout",
    "timed out",
    "network error",
    "failed to fetch",
)


@dataclass(frozen=True)
class RateLimitConfig:
    """Pacing and retry policy for one executor run. Delays in seconds."""
    batch_size: int = 3
    batch_delay: float = 1.5
    parallel: int = 1
    per_item_delay: float = 0.4
    max_retries: int = 5
    retry_initial_delay: float = 1.5
    retry_backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, **overrides) -> "RateLimitConfig":
        values = dict(
            batch_size=settings.import_batch_size,
            batch_delay=settings.import_batch_delay_seconds,
            parallel=settings.import_parallel,
            per_item_delay=settings.import_per_item_delay_seconds,
            max_retries=settings.import_max_retries,
            retry_initial_delay=settings.import_retry_initial_delay_seconds,
            retry_backoff_multiplier=settings.import_retry_backoff_multiplier,
        )
        values.update(overrides)
        return cls(**values)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        return self.retry_initial_delay * (self.retry_backoff_multiplier ** (attempt - 1))


# ===================
# ERROR CLASSIFICATION
# ===================

@dataclass(frozen=True)
class ErrorDetails:
    code: Optional[int] = None
    message: Optional[str] = None
    error_type: Optional[str] = None


def extract_error_details(error: BaseException) -> ErrorDetails:
    """
    Status code, message and type of a failure.

    RemoteStoreError is already normalized at the store boundary; other
    AppErrors carry their HTTP status; anything else is described by its
    text and class name.
    """
    if isinstance(error, RemoteStoreError):
        return ErrorDetails(
            code=error.status,
            message=error.message or None,
            error_type=error.error_type or type(error).__name__,
        )
    if isinstance(error, AppError):
        return ErrorDetails(
            code=error.status_code,
            message=error.message or None,
            error_type=error.code,
        )
    return ErrorDetails(
        code=None,
        message=str(error) or None,
        error_type=type(error).__name__,
    )


def default_should_retry(error: BaseException, item: Any = None) -> bool:
    """Retry rate limits, timeouts, gateway errors and network failures."""
    if isinstance(error, RemoteStoreError) and error.is_transient:
        return True

    details = extract_error_details(error)
    if details.code is not None and details.code in RETRYABLE_STATUS_CODES:
        return True

    if details.message:
        lowered = details.message.lower()
        return any(pattern in lowered for pattern in RETRYABLE_MESSAGE_PATTERNS)

    return False


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass
class ItemOutcome:
    """Classified result of one attempt at one item."""
    status: OutcomeStatus
    attempts: int
    error: Optional[BaseException] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != OutcomeStatus.RETRYABLE_FAILURE


@dataclass
class ProcessFailure(Generic[T]):
    """An item that failed for good."""
    index: int
    item: T
    error: BaseException
    attempts: int
    code: Optional[int] = None
    message: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class ProcessResult(Generic[T]):
    total: int = 0
    failures: list[ProcessFailure[T]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.total - len(self.failures)

    @property
    def failed_indexes(self) -> list[int]:
        return sorted(f.index for f in self.failures)


# ===================
# EXECUTOR
# ===================

class BatchExecutor:
    """
    Runs items through a handler under a RateLimitConfig.

    Usage:
        executor = BatchExecutor(RateLimitConfig.from_settings())
        result = await executor.run(products, write_product, on_progress=report)
    """

    def __init__(self, config: Optional[RateLimitConfig] = None, sleep: Sleeper = asyncio.sleep):
        self.config = config or RateLimitConfig.from_settings()
        self._sleep = sleep

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    def _classify(
        self,
        error: BaseException,
        item: T,
        attempts: int,
        should_retry: RetryPredicate,
    ) -> ItemOutcome:
        if attempts <= self.config.max_retries and should_retry(error, item):
            return ItemOutcome(OutcomeStatus.RETRYABLE_FAILURE, attempts, error)
        return ItemOutcome(OutcomeStatus.PERMANENT_FAILURE, attempts, error)

    async def _attempt(self, item: T, index: int, handler: Handler, attempts: int, should_retry: RetryPredicate) -> ItemOutcome:
        try:
            await handler(item, index)
        except Exception as e:
            return self._classify(e, item, attempts, should_retry)
        return ItemOutcome(OutcomeStatus.SUCCESS, attempts)

    async def _execute_item(
        self,
        item: T,
        index: int,
        handler: Handler,
        should_retry: RetryPredicate,
    ) -> Optional[ProcessFailure[T]]:
        attempts = 0

        while True:
            attempts += 1
            outcome = await self._attempt(item, index, handler, attempts, should_retry)
            if outcome.is_terminal:
                break

            delay = self.config.backoff_delay(attempts)
            details = extract_error_details(outcome.error)
            logger.warning(
                "item_retry_scheduled",
                index=index,
                attempt=attempts,
                max_retries=self.config.max_retries,
                delay=delay,
                status=details.code,
                error=details.message
            )
            await self._pause(delay)

        if outcome.status == OutcomeStatus.SUCCESS:
            return None

        details = extract_error_details(outcome.error)
        logger.warning(
            "item_failed",
            index=index,
            attempts=attempts,
            status=details.code,
            error=details.message,
            error_type=details.error_type
        )
        return ProcessFailure(
            index=index,
            item=item,
            error=outcome.error,
            attempts=attempts,
            code=details.code,
            message=details.message,
            error_type=details.error_type,
        )

    async def run(
        self,
        items: list[T],
        handler: Handler,
        should_retry: Optional[RetryPredicate] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessResult[T]:
        """
        Process every item, never aborting on an item failure.

        Args:
            items: Work items, processed in batch order
            handler: async handler(item, index); raising means failure
            should_retry: Retry predicate (default_should_retry if None)
            on_progress: Called with (completed, total) after each item

        Returns:
            ProcessResult with every permanent failure
        """
        should_retry = should_retry or default_should_retry
        total = len(items)
        result: ProcessResult[T] = ProcessResult(total=total)
        completed = 0

        if total == 0:
            return result

        batch_size = max(1, self.config.batch_size)

        logger.info(
            "batch_run_started",
            total=total,
            batch_size=batch_size,
            parallel=self.config.parallel
        )

        async def run_item(item: T, index: int) -> None:
            nonlocal completed
            failure = await self._execute_item(item, index, handler, should_retry)
            if failure is not None:
                result.failures.append(failure)

            completed += 1
            if on_progress is not None:
                on_progress(completed, total)

            await self._pause(self.config.per_item_delay)

        for offset in range(0, total, batch_size):
            batch = items[offset:offset + batch_size]
            worker_count = min(max(1, self.config.parallel), len(batch))

            if worker_count <= 1:
                for local_index, item in enumerate(batch):
                    await run_item(item, offset + local_index)
            else:
                cursor = 0

                async def worker() -> None:
                    nonlocal cursor
                    while cursor < len(batch):
                        # Claiming is atomic: no await between read and increment
                        current = cursor
                        cursor += 1
                        await run_item(batch[current], offset + current)

                await asyncio.gather(*(worker() for _ in range(worker_count)))

            if offset + len(batch) < total:
                await self._pause(self.config.batch_delay)

        result.failures.sort(key=lambda f: f.index)

        logger.info(
            "batch_run_finished",
            total=total,
            succeeded=result.succeeded,
            failed=len(result.failures)
        )

        return result
