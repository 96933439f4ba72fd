"""
Auto-save queue for ganttsync.

Handles:
- Debouncing a stream of edits into one persistence call (last write wins)
- Sequential saves with retry and exponential backoff
- Batching discrete items into one call
- Merging partial updates into an authoritative local object

State machine::

    IDLE --queue_save--> PENDING --timer/save_now--> SAVING --ok--> IDLE
                                                        |
                                        fail, retries left v
                                                     RETRYING --backoff--> SAVING
                                        fail, exhausted -> ERROR (payload kept for retry())
"""
import asyncio
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    TypeVar,
)

from loguru import logger

from ganttsync.constants import (
    DEFAULT_MAX_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SAVE_DELAY,
)
from ganttsync.exceptions import ConfigurationError, TransientError
from ganttsync.scope import CancelScope
from ganttsync.signals import signal
from ganttsync.utils import utcnow

T = TypeVar("T")

ErrorPolicy = Callable[[BaseException], bool]


class SaveState(str, Enum):
    """Observable phases of an auto-save queue."""

    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    RETRYING = "retrying"
    ERROR = "error"


def retry_all(error: BaseException) -> bool:
    """Treat every failure as retryable."""
    return True


def retry_transient_only(error: BaseException) -> bool:
    """Retry network and server-side failures; fail fast on anything else."""
    return isinstance(error, (TransientError, ConnectionError, asyncio.TimeoutError, OSError))


class AutoSaveQueue(Generic[T]):
    """
    Debounced, single-flight persistence of the newest payload.

    The unsent slot holds at most one payload: queuing replaces it. At most one
    save sequence (a save plus its retries) runs at a time; a payload queued
    meanwhile is saved right after the running sequence succeeds.

    Timer-driven saves never raise: failures are recorded in ``error`` and
    reported through ``on_error``. ``save_now`` and ``retry`` re-raise.
    """

    def __init__(
        self,
        save_fn: Callable[[T], Awaitable[Any]],
        delay: float = DEFAULT_SAVE_DELAY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        on_success: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        enabled: bool = True,
        error_policy: Optional[ErrorPolicy] = None,
        scope: Optional[CancelScope] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize AutoSaveQueue.

        Args:
            save_fn: Coroutine function persisting one payload.
            delay: Debounce delay in seconds.
            max_retries: Retries after the first failed attempt.
            retry_delay: Base backoff in seconds; attempt n waits retry_delay * 2**n.
            on_success: Called after each successful save.
            on_error: Called once retries are exhausted.
            enabled: When False, queue_save and save_now do nothing.
            error_policy: Decides whether a failure is retryable. Defaults to
                retrying every failure.
            scope: Cancellation scope owning the queue's tasks.
            clock: Source of timestamps for ``last_saved``.

        Raises:
            ConfigurationError: If a timing or retry value is negative.
        """
        if delay < 0 or retry_delay < 0 or max_retries < 0:
            raise ConfigurationError("delay, retry_delay and max_retries must not be negative")

        self._save_fn = save_fn
        self.delay = delay
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_success = on_success
        self.on_error = on_error
        self.enabled = enabled
        self.error_policy = error_policy or retry_all
        self._scope = scope or CancelScope("auto-save")
        self._clock = clock

        self._slot: Optional[T] = None
        self._has_slot = False
        self._timer: Optional[asyncio.Task] = None
        self._worker: Optional[asyncio.Task] = None
        self._waiting_retry = False

        self.is_saving = False
        self.last_saved: Optional[datetime] = None
        self.error: Optional[Exception] = None
        self.retry_count = 0
        self.failed_payload: Optional[T] = None

    # =========================================================================
    # Signals
    # =========================================================================

    @signal
    def state_changed(self) -> None:
        """Emitted after every observable transition."""

    @signal
    def saved(self, payload: object) -> None:
        """Emitted after a payload was persisted."""

    @signal
    def save_failed(self, error: Exception) -> None:
        """Emitted when a payload could not be persisted."""

    # =========================================================================
    # Observable State
    # =========================================================================

    @property
    def is_pending(self) -> bool:
        """True while an unsent payload is waiting in the slot."""
        return self._has_slot

    @property
    def state(self) -> SaveState:
        if self.is_saving:
            return SaveState.RETRYING if self._waiting_retry else SaveState.SAVING
        if self.error is not None:
            return SaveState.ERROR
        if self.is_pending:
            return SaveState.PENDING
        return SaveState.IDLE

    @property
    def is_in_flight(self) -> bool:
        """True while a save sequence is running."""
        return self._worker is not None and not self._worker.done()

    def _notify(self) -> None:
        self.state_changed()

    # =========================================================================
    # Slot Hooks (overridden by batching and merging queues)
    # =========================================================================

    def _store(self, payload: T) -> None:
        self._slot = payload
        self._has_slot = True

    def _take(self) -> T:
        payload = self._slot
        self._slot = None
        self._has_slot = False
        return payload  # type: ignore[return-value]

    def _discard(self) -> None:
        self._slot = None
        self._has_slot = False

    # =========================================================================
    # Public API
    # =========================================================================

    def queue_save(self, payload: T) -> None:
        """Replace the unsent payload and restart the debounce timer."""
        if not self.enabled:
            return
        self._store(payload)
        self._restart_timer()
        self._notify()

    async def save_now(self) -> None:
        """Cancel the debounce timer and save immediately.

        Waits for a running save sequence first, then flushes the slot.

        Raises:
            Exception: The failure that exhausted the retries.
        """
        if not self.enabled:
            return
        self._cancel_timer()

        ok = True
        if self.is_in_flight:
            ok = await asyncio.shield(self._worker)  # type: ignore[arg-type]
        if self._has_slot:
            self._cancel_timer()
            ok = await asyncio.shield(self._start_worker())

        if not ok and self.error is not None:
            raise self.error

    def clear_queue(self) -> None:
        """Cancel the timer and drop the unsent payload."""
        self._cancel_timer()
        self._discard()
        self._notify()

    def clear_error(self) -> None:
        """Dismiss the error and reset the retry counter."""
        self.error = None
        self.retry_count = 0
        self.failed_payload = None
        self._notify()

    async def retry(self) -> None:
        """Manually retry after the retries were exhausted.

        A payload queued since the failure supersedes the failed one.

        Raises:
            Exception: The failure that exhausted the retries.
        """
        if not self._has_slot and self.failed_payload is not None:
            self._store(self.failed_payload)
        self.failed_payload = None
        await self.save_now()

    async def aclose(self) -> None:
        """Tear down: cancel timers and ignore the outcome of in-flight saves."""
        self._cancel_timer()
        self._scope.cancel()

    # =========================================================================
    # Internals
    # =========================================================================

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._timer = self._scope.spawn(self._fire_after_delay(), name="auto-save-debounce")

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _fire_after_delay(self) -> None:
        await asyncio.sleep(self.delay)
        self._timer = None
        self._trigger()

    def _trigger(self) -> None:
        """Start a save sequence unless one is already running."""
        if self.is_in_flight or not self._has_slot:
            return
        self._start_worker()

    def _start_worker(self) -> asyncio.Task:
        self._worker = self._scope.spawn(self._drain(), name="auto-save-worker")
        return self._worker

    async def _drain(self) -> bool:
        """Save payloads until the slot is empty or a save fails for good."""
        while self._has_slot and not self._scope.cancelled:
            payload = self._take()
            if not await self._save_with_retry(payload):
                if self._has_slot and not self._scope.cancelled:
                    # A payload queued during the failed sequence supersedes it.
                    self._restart_timer()
                return False
        return True

    async def _save_with_retry(self, payload: T) -> bool:
        attempt = 0
        while True:
            self.is_saving = True
            self._waiting_retry = False
            self.error = None
            self.retry_count = attempt
            self._notify()

            try:
                await self._save_fn(payload)
            except Exception as e:
                if self._scope.cancelled:
                    return False
                if attempt < self.max_retries and self.error_policy(e):
                    backoff = self.retry_delay * (2 ** attempt)
                    attempt += 1
                    logger.warning(
                        f"Save failed, retrying ({attempt}/{self.max_retries}) in {backoff:.2f}s: {e}"
                    )
                    self.retry_count = attempt
                    self._waiting_retry = True
                    self._notify()
                    await asyncio.sleep(backoff)
                    continue

                logger.error(f"Save failed after {attempt} retries: {e}")
                self.is_saving = False
                self._waiting_retry = False
                self.error = e
                self.failed_payload = payload
                self._notify()
                self.save_failed(e)
                if self.on_error:
                    self.on_error(e)
                return False

            if self._scope.cancelled:
                return False
            self.is_saving = False
            self._waiting_retry = False
            self.last_saved = self._clock()
            self.error = None
            self.retry_count = 0
            self.failed_payload = None
            self._notify()
            self.saved(payload)
            if self.on_success:
                self.on_success()
            return True


class BatchAutoSaveQueue(AutoSaveQueue[Any], Generic[T]):
    """
    Auto-save queue that sends accumulated items as one list.

    Each queued item is appended to the batch. A full batch is flushed at
    once; otherwise the debounce timer flushes whatever has accumulated.
    """

    def __init__(
        self,
        save_fn: Callable[[List[T]], Awaitable[Any]],
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        **options: Any,
    ) -> None:
        if max_batch_size < 1:
            raise ConfigurationError("max_batch_size must be at least 1")
        super().__init__(save_fn, **options)
        self.max_batch_size = max_batch_size
        self._batch: List[T] = []

    @property
    def batch(self) -> List[T]:
        """Items waiting to be sent."""
        return list(self._batch)

    def _store(self, payload: T) -> None:
        self._batch.append(payload)
        self._has_slot = True

    def _take(self) -> List[T]:
        items = self._batch[: self.max_batch_size]
        self._batch = self._batch[self.max_batch_size:]
        self._has_slot = bool(self._batch)
        return items

    def _discard(self) -> None:
        self._batch = []
        self._has_slot = False

    def queue_save(self, payload: T) -> None:
        """Add an item to the batch; a full batch is flushed immediately."""
        if not self.enabled:
            return
        self._store(payload)
        if len(self._batch) >= self.max_batch_size:
            self._cancel_timer()
            self._trigger()
        else:
            self._restart_timer()
        self._notify()


def shallow_merge(current: Any, updates: Mapping[str, Any]) -> Any:
    """Overwrite top-level fields of ``current`` with ``updates``.

    Works on mappings and on working items (via ``apply``).
    """
    if hasattr(current, "apply"):
        return current.apply(updates)
    merged = dict(current)
    merged.update(updates)
    return merged


class MergeAutoSaveQueue(AutoSaveQueue[Dict[str, Any]], Generic[T]):
    """
    Auto-save queue keeping an authoritative local object.

    Each partial update is folded into ``current_data`` immediately, while only
    the partial updates are sent. Updates queued within one debounce window are
    combined, so no field is lost when the slot is replaced.
    """

    def __init__(
        self,
        save_fn: Callable[[Dict[str, Any]], Awaitable[Any]],
        initial_data: T,
        merge_fn: Optional[Callable[[T, Mapping[str, Any]], T]] = None,
        **options: Any,
    ) -> None:
        super().__init__(save_fn, **options)
        self._current: T = initial_data
        self._merge_fn = merge_fn or shallow_merge

    @property
    def current_data(self) -> T:
        return self._current

    def _store(self, payload: Dict[str, Any]) -> None:
        combined = dict(self._slot) if self._has_slot and self._slot else {}
        combined.update(payload)
        super()._store(combined)

    def queue_save(self, payload: Mapping[str, Any]) -> None:
        """Merge the update locally and queue it for sending."""
        if not self.enabled:
            return
        self._current = self._merge_fn(self._current, payload)
        super().queue_save(dict(payload))
