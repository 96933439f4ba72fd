"""
Dirty-state tracking for ganttsync.

Handles:
- The "has unsaved changes" flag and its last-cleaned timestamp
- Page-unload and in-app navigation guards while dirty
- Form-style tracking against initial values
- A dirty tracker that saves its latest data after a quiet period
"""
import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import click
from loguru import logger

from ganttsync.constants import DEFAULT_SAVE_DELAY, DEFAULT_WARNING_MESSAGE
from ganttsync.scope import CancelScope
from ganttsync.signals import signal
from ganttsync.utils import utcnow

T = TypeVar("T")


def _prompt_confirm(message: str) -> bool:
    """Ask on the terminal whether to leave despite unsaved changes."""
    return click.confirm(message, default=False)


class DirtyStateTracker:
    """
    Tracks whether there are unsaved changes.

    When ``enabled`` is False, ``mark_dirty`` and ``mark_clean`` do nothing.
    ``toggle_dirty`` and ``reset`` are not gated by ``enabled``: toggling is
    an explicit user action and keeps working on a disabled tracker.
    """

    def __init__(
        self,
        enabled: bool = True,
        warn_on_page_leave: bool = True,
        warn_on_navigate: bool = True,
        warning_message: str = DEFAULT_WARNING_MESSAGE,
        on_navigate_away: Optional[Callable[[], None]] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize DirtyStateTracker.

        Args:
            enabled: Whether tracking is active.
            warn_on_page_leave: Intercept page unload while dirty.
            warn_on_navigate: Block in-app navigation while dirty.
            warning_message: Message shown by both guards.
            on_navigate_away: Called when the user confirms leaving.
            confirm: Prompt returning True to leave. Defaults to a terminal prompt.
            clock: Source of timestamps for ``last_cleaned_at``.
        """
        self.enabled = enabled
        self.warn_on_page_leave = warn_on_page_leave
        self.warn_on_navigate = warn_on_navigate
        self.warning_message = warning_message
        self.on_navigate_away = on_navigate_away
        self._confirm = confirm or _prompt_confirm
        self._clock = clock
        self._is_dirty = False
        self._last_cleaned_at: Optional[datetime] = None

    @signal
    def dirty_changed(self, is_dirty: bool) -> None:
        """Emitted when the dirty flag changes while tracking is enabled."""

    @property
    def is_dirty(self) -> bool:
        return self._is_dirty

    @property
    def last_cleaned_at(self) -> Optional[datetime]:
        """When the state was last marked clean (usually after a save)."""
        return self._last_cleaned_at

    def _set_dirty(self, value: bool) -> None:
        if value == self._is_dirty:
            return
        self._is_dirty = value
        if self.enabled:
            self.dirty_changed(value)

    def mark_dirty(self) -> None:
        """Mark state as having unsaved changes."""
        if self.enabled:
            self._set_dirty(True)

    def mark_clean(self) -> None:
        """Mark state as saved and record the time."""
        if self.enabled:
            self._set_dirty(False)
            self._last_cleaned_at = self._clock()

    def toggle_dirty(self) -> None:
        """Flip the dirty flag, regardless of ``enabled``."""
        self._set_dirty(not self._is_dirty)

    def reset(self) -> None:
        """Clear the dirty flag and the last-cleaned timestamp."""
        self._set_dirty(False)
        self._last_cleaned_at = None

    # =========================================================================
    # Navigation Guards
    # =========================================================================

    def before_unload(self) -> Optional[str]:
        """Page-unload interception.

        Returns:
            The warning message while dirty, or None to let the page close.
        """
        if self.enabled and self.warn_on_page_leave and self._is_dirty:
            return self.warning_message
        return None

    def request_navigation(self, current_path: str, target_path: str) -> bool:
        """Ask whether in-app navigation may proceed.

        Navigation within the same path is never blocked. While dirty, the
        user is asked to confirm; ``on_navigate_away`` runs only when they do.

        Args:
            current_path: Path of the current view.
            target_path: Path being navigated to.

        Returns:
            True if navigation may proceed, False if the user chose to stay.
        """
        blocked = (
            self.enabled
            and self.warn_on_navigate
            and self._is_dirty
            and current_path != target_path
        )
        if not blocked:
            return True

        if self._confirm(self.warning_message):
            if self.on_navigate_away:
                self.on_navigate_away()
            return True

        logger.debug(f"Navigation to {target_path} cancelled with unsaved changes")
        return False


def _default_is_equal(a: Any, b: Any) -> bool:
    return a == b


class FormDirtyTracker(DirtyStateTracker, Generic[T]):
    """
    Dirty tracking for forms, derived from the current values.

    The form is dirty whenever its values differ from the initial values
    and becomes clean again when they match.
    """

    def __init__(
        self,
        initial_values: T,
        is_equal: Optional[Callable[[T, T], bool]] = None,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self.initial_values = initial_values
        self._is_equal = is_equal or _default_is_equal

    def update(self, current_values: T) -> bool:
        """Re-evaluate the flag against the initial values.

        Args:
            current_values: The form's current values.

        Returns:
            The resulting dirty flag.
        """
        changed = not self._is_equal(current_values, self.initial_values)
        if changed and not self.is_dirty:
            self.mark_dirty()
        elif not changed and self.is_dirty:
            self.mark_clean()
        return self.is_dirty

    def rebase(self, values: T) -> None:
        """Adopt ``values`` as the new initial values and mark clean."""
        self.initial_values = values
        self.mark_clean()


class AutoSaveDirtyTracker(DirtyStateTracker, Generic[T]):
    """
    Dirty tracker that saves the latest data once edits go quiet.

    ``set_data`` records the newest data and marks the tracker dirty; each call
    restarts the timer. There is no retry: a failed save leaves the tracker
    dirty with ``error`` set until the next save succeeds.
    """

    def __init__(
        self,
        save_fn: Callable[[T], Awaitable[None]],
        delay: float = DEFAULT_SAVE_DELAY,
        auto_save_enabled: bool = True,
        scope: Optional[CancelScope] = None,
        **options: Any,
    ) -> None:
        super().__init__(**options)
        self._save_fn = save_fn
        self.delay = delay
        self.auto_save_enabled = auto_save_enabled
        self._scope = scope or CancelScope("auto-save-dirty")
        self._timer: Optional[asyncio.Task] = None
        self._data: Optional[T] = None
        self._has_data = False
        self.is_saving = False
        self.last_saved_at: Optional[datetime] = None
        self.error: Optional[Exception] = None

    @property
    def data(self) -> Optional[T]:
        return self._data

    def set_data(self, data: T) -> None:
        """Record the newest data, mark dirty and restart the save timer."""
        self._data = data
        self._has_data = True
        self.mark_dirty()
        if self.auto_save_enabled and self.is_dirty:
            self._restart_timer()

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._timer = self._scope.spawn(self._fire_after_delay(), name="auto-save-dirty-timer")

    def _cancel_timer(self) -> None:
        if self._timer and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _fire_after_delay(self) -> None:
        await asyncio.sleep(self.delay)
        self._timer = None
        await self._perform_save()

    async def _perform_save(self) -> None:
        if not self._has_data:
            return
        data = self._data
        self.is_saving = True
        self.error = None
        try:
            await self._save_fn(data)  # type: ignore[arg-type]
        except Exception as e:
            if self._scope.cancelled:
                return
            self.error = e
            logger.error(f"Auto-save failed: {e}")
        else:
            if self._scope.cancelled:
                return
            self.last_saved_at = self._clock()
            # Data set during the save is still unsaved.
            if self._data is data:
                self.mark_clean()
        finally:
            self.is_saving = False

    async def save(self) -> None:
        """Cancel the timer and save the latest data now."""
        self._cancel_timer()
        await self._perform_save()

    def clear_error(self) -> None:
        self.error = None

    def close(self) -> None:
        """Cancel the timer and ignore any save still in flight."""
        self._cancel_timer()
        self._scope.cancel()
