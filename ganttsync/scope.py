"""
Cancellation scope for engine-owned asyncio tasks.

A CancelScope is handed to an engine by its owner. Engines spawn their timer
and save tasks through the scope and check ``cancelled`` before committing the
result of a remote call, so nothing is written after teardown.
"""
import asyncio
from typing import Coroutine, Optional, Set

from loguru import logger

from ganttsync.exceptions import InvalidOperationError


class CancelScope:
    """Tracks tasks spawned on behalf of one owner and cancels them together."""

    def __init__(self, name: str = "scope") -> None:
        self.name = name
        self._cancelled = False
        self._tasks: Set[asyncio.Task] = set()
        self._children: Set["CancelScope"] = set()

    @property
    def cancelled(self) -> bool:
        """True once the scope has been cancelled."""
        return self._cancelled

    def child(self, name: Optional[str] = None) -> "CancelScope":
        """Create a scope that is cancelled together with this one."""
        scope = CancelScope(name or f"{self.name}.child")
        if self._cancelled:
            scope.cancel()
        else:
            self._children.add(scope)
        return scope

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine as a task owned by this scope.

        Args:
            coro: Coroutine to run.
            name: Optional task name for debugging.

        Returns:
            The created task.

        Raises:
            InvalidOperationError: If the scope is already cancelled.
        """
        if self._cancelled:
            coro.close()
            raise InvalidOperationError(f"Scope '{self.name}' is cancelled")

        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self) -> None:
        """Cancel every pending task and mark the scope closed."""
        if self._cancelled:
            return
        self._cancelled = True
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        for child in list(self._children):
            child.cancel()
        self._children.clear()
        if pending:
            logger.debug(f"Scope '{self.name}' cancelled {len(pending)} task(s)")

    close = cancel
