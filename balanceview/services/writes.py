"""
Non-blocking writes.

Ledger writes return as soon as they are scheduled. The write itself runs
as an asyncio task on the current event loop. Every task gets a default
done-callback that logs a failure, so an unawaited write can never raise
into the UI and never disappears silently either.

Callers who do want to know the outcome can await the returned handle
(which re-raises the failure) or attach their own callback.
"""

import asyncio
from functools import partial
from typing import Any, Callable, Coroutine, Optional

import structlog

from balanceview.audit import AuditLogger


class WriteHandle:
    """A write that has been started but not waited for."""

    def __init__(self, task: asyncio.Task, operation: str, path: str):
        self._task = task
        self.operation = operation
        self.path = path

    def __await__(self):
        return self._task.__await__()

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"<WriteHandle {self.operation} {self.path} {state}>"

    def done(self) -> bool:
        return self._task.done()

    @property
    def succeeded(self) -> bool:
        return (
            self._task.done()
            and not self._task.cancelled()
            and self._task.exception() is None
        )

    def exception(self) -> Optional[BaseException]:
        """The failure, once done (None while pending or on success)."""
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()

    def add_done_callback(self, callback: Callable[["WriteHandle"], Any]) -> None:
        self._task.add_done_callback(lambda _task: callback(self))

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait up to `timeout` seconds without raising or cancelling.

        Returns:
            True if the write has finished (successfully or not)
        """
        await asyncio.wait({self._task}, timeout=timeout)
        return self._task.done()


class NonBlockingWriter:
    """
    Schedules writes as background tasks.

    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        user_id: str,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._user_id = user_id
        self._audit_logger = audit_logger
        self._pending: set[asyncio.Task] = set()
        self._logger = structlog.get_logger(__name__)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(
        self,
        operation: str,
        path: str,
        write: Coroutine[Any, Any, Any],
    ) -> WriteHandle:
        """
        Start `write` without waiting for it.

        Raises:
            RuntimeError: If no event loop is running
        """
        loop = asyncio.get_running_loop()
        task = loop.create_task(write)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(partial(self._log_outcome, operation, path))
        return WriteHandle(task, operation, path)

    async def flush(self) -> None:
        """Wait for every write started so far. Failures are not raised."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _log_outcome(self, operation: str, path: str, task: asyncio.Task) -> None:
        if task.cancelled():
            self._logger.warning("write_cancelled", operation=operation, path=path)
            return

        error = task.exception()
        if error is None:
            self._logger.debug("write_completed", operation=operation, path=path)
            return

        self._logger.error(
            "write_failed",
            operation=operation,
            path=path,
            user_id=self._user_id,
            error=str(error),
        )
        if self._audit_logger:
            audit_task = task.get_loop().create_task(
                self._audit_logger.log_write_failed(
                    user_id=self._user_id,
                    operation=operation,
                    path=path,
                    error_message=str(error),
                )
            )
            self._pending.add(audit_task)
            audit_task.add_done_callback(self._pending.discard)
