from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

from ..errors import AdminxError, ErrorKind

ResultType = TypeVar("ResultType")


class OperationCancelledError(AdminxError):
    """Raised by :func:`wait_cancellable` when the caller's cancel event fires."""

    kind = ErrorKind.CANCELLED

    def __init__(self) -> None:
        super().__init__("Operation cancelled by caller")


class OperationTimeoutError(AdminxError, TimeoutError):
    """Timeout raised by :func:`wait_cancellable`."""

    def __init__(self, timeout: float | None) -> None:
        super().__init__(f"Operation did not complete within {timeout} seconds")
        self.timeout = timeout


async def wait_cancellable(
    awaitable: Awaitable[ResultType],
    cancel_event: asyncio.Event | None = None,
    *,
    timeout: float | None = None,
) -> ResultType:
    """Await ``awaitable`` until it finishes, ``cancel_event`` is set or ``timeout`` elapses.

    The inner task is cancelled in the latter two cases (and when the calling
    task itself is cancelled) so that subprocesses and sockets get torn down.
    """

    task = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future[object]] = {task}
    cancel_waiter: asyncio.Future[object] | None = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    if cancel_waiter is not None and cancel_waiter in done:
        raise OperationCancelledError()
    raise OperationTimeoutError(timeout)


__all__ = ["OperationCancelledError", "OperationTimeoutError", "wait_cancellable"]
