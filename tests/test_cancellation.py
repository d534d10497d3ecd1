from __future__ import annotations

import asyncio

import pytest

from adminx.utils.cancellation import (
    OperationCancelledError,
    OperationTimeoutError,
    wait_cancellable,
)


async def slow(flag: dict[str, bool]) -> str:
    try:
        await asyncio.sleep(5)
    except asyncio.CancelledError:
        flag["cancelled"] = True
        raise
    return "late"


@pytest.mark.asyncio
async def test_returns_result() -> None:
    async def quick() -> int:
        return 7

    assert await wait_cancellable(quick(), asyncio.Event(), timeout=1) == 7


@pytest.mark.asyncio
async def test_cancel_event_cancels_inner_task() -> None:
    flag: dict[str, bool] = {}
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.02, cancel.set)

    with pytest.raises(OperationCancelledError):
        await wait_cancellable(slow(flag), cancel)

    assert flag == {"cancelled": True}


@pytest.mark.asyncio
async def test_timeout_is_a_timeout_error() -> None:
    flag: dict[str, bool] = {}

    with pytest.raises(TimeoutError) as excinfo:
        await wait_cancellable(slow(flag), timeout=0.02)

    assert isinstance(excinfo.value, OperationTimeoutError)
    assert flag == {"cancelled": True}


@pytest.mark.asyncio
async def test_inner_errors_propagate() -> None:
    async def boom() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await wait_cancellable(boom(), asyncio.Event())
