"""ToolOperationLock のテスト。"""

import asyncio

import pytest

from toolswitch.errors import LockReleaseError, LockTimeoutError
from toolswitch.locks import ToolOperationLock


@pytest.mark.asyncio()
async def test_hold_releases_on_exception() -> None:
    lock = ToolOperationLock()

    with pytest.raises(RuntimeError):
        async with lock.hold("codex"):
            assert lock.locked("codex")
            raise RuntimeError("boom")

    assert lock.locked("codex") is False


@pytest.mark.asyncio()
async def test_double_release_raises() -> None:
    lock = ToolOperationLock()

    ticket = await lock.acquire("codex")
    lock.release(ticket)
    with pytest.raises(LockReleaseError):
        lock.release(ticket)


@pytest.mark.asyncio()
async def test_other_tool_is_not_blocked() -> None:
    lock = ToolOperationLock(timeout=0.5)

    ticket = await lock.acquire("codex")
    other = await lock.acquire("gemini-cli")
    assert lock.locked("codex") and lock.locked("gemini-cli")
    lock.release(other)
    lock.release(ticket)


@pytest.mark.asyncio()
async def test_acquire_timeout() -> None:
    lock = ToolOperationLock()

    ticket = await lock.acquire("codex")
    with pytest.raises(LockTimeoutError) as ei:
        await lock.acquire("codex", timeout=0.01)
    assert ei.value.tool == "codex"
    lock.release(ticket)

    # タイムアウト後も次の取得はできる
    again = await lock.acquire("codex", timeout=0.5)
    lock.release(again)


@pytest.mark.asyncio()
async def test_waiters_run_in_arrival_order() -> None:
    lock = ToolOperationLock()
    order: list[int] = []

    async def worker(n: int) -> None:
        async with lock.hold("codex"):
            order.append(n)
            await asyncio.sleep(0)

    await asyncio.gather(*(worker(n) for n in range(5)))
    assert order == [0, 1, 2, 3, 4]


def test_zero_timeout_means_no_deadline() -> None:
    assert ToolOperationLock(timeout=0).timeout is None
    assert ToolOperationLock(timeout=1.5).timeout == 1.5
