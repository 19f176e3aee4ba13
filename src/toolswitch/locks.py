"""ツール単位の操作ロック。

同じツールへの switch/delete/start/stop は直列化し、別ツール同士は並行に走らせる。
asyncio 上の協調的スケジューリングを前提としており、スレッド間では使わない。

使い方:

```python
async with lock.hold("codex"):
    ...
```
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from toolswitch.errors import LockReleaseError, LockTimeoutError


@dataclass(frozen=True)
class LockTicket:
    tool: str
    seq: int


class ToolOperationLock:
    def __init__(self, *, timeout: float | None = None) -> None:
        # timeout が None / 0 以下なら無期限に待つ
        self.timeout = timeout if timeout and timeout > 0 else None
        self._locks: dict[str, asyncio.Lock] = {}
        self._held: dict[str, LockTicket] = {}
        self._seq = itertools.count(1)

    def _lock_for(self, tool: str) -> asyncio.Lock:
        lock = self._locks.get(tool)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tool] = lock
        return lock

    def locked(self, tool: str) -> bool:
        return tool in self._held

    async def acquire(self, tool: str, timeout: float | None = None) -> LockTicket:
        """tool のロックを取得してチケットを返す。

        asyncio.Lock は待機順に起こすので、同一ツールの操作は到着順に実行される。
        期限を超えた場合は LockTimeoutError。
        """
        lock = self._lock_for(tool)
        limit = timeout if timeout is not None else self.timeout
        if limit is None:
            await lock.acquire()
        else:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=limit)
            except asyncio.TimeoutError as e:
                raise LockTimeoutError(tool, limit) from e

        ticket = LockTicket(tool=tool, seq=next(self._seq))
        self._held[tool] = ticket
        return ticket

    def release(self, ticket: LockTicket) -> None:
        if self._held.get(ticket.tool) != ticket:
            raise LockReleaseError(f"ticket is not held: {ticket.tool}#{ticket.seq}")
        del self._held[ticket.tool]
        self._locks[ticket.tool].release()

    @asynccontextmanager
    async def hold(self, tool: str, timeout: float | None = None) -> AsyncIterator[LockTicket]:
        ticket = await self.acquire(tool, timeout=timeout)
        try:
            yield ticket
        finally:
            self.release(ticket)
