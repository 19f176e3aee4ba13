from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest
import pytest_asyncio

from toolswitch.clients import ActiveConfig, GlobalConfig, ProxyState, ToolProxyConfig
from toolswitch.coordinator import ProfileCoordinator


class FakeBackend:
    """プロファイルストア / 代理 / 全体設定をまとめて模したテスト用バックエンド。

    - `fail[method] = exc` でそのメソッドを失敗させる
    - `hooks[method]` は呼び出し中（例外判定の前）に実行される
    - `yields` 回だけ各呼び出しで制御を手放し、操作の割り込みを起こしやすくする
    """

    def __init__(
        self,
        profiles: dict[str, list[str]] | None = None,
        active: dict[str, str | None] | None = None,
        proxy: dict[str, ProxyState] | None = None,
    ) -> None:
        self.profiles = {t: list(v) for t, v in (profiles or {}).items()}
        self.active = dict(active or {})
        self.proxy = dict(proxy or {})
        self.fail: dict[str, Exception] = {}
        self.hooks: dict[str, Callable[..., None]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.yields = 1

    async def _enter(self, method: str, *args: str) -> None:
        self.calls.append((method, *args))
        for _ in range(self.yields):
            await asyncio.sleep(0)
        hook = self.hooks.get(method)
        if hook is not None:
            hook(*args)
        exc = self.fail.get(method)
        if exc is not None:
            raise exc

    async def list_profiles(self, tool: str) -> list[str]:
        await self._enter("list_profiles", tool)
        return list(self.profiles.get(tool, []))

    async def switch_profile(self, tool: str, name: str) -> None:
        await self._enter("switch_profile", tool, name)
        self.active[tool] = name

    async def delete_profile(self, tool: str, name: str) -> None:
        await self._enter("delete_profile", tool, name)
        self.profiles[tool] = [p for p in self.profiles.get(tool, []) if p != name]
        if self.active.get(tool) == name:
            self.active[tool] = None

    async def get_active_config(self, tool: str) -> ActiveConfig:
        await self._enter("get_active_config", tool)
        return ActiveConfig(tool=tool, profile_name=self.active.get(tool))

    async def start_proxy(self, tool: str) -> str:
        await self._enter("start_proxy", tool)
        cur = self.proxy.get(tool, ProxyState())
        self.proxy[tool] = ProxyState(enabled=cur.enabled, running=True, port=cur.port)
        return f"{tool} proxy started"

    async def stop_proxy(self, tool: str) -> str:
        await self._enter("stop_proxy", tool)
        cur = self.proxy.get(tool, ProxyState())
        self.proxy[tool] = ProxyState(enabled=cur.enabled, running=False, port=cur.port)
        return f"{tool} proxy stopped"

    async def get_all_status(self) -> dict[str, ProxyState]:
        await self._enter("get_all_status")
        return dict(self.proxy)

    async def get_global_config(self) -> GlobalConfig:
        await self._enter("get_global_config")
        return GlobalConfig(
            proxy_configs={t: ToolProxyConfig(enabled=s.enabled, port=s.port) for t, s in self.proxy.items()}
        )

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)


@pytest.fixture()
def backend() -> FakeBackend:
    """codex: work/personal（work が有効）、代理は有効かつ稼働中。"""
    return FakeBackend(
        profiles={"codex": ["work", "personal"], "claude-code": ["default"], "gemini-cli": []},
        active={"codex": "work", "claude-code": "default"},
        proxy={"codex": ProxyState(enabled=True, running=True, port=8788)},
    )


@pytest_asyncio.fixture()
async def coordinator(backend: FakeBackend) -> ProfileCoordinator:
    c = ProfileCoordinator(backend, backend, backend)
    await c.load()
    backend.calls.clear()
    return c
