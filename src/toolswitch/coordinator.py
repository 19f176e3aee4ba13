"""プロファイル切替 / 削除 / 透明代理の開始停止を調停するコーディネータ。

各ツールについて次の状態をメモリ上に持つ:
- プロファイル一覧
- 有効プロファイル（ストアが確認した値のみ）と有効設定スナップショット
- 透明代理の enabled/running
- 操作中フラグ（switching / deleting / loading）

操作はすべて次の二段階で進める:
1. 主操作（ストアまたは代理への変更要求）。失敗したらローカル状態は一切変えずに失敗を返す。
2. 再同期（有効設定・全体設定・代理状態の再取得）。失敗してもログに残すだけで、
   主操作の成功はそのまま成功として返す。

同じツールへの操作は ToolOperationLock で直列化される。ロック外からの読み取りは、
楽観更新と再同期の間の一時的に古い値を見ることがある。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from toolswitch import messages
from toolswitch.clients import (
    ActiveConfig,
    ConfigStoreClient,
    GlobalConfig,
    ProfilesSnapshot,
    ProfileStoreClient,
    ProxyControlClient,
    ProxyState,
)
from toolswitch.errors import LockTimeoutError
from toolswitch.locks import ToolOperationLock
from toolswitch.tools import ALL_TOOLS

ProfileOrder = Callable[[str, list[str]], list[str]]


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: str


@dataclass(frozen=True)
class SwitchResult(OperationResult):
    hot_applied: bool = False


class ProfileCoordinator:
    def __init__(
        self,
        store: ProfileStoreClient,
        proxy: ProxyControlClient,
        config_store: ConfigStoreClient,
        *,
        tools: Iterable[str] = ALL_TOOLS,
        lock: ToolOperationLock | None = None,
        logger: logging.Logger | None = None,
        profile_order: ProfileOrder | None = None,
    ) -> None:
        self.store = store
        self.proxy = proxy
        self.config_store = config_store
        self.tools: tuple[str, ...] = tuple(tools)
        self.lock = lock or ToolOperationLock()
        self.log = logger or logging.getLogger(__name__)
        self._profile_order = profile_order

        self._profiles: dict[str, list[str]] = {}
        self._active: dict[str, str | None] = {}
        self._active_configs: dict[str, ActiveConfig] = {}
        self._selected: dict[str, str] = {}
        self._global_config: GlobalConfig | None = None
        self._proxy_status: dict[str, ProxyState] = {}

        self._switching: dict[str, bool] = {}
        self._deleting: dict[tuple[str, str], bool] = {}
        self._loading: set[str] = set()

    # ------------------------------------------------------------------
    # 読み取り
    # ------------------------------------------------------------------

    def profiles(self, tool: str) -> list[str]:
        return list(self._profiles.get(tool, []))

    def active_profile(self, tool: str) -> str | None:
        return self._active.get(tool)

    def active_config(self, tool: str) -> ActiveConfig | None:
        return self._active_configs.get(tool)

    def selected_profile(self, tool: str) -> str | None:
        return self._selected.get(tool)

    @property
    def global_config(self) -> GlobalConfig | None:
        return self._global_config

    def proxy_state(self, tool: str) -> ProxyState:
        return self._proxy_status.get(tool, ProxyState())

    def is_proxy_enabled(self, tool: str) -> bool:
        # enabled は全体設定が正。未取得のうちは代理状態側の値を使う
        if self._global_config is not None:
            cfg = self._global_config.proxy_configs.get(tool)
            return bool(cfg and cfg.enabled)
        return self.proxy_state(tool).enabled

    def is_proxy_running(self, tool: str) -> bool:
        return self.proxy_state(tool).running

    def is_switching(self, tool: str) -> bool:
        return self._switching.get(tool, False)

    def is_deleting(self, tool: str, profile: str) -> bool:
        return self._deleting.get((tool, profile), False)

    def is_tool_loading(self, tool: str) -> bool:
        return tool in self._loading

    def is_operation_in_flight(self, tool: str) -> bool:
        """UI のボタン無効化用。排他そのものはロックが担う。"""
        if self.is_switching(tool) or self.is_tool_loading(tool):
            return True
        return any(t == tool for (t, _) in self._deleting)

    # ------------------------------------------------------------------
    # 読み込み・再同期（best-effort）
    # ------------------------------------------------------------------

    async def load(self) -> ProfilesSnapshot:
        """全ツールのプロファイルと有効設定、全体設定、代理状態を取得する。

        ツールごとの失敗はログに残し、そのツールのキャッシュは据え置く。
        """
        await asyncio.gather(*(self._load_tool(tool) for tool in self.tools))
        await self.refresh_global_config()
        await self.refresh_proxy_status()
        return ProfilesSnapshot(
            profiles={t: list(v) for t, v in self._profiles.items()},
            active_configs=dict(self._active_configs),
        )

    async def _load_tool(self, tool: str) -> None:
        try:
            async with self._operation(tool, loading=True):
                try:
                    names, cfg = await self._fetch_tool(tool)
                except Exception as e:  # noqa: BLE001
                    self.log.warning("load profiles failed: tool=%s: %s", tool, e, exc_info=True)
                    return
                self._profiles[tool] = self._ordered(tool, names)
                if cfg is not None:
                    self._apply_active_config(cfg)
        except LockTimeoutError as e:
            self.log.warning("load skipped: %s", e)

    async def _fetch_tool(self, tool: str) -> tuple[list[str], ActiveConfig | None]:
        names = list(await self.store.list_profiles(tool))
        try:
            cfg = await self.store.get_active_config(tool)
        except Exception as e:  # noqa: BLE001
            # 未設定のツールでは有効設定が読めないことがある
            self.log.warning("get active config failed: tool=%s: %s", tool, e, exc_info=True)
            cfg = None
        return names, cfg

    async def refresh_global_config(self) -> None:
        try:
            self._global_config = await self.config_store.get_global_config()
        except Exception as e:  # noqa: BLE001
            self.log.warning("load global config failed: %s", e, exc_info=True)

    async def refresh_proxy_status(self) -> None:
        # 代理状態は全ツール分を一括で取得して丸ごと置き換える
        try:
            status = await self.proxy.get_all_status()
        except Exception as e:  # noqa: BLE001
            self.log.warning("load proxy status failed: %s", e, exc_info=True)
            return
        self._proxy_status = dict(status)

    async def _refresh_active_config(self, tool: str, *, update_ref: bool = True) -> None:
        try:
            cfg = await self.store.get_active_config(tool)
        except Exception as e:  # noqa: BLE001
            self.log.warning("reload active config failed: tool=%s: %s", tool, e, exc_info=True)
            return
        self._apply_active_config(cfg, update_ref=update_ref)

    def _apply_active_config(self, cfg: ActiveConfig, *, update_ref: bool = True) -> None:
        self._active_configs[cfg.tool] = cfg
        if update_ref:
            self._active[cfg.tool] = cfg.profile_name

    def _ordered(self, tool: str, names: list[str]) -> list[str]:
        if self._profile_order is None:
            return names
        return list(self._profile_order(tool, names))

    # ------------------------------------------------------------------
    # 操作
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(
        self,
        tool: str,
        *,
        deleting: str | None = None,
        loading: bool = False,
    ) -> AsyncIterator[None]:
        async with self.lock.hold(tool):
            if deleting is not None:
                self._deleting[(tool, deleting)] = True
            elif loading:
                self._loading.add(tool)
            else:
                self._switching[tool] = True
            try:
                yield
            finally:
                if deleting is not None:
                    self._deleting.pop((tool, deleting), None)
                elif loading:
                    self._loading.discard(tool)
                else:
                    self._switching.pop(tool, None)

    async def switch_profile(self, tool: str, profile: str) -> SwitchResult:
        """tool の有効プロファイルを profile に切り替える。

        代理が有効かつ稼働中なら代理側で即時反映されるため再起動は不要。
        そうでなければ CLI の再起動を促すメッセージを返す。
        """
        try:
            async with self._operation(tool):
                return await self._switch_locked(tool, profile)
        except LockTimeoutError as e:
            self.log.error("switch profile aborted: %s", e)
            return SwitchResult(success=False, message=str(e))

    async def _switch_locked(self, tool: str, profile: str) -> SwitchResult:
        via_proxy = self.is_proxy_enabled(tool) and self.is_proxy_running(tool)

        try:
            await self.store.switch_profile(tool, profile)
        except Exception as e:  # noqa: BLE001
            self.log.error("switch profile failed: tool=%s profile=%s: %s", tool, profile, e)
            return SwitchResult(success=False, message=str(e))

        # ストアが切替を確定したので、この時点で有効プロファイルを更新してよい
        self._active[tool] = profile
        self._selected[tool] = profile
        self.log.info("switched profile: tool=%s profile=%s proxy=%s", tool, profile, via_proxy)

        await self._refresh_active_config(tool, update_ref=False)
        await self.refresh_global_config()

        if via_proxy:
            return SwitchResult(success=True, message=messages.SWITCH_HOT_APPLIED, hot_applied=True)
        return SwitchResult(success=True, message=messages.SWITCH_NEEDS_RESTART, hot_applied=False)

    async def delete_profile(self, tool: str, profile: str) -> OperationResult:
        try:
            async with self._operation(tool, deleting=profile):
                return await self._delete_locked(tool, profile)
        except LockTimeoutError as e:
            self.log.error("delete profile aborted: %s", e)
            return OperationResult(success=False, message=str(e))

    async def _delete_locked(self, tool: str, profile: str) -> OperationResult:
        try:
            await self.store.delete_profile(tool, profile)
        except Exception as e:  # noqa: BLE001
            self.log.error("delete profile failed: tool=%s profile=%s: %s", tool, profile, e)
            return OperationResult(success=False, message=str(e))

        prev_cfg = self._active_configs.get(tool)
        was_active = self._active.get(tool) == profile or (
            prev_cfg is not None and prev_cfg.profile_name == profile
        )

        # 楽観更新: 再読込を待たずに一覧から消す
        self._profiles[tool] = [p for p in self._profiles.get(tool, []) if p != profile]
        if self._selected.get(tool) == profile:
            del self._selected[tool]
        self.log.info("deleted profile: tool=%s profile=%s", tool, profile)

        try:
            names, latest_cfg = await self._fetch_tool(tool)
        except Exception as e:  # noqa: BLE001
            self.log.warning("reload profiles after delete failed: tool=%s: %s", tool, e, exc_info=True)
            return OperationResult(success=True, message=messages.DELETE_OK)

        self._profiles[tool] = self._ordered(tool, [n for n in names if n != profile])

        if latest_cfg is not None and latest_cfg.profile_name == profile:
            was_active = True
        if not was_active:
            if latest_cfg is not None:
                self._apply_active_config(latest_cfg)
            return OperationResult(success=True, message=messages.DELETE_OK)

        # 削除したのが有効プロファイルだった: 有効設定を取り直す
        try:
            cfg = await self.store.get_active_config(tool)
        except Exception as e:  # noqa: BLE001
            self.log.warning("reload active config after delete failed: tool=%s: %s", tool, e, exc_info=True)
            cfg = latest_cfg
        if cfg is not None:
            if cfg.profile_name == profile:
                cfg = ActiveConfig(
                    tool=cfg.tool,
                    profile_name=None,
                    api_key_preview=cfg.api_key_preview,
                    base_url=cfg.base_url,
                )
            self._apply_active_config(cfg)
        return OperationResult(success=True, message=messages.DELETE_OK)

    async def start_proxy(self, tool: str) -> OperationResult:
        return await self._proxy_operation(tool, stop=False)

    async def stop_proxy(self, tool: str) -> OperationResult:
        return await self._proxy_operation(tool, stop=True)

    async def _proxy_operation(self, tool: str, *, stop: bool) -> OperationResult:
        action = "stop" if stop else "start"
        try:
            async with self._operation(tool, loading=True):
                call = self.proxy.stop_proxy if stop else self.proxy.start_proxy
                try:
                    message = await call(tool)
                except Exception as e:  # noqa: BLE001
                    self.log.error("%s proxy failed: tool=%s: %s", action, tool, e)
                    return OperationResult(success=False, message=str(e))

                self.log.info("%s proxy: tool=%s", action, tool)
                await self.refresh_proxy_status()
                if stop:
                    # 代理を止めると実際に効いている設定が変わりうる
                    await self._refresh_active_config(tool)
                return OperationResult(success=True, message=str(message))
        except LockTimeoutError as e:
            self.log.error("%s proxy aborted: %s", action, e)
            return OperationResult(success=False, message=str(e))
