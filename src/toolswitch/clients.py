"""バックエンドとの契約（プロファイルストア / 透明代理 / 全体設定）。

コーディネータはここに定義した Protocol 越しにのみ外部と話す。
すべてのメソッドは async で、失敗は例外で表す。例外メッセージは加工せず
そのまま呼び出し側へ返されるので、バックエンド側で人間向けの文言にしておくこと。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class ActiveConfig:
    """ツールで現在有効になっている設定。

    profile_name が None のときは、どの名前付きプロファイルにも一致しない
    （手で書き換えられた等）ことを意味する。
    """

    tool: str
    profile_name: str | None
    api_key_preview: str = ""
    base_url: str = ""


@dataclass(frozen=True)
class ProxyState:
    enabled: bool = False
    running: bool = False
    port: int | None = None


@dataclass(frozen=True)
class ToolProxyConfig:
    enabled: bool = False
    port: int | None = None


@dataclass(frozen=True)
class GlobalConfig:
    proxy_configs: dict[str, ToolProxyConfig] = field(default_factory=dict)


@dataclass(frozen=True)
class ProfilesSnapshot:
    profiles: dict[str, list[str]] = field(default_factory=dict)
    active_configs: dict[str, ActiveConfig] = field(default_factory=dict)


class ProfileStoreClient(Protocol):
    async def list_profiles(self, tool: str) -> list[str]: ...

    async def switch_profile(self, tool: str, name: str) -> None: ...

    async def delete_profile(self, tool: str, name: str) -> None: ...

    async def get_active_config(self, tool: str) -> ActiveConfig: ...


class ProxyControlClient(Protocol):
    async def start_proxy(self, tool: str) -> str: ...

    async def stop_proxy(self, tool: str) -> str: ...

    async def get_all_status(self) -> dict[str, ProxyState]: ...


class ConfigStoreClient(Protocol):
    async def get_global_config(self) -> GlobalConfig: ...
