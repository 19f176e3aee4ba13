"""オフラインバックエンド（状態ファイル）。

デスクトップ版のバックエンドを使わずに CLI / テストを動かすためのもの。
プロファイルストア・透明代理・全体設定の3つの契約をまとめて満たす。

- 状態ファイル: `<root>/.toolswitch/state.json`
- 代理エンジンは持たない。start/stop は running フラグを記録するだけ

```json
{
  "tools": {
    "codex": {
      "profiles": {"work": {"api_key": "sk-...", "base_url": "https://..."}},
      "active": "work",
      "proxy": {"enabled": true, "running": false, "port": 8788}
    }
  }
}
```
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from toolswitch.clients import ActiveConfig, GlobalConfig, ProxyState, ToolProxyConfig
from toolswitch.errors import BackendError
from toolswitch.tools import display_name

log = logging.getLogger(__name__)

_WARNED_CORRUPT_STATE: set[Path] = set()


def state_path_for(root: Path) -> Path:
    return root / ".toolswitch" / "state.json"


def mask_api_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 4:
        return "*" * len(key)
    return "*" * (len(key) - 4) + key[-4:]


def _warn_corrupt_state(path: Path, *, reason: str) -> None:
    # 毎回の読み込みで警告を連発しない
    if path in _WARNED_CORRUPT_STATE:
        return
    _WARNED_CORRUPT_STATE.add(path)
    log.warning("state.json is invalid; using empty state (%s): %s", reason, path)


class OfflineBackend:
    def __init__(self, root: Path) -> None:
        self.path = state_path_for(root)

    # --- 状態ファイル ---------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"tools": {}}

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            _warn_corrupt_state(self.path, reason=f"read failed: {type(e).__name__}")
            return {"tools": {}}

        if text.strip() == "":
            _warn_corrupt_state(self.path, reason="empty")
            return {"tools": {}}

        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            _warn_corrupt_state(self.path, reason="JSON decode error")
            return {"tools": {}}

        if not isinstance(raw, dict):
            _warn_corrupt_state(self.path, reason="not an object")
            return {"tools": {}}
        if not isinstance(raw.get("tools"), dict):
            raw["tools"] = {}
        return raw

    def _save(self, raw: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(raw, ensure_ascii=False, indent=2), encoding="utf-8")

    @staticmethod
    def _tool_entry(raw: dict[str, Any], tool: str) -> dict[str, Any]:
        # null などオブジェクト以外のエントリは未設定として作り直す
        entry = raw["tools"].get(tool)
        if not isinstance(entry, dict):
            entry = {}
            raw["tools"][tool] = entry
        for key in ("profiles", "proxy"):
            if not isinstance(entry.get(key), dict):
                entry[key] = {}
        entry.setdefault("active", None)
        return entry

    # --- 管理用（CLI から使う） -----------------------------------------

    def save_profile(self, tool: str, name: str, *, api_key: str = "", base_url: str = "") -> None:
        if not name.strip():
            raise BackendError("配置名称不能为空")
        raw = self._load()
        entry = self._tool_entry(raw, tool)
        entry["profiles"][name] = {"api_key": api_key, "base_url": base_url}
        self._save(raw)

    def set_proxy_enabled(self, tool: str, enabled: bool, *, port: int | None = None) -> None:
        raw = self._load()
        proxy = self._tool_entry(raw, tool)["proxy"]
        proxy["enabled"] = enabled
        if port is not None:
            proxy["port"] = port
        if not enabled:
            proxy["running"] = False
        self._save(raw)

    # --- ProfileStoreClient ---------------------------------------------

    async def list_profiles(self, tool: str) -> list[str]:
        entry = self._load()["tools"].get(tool) or {}
        return list((entry.get("profiles") or {}).keys())

    async def switch_profile(self, tool: str, name: str) -> None:
        raw = self._load()
        entry = self._tool_entry(raw, tool)
        if name not in entry["profiles"]:
            raise BackendError(f"配置不存在: {tool}/{name}")
        entry["active"] = name
        self._save(raw)

    async def delete_profile(self, tool: str, name: str) -> None:
        raw = self._load()
        entry = self._tool_entry(raw, tool)
        if name not in entry["profiles"]:
            raise BackendError(f"配置不存在: {tool}/{name}")
        del entry["profiles"][name]
        if entry["active"] == name:
            entry["active"] = None
        self._save(raw)

    async def get_active_config(self, tool: str) -> ActiveConfig:
        entry = self._load()["tools"].get(tool)
        if not entry:
            raise BackendError(f"{display_name(tool)} 尚未配置")
        name = entry.get("active")
        data = (entry.get("profiles") or {}).get(name) if name else None
        if data is None:
            return ActiveConfig(tool=tool, profile_name=None)
        return ActiveConfig(
            tool=tool,
            profile_name=name,
            api_key_preview=mask_api_key(str(data.get("api_key", ""))),
            base_url=str(data.get("base_url", "")),
        )

    # --- ProxyControlClient ---------------------------------------------

    async def start_proxy(self, tool: str) -> str:
        raw = self._load()
        proxy = self._tool_entry(raw, tool)["proxy"]
        if not proxy.get("enabled"):
            raise BackendError(f"{display_name(tool)} 的透明代理未启用")
        if proxy.get("running"):
            return f"{display_name(tool)} 透明代理已在运行"
        proxy["running"] = True
        self._save(raw)
        port = proxy.get("port")
        suffix = f"（端口 {port}）" if port else ""
        return f"✅ {display_name(tool)} 透明代理已启动{suffix}"

    async def stop_proxy(self, tool: str) -> str:
        raw = self._load()
        proxy = self._tool_entry(raw, tool)["proxy"]
        if not proxy.get("running"):
            return f"{display_name(tool)} 透明代理未运行"
        proxy["running"] = False
        self._save(raw)
        return f"✅ {display_name(tool)} 透明代理已停止"

    async def get_all_status(self) -> dict[str, ProxyState]:
        status: dict[str, ProxyState] = {}
        for tool, entry in self._load()["tools"].items():
            proxy = (entry or {}).get("proxy") or {}
            status[tool] = ProxyState(
                enabled=bool(proxy.get("enabled", False)),
                running=bool(proxy.get("running", False)),
                port=proxy.get("port"),
            )
        return status

    # --- ConfigStoreClient ----------------------------------------------

    async def get_global_config(self) -> GlobalConfig:
        configs: dict[str, ToolProxyConfig] = {}
        for tool, entry in self._load()["tools"].items():
            proxy = (entry or {}).get("proxy") or {}
            configs[tool] = ToolProxyConfig(
                enabled=bool(proxy.get("enabled", False)),
                port=proxy.get("port"),
            )
        return GlobalConfig(proxy_configs=configs)
