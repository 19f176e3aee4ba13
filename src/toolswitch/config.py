"""toolswitch の設定ファイル。

設定ファイル: `toolswitch.toml`（デフォルト）

```toml
[coordinator]
lock_timeout_seconds = 30.0  # 0 で無期限
tools = ["claude-code", "codex", "gemini-cli"]

[backend]
root = "."

[logging]
level = "INFO"
```

APIキー等の秘密情報はこのファイルに書かない（プロファイルストア側で扱う）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

from toolswitch.tools import ALL_TOOLS, parse_tool

DEFAULT_CONFIG_PATH = Path("toolswitch.toml")


@dataclass
class CoordinatorSettings:
    lock_timeout_seconds: float = 30.0
    tools: list[str] = field(default_factory=lambda: list(ALL_TOOLS))


@dataclass
class AppConfig:
    coordinator: CoordinatorSettings = field(default_factory=CoordinatorSettings)
    backend_root: Path = Path(".")
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    if path is None:
        path = DEFAULT_CONFIG_PATH
    if not path.exists():
        return AppConfig()

    raw = tomllib.loads(path.read_text(encoding="utf-8"))

    coordinator = raw.get("coordinator", {})
    backend = raw.get("backend", {})
    logging_cfg = raw.get("logging", {})

    tools = coordinator.get("tools")
    return AppConfig(
        coordinator=CoordinatorSettings(
            lock_timeout_seconds=float(coordinator.get("lock_timeout_seconds", 30.0)),
            tools=[parse_tool(str(t)) for t in tools] if tools else list(ALL_TOOLS),
        ),
        backend_root=Path(str(backend.get("root", "."))),
        log_level=str(logging_cfg.get("level", "INFO")),
    )
