"""toolswitch CLI エントリポイント。

オフラインバックエンド（`.toolswitch/state.json`）に対して
プロファイルの切替・削除と透明代理の開始/停止を行う。
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from toolswitch.config import AppConfig, load_config
from toolswitch.coordinator import OperationResult, ProfileCoordinator
from toolswitch.errors import BackendError, UnknownToolError
from toolswitch.locks import ToolOperationLock
from toolswitch.logging_setup import setup_logging
from toolswitch.offline_backend import OfflineBackend
from toolswitch.tools import display_name, parse_tool

APP_HELP = "CLI ツール（Claude Code / CodeX / Gemini CLI）のプロファイルと透明代理を切り替える"

app = typer.Typer(add_completion=False, help=APP_HELP)
console = Console()

T = TypeVar("T")

ROOT_OPTION = typer.Option(None, "--root", help="状態ファイルを置くディレクトリ（既定: 設定ファイルの backend.root）")
CONFIG_OPTION = typer.Option(Path("toolswitch.toml"), "--config", help="設定ファイル")


def _tool_or_exit(value: str) -> str:
    try:
        return parse_tool(value)
    except UnknownToolError as e:
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=2) from e


def _setup(root: Path | None, config: Path) -> tuple[AppConfig, OfflineBackend, ProfileCoordinator]:
    cfg = load_config(config)
    base = root if root is not None else cfg.backend_root
    setup_logging(root=base, level=cfg.log_level)
    backend = OfflineBackend(base)
    coordinator = ProfileCoordinator(
        backend,
        backend,
        backend,
        tools=cfg.coordinator.tools,
        lock=ToolOperationLock(timeout=cfg.coordinator.lock_timeout_seconds),
    )
    return cfg, backend, coordinator


def _run(coordinator: ProfileCoordinator, op: Callable[[], Awaitable[T]]) -> T:
    async def _main() -> T:
        await coordinator.load()
        return await op()

    return asyncio.run(_main())


def _report(result: OperationResult) -> None:
    if result.success:
        for line in result.message.splitlines():
            console.print(f"  {line}", style="green")
        return
    console.print(f"❌ {result.message}", style="red")
    raise typer.Exit(code=1)


@app.command()
def status(
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """全ツールの有効プロファイルと透明代理の状態を表示する。"""
    _, _, coordinator = _setup(root, config)
    asyncio.run(coordinator.load())

    table = Table(title="toolswitch status")
    table.add_column("tool", style="cyan")
    table.add_column("active")
    table.add_column("profiles")
    table.add_column("proxy enabled")
    table.add_column("proxy running")
    for tool in coordinator.tools:
        table.add_row(
            display_name(tool),
            coordinator.active_profile(tool) or "-",
            ", ".join(coordinator.profiles(tool)) or "-",
            "yes" if coordinator.is_proxy_enabled(tool) else "no",
            "yes" if coordinator.is_proxy_running(tool) else "no",
        )
    console.print(table)


@app.command("list")
def list_profiles(
    tool: str = typer.Argument(..., help="ツールID (claude-code / codex / gemini-cli)"),
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """ツールのプロファイル一覧を表示する（* が有効）。"""
    tool_id = _tool_or_exit(tool)
    _, _, coordinator = _setup(root, config)
    asyncio.run(coordinator.load())

    active = coordinator.active_profile(tool_id)
    names = coordinator.profiles(tool_id)
    if not names:
        console.print(f"{display_name(tool_id)}: プロファイルがありません", style="dim")
        return
    for name in names:
        mark = "*" if name == active else " "
        console.print(f"{mark} {name}")


@app.command()
def add(
    tool: str = typer.Argument(..., help="ツールID"),
    name: str = typer.Argument(..., help="プロファイル名"),
    api_key: str = typer.Option("", "--api-key", help="APIキー"),
    base_url: str = typer.Option("", "--base-url", help="エンドポイント"),
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """プロファイルを追加（同名なら上書き）する。"""
    tool_id = _tool_or_exit(tool)
    _, backend, _ = _setup(root, config)
    try:
        backend.save_profile(tool_id, name, api_key=api_key, base_url=base_url)
    except BackendError as e:
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=1) from e
    console.print(f"  ✅ {display_name(tool_id)}: {name}", style="green")


@app.command()
def switch(
    tool: str = typer.Argument(..., help="ツールID"),
    profile: str = typer.Argument(..., help="切り替え先のプロファイル名"),
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """有効プロファイルを切り替える。"""
    tool_id = _tool_or_exit(tool)
    _, _, coordinator = _setup(root, config)
    result = _run(coordinator, lambda: coordinator.switch_profile(tool_id, profile))
    _report(result)


@app.command()
def delete(
    tool: str = typer.Argument(..., help="ツールID"),
    profile: str = typer.Argument(..., help="削除するプロファイル名"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認せずに削除する"),
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """プロファイルを削除する。"""
    tool_id = _tool_or_exit(tool)
    if not yes and not typer.confirm(f"{display_name(tool_id)} のプロファイル {profile} を削除しますか?"):
        raise typer.Exit(code=1)
    _, _, coordinator = _setup(root, config)
    result = _run(coordinator, lambda: coordinator.delete_profile(tool_id, profile))
    _report(result)


@app.command("proxy-start")
def proxy_start(
    tool: str = typer.Argument(..., help="ツールID"),
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """透明代理を開始する。"""
    tool_id = _tool_or_exit(tool)
    _, _, coordinator = _setup(root, config)
    _report(_run(coordinator, lambda: coordinator.start_proxy(tool_id)))


@app.command("proxy-stop")
def proxy_stop(
    tool: str = typer.Argument(..., help="ツールID"),
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """透明代理を停止する。"""
    tool_id = _tool_or_exit(tool)
    _, _, coordinator = _setup(root, config)
    _report(_run(coordinator, lambda: coordinator.stop_proxy(tool_id)))


@app.command("proxy-enable")
def proxy_enable(
    tool: str = typer.Argument(..., help="ツールID"),
    enable: bool = typer.Option(True, "--on/--off", help="透明代理を有効/無効にする"),
    port: int | None = typer.Option(None, "--port", help="代理のポート"),
    root: Path | None = ROOT_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """透明代理の有効/無効を設定する（無効にすると停止扱い）。"""
    tool_id = _tool_or_exit(tool)
    _, backend, _ = _setup(root, config)
    backend.set_proxy_enabled(tool_id, enable, port=port)
    state = "on" if enable else "off"
    console.print(f"  ✅ {display_name(tool_id)} proxy: {state}", style="green")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
