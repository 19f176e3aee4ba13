"""CLI 実行時の logging 初期化。

コーディネータは画面に出さない失敗をすべてログへ逃がす。出力先は
`<root>/.toolswitch/logs/toolswitch.log`（状態ファイルと同じ root の下）。

- ERROR: 主操作（切替・削除・代理の開始停止）の失敗。同じ文言が結果メッセージにも入る
- WARNING: 主操作は成功したが、その後の再同期（有効設定・全体設定・代理状態の再取得）に失敗した。
  トレースバック付きで残るので、UI の表示が古いままのときはここを見る
- INFO: 成功した操作の記録

setup_logging は CLI の各コマンドから呼ばれるため、2回目以降は何もしない。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(*, root: Path, level: str = "INFO") -> Path:
    log_dir = root / ".toolswitch" / "logs"
    log_path = log_dir / "toolswitch.log"

    # 既に設定済みなら二重設定しない
    if getattr(setup_logging, "_configured", False):
        return log_path

    log_dir.mkdir(parents=True, exist_ok=True)
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = RotatingFileHandler(
        log_path,
        maxBytes=2_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(fmt)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    setup_logging._configured = True  # type: ignore[attr-defined]
    return log_path
