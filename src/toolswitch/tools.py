"""管理対象 CLI ツールの定義。"""

from __future__ import annotations

from dataclasses import dataclass

from toolswitch.errors import UnknownToolError

CLAUDE_CODE = "claude-code"
CODEX = "codex"
GEMINI_CLI = "gemini-cli"

ALL_TOOLS: tuple[str, ...] = (CLAUDE_CODE, CODEX, GEMINI_CLI)


@dataclass(frozen=True)
class ToolDef:
    id: str
    display_name: str


_TOOL_DEFS: dict[str, ToolDef] = {
    CLAUDE_CODE: ToolDef(id=CLAUDE_CODE, display_name="Claude Code"),
    CODEX: ToolDef(id=CODEX, display_name="CodeX"),
    GEMINI_CLI: ToolDef(id=GEMINI_CLI, display_name="Gemini CLI"),
}


def parse_tool(value: str) -> str:
    tool = value.strip().lower()
    if tool not in _TOOL_DEFS:
        raise UnknownToolError(value)
    return tool


def display_name(tool: str) -> str:
    d = _TOOL_DEFS.get(tool)
    return d.display_name if d else tool
