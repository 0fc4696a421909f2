"""终端事件显示

ConsoleSubscriber 将流事件逐行打印到 Rich Console，供 CLI 使用。

显示效果示例：

    → Starting analysis...
    ⠿ iteration 1 (0 tool calls, 1.2k tokens)
    ● list_dir  Exploring directory: src
    ✓ list_dir  Found 12 files and 3 directories (45ms)
    + src/pricing/round.ts
    ~ src/pricing/format.ts
    ✓ Analysis complete
"""

from __future__ import annotations

from rich.console import Console
from rich.text import Text

from distill.agent.events import (
    ErrorEvent,
    FileDiscoveredEvent,
    Phase,
    PhaseEvent,
    ProgressEvent,
    ResultEvent,
    StreamEvent,
    ThinkingEvent,
    ToolCallEvent,
    ToolResultEvent,
)


class StatusIcons:
    SUCCESS = "✓"
    ERROR = "✗"
    WARNING = "⚠"
    INFO = "→"
    PROGRESS = "⠿"
    CALL = "●"
    CREATE = "+"
    MODIFY = "~"
    THINKING = "💭"


class StatusColors:
    SUCCESS = "green"
    ERROR = "red"
    WARNING = "yellow"
    DIM = "dim"
    TOOL_NAME = "bold cyan"
    ITERATION = "bold yellow"
    CREATE = "green"
    MODIFY = "yellow"
    THINKING = "italic dim"


def format_tokens(count: int) -> str:
    if count >= 1000:
        return f"{count / 1000:.1f}k"
    return str(count)


class ConsoleSubscriber:
    """Rich 终端订阅者

    Args:
        console: Rich Console 实例
        verbose: 显示 progress 和 thinking 事件
    """

    def __init__(self, console: Console | None = None, verbose: bool = False):
        self._console = console or Console(stderr=True)
        self._verbose = verbose

    def on_event(self, event: StreamEvent) -> None:
        line = self.render(event)
        if line is not None:
            self._console.print(line)

    def render(self, event: StreamEvent) -> Text | None:
        """将事件渲染为一行文本（不显示的事件返回 None）"""
        if isinstance(event, PhaseEvent):
            return self._render_phase(event)
        if isinstance(event, ToolCallEvent):
            text = Text(f"{StatusIcons.CALL} ", style=StatusColors.DIM)
            text.append(event.tool, style=StatusColors.TOOL_NAME)
            text.append(f"  {event.description}")
            return text
        if isinstance(event, ToolResultEvent):
            icon, style = (
                (StatusIcons.SUCCESS, StatusColors.SUCCESS)
                if event.success
                else (StatusIcons.ERROR, StatusColors.ERROR)
            )
            text = Text(f"{icon} ", style=style)
            text.append(event.tool, style=StatusColors.TOOL_NAME)
            text.append(f"  {event.summary}")
            text.append(f" ({event.duration_ms}ms)", style=StatusColors.DIM)
            return text
        if isinstance(event, FileDiscoveredEvent):
            if event.action == "create":
                text = Text(f"{StatusIcons.CREATE} {event.path}", style=StatusColors.CREATE)
            else:
                text = Text(f"{StatusIcons.MODIFY} {event.path}", style=StatusColors.MODIFY)
            if event.description:
                text.append(f"  {event.description}", style=StatusColors.DIM)
            return text
        if isinstance(event, ErrorEvent):
            if event.recoverable:
                return Text(f"{StatusIcons.WARNING} {event.code}: {event.message}", style=StatusColors.WARNING)
            return Text(f"{StatusIcons.ERROR} {event.code}: {event.message}", style=StatusColors.ERROR)
        if isinstance(event, ResultEvent):
            return Text(f"{StatusIcons.INFO} {event.summary}", style="bold")
        if not self._verbose:
            return None
        if isinstance(event, ProgressEvent):
            tokens = format_tokens(event.input_tokens + event.output_tokens)
            text = Text(f"{StatusIcons.PROGRESS} ", style=StatusColors.DIM)
            text.append(f"iteration {event.iteration}", style=StatusColors.ITERATION)
            text.append(f" ({event.tool_calls} tool calls, {tokens} tokens)", style=StatusColors.DIM)
            return text
        if isinstance(event, ThinkingEvent):
            return Text(f"{StatusIcons.THINKING} {event.content}", style=StatusColors.THINKING)
        return None

    def _render_phase(self, event: PhaseEvent) -> Text | None:
        # 工具执行阶段已由 tool_call 行表示
        if event.phase == Phase.TOOL_EXECUTION:
            return None
        if event.phase == Phase.COMPLETE:
            return Text(f"{StatusIcons.SUCCESS} {event.message}", style=StatusColors.SUCCESS)
        if event.phase == Phase.ERROR:
            return None
        return Text(f"{StatusIcons.INFO} {event.message}", style=StatusColors.DIM)
