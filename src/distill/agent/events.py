"""流事件

编排循环向外部观察者发布的事件（封闭的带标签联合）。
每个事件携带毫秒时间戳和可选的会话 ID，写入后不可修改。

线路格式：
    {"type": "<tag>", "timestamp": 1700000000000, "sessionId": "...", ...变体字段}
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal

# thinking 事件内容上限
THINKING_MAX_CHARS = 500


class EventType(str, Enum):
    """事件类型标签"""

    PHASE = "phase"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    THINKING = "thinking"
    PROGRESS = "progress"
    FILE_DISCOVERED = "file_discovered"
    RESULT = "result"
    ERROR = "error"


class Phase(str, Enum):
    """分析阶段"""

    INITIALIZING = "initializing"
    LOADING = "loading"
    ANALYZING = "analyzing"
    TOOL_EXECUTION = "tool_execution"
    PARSING = "parsing"
    COMPLETE = "complete"
    ERROR = "error"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class StreamEvent:
    """事件基类

    Attributes:
        timestamp: 事件时间（epoch 毫秒）
        session_id: 所属会话（可选）
    """

    type: ClassVar[EventType]

    timestamp: int = field(default_factory=now_ms, kw_only=True)
    session_id: str | None = field(default=None, kw_only=True)

    def payload(self) -> dict[str, Any]:
        """变体字段（camelCase）"""
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "timestamp": self.timestamp}
        if self.session_id:
            data["sessionId"] = self.session_id
        data.update(self.payload())
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True)
class PhaseEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.PHASE

    phase: Phase
    message: str

    def payload(self) -> dict[str, Any]:
        return {"phase": self.phase.value, "message": self.message}


@dataclass(frozen=True)
class ToolCallEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.TOOL_CALL

    tool: str
    input: dict[str, Any]
    description: str

    def payload(self) -> dict[str, Any]:
        return {"tool": self.tool, "input": self.input, "description": self.description}


@dataclass(frozen=True)
class ToolResultEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.TOOL_RESULT

    tool: str
    success: bool
    summary: str
    duration_ms: int

    def payload(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "success": self.success,
            "summary": self.summary,
            "durationMs": self.duration_ms,
        }


@dataclass(frozen=True)
class ThinkingEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.THINKING

    content: str
    is_partial: bool = False

    def payload(self) -> dict[str, Any]:
        return {"content": self.content, "isPartial": self.is_partial}


@dataclass(frozen=True)
class ProgressEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.PROGRESS

    iteration: int
    tool_calls: int
    input_tokens: int
    output_tokens: int
    duration_ms: int

    def payload(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "toolCalls": self.tool_calls,
            "tokensUsed": {"input": self.input_tokens, "output": self.output_tokens},
            "durationMs": self.duration_ms,
        }


@dataclass(frozen=True)
class FileDiscoveredEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.FILE_DISCOVERED

    action: Literal["create", "modify"]
    path: str
    description: str | None = None

    def payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {"action": self.action, "path": self.path}
        if self.description:
            data["description"] = self.description
        return data


@dataclass(frozen=True)
class ResultEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.RESULT

    summary: str
    stats: dict[str, Any]

    def payload(self) -> dict[str, Any]:
        return {"summary": self.summary, "stats": self.stats}


@dataclass(frozen=True)
class ErrorEvent(StreamEvent):
    type: ClassVar[EventType] = EventType.ERROR

    code: str
    message: str
    recoverable: bool = False

    def payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "recoverable": self.recoverable}


AnyStreamEvent = (
    PhaseEvent
    | ToolCallEvent
    | ToolResultEvent
    | ThinkingEvent
    | ProgressEvent
    | FileDiscoveredEvent
    | ResultEvent
    | ErrorEvent
)


# ==================== 便捷工厂函数 ====================


def phase_event(phase: Phase, message: str) -> PhaseEvent:
    return PhaseEvent(phase=phase, message=message)


def thinking_event(text: str) -> ThinkingEvent:
    """创建 thinking 事件，超出上限的内容被截断并标记为部分内容"""
    if len(text) > THINKING_MAX_CHARS:
        return ThinkingEvent(content=text[:THINKING_MAX_CHARS] + "...", is_partial=True)
    return ThinkingEvent(content=text, is_partial=False)


def error_event(code: str, message: str, recoverable: bool = False) -> ErrorEvent:
    return ErrorEvent(code=code, message=message, recoverable=recoverable)
