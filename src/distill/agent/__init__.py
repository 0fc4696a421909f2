"""分析 Agent

编排循环、事件流、产物模型与结果提取。

Exports:
    Orchestrator / run_analysis: 运行一次分析会话
    EventEmitter 及订阅者: 事件发布
    Artifact / extract_artifact: 产物模型与提取
"""

from .artifact import Artifact
from .display import ConsoleSubscriber
from .emitter import (
    STREAM_END,
    EventEmitter,
    EventSubscriber,
    LoggingSubscriber,
    NullSubscriber,
    QueueSubscriber,
)
from .events import (
    AnyStreamEvent,
    ErrorEvent,
    EventType,
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
from .model_client import AnthropicModelClient, ModelClient, ModelResponse, TextBlock, ToolUseBlock, Usage
from .orchestrator import (
    AgentStats,
    AnalysisOutcome,
    AnalysisRequest,
    Orchestrator,
    OrchestratorConfig,
    run_analysis,
)
from .prompts import ProjectContext, WorkItem, build_system_prompt
from .result_extractor import ExtractionResult, extract_artifact, repair_json
from .session import InMemorySessionStore, SessionSnapshot, SessionStatus, SessionStore
from .sse import format_sse_event, stream_analysis

__all__ = [
    # Orchestrator
    "Orchestrator",
    "OrchestratorConfig",
    "AnalysisRequest",
    "AnalysisOutcome",
    "AgentStats",
    "run_analysis",
    # Model
    "ModelClient",
    "AnthropicModelClient",
    "ModelResponse",
    "TextBlock",
    "ToolUseBlock",
    "Usage",
    # Prompts
    "ProjectContext",
    "WorkItem",
    "build_system_prompt",
    # Artifact
    "Artifact",
    "ExtractionResult",
    "extract_artifact",
    "repair_json",
    # Events
    "EventType",
    "Phase",
    "StreamEvent",
    "AnyStreamEvent",
    "PhaseEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "ThinkingEvent",
    "ProgressEvent",
    "FileDiscoveredEvent",
    "ResultEvent",
    "ErrorEvent",
    "EventEmitter",
    "EventSubscriber",
    "NullSubscriber",
    "LoggingSubscriber",
    "QueueSubscriber",
    "ConsoleSubscriber",
    "STREAM_END",
    # Sessions
    "SessionStatus",
    "SessionSnapshot",
    "SessionStore",
    "InMemorySessionStore",
    # SSE
    "format_sse_event",
    "stream_analysis",
]
