"""分析编排器

循环状态机：loading → running（重复）→ completed | failed | exceeded。

每轮 running：
1. 发布 progress 事件
2. 将完整对话和能力 schema 发送给模型
3. 累计 token 用量
4. 按停止信号分支：
   - end_turn：提取产物，发布 file_discovered / result 事件并返回
   - tool_use：按顺序逐个执行能力调用，全部完成后追加 assistant 轮和 tool_result 轮
   - 其他：致命错误（AgentProtocolError）

循环受最大迭代次数约束，超过即抛出 AgentIterationLimitError。
能力调用严格串行；一个 Orchestrator 可以服务多个互相独立的会话。
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from distill.agent.artifact import Artifact
from distill.agent.emitter import EventEmitter
from distill.agent.events import (
    FileDiscoveredEvent,
    Phase,
    ProgressEvent,
    ResultEvent,
    ToolCallEvent,
    ToolResultEvent,
    error_event,
    phase_event,
    thinking_event,
)
from distill.agent.model_client import AnthropicModelClient, ModelClient, ModelResponse
from distill.agent.prompts import ProjectContext, WorkItem, build_initial_message, build_system_prompt
from distill.agent.result_extractor import extract_artifact
from distill.agent.session import Session, SessionStatus, SessionStore
from distill.capabilities.executor import (
    CapabilityExecutor,
    describe_call,
    format_result,
    summarize_result,
)
from distill.capabilities.models import CapabilityCall, ExecutionOptions
from distill.capabilities.schema import get_capability_schema
from distill.core.config import DistillSettings, get_settings
from distill.core.exceptions import (
    AgentIterationLimitError,
    AgentProtocolError,
    ConfigurationError,
    DistillError,
)
from distill.gateway.base import RepositoryGateway, RepositoryRef
from distill.gateway.github import GitHubGateway

STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"


@dataclass(frozen=True)
class OrchestratorConfig:
    """会话配置（每次调用可覆盖）"""

    model: str = "claude-3-5-haiku-20241022"
    max_tokens: int = 8192
    max_iterations: int = 25
    temperature: float = 0.3
    include_thinking: bool = False
    """发布模型文本的 thinking 事件"""
    include_tool_results: bool = True
    """发布 tool_result 事件"""

    def __post_init__(self):
        if self.max_iterations <= 0:
            raise ConfigurationError(f"max_iterations must be positive, got {self.max_iterations}")
        if self.max_tokens <= 0:
            raise ConfigurationError(f"max_tokens must be positive, got {self.max_tokens}")
        if not 0 <= self.temperature <= 1:
            raise ConfigurationError(f"temperature must be within [0, 1], got {self.temperature}")
        if not self.model:
            raise ConfigurationError("model must not be empty")

    @classmethod
    def from_settings(cls, settings: DistillSettings) -> OrchestratorConfig:
        return cls(
            model=settings.model,
            max_tokens=settings.max_tokens,
            max_iterations=settings.max_iterations,
            temperature=settings.temperature,
        )

    def with_overrides(self, **overrides: Any) -> OrchestratorConfig:
        """返回覆盖了非 None 参数的新配置"""
        values = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(values) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        return dataclasses.replace(self, **values)


@dataclass(frozen=True)
class AgentStats:
    """会话统计"""

    iterations: int
    tool_calls: int
    input_tokens: int
    output_tokens: int
    duration_ms: int
    artifact_parsed: bool = True
    """False 表示产物为降级结果"""

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "toolCalls": self.tool_calls,
            "tokensUsed": {"input": self.input_tokens, "output": self.output_tokens},
            "durationMs": self.duration_ms,
            "artifactParsed": self.artifact_parsed,
        }


class AnalysisRequest(BaseModel):
    """一次分析请求"""

    repository: RepositoryRef = Field(description="目标仓库与分支")
    task: WorkItem = Field(description="待分析的工作项")
    project: ProjectContext | None = Field(default=None, description="项目上下文（缺省由仓库推导）")

    def project_context(self) -> ProjectContext:
        if self.project is not None:
            return self.project
        return ProjectContext(
            name=f"{self.repository.owner}/{self.repository.repo}",
            branch=self.repository.branch,
        )


@dataclass
class AnalysisOutcome:
    """会话结果"""

    session_id: str
    artifact: Artifact
    stats: AgentStats
    capability_log: list[CapabilityCall]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "artifact": self.artifact.to_wire(),
            "stats": self.stats.to_dict(),
            "capabilityLog": [call.to_dict() for call in self.capability_log],
        }


class Orchestrator:
    """分析编排器

    Usage:
        orchestrator = Orchestrator(model_client, gateway)
        outcome = await orchestrator.run(request)
    """

    def __init__(
        self,
        model_client: ModelClient,
        gateway: RepositoryGateway,
        config: OrchestratorConfig | None = None,
        options: ExecutionOptions | None = None,
        store: SessionStore | None = None,
    ):
        """初始化编排器

        Args:
            model_client: 模型服务
            gateway: 仓库网关
            config: 默认会话配置
            options: 能力执行限制
            store: 会话存储（可选，记录各状态转换）
        """
        self.model_client = model_client
        self.gateway = gateway
        self.config = config or OrchestratorConfig()
        self.options = options or ExecutionOptions()
        self.store = store

    async def run(
        self,
        request: AnalysisRequest,
        config: OrchestratorConfig | None = None,
        emitter: EventEmitter | None = None,
    ) -> AnalysisOutcome:
        """运行一次分析会话

        Args:
            request: 分析请求
            config: 本次调用的配置（缺省使用构造时的配置）
            emitter: 事件发布器（缺省为无订阅者的发布器）

        Returns:
            AnalysisOutcome

        Raises:
            AgentProtocolError: 模型返回了无法处理的停止信号
            AgentIterationLimitError: 超过最大迭代次数
            ModelInvocationError: 模型调用失败
        """
        config = config or self.config
        emitter = emitter or EventEmitter()

        session = Session(
            system_prompt="",
            model=config.model,
            max_tokens=config.max_tokens,
            max_iterations=config.max_iterations,
            temperature=config.temperature,
        )
        emitter.bind(session.session_id)
        if self.store is not None:
            self.store.create(session.snapshot())

        try:
            emitter.emit(phase_event(Phase.INITIALIZING, "Starting analysis..."))
            emitter.emit(phase_event(Phase.LOADING, "Loading task and project data..."))

            session.system_prompt = build_system_prompt(request.project_context(), request.task)
            session.messages.append({"role": "user", "content": build_initial_message(request.task)})
            executor = CapabilityExecutor(self.gateway, request.repository, self.options)
            tools = get_capability_schema()

            logger.info(
                f"[Orchestrator] session {session.session_id} for {request.repository}: "
                f"{request.task.title!r} (model={config.model})"
            )
            emitter.emit(phase_event(Phase.ANALYZING, "AI is analyzing the codebase..."))
            self._transition(session, SessionStatus.RUNNING)

            return await self._loop(session, config, emitter, executor, tools)

        except AgentIterationLimitError as e:
            self._fail(session, SessionStatus.EXCEEDED, e.code, e.message, emitter)
            raise
        except DistillError as e:
            self._fail(session, SessionStatus.FAILED, e.code, e.message, emitter)
            raise
        except Exception as e:
            logger.exception(f"[Orchestrator] session {session.session_id} crashed")
            self._fail(session, SessionStatus.FAILED, DistillError.code, str(e), emitter)
            raise

    # ==================== 循环 ====================

    async def _loop(
        self,
        session: Session,
        config: OrchestratorConfig,
        emitter: EventEmitter,
        executor: CapabilityExecutor,
        tools: list[dict[str, Any]],
    ) -> AnalysisOutcome:
        while session.iterations < config.max_iterations:
            session.iterations += 1
            emitter.emit(
                ProgressEvent(
                    iteration=session.iterations,
                    tool_calls=len(session.capability_log),
                    input_tokens=session.input_tokens,
                    output_tokens=session.output_tokens,
                    duration_ms=session.elapsed_ms(),
                )
            )

            response = await self.model_client.create_message(
                model=config.model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                system=session.system_prompt,
                tools=tools,
                messages=session.messages,
            )
            session.add_usage(response.usage)
            logger.info(
                f"[Orchestrator] iteration {session.iterations}/{config.max_iterations} "
                f"stop={response.stop_reason} tokens in={session.input_tokens} out={session.output_tokens}"
            )

            if response.stop_reason == STOP_END_TURN:
                return self._complete(session, config, emitter, response)

            if response.stop_reason == STOP_TOOL_USE:
                await self._dispatch(session, config, emitter, executor, response)
                self._record(session)
                continue

            raise AgentProtocolError(
                f"Unexpected agent stop reason: {response.stop_reason}",
                stop_reason=response.stop_reason,
            )

        raise AgentIterationLimitError(config.max_iterations)

    async def _dispatch(
        self,
        session: Session,
        config: OrchestratorConfig,
        emitter: EventEmitter,
        executor: CapabilityExecutor,
        response: ModelResponse,
    ) -> None:
        """按顺序执行一轮中的所有能力调用，全部完成后再追加到对话"""
        tool_uses = response.tool_uses
        if not tool_uses:
            raise AgentProtocolError(
                "Model requested tool use without any capability call",
                stop_reason=response.stop_reason,
            )

        if config.include_thinking:
            for block in response.text_blocks:
                if block.text.strip():
                    emitter.emit(thinking_event(block.text))

        tool_results: list[dict[str, Any]] = []
        for tool_use in tool_uses:
            description = describe_call(tool_use.name, tool_use.input)
            emitter.emit(ToolCallEvent(tool=tool_use.name, input=tool_use.input, description=description))
            emitter.emit(phase_event(Phase.TOOL_EXECUTION, description))

            call = await executor.execute(tool_use.name, tool_use.input, call_id=tool_use.id)
            session.capability_log.append(call)

            if config.include_tool_results:
                emitter.emit(
                    ToolResultEvent(
                        tool=tool_use.name,
                        success=call.success,
                        summary=summarize_result(call),
                        duration_ms=call.duration_ms,
                    )
                )

            result: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": tool_use.id,
                "content": format_result(call),
            }
            if not call.success:
                result["is_error"] = True
            tool_results.append(result)

        session.messages.append({"role": "assistant", "content": response.to_message_content()})
        session.messages.append({"role": "user", "content": tool_results})

    def _complete(
        self,
        session: Session,
        config: OrchestratorConfig,
        emitter: EventEmitter,
        response: ModelResponse,
    ) -> AnalysisOutcome:
        texts = [block.text for block in response.text_blocks]
        if not texts:
            raise AgentProtocolError("No text response from agent", stop_reason=response.stop_reason)
        text = "\n".join(texts)
        session.messages.append({"role": "assistant", "content": response.to_message_content()})

        emitter.emit(phase_event(Phase.PARSING, "Processing analysis results..."))
        if config.include_thinking:
            emitter.emit(thinking_event(text))

        extraction = extract_artifact(text)
        artifact = extraction.artifact
        if not extraction.parsed_cleanly:
            emitter.emit(
                error_event(
                    "OUTPUT_MALFORMED",
                    f"Could not parse structured response: {extraction.error}",
                    recoverable=True,
                )
            )

        stats = AgentStats(
            iterations=session.iterations,
            tool_calls=len(session.capability_log),
            input_tokens=session.input_tokens,
            output_tokens=session.output_tokens,
            duration_ms=session.elapsed_ms(),
            artifact_parsed=extraction.parsed_cleanly,
        )

        for created in artifact.files_to_create:
            emitter.emit(
                FileDiscoveredEvent(action="create", path=created.path, description=created.description or None)
            )
        for modified in artifact.files_to_modify:
            emitter.emit(FileDiscoveredEvent(action="modify", path=modified.path))

        emitter.emit(phase_event(Phase.COMPLETE, "Analysis complete"))
        emitter.emit(
            ResultEvent(
                summary=artifact.summary,
                stats={
                    **stats.to_dict(),
                    "filesToCreate": len(artifact.files_to_create),
                    "filesToModify": len(artifact.files_to_modify),
                },
            )
        )

        session.finish(SessionStatus.COMPLETED)
        self._record(session)
        logger.info(
            f"[Orchestrator] session {session.session_id} completed: "
            f"{stats.iterations} iterations, {stats.tool_calls} capability calls, {stats.duration_ms}ms"
        )

        return AnalysisOutcome(
            session_id=session.session_id,
            artifact=artifact,
            stats=stats,
            capability_log=list(session.capability_log),
        )

    # ==================== 状态记录 ====================

    def _transition(self, session: Session, status: SessionStatus) -> None:
        session.status = status
        self._record(session)

    def _record(self, session: Session) -> None:
        if self.store is not None:
            self.store.update(session.snapshot())

    def _fail(
        self,
        session: Session,
        status: SessionStatus,
        code: str,
        message: str,
        emitter: EventEmitter,
    ) -> None:
        logger.error(f"[Orchestrator] session {session.session_id} {status.value}: {code} {message}")
        emitter.emit(error_event(code, message, recoverable=False))
        emitter.emit(phase_event(Phase.ERROR, message))
        session.finish(status, error_code=code, error_message=message)
        self._record(session)


async def run_analysis(
    request: AnalysisRequest,
    settings: DistillSettings | None = None,
    *,
    emitter: EventEmitter | None = None,
    store: SessionStore | None = None,
    gateway: RepositoryGateway | None = None,
    model_client: ModelClient | None = None,
    **overrides: Any,
) -> AnalysisOutcome:
    """按配置构建默认模型客户端和 GitHub 网关并运行一次分析

    Args:
        request: 分析请求
        settings: 配置（缺省使用全局配置）
        emitter: 事件发布器
        store: 会话存储
        gateway: 仓库网关（缺省为 GitHubGateway）
        model_client: 模型客户端（缺省为 AnthropicModelClient）
        **overrides: OrchestratorConfig 覆盖项（model、max_iterations 等，None 忽略）

    Raises:
        ConfigurationError: 缺少 API Key 或覆盖项无效
    """
    settings = settings or get_settings()
    config = OrchestratorConfig.from_settings(settings).with_overrides(**overrides)

    owned_model_client: AnthropicModelClient | None = None
    if model_client is None:
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured")
        owned_model_client = AnthropicModelClient(
            api_key=settings.anthropic_api_key,
            base_url=settings.anthropic_base_url,
        )
        model_client = owned_model_client

    owned_gateway: GitHubGateway | None = None
    if gateway is None:
        owned_gateway = GitHubGateway(
            token=settings.github_token,
            api_url=settings.github_api_url,
            timeout=settings.request_timeout,
        )
        gateway = owned_gateway

    orchestrator = Orchestrator(
        model_client,
        gateway,
        config=config,
        options=ExecutionOptions.from_settings(settings),
        store=store,
    )
    try:
        return await orchestrator.run(request, emitter=emitter)
    finally:
        if owned_gateway is not None:
            await owned_gateway.close()
        if owned_model_client is not None:
            await owned_model_client.close()
