"""编排循环测试"""

import json

import pytest

from conftest import FakeGateway, ScriptedModelClient, final_response, tool_use_response
from distill.agent.emitter import EventEmitter
from distill.agent.events import EventType, Phase
from distill.agent.model_client import ModelResponse, TextBlock, Usage
from distill.agent.orchestrator import (
    AgentStats,
    AnalysisRequest,
    Orchestrator,
    OrchestratorConfig,
    run_analysis,
)
from distill.agent.prompts import ProjectContext, WorkItem
from distill.agent.session import InMemorySessionStore, SessionStatus
from distill.core.config import DistillSettings
from distill.core.exceptions import (
    AgentIterationLimitError,
    AgentProtocolError,
    ConfigurationError,
    ModelInvocationError,
)

ARTIFACT_TEXT = "```json\n" + json.dumps(
    {
        "taskType": "feature",
        "summary": "Add rounding helper to pricing",
        "filesToCreate": [{"path": "src/pricing/round.ts", "description": "Rounding helper"}],
        "filesToModify": [{"path": "f.ts", "changes": []}],
    }
) + "\n```"


@pytest.fixture
def request_() -> AnalysisRequest:
    return AnalysisRequest(
        repository={"owner": "acme", "repo": "shop", "branch": "main"},
        task=WorkItem(title="Round prices up", description="12.01 EUR should display as 13 EUR"),
    )


def event_types(emitter: EventEmitter) -> list[str]:
    return [event.type.value for event in emitter.history]


class TestOrchestratorConfig:
    """会话配置测试"""

    def test_validation(self) -> None:
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(max_iterations=0)
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(max_tokens=-1)
        with pytest.raises(ConfigurationError):
            OrchestratorConfig(temperature=1.5)

    def test_from_settings_and_overrides(self) -> None:
        settings = DistillSettings(model="claude-test", max_iterations=7)
        config = OrchestratorConfig.from_settings(settings).with_overrides(max_iterations=3, model=None)
        assert config.model == "claude-test"
        assert config.max_iterations == 3

    def test_unknown_override(self) -> None:
        with pytest.raises(ConfigurationError):
            OrchestratorConfig().with_overrides(colour="blue")


class TestAnalysisRequest:
    def test_default_project_context(self, request_) -> None:
        project = request_.project_context()
        assert project.name == "acme/shop"
        assert project.branch == "main"

    def test_explicit_project_context(self, request_) -> None:
        request_.project = ProjectContext(name="Shop", detected_stack={"react": True})
        assert request_.project_context().name == "Shop"


class TestOrchestratorRun:
    """Orchestrator.run 测试"""

    @pytest.mark.asyncio
    async def test_two_iterations_one_capability_call(self, gateway, request_) -> None:
        """一次 read_file 调用后给出最终回答"""
        client = ScriptedModelClient(
            [
                tool_use_response(("toolu_1", "read_file", {"path": "f.ts"})),
                final_response(ARTIFACT_TEXT),
            ]
        )
        emitter = EventEmitter()
        outcome = await Orchestrator(client, gateway).run(request_, emitter=emitter)

        assert outcome.stats.iterations == 2
        assert outcome.stats.tool_calls == 1
        assert outcome.stats.input_tokens == 300
        assert outcome.stats.output_tokens == 320
        assert outcome.stats.artifact_parsed
        assert outcome.artifact.summary == "Add rounding helper to pricing"
        assert [call.name for call in outcome.capability_log] == ["read_file"]
        assert outcome.capability_log[0].success

        types = event_types(emitter)
        assert types.count("file_discovered") == 2
        assert types[-1] == "result"
        assert types.index("tool_call") < types.index("tool_result")

        result = emitter.history[-1]
        assert result.stats["filesToCreate"] == 1
        assert result.stats["filesToModify"] == 1
        assert result.stats["toolCalls"] == 1

        discovered = [e for e in emitter.history if e.type == EventType.FILE_DISCOVERED]
        assert [(e.action, e.path) for e in discovered] == [("create", "src/pricing/round.ts"), ("modify", "f.ts")]

    @pytest.mark.asyncio
    async def test_phase_sequence(self, gateway, request_) -> None:
        client = ScriptedModelClient([final_response(ARTIFACT_TEXT)])
        emitter = EventEmitter()
        await Orchestrator(client, gateway).run(request_, emitter=emitter)
        phases = [e.phase for e in emitter.history if e.type == EventType.PHASE]
        assert phases == [Phase.INITIALIZING, Phase.LOADING, Phase.ANALYZING, Phase.PARSING, Phase.COMPLETE]

    @pytest.mark.asyncio
    async def test_tool_results_paired_with_requests(self, gateway, request_) -> None:
        """一轮多个能力调用按顺序执行，结果按请求 id 配对后才进入下一轮"""
        client = ScriptedModelClient(
            [
                tool_use_response(
                    ("toolu_a", "list_dir", {"path": "/"}),
                    ("toolu_b", "read_file", {"path": "missing.ts"}),
                    text="Let me look around.",
                ),
                final_response(ARTIFACT_TEXT),
            ]
        )
        outcome = await Orchestrator(client, gateway).run(request_)

        second_call = client.calls[1]["messages"]
        assert [m["role"] for m in second_call] == ["user", "assistant", "user"]
        assistant = second_call[1]["content"]
        assert [block["type"] for block in assistant] == ["text", "tool_use", "tool_use"]

        results = second_call[2]["content"]
        assert [r["tool_use_id"] for r in results] == ["toolu_a", "toolu_b"]
        assert results[0]["content"].startswith("Contents of /:")
        assert "is_error" not in results[0]
        assert results[1]["is_error"] is True
        assert results[1]["content"].startswith("Error executing read_file:")

        # 失败的能力调用不会中止循环
        assert [c.success for c in outcome.capability_log] == [True, False]
        assert [c.call_id for c in outcome.capability_log] == ["toolu_a", "toolu_b"]

    @pytest.mark.asyncio
    async def test_request_carries_schema_and_config(self, gateway, request_) -> None:
        client = ScriptedModelClient([final_response(ARTIFACT_TEXT)])
        config = OrchestratorConfig(model="claude-test", max_tokens=1024, temperature=0.0)
        await Orchestrator(client, gateway, config=config).run(request_)
        call = client.calls[0]
        assert call["model"] == "claude-test"
        assert call["max_tokens"] == 1024
        assert call["temperature"] == 0.0
        assert [t["name"] for t in call["tools"]] == ["list_dir", "read_file", "search_code", "get_imports"]
        assert "Round prices up" in call["system"]
        assert call["messages"] == [
            {
                "role": "user",
                "content": 'Please analyze this task and provide implementation guidance: "Round prices up"',
            }
        ]

    @pytest.mark.asyncio
    async def test_unknown_capability_fed_back(self, gateway, request_) -> None:
        client = ScriptedModelClient(
            [tool_use_response(("toolu_x", "delete_everything", {})), final_response(ARTIFACT_TEXT)]
        )
        outcome = await Orchestrator(client, gateway).run(request_)
        result = client.calls[1]["messages"][2]["content"][0]
        assert result["content"] == "Error executing delete_everything: Unknown capability: delete_everything"
        assert outcome.stats.tool_calls == 1

    @pytest.mark.asyncio
    async def test_iteration_limit(self, gateway, request_) -> None:
        """超过最大迭代次数时抛出并记录 exceeded 状态"""
        client = ScriptedModelClient(
            [tool_use_response(("toolu_1", "list_dir", {"path": ""}))], repeat_last=True
        )
        store = InMemorySessionStore()
        emitter = EventEmitter()
        orchestrator = Orchestrator(client, gateway, config=OrchestratorConfig(max_iterations=3), store=store)

        with pytest.raises(AgentIterationLimitError) as exc_info:
            await orchestrator.run(request_, emitter=emitter)

        assert exc_info.value.code == "AGENT_TIMEOUT"
        assert len(client.calls) == 3
        snapshot = store.list()[0]
        assert snapshot.status == SessionStatus.EXCEEDED
        assert snapshot.iterations == 3
        assert snapshot.tool_calls == 3
        assert snapshot.error_code == "AGENT_TIMEOUT"

        errors = [e for e in emitter.history if e.type == EventType.ERROR]
        assert errors[-1].code == "AGENT_TIMEOUT" and not errors[-1].recoverable
        assert emitter.history[-1].phase == Phase.ERROR

    @pytest.mark.asyncio
    async def test_unknown_stop_reason(self, gateway, request_) -> None:
        client = ScriptedModelClient([ModelResponse(stop_reason="max_tokens", content=[TextBlock("partial")])])
        store = InMemorySessionStore()
        with pytest.raises(AgentProtocolError) as exc_info:
            await Orchestrator(client, gateway, store=store).run(request_)
        assert str(exc_info.value) == "Unexpected agent stop reason: max_tokens"
        assert exc_info.value.stop_reason == "max_tokens"
        assert store.list()[0].status == SessionStatus.FAILED

    @pytest.mark.asyncio
    async def test_end_turn_without_text(self, gateway, request_) -> None:
        client = ScriptedModelClient([ModelResponse(stop_reason="end_turn", content=[])])
        with pytest.raises(AgentProtocolError, match="No text response from agent"):
            await Orchestrator(client, gateway).run(request_)

    @pytest.mark.asyncio
    async def test_tool_use_without_calls(self, gateway, request_) -> None:
        client = ScriptedModelClient([ModelResponse(stop_reason="tool_use", content=[TextBlock("hmm")])])
        with pytest.raises(AgentProtocolError):
            await Orchestrator(client, gateway).run(request_)

    @pytest.mark.asyncio
    async def test_model_error_propagates(self, gateway, request_) -> None:
        class BrokenClient:
            async def create_message(self, **kwargs):
                raise ModelInvocationError("Model call failed: overloaded")

        emitter = EventEmitter()
        with pytest.raises(ModelInvocationError):
            await Orchestrator(BrokenClient(), gateway).run(request_, emitter=emitter)
        errors = [e for e in emitter.history if e.type == EventType.ERROR]
        assert errors[0].code == "LLM_ERROR"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_internal_error(self, gateway, request_) -> None:
        class CrashingClient:
            async def create_message(self, **kwargs):
                raise KeyError("boom")

        store = InMemorySessionStore()
        emitter = EventEmitter()
        with pytest.raises(KeyError):
            await Orchestrator(CrashingClient(), gateway, store=store).run(request_, emitter=emitter)
        errors = [e for e in emitter.history if e.type == EventType.ERROR]
        assert errors[0].code == "INTERNAL_ERROR"
        assert store.list()[0].status == SessionStatus.FAILED

    @pytest.mark.asyncio
    async def test_degraded_artifact_is_recoverable(self, gateway, request_) -> None:
        """无法解析的最终回答得到降级产物和可恢复的 error 事件"""
        client = ScriptedModelClient([final_response("Sorry, I could not finish.")])
        emitter = EventEmitter()
        outcome = await Orchestrator(client, gateway).run(request_, emitter=emitter)

        assert not outcome.stats.artifact_parsed
        assert outcome.artifact.summary == "Sorry, I could not finish."
        errors = [e for e in emitter.history if e.type == EventType.ERROR]
        assert errors[0].code == "OUTPUT_MALFORMED" and errors[0].recoverable
        assert event_types(emitter)[-1] == "result"

    @pytest.mark.asyncio
    async def test_thinking_events(self, gateway, request_) -> None:
        client = ScriptedModelClient(
            [
                tool_use_response(("toolu_1", "list_dir", {"path": ""}), text="Exploring the root first."),
                final_response(ARTIFACT_TEXT),
            ]
        )
        emitter = EventEmitter()
        config = OrchestratorConfig(include_thinking=True, include_tool_results=False)
        await Orchestrator(client, gateway, config=config).run(request_, emitter=emitter)
        types = event_types(emitter)
        assert types.count("thinking") == 2
        assert "tool_result" not in types
        thinking = [e for e in emitter.history if e.type == EventType.THINKING]
        assert thinking[0].content == "Exploring the root first."

    @pytest.mark.asyncio
    async def test_session_store_transitions(self, gateway, request_) -> None:
        client = ScriptedModelClient([final_response(ARTIFACT_TEXT)])
        store = InMemorySessionStore()
        outcome = await Orchestrator(client, gateway, store=store).run(request_)
        snapshot = store.get(outcome.session_id)
        assert snapshot.status == SessionStatus.COMPLETED
        assert snapshot.finished_at is not None

    @pytest.mark.asyncio
    async def test_events_carry_session_id(self, gateway, request_) -> None:
        client = ScriptedModelClient([final_response(ARTIFACT_TEXT)])
        emitter = EventEmitter()
        outcome = await Orchestrator(client, gateway).run(request_, emitter=emitter)
        assert {e.session_id for e in emitter.history} == {outcome.session_id}

    @pytest.mark.asyncio
    async def test_outcome_to_dict(self, gateway, request_) -> None:
        client = ScriptedModelClient(
            [tool_use_response(("toolu_1", "read_file", {"path": "f.ts"})), final_response(ARTIFACT_TEXT)]
        )
        outcome = await Orchestrator(client, gateway).run(request_)
        data = outcome.to_dict()
        assert data["sessionId"] == outcome.session_id
        assert data["artifact"]["filesToCreate"][0]["path"] == "src/pricing/round.ts"
        assert data["stats"]["toolCalls"] == 1
        assert data["capabilityLog"][0]["toolName"] == "read_file"
        json.dumps(data)


class TestAgentStats:
    def test_to_dict(self) -> None:
        stats = AgentStats(iterations=2, tool_calls=1, input_tokens=10, output_tokens=20, duration_ms=5)
        assert stats.to_dict() == {
            "iterations": 2,
            "toolCalls": 1,
            "tokensUsed": {"input": 10, "output": 20},
            "durationMs": 5,
            "artifactParsed": True,
        }


class TestRunAnalysis:
    """run_analysis 测试"""

    @pytest.mark.asyncio
    async def test_requires_api_key(self, request_) -> None:
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            await run_analysis(request_, DistillSettings())

    @pytest.mark.asyncio
    async def test_injected_dependencies_and_overrides(self, gateway, request_) -> None:
        client = ScriptedModelClient(
            [tool_use_response(("toolu_1", "list_dir", {"path": ""}))], repeat_last=True
        )
        with pytest.raises(AgentIterationLimitError):
            await run_analysis(
                request_,
                DistillSettings(),
                gateway=gateway,
                model_client=client,
                max_iterations=2,
            )
        assert len(client.calls) == 2
