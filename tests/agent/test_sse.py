"""SSE 传输测试"""

import asyncio
import json

import pytest

from conftest import FakeGateway, ScriptedModelClient, final_response
from distill.agent.emitter import STREAM_END
from distill.agent.events import Phase, phase_event
from distill.agent.model_client import ModelResponse
from distill.agent.orchestrator import AnalysisRequest, Orchestrator
from distill.agent.prompts import WorkItem
from distill.agent.sse import KEEPALIVE_FRAME, format_sse_event, iter_sse_frames, stream_analysis
from distill.core.config import reset_settings
from distill.gateway.base import RepositoryRef


def parse_frames(frames: list[str]) -> list[dict]:
    events = []
    for frame in frames:
        if frame.startswith(":"):
            continue
        lines = frame.strip().split("\n")
        assert lines[0].startswith("event: ")
        data = json.loads(lines[1][len("data: "):])
        assert data["type"] == lines[0][len("event: "):]
        events.append(data)
    return events


class TestFormat:
    def test_event_frame(self) -> None:
        frame = format_sse_event(phase_event(Phase.LOADING, "x"))
        assert frame.startswith("event: phase\ndata: {")
        assert frame.endswith("\n\n")


class TestIterFrames:
    """帧迭代测试"""

    @pytest.mark.asyncio
    async def test_keepalive_when_idle(self) -> None:
        """空闲超过间隔时插入注释帧"""
        queue: asyncio.Queue = asyncio.Queue()

        async def produce() -> None:
            await asyncio.sleep(0.05)
            queue.put_nowait(phase_event(Phase.LOADING, "x"))
            queue.put_nowait(STREAM_END)

        producer = asyncio.create_task(produce())
        frames = [frame async for frame in iter_sse_frames(queue, keepalive_interval=0.01)]
        await producer

        assert frames[0] == KEEPALIVE_FRAME
        assert frames[-1].startswith("event: phase")
        assert len(parse_frames(frames)) == 1


class TestStreamAnalysis:
    """stream_analysis 测试"""

    @pytest.mark.asyncio
    async def test_streams_full_session(self) -> None:
        """完整会话的事件按顺序编码为 SSE 帧"""
        client = ScriptedModelClient([final_response('```json\n{"summary": "Nothing to change here"}\n```')])
        orchestrator = Orchestrator(client, FakeGateway({}))
        request = AnalysisRequest(repository=RepositoryRef(owner="acme", repo="shop"), task=WorkItem(title="T"))

        frames = [frame async for frame in stream_analysis(orchestrator, request, keepalive_interval=5)]
        events = parse_frames(frames)

        assert [e["type"] for e in events][-2:] == ["phase", "result"]
        assert events[-1]["summary"] == "Nothing to change here"
        assert len({e["sessionId"] for e in events}) == 1

    @pytest.mark.asyncio
    async def test_fatal_error_is_streamed_not_raised(self) -> None:
        """致命错误作为 error 事件出现在流中"""
        client = ScriptedModelClient([ModelResponse(stop_reason="max_tokens", content=[])])
        orchestrator = Orchestrator(client, FakeGateway({}))
        request = AnalysisRequest(repository=RepositoryRef(owner="acme", repo="shop"), task=WorkItem(title="T"))

        frames = [frame async for frame in stream_analysis(orchestrator, request, keepalive_interval=5)]
        events = parse_frames(frames)

        errors = [e for e in events if e["type"] == "error"]
        assert errors[0]["code"] == "AGENT_ERROR"
        assert errors[0]["recoverable"] is False
        assert (events[-1]["type"], events[-1]["phase"]) == ("phase", "error")

    @pytest.mark.asyncio
    async def test_keepalive_interval_from_settings(self, monkeypatch) -> None:
        """未显式指定间隔时使用配置项，慢速模型调用期间产生注释帧"""
        monkeypatch.setenv("DISTILL_KEEPALIVE_INTERVAL", "0.01")
        reset_settings()

        class SlowClient(ScriptedModelClient):
            async def create_message(self, **kwargs):
                await asyncio.sleep(0.05)
                return await super().create_message(**kwargs)

        client = SlowClient([final_response('```json\n{"summary": "Slow but fine"}\n```')])
        orchestrator = Orchestrator(client, FakeGateway({}))
        request = AnalysisRequest(repository=RepositoryRef(owner="acme", repo="shop"), task=WorkItem(title="T"))

        frames = [frame async for frame in stream_analysis(orchestrator, request)]

        assert KEEPALIVE_FRAME in frames
        assert parse_frames(frames)[-1]["summary"] == "Slow but fine"

    @pytest.mark.asyncio
    async def test_early_close_cancels_and_awaits_analysis(self) -> None:
        """消费方提前关闭时，后台分析被取消并在关闭返回前结束"""

        class HangingClient(ScriptedModelClient):
            cancelled = False

            async def create_message(self, **kwargs):
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    HangingClient.cancelled = True
                    raise
                return await super().create_message(**kwargs)

        orchestrator = Orchestrator(HangingClient([]), FakeGateway({}))
        request = AnalysisRequest(repository=RepositoryRef(owner="acme", repo="shop"), task=WorkItem(title="T"))

        stream = stream_analysis(orchestrator, request, keepalive_interval=5)
        first = await stream.__anext__()
        await stream.aclose()

        assert first.startswith("event: phase")
        assert HangingClient.cancelled
        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task() and not t.done()]
        assert pending == []
