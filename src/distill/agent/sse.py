"""SSE 传输

将事件流编码为 Server-Sent Events 帧。两次真实事件之间空闲超过
keepalive_interval 时插入注释帧保持连接，注释帧不是事件。
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from loguru import logger

from distill.agent.emitter import STREAM_END, EventEmitter, QueueSubscriber
from distill.agent.events import StreamEvent
from distill.core.config import get_settings
from distill.core.exceptions import DistillError

if TYPE_CHECKING:
    from distill.agent.orchestrator import AnalysisRequest, Orchestrator, OrchestratorConfig

KEEPALIVE_FRAME = ": keep-alive\n\n"


def format_sse_event(event: StreamEvent) -> str:
    """event: <type>\\ndata: <json>\\n\\n"""
    return f"event: {event.type.value}\ndata: {event.to_json()}\n\n"


def format_sse_comment(text: str = "keep-alive") -> str:
    return f": {text}\n\n"


async def iter_sse_frames(
    queue: asyncio.Queue,
    keepalive_interval: float = 15.0,
) -> AsyncIterator[str]:
    """从队列读取事件并编码为 SSE 帧，直到读到 STREAM_END"""
    while True:
        try:
            item = await asyncio.wait_for(queue.get(), timeout=keepalive_interval)
        except asyncio.TimeoutError:
            yield format_sse_comment()
            continue
        if item is STREAM_END:
            return
        yield format_sse_event(item)


async def stream_analysis(
    orchestrator: Orchestrator,
    request: AnalysisRequest,
    config: OrchestratorConfig | None = None,
    keepalive_interval: float | None = None,
) -> AsyncIterator[str]:
    """在后台任务中运行一次分析，并以 SSE 帧的形式产出其事件

    keepalive_interval 缺省取配置项 keepalive_interval。

    致命错误已作为 error 事件发布到流中，此处不再抛出；
    消费方提前关闭时取消后台任务。
    """
    if keepalive_interval is None:
        keepalive_interval = get_settings().keepalive_interval
    subscriber = QueueSubscriber()
    emitter = EventEmitter(subscribers=[subscriber])

    async def _run() -> None:
        try:
            await orchestrator.run(request, config=config, emitter=emitter)
        finally:
            subscriber.close()

    task = asyncio.create_task(_run())
    try:
        async for frame in iter_sse_frames(subscriber.queue, keepalive_interval):
            yield frame
    finally:
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("[SSE] stream closed early, analysis cancelled")
        except DistillError as e:
            logger.debug(f"[SSE] analysis ended with {e.code}, already streamed as an error event")
