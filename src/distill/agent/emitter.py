"""事件发布

单写者广播：编排器在固定时点同步调用 emit()，事件按发出顺序
追加到历史并分发给订阅者。订阅者异常被记录并吞掉，不影响循环；
没有订阅者时 emit 只记录历史。
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from distill.agent.events import EventType, StreamEvent


@runtime_checkable
class EventSubscriber(Protocol):
    """事件订阅者协议

    on_event 在编排循环内同步调用，必须快速返回（不得阻塞）。
    """

    def on_event(self, event: StreamEvent) -> None:
        ...


class NullSubscriber:
    """空订阅者"""

    def on_event(self, event: StreamEvent) -> None:
        pass


class LoggingSubscriber:
    """将事件写入 loguru 日志"""

    def __init__(self, level: str = "DEBUG"):
        self._level = level.upper()

    def on_event(self, event: StreamEvent) -> None:
        data = event.to_dict()
        data.pop("timestamp", None)
        event_type = data.pop("type")
        if event.type == EventType.ERROR and not data.get("recoverable"):
            logger.warning(f"[Event] {event_type} {_truncate(data)}")
        else:
            logger.log(self._level, f"[Event] {event_type} {_truncate(data)}")


# 队列结束标记
STREAM_END: Any = object()


class QueueSubscriber:
    """将事件放入 asyncio 队列，供流式传输层消费

    put_nowait 不会阻塞编排循环；close() 放入 STREAM_END 表示流结束。
    """

    def __init__(self, queue: asyncio.Queue | None = None):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    def on_event(self, event: StreamEvent) -> None:
        self.queue.put_nowait(event)

    def close(self) -> None:
        self.queue.put_nowait(STREAM_END)


class EventEmitter:
    """会话事件发布器

    Usage:
        emitter = EventEmitter(subscribers=[LoggingSubscriber()])
        emitter.emit(phase_event(Phase.LOADING, "Loading..."))
    """

    def __init__(
        self,
        subscribers: list[EventSubscriber] | None = None,
        session_id: str | None = None,
    ):
        self._subscribers: list[EventSubscriber] = list(subscribers or [])
        self._history: list[StreamEvent] = []
        self.session_id = session_id

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: EventSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def bind(self, session_id: str) -> None:
        """绑定会话 ID，之后发出的事件自动带上"""
        self.session_id = session_id

    @property
    def history(self) -> list[StreamEvent]:
        """已发出的事件（按发出顺序）"""
        return list(self._history)

    def emit(self, event: StreamEvent) -> StreamEvent:
        """发布事件

        Returns:
            实际发布的事件（可能补上了 session_id）
        """
        if event.session_id is None and self.session_id:
            event = dataclasses.replace(event, session_id=self.session_id)

        self._history.append(event)

        for subscriber in self._subscribers:
            try:
                subscriber.on_event(event)
            except Exception as e:
                logger.error(f"Event subscriber error ({type(subscriber).__name__}): {e}")

        return event


def _truncate(data: dict[str, Any], max_str_len: int = 80) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str) and len(value) > max_str_len:
            result[key] = value[:max_str_len] + "..."
        elif isinstance(value, dict):
            result[key] = _truncate(value, max_str_len)
        else:
            result[key] = value
    return result
