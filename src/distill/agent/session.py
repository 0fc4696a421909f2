"""会话状态与会话存储

Session 是一次编排循环的全部可变状态，由单个 Orchestrator.run 调用独占，
调用返回或抛出后即丢弃。SessionStore 记录各状态转换时的快照，
由调用方注入（默认不记录），不存在进程级的全局注册表。
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from distill.agent.model_client import Usage
from distill.capabilities.models import CapabilityCall


class SessionStatus(str, Enum):
    """会话状态"""

    LOADING = "loading"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    EXCEEDED = "exceeded"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.EXCEEDED)


def new_session_id() -> str:
    return f"session-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class SessionSnapshot:
    """会话在某次状态转换时的快照"""

    session_id: str
    status: SessionStatus
    iterations: int = 0
    tool_calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "status": self.status.value,
            "iterations": self.iterations,
            "toolCalls": self.tool_calls,
            "tokensUsed": {"input": self.input_tokens, "output": self.output_tokens},
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
        }


@dataclass
class Session:
    """一次循环执行的状态"""

    system_prompt: str
    """固定的系统提示词"""
    model: str
    max_tokens: int
    max_iterations: int
    temperature: float
    session_id: str = field(default_factory=new_session_id)
    messages: list[dict[str, Any]] = field(default_factory=list)
    """对话（user / assistant 交替）"""
    iterations: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    capability_log: list[CapabilityCall] = field(default_factory=list)
    """能力调用记录（按执行顺序）"""
    status: SessionStatus = SessionStatus.LOADING
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None
    _clock_start: float = field(default_factory=time.perf_counter, init=False, repr=False)

    def add_usage(self, usage: Usage) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._clock_start) * 1000)

    def finish(
        self,
        status: SessionStatus,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.status = status
        self.finished_at = datetime.now()
        self.error_code = error_code
        self.error_message = error_message

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            status=self.status,
            iterations=self.iterations,
            tool_calls=len(self.capability_log),
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            started_at=self.started_at,
            finished_at=self.finished_at,
            error_code=self.error_code,
            error_message=self.error_message,
        )


@runtime_checkable
class SessionStore(Protocol):
    """会话存储协议"""

    def create(self, snapshot: SessionSnapshot) -> None:
        ...

    def update(self, snapshot: SessionSnapshot) -> None:
        ...

    def get(self, session_id: str) -> SessionSnapshot | None:
        ...

    def list(self) -> list[SessionSnapshot]:
        ...


class InMemorySessionStore:
    """内存会话存储

    生命周期随宿主进程；多个并发会话共享同一实例时互不影响
    （每个会话只写自己的条目）。
    """

    def __init__(self):
        self._sessions: dict[str, SessionSnapshot] = {}

    def create(self, snapshot: SessionSnapshot) -> None:
        if snapshot.session_id in self._sessions:
            raise ValueError(f"Session already exists: {snapshot.session_id}")
        self._sessions[snapshot.session_id] = snapshot

    def update(self, snapshot: SessionSnapshot) -> None:
        if snapshot.session_id not in self._sessions:
            raise KeyError(snapshot.session_id)
        self._sessions[snapshot.session_id] = snapshot

    def get(self, session_id: str) -> SessionSnapshot | None:
        return self._sessions.get(session_id)

    def list(self) -> list[SessionSnapshot]:
        return list(self._sessions.values())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
