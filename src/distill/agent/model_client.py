"""模型服务客户端

编排器把模型当作不透明的请求/响应（带工具调用）服务，只依赖 ModelClient 协议。
AnthropicModelClient 是基于 anthropic SDK 的默认实现。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

import anthropic
import httpx
from loguru import logger

from distill.core.exceptions import ModelInvocationError


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: Literal["text"] = "text"

    def to_param(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    """模型发出的一次能力调用请求"""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    type: Literal["tool_use"] = "tool_use"

    def to_param(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


ContentBlock = TextBlock | ToolUseBlock


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class ModelResponse:
    """一次模型调用的结果

    Attributes:
        stop_reason: 停止信号（end_turn / tool_use / max_tokens / ...）
        content: 内容块（按模型给出的顺序）
        usage: token 用量
    """

    stop_reason: str | None
    content: list[ContentBlock]
    usage: Usage = field(default_factory=Usage)

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [b for b in self.content if isinstance(b, TextBlock)]

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def to_message_content(self) -> list[dict[str, Any]]:
        """转换为 assistant 消息内容"""
        return [b.to_param() for b in self.content]


@runtime_checkable
class ModelClient(Protocol):
    """模型服务协议"""

    async def create_message(
        self,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> ModelResponse:
        ...


class AnthropicModelClient:
    """基于 anthropic.AsyncAnthropic 的模型客户端"""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        """初始化客户端

        Args:
            api_key: Anthropic API Key
            base_url: API 地址（可选）
            http_client: 自定义 httpx 客户端（可选）
            client: 直接注入的 SDK 客户端（测试用）
        """
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            http_client=http_client,
        )

    async def create_message(
        self,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[dict[str, Any]],
    ) -> ModelResponse:
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                tools=tools,
                messages=messages,
            )
        except anthropic.APIError as e:
            logger.error(f"[Model] Anthropic API error: {e}")
            raise ModelInvocationError(f"Model call failed: {e}") from e

        return convert_response(response)

    async def close(self) -> None:
        await self._client.close()


def convert_response(response: Any) -> ModelResponse:
    """将 SDK 响应转换为 ModelResponse（未知内容块类型被忽略）"""
    blocks: list[ContentBlock] = []
    for block in response.content:
        if block.type == "text":
            blocks.append(TextBlock(text=block.text))
        elif block.type == "tool_use":
            blocks.append(ToolUseBlock(id=block.id, name=block.name, input=dict(block.input or {})))

    usage = getattr(response, "usage", None)
    return ModelResponse(
        stop_reason=response.stop_reason,
        content=blocks,
        usage=Usage(
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        ),
    )
