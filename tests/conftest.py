"""测试公共夹具：内存网关与脚本化模型客户端"""

import copy
from typing import Any

import pytest

from distill.agent.model_client import ModelResponse, TextBlock, ToolUseBlock, Usage
from distill.core.config import reset_settings
from distill.core.exceptions import GatewayNotFoundError
from distill.gateway.base import CodeSearchHit, FileContent, RepositoryRef, TreeNode


class FakeGateway:
    """内存仓库网关

    Args:
        files: 路径 -> 内容
        search_hits: 索引化搜索的返回（None 表示返回空列表）
        search_error: 索引化搜索抛出的异常
        unreadable: 读取时抛出 GatewayNotFoundError 的路径
    """

    def __init__(
        self,
        files: dict[str, str] | None = None,
        search_hits: list[CodeSearchHit] | None = None,
        search_error: Exception | None = None,
        unreadable: set[str] | None = None,
    ):
        self.files = dict(files or {})
        self.search_hits = search_hits or []
        self.search_error = search_error
        self.unreadable = unreadable or set()
        self.reads: list[str] = []
        self.tree_calls = 0

    async def get_tree(self, owner: str, repo: str, branch: str) -> list[TreeNode]:
        self.tree_calls += 1
        return [
            TreeNode(path=path, type="file", sha=f"sha-{i}", size=len(content))
            for i, (path, content) in enumerate(self.files.items())
        ]

    async def get_file_content(self, owner: str, repo: str, path: str, branch: str) -> FileContent:
        self.reads.append(path)
        if path in self.unreadable or path not in self.files:
            raise GatewayNotFoundError(f"file {path}")
        content = self.files[path]
        return FileContent(path=path, content=content, sha="sha", size=len(content))

    async def search_code(self, owner: str, repo: str, query: str) -> list[CodeSearchHit]:
        if self.search_error is not None:
            raise self.search_error
        return list(self.search_hits)


class ScriptedModelClient:
    """按脚本依次返回响应的模型客户端

    每次调用时记录请求参数（messages 深拷贝，便于断言当时的对话）。
    repeat_last=True 时脚本耗尽后重复最后一个响应。
    """

    def __init__(self, responses: list[ModelResponse], repeat_last: bool = False):
        self.responses = list(responses)
        self.repeat_last = repeat_last
        self.calls: list[dict[str, Any]] = []

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
        self.calls.append(
            {
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "system": system,
                "tools": tools,
                "messages": copy.deepcopy(messages),
            }
        )
        index = len(self.calls) - 1
        if index < len(self.responses):
            return self.responses[index]
        if self.repeat_last and self.responses:
            return self.responses[-1]
        raise AssertionError(f"unexpected model call #{index + 1}")


def tool_use_response(*uses: tuple[str, str, dict[str, Any]], text: str | None = None) -> ModelResponse:
    """构造 tool_use 响应；uses 为 (id, name, input)"""
    content: list = [TextBlock(text=text)] if text else []
    content.extend(ToolUseBlock(id=i, name=n, input=inp) for i, n, inp in uses)
    return ModelResponse(stop_reason="tool_use", content=content, usage=Usage(100, 20))


def final_response(text: str) -> ModelResponse:
    return ModelResponse(stop_reason="end_turn", content=[TextBlock(text=text)], usage=Usage(200, 300))


SAMPLE_FILES = {
    "a/b/c.ts": "export const c = 1;\n",
    "a/b/d.ts": "export const d = 2;\n",
    "a/e.ts": "import { c } from './b/c';\nexport function e() {\n  return c;\n}\n",
    "f.ts": "// formatPrice helper\nexport function formatPrice(value: number) {\n  return value.toFixed(2);\n}\n",
}


@pytest.fixture
def ref() -> RepositoryRef:
    return RepositoryRef(owner="acme", repo="shop", branch="main")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(SAMPLE_FILES)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """隔离环境变量中的配置"""
    for name in ("ANTHROPIC_API_KEY", "DISTILL_ANTHROPIC_API_KEY", "GITHUB_TOKEN", "DISTILL_GITHUB_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()
