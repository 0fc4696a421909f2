"""GitHub 仓库网关

基于 httpx 异步客户端访问 GitHub REST API。
HTTP 错误按状态码归类为 GatewayError 子类。
"""

from __future__ import annotations

import base64
import binascii
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from distill.core.exceptions import (
    GatewayAccessError,
    GatewayAuthError,
    GatewayError,
    GatewayNotFoundError,
    GatewayRateLimitError,
)
from distill.gateway.base import CodeSearchHit, FileContent, TreeNode, is_binary_path

TEXT_MATCH_MEDIA_TYPE = "application/vnd.github.text-match+json"


class GitHubGateway:
    """GitHub REST API 网关

    Usage:
        async with GitHubGateway(token="ghp_...") as gateway:
            tree = await gateway.get_tree("octocat", "hello-world", "main")
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """初始化网关

        Args:
            token: GitHub 访问令牌（可选，匿名访问受限流约束）
            api_url: API 根地址
            timeout: 请求超时（秒）
            http_client: 自定义 httpx 客户端（测试时注入 MockTransport）
        """
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._client.headers.update(headers)
        self._api_url = api_url.rstrip("/")

    async def __aenter__(self) -> GitHubGateway:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """关闭自有的 HTTP 客户端"""
        if self._owns_client:
            await self._client.aclose()

    # ==================== 网关接口 ====================

    async def get_tree(self, owner: str, repo: str, branch: str) -> list[TreeNode]:
        context = f"tree of {owner}/{repo}@{branch}"
        data = await self._get_json(
            f"/repos/{owner}/{repo}/git/trees/{branch}",
            context,
            params={"recursive": "1"},
        )

        nodes: list[TreeNode] = []
        for item in data.get("tree", []):
            path = item.get("path")
            sha = item.get("sha")
            if not path or not sha:
                continue
            kind = item.get("type")
            if kind == "tree":
                node_type = "directory"
            elif kind == "blob":
                if is_binary_path(path):
                    continue
                node_type = "file"
            else:
                # submodule 等
                continue
            nodes.append(TreeNode(path=path, type=node_type, sha=sha, size=item.get("size")))

        if data.get("truncated"):
            logger.warning(f"[GitHubGateway] {context} truncated by GitHub API")
        logger.debug(f"[GitHubGateway] {context}: {len(nodes)} nodes")
        return nodes

    async def get_file_content(
        self, owner: str, repo: str, path: str, branch: str
    ) -> FileContent:
        context = f"file {path} in {owner}/{repo}@{branch}"
        data = await self._get_json(
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            context,
            params={"ref": branch},
        )

        if isinstance(data, list):
            raise GatewayError(f"Path {path} is a directory, not a file")
        if data.get("type") != "file":
            raise GatewayError(f"Path {path} is not a file")

        sha = data.get("sha", "")
        encoded = data.get("content") or ""
        size = data.get("size") or 0

        # 大文件不内联内容，需走 blob 接口
        if not encoded and sha:
            blob = await self._get_json(f"/repos/{owner}/{repo}/git/blobs/{sha}", context)
            encoded = blob.get("content") or ""
            size = blob.get("size") or size

        try:
            content = _decode_base64(encoded)
        except binascii.Error as e:
            raise GatewayError(f"Invalid base64 content for {path}: {e}") from e

        return FileContent(
            path=path,
            content=content,
            sha=sha,
            size=size,
        )

    async def search_code(self, owner: str, repo: str, query: str) -> list[CodeSearchHit]:
        context = f"code search in {owner}/{repo}"
        data = await self._get_json(
            "/search/code",
            context,
            params={"q": f"{query} repo:{owner}/{repo}", "per_page": "100"},
            headers={"Accept": TEXT_MATCH_MEDIA_TYPE},
        )

        hits: list[CodeSearchHit] = []
        for item in data.get("items", []):
            matches = item.get("text_matches") or []
            fragment = matches[0].get("fragment") if matches else None
            hits.append(CodeSearchHit(path=item["path"], fragment=fragment))
        logger.debug(f"[GitHubGateway] {context}: {len(hits)} hits for {query!r}")
        return hits

    # ==================== 内部方法 ====================

    async def _get_json(
        self,
        endpoint: str,
        context: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        url = f"{self._api_url}{endpoint}"
        logger.debug(f"[GitHubGateway] GET {url} params={params}")
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise GatewayError(f"GitHub API error: {context} - {e}") from e

        if response.is_success:
            return response.json()
        raise _classify_error(response, context)


def _classify_error(response: httpx.Response, context: str) -> GatewayError:
    """将 HTTP 错误响应归类为网关异常"""
    status = response.status_code
    try:
        message = str(response.json().get("message", ""))
    except ValueError:
        message = response.text

    if status == 401:
        return GatewayAuthError("GitHub token is invalid or expired")
    if status == 404:
        return GatewayNotFoundError(context)
    if status == 429 or (
        status == 403
        and (
            response.headers.get("x-ratelimit-remaining") == "0"
            or "rate limit" in message.lower()
        )
    ):
        return GatewayRateLimitError(_retry_after(response))
    if status == 403:
        return GatewayAccessError(f"No access to {context}")
    return GatewayError(f"GitHub API error: {context} - {status} {message}".rstrip())


def _retry_after(response: httpx.Response, default: int = 60) -> int:
    value = response.headers.get("retry-after")
    if value and value.isdigit():
        return int(value)
    return default


def _decode_base64(encoded: str) -> str:
    if not encoded:
        return ""
    raw = base64.b64decode(encoded)
    return raw.decode("utf-8", errors="replace")
