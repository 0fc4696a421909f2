"""仓库网关接口

编排核心只依赖以下窄接口：获取分支的完整扁平文件树、按路径获取文件内容、
索引化代码搜索。具体实现见 github.py（远程）与 local.py（本地检出）。
"""

from __future__ import annotations

from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

# 二进制文件扩展名（文件树中直接排除）
BINARY_EXTENSIONS: tuple[str, ...] = (
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".svg", ".webp", ".bmp",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".pdf", ".zip", ".tar", ".gz", ".rar",
    ".mp3", ".mp4", ".wav", ".avi", ".mov",
    ".exe", ".dll", ".so", ".dylib",
)


def is_binary_path(path: str) -> bool:
    """根据扩展名判断是否为二进制文件"""
    return path.lower().endswith(BINARY_EXTENSIONS)


class RepositoryRef(BaseModel):
    """远程仓库定位（owner/repo@branch）"""

    owner: str = Field(description="仓库所有者")
    repo: str = Field(description="仓库名称")
    branch: str = Field(default="main", description="分支名")

    @classmethod
    def parse(cls, slug: str, branch: str = "main") -> RepositoryRef:
        """从 'owner/repo' 形式解析"""
        owner, sep, repo = slug.strip().strip("/").partition("/")
        if not sep or not owner or not repo or "/" in repo:
            raise ValueError(f"Invalid repository slug: {slug!r} (expected 'owner/repo')")
        return cls(owner=owner, repo=repo, branch=branch)

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"


class TreeNode(BaseModel):
    """扁平文件树中的一个条目"""

    path: str = Field(description="相对仓库根目录的路径（'/' 分隔）")
    type: Literal["file", "directory"] = Field(description="条目类型")
    sha: str = Field(description="内容哈希")
    size: int | None = Field(default=None, description="字节大小（仅文件）")


class FileContent(BaseModel):
    """文件内容"""

    path: str
    content: str
    sha: str
    size: int = 0
    encoding: str = "utf-8"


class CodeSearchHit(BaseModel):
    """索引化搜索的一条命中"""

    path: str
    fragment: str | None = None


@runtime_checkable
class RepositoryGateway(Protocol):
    """仓库网关协议

    所有方法都可能抛出 GatewayError 子类（认证、不存在、无权限、限流），
    能力层统一将其视为单次能力调用失败。
    """

    async def get_tree(self, owner: str, repo: str, branch: str) -> list[TreeNode]:
        """获取分支的完整扁平文件树"""
        ...

    async def get_file_content(
        self, owner: str, repo: str, path: str, branch: str
    ) -> FileContent:
        """获取文件内容"""
        ...

    async def search_code(self, owner: str, repo: str, query: str) -> list[CodeSearchHit]:
        """索引化代码搜索"""
        ...
