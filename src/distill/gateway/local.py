"""本地检出网关

将本地目录当作远程仓库提供给能力层，用于离线分析和测试。
owner/repo/branch 参数被忽略；本地没有搜索索引，search_code 总是返回空，
由能力层回退到逐文件扫描。
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from loguru import logger

from distill.core.exceptions import GatewayAccessError, GatewayError, GatewayNotFoundError
from distill.gateway.base import CodeSearchHit, FileContent, TreeNode, is_binary_path

# 遍历时跳过的目录
SKIP_DIRS = {".git", ".hg", ".svn"}


def git_blob_sha(data: bytes) -> str:
    """计算与 git 一致的 blob 哈希"""
    header = f"blob {len(data)}\0".encode()
    return hashlib.sha1(header + data).hexdigest()


class LocalGateway:
    """本地目录网关"""

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise GatewayNotFoundError(str(root))

    async def get_tree(self, owner: str, repo: str, branch: str) -> list[TreeNode]:
        nodes: list[TreeNode] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            base = Path(dirpath)
            for name in dirnames:
                rel = (base / name).relative_to(self.root).as_posix()
                nodes.append(TreeNode(path=rel, type="directory", sha=hashlib.sha1(rel.encode()).hexdigest()))
            for name in sorted(filenames):
                full = base / name
                rel = full.relative_to(self.root).as_posix()
                if is_binary_path(rel) or not full.is_file():
                    continue
                try:
                    data = full.read_bytes()
                except OSError as e:
                    logger.debug(f"[LocalGateway] skip unreadable {rel}: {e}")
                    continue
                nodes.append(TreeNode(path=rel, type="file", sha=git_blob_sha(data), size=len(data)))
        logger.debug(f"[LocalGateway] tree of {self.root}: {len(nodes)} nodes")
        return nodes

    async def get_file_content(
        self, owner: str, repo: str, path: str, branch: str
    ) -> FileContent:
        full = self._resolve(path)
        if not full.exists():
            raise GatewayNotFoundError(f"file {path}")
        if full.is_dir():
            raise GatewayError(f"Path {path} is a directory, not a file")
        data = full.read_bytes()
        return FileContent(
            path=path,
            content=data.decode("utf-8", errors="replace"),
            sha=git_blob_sha(data),
            size=len(data),
        )

    async def search_code(self, owner: str, repo: str, query: str) -> list[CodeSearchHit]:
        return []

    def _resolve(self, path: str) -> Path:
        """解析相对路径，拒绝越出根目录的访问"""
        full = (self.root / path.lstrip("/")).resolve()
        if full != self.root and self.root not in full.parents:
            raise GatewayAccessError(f"Path escapes repository root: {path}")
        return full
