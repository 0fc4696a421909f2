"""仓库网关

Exports:
    RepositoryGateway: 网关协议
    GitHubGateway: GitHub REST 实现
    LocalGateway: 本地检出实现
"""

from .base import (
    BINARY_EXTENSIONS,
    CodeSearchHit,
    FileContent,
    RepositoryGateway,
    RepositoryRef,
    TreeNode,
    is_binary_path,
)
from .github import GitHubGateway
from .local import LocalGateway

__all__ = [
    "BINARY_EXTENSIONS",
    "CodeSearchHit",
    "FileContent",
    "RepositoryGateway",
    "RepositoryRef",
    "TreeNode",
    "is_binary_path",
    "GitHubGateway",
    "LocalGateway",
]
