"""list_dir 能力

网关只提供分支的扁平文件树，这里按请求路径重建层级视图：
凡是有后代路径经过的目录都会被合成出来，即使树中没有对应的目录条目。
"""

from loguru import logger

from distill.capabilities.models import ExecutionOptions, FileEntry, ListDirInput, ListDirOutput
from distill.gateway.base import RepositoryGateway, RepositoryRef


def normalize_dir_path(path: str) -> str:
    """'/' 与 '' 表示根目录，其余去掉首尾的 '/'"""
    return path.strip().strip("/")


async def list_dir(
    params: ListDirInput,
    gateway: RepositoryGateway,
    ref: RepositoryRef,
    options: ExecutionOptions,
) -> ListDirOutput:
    """列出目录内容

    Args:
        params: 输入（path, maxDepth）
        gateway: 仓库网关
        ref: 目标仓库
        options: 执行限制

    Returns:
        目录条目（目录在前，再按名称排序），超过 max_results 时截断
    """
    normalized = normalize_dir_path(params.path)
    depth = max(1, min(params.max_depth or 1, options.max_depth))
    prefix = f"{normalized}/" if normalized else ""

    tree = await gateway.get_tree(ref.owner, ref.repo, ref.branch)
    logger.debug(f"[list_dir] path={normalized or '/'} depth={depth} tree={len(tree)} nodes")

    entries: dict[str, FileEntry] = {}
    for node in tree:
        if prefix and not node.path.startswith(prefix):
            continue
        relative = node.path[len(prefix):]
        parts = relative.split("/")
        if not parts[0]:
            continue

        # 祖先目录（在深度范围内）
        for level in range(1, min(len(parts) - 1, depth) + 1):
            name = "/".join(parts[:level])
            if name not in entries:
                entries[name] = FileEntry(name=name, path=prefix + name, type="directory")

        if len(parts) > depth or relative in entries:
            continue
        if node.type == "file":
            entries[relative] = FileEntry(name=relative, path=node.path, type="file", size=node.size)
        else:
            entries[relative] = FileEntry(name=relative, path=prefix + relative, type="directory")

    ordered = sorted(entries.values(), key=lambda e: (e.type != "directory", e.name))
    truncated = len(ordered) > options.max_results

    return ListDirOutput(
        path=normalized or "/",
        entries=ordered[: options.max_results],
        truncated=truncated,
    )
