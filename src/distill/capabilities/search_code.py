"""search_code 能力

优先使用网关的索引化搜索；索引搜索出错或没有命中（按文件模式过滤后）时，
回退为逐文件扫描：拉取文件树，跳过依赖/构建/二进制资源，按模式过滤后
逐个读取文件、大小写不敏感地查找字面量。两条路径都在达到上限时截断。
"""

from loguru import logger

from distill.capabilities.models import (
    ExecutionOptions,
    SearchCodeInput,
    SearchCodeOutput,
    SearchResult,
)
from distill.capabilities.patterns import is_search_excluded, matches_pattern
from distill.core.exceptions import GatewayError
from distill.gateway.base import RepositoryGateway, RepositoryRef

CONTEXT_LINES = 1


def context_window(lines: list[str], index: int, size: int = CONTEXT_LINES) -> str:
    """命中行前后各 size 行，命中行以 '>' 标记"""
    start = max(0, index - size)
    end = min(len(lines), index + size + 1)
    rendered = []
    for i in range(start, end):
        marker = ">" if i == index else " "
        rendered.append(f"{marker} {i + 1:>4} | {lines[i]}")
    return "\n".join(rendered)


def result_limit(params: SearchCodeInput, options: ExecutionOptions) -> int:
    return max(1, min(params.max_results or options.default_search_results, options.max_results))


async def search_code(
    params: SearchCodeInput,
    gateway: RepositoryGateway,
    ref: RepositoryRef,
    options: ExecutionOptions,
) -> SearchCodeOutput:
    """搜索代码"""
    limit = result_limit(params, options)

    try:
        hits = await gateway.search_code(ref.owner, ref.repo, params.query)
    except GatewayError as e:
        logger.warning(f"[search_code] indexed search failed, scanning instead: {e}")
        return await scan_files(params, gateway, ref, options)

    filtered = [hit for hit in hits if matches_pattern(hit.path, params.file_pattern)]
    if not filtered:
        logger.debug(f"[search_code] no indexed hits for {params.query!r}, scanning files")
        return await scan_files(params, gateway, ref, options)

    return SearchCodeOutput(
        query=params.query,
        results=[
            SearchResult(file=hit.path, line=1, content=hit.fragment or "")
            for hit in filtered[:limit]
        ],
        total_matches=len(filtered),
        truncated=len(filtered) > limit,
        source="index",
    )


async def scan_files(
    params: SearchCodeInput,
    gateway: RepositoryGateway,
    ref: RepositoryRef,
    options: ExecutionOptions,
) -> SearchCodeOutput:
    """逐文件扫描（回退路径）

    最多读取 fallback_max_files 个候选文件；结果达到上限时立即停止，
    即使当前文件尚未扫描完。无法读取的文件跳过。
    """
    limit = result_limit(params, options)
    tree = await gateway.get_tree(ref.owner, ref.repo, ref.branch)

    candidates = [
        node.path
        for node in tree
        if node.type == "file"
        and not is_search_excluded(node.path)
        and matches_pattern(node.path, params.file_pattern)
    ][: options.fallback_max_files]

    needle = params.query.lower()
    results: list[SearchResult] = []

    for path in candidates:
        if len(results) >= limit:
            break
        try:
            data = await gateway.get_file_content(ref.owner, ref.repo, path, ref.branch)
        except (GatewayError, OSError) as e:
            logger.debug(f"[search_code] skip unreadable file {path}: {e}")
            continue

        lines = data.content.split("\n")
        for index, line in enumerate(lines):
            if len(results) >= limit:
                break
            if line and needle in line.lower():
                results.append(
                    SearchResult(
                        file=path,
                        line=index + 1,
                        content=line.strip(),
                        context=context_window(lines, index),
                    )
                )

    logger.debug(
        f"[search_code] scanned {len(candidates)} files, {len(results)} matches for {params.query!r}"
    )
    return SearchCodeOutput(
        query=params.query,
        results=results,
        total_matches=len(results),
        truncated=len(results) >= limit,
        source="scan",
    )
