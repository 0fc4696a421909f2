"""read_file 能力"""

from distill.capabilities.models import ExecutionOptions, ReadFileInput, ReadFileOutput
from distill.gateway.base import RepositoryGateway, RepositoryRef

# 扩展名（或无扩展名的文件名）到语言标签
LANGUAGE_MAP: dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "py": "python",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "kt": "kotlin",
    "swift": "swift",
    "cs": "csharp",
    "cpp": "cpp",
    "c": "c",
    "h": "c",
    "hpp": "cpp",
    "php": "php",
    "vue": "vue",
    "svelte": "svelte",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "less": "less",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
    "zsh": "bash",
    "dockerfile": "dockerfile",
    "prisma": "prisma",
}


def detect_language(path: str) -> str | None:
    """根据扩展名粗略判断语言，无映射时返回 None"""
    basename = path.rsplit("/", 1)[-1]
    ext = basename.rsplit(".", 1)[-1].lower()
    return LANGUAGE_MAP.get(ext)


def number_lines(lines: list[str], first_line: int) -> str:
    """为每行加上绝对行号"""
    return "\n".join(f"{first_line + i:>4} | {line}" for i, line in enumerate(lines))


async def read_file(
    params: ReadFileInput,
    gateway: RepositoryGateway,
    ref: RepositoryRef,
    options: ExecutionOptions,
) -> ReadFileOutput:
    """读取文件内容

    内容先按 max_file_size 截断，再按 1 起始、闭区间的行窗口切片，
    每行带绝对行号返回。line_count 始终是（截断后）文件的总行数。
    """
    path = params.path.strip().lstrip("/")
    data = await gateway.get_file_content(ref.owner, ref.repo, path, ref.branch)

    content = data.content
    truncated = False
    if len(content) > options.max_file_size:
        content = content[: options.max_file_size]
        truncated = True

    all_lines = content.split("\n")
    total = len(all_lines)

    start_line = end_line = None
    lines = all_lines
    first = 1
    if params.start_line is not None or params.end_line is not None:
        start = max(1, params.start_line or 1) - 1
        end = min(total, params.end_line if params.end_line is not None else total)
        lines = all_lines[start:end]
        first = start + 1
        start_line, end_line = first, end
        if start > 0 or end < total:
            truncated = True

    return ReadFileOutput(
        path=path,
        content=number_lines(lines, first),
        line_count=total,
        truncated=truncated,
        language=detect_language(path),
        start_line=start_line,
        end_line=end_line,
    )
