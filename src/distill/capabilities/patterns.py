"""文件模式匹配

类 glob 的路径过滤：
- `*`  匹配不含 '/' 的任意字符序列
- `**` 匹配任意字符序列（可跨目录）；`**/` 匹配零或多级目录
- `?`  匹配一个非 '/' 字符
- 逗号分隔的多个模式按 OR 组合
不含 '/' 的模式只与文件名匹配，因此 `*.ts` 同时匹配 `index.ts` 和 `src/index.ts`。
"""

import re
from functools import lru_cache

# 回退扫描时跳过的路径（构建产物、依赖目录、二进制资源）
SKIP_DIR_SEGMENTS = frozenset({"node_modules", ".git", "dist", "build"})
SKIP_SUFFIXES = (
    ".lock", ".map",
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico",
    ".woff", ".woff2", ".ttf", ".eot",
)
SKIP_INFIXES = (".min.",)


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> tuple[re.Pattern[str], bool]:
    """将单个 glob 模式编译为正则

    Returns:
        (正则, 是否只匹配文件名)
    """
    pattern = pattern.strip()
    if pattern.startswith("./"):
        pattern = pattern[2:]
    pattern = pattern.lstrip("/")

    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1

    return re.compile("^" + "".join(parts) + "$"), "/" not in pattern


def matches_pattern(file_path: str, pattern: str | None) -> bool:
    """判断路径是否匹配模式（空模式匹配一切）"""
    if not pattern or not pattern.strip():
        return True

    basename = file_path.rsplit("/", 1)[-1]
    for single in pattern.split(","):
        if not single.strip():
            continue
        regex, basename_only = compile_pattern(single)
        if regex.match(basename if basename_only else file_path):
            return True
    return False


def is_search_excluded(file_path: str) -> bool:
    """回退扫描时是否跳过该文件"""
    lowered = file_path.lower()
    segments = lowered.split("/")
    if any(segment in SKIP_DIR_SEGMENTS for segment in segments[:-1]):
        return True
    if lowered.endswith(SKIP_SUFFIXES):
        return True
    return any(infix in segments[-1] for infix in SKIP_INFIXES)
