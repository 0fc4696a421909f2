"""能力层

模型可请求的四个只读能力（list_dir、read_file、search_code、get_imports）
及其执行器、schema 和模式匹配工具。
"""

from .executor import (
    CAPABILITY_HANDLERS,
    CapabilityExecutor,
    describe_call,
    estimate_tokens,
    format_result,
    summarize_result,
)
from .models import (
    CapabilityCall,
    CapabilityName,
    ExecutionOptions,
    FileEntry,
    GetImportsInput,
    GetImportsOutput,
    ListDirInput,
    ListDirOutput,
    ReadFileInput,
    ReadFileOutput,
    SearchCodeInput,
    SearchCodeOutput,
    SearchResult,
)
from .patterns import is_search_excluded, matches_pattern
from .schema import CAPABILITY_DEFINITIONS, get_capability_schema

__all__ = [
    "CAPABILITY_HANDLERS",
    "CapabilityExecutor",
    "describe_call",
    "estimate_tokens",
    "format_result",
    "summarize_result",
    "CapabilityCall",
    "CapabilityName",
    "ExecutionOptions",
    "FileEntry",
    "GetImportsInput",
    "GetImportsOutput",
    "ListDirInput",
    "ListDirOutput",
    "ReadFileInput",
    "ReadFileOutput",
    "SearchCodeInput",
    "SearchCodeOutput",
    "SearchResult",
    "is_search_excluded",
    "matches_pattern",
    "CAPABILITY_DEFINITIONS",
    "get_capability_schema",
]
