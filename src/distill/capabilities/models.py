"""能力层数据模型

定义能力名称（封闭枚举）、各能力的输入/输出模型、执行选项和调用记录。
输入输出在线路上使用 camelCase 字段名（与模型看到的 schema 一致）。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from distill.core.config import DistillSettings
from distill.core.exceptions import UnknownCapabilityError


class CapabilityName(str, Enum):
    """模型可请求的能力（封闭集合）"""

    LIST_DIR = "list_dir"
    READ_FILE = "read_file"
    SEARCH_CODE = "search_code"
    GET_IMPORTS = "get_imports"

    @classmethod
    def parse(cls, name: str) -> CapabilityName:
        """按名称解析，未知名称抛出 UnknownCapabilityError"""
        try:
            return cls(name)
        except ValueError:
            raise UnknownCapabilityError(name) from None


class WireModel(BaseModel):
    """camelCase 线路格式的基类"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """转换为线路格式字典"""
        return self.model_dump(by_alias=True, exclude_none=True)


# ==================== 输入模型 ====================


class ListDirInput(WireModel):
    path: str = ""
    max_depth: int | None = None


class ReadFileInput(WireModel):
    path: str
    start_line: int | None = None
    end_line: int | None = None


class SearchCodeInput(WireModel):
    query: str = Field(min_length=1)
    file_pattern: str | None = None
    max_results: int | None = None


class GetImportsInput(WireModel):
    path: str


# ==================== 输出模型 ====================


class FileEntry(WireModel):
    """目录列表条目"""

    name: str
    path: str
    type: Literal["file", "directory"]
    size: int | None = None


class ListDirOutput(WireModel):
    path: str
    entries: list[FileEntry] = Field(default_factory=list)
    truncated: bool = False


class ReadFileOutput(WireModel):
    path: str
    content: str
    line_count: int
    truncated: bool = False
    language: str | None = None
    start_line: int | None = None
    end_line: int | None = None


class SearchResult(WireModel):
    """代码搜索命中"""

    file: str
    line: int
    content: str
    context: str | None = None


class SearchCodeOutput(WireModel):
    query: str
    results: list[SearchResult] = Field(default_factory=list)
    total_matches: int = 0
    truncated: bool = False
    source: Literal["index", "scan"] = "index"


class ImportInfo(WireModel):
    """一个被导入的模块及其导入的符号"""

    source: str
    specifiers: list[str] = Field(default_factory=list)
    is_default: bool = False
    is_namespace: bool = False


ExportType = Literal["function", "class", "variable", "type", "interface", "default", "reexport"]


class ExportInfo(WireModel):
    name: str
    type: ExportType


class GetImportsOutput(WireModel):
    path: str
    imports: list[ImportInfo] = Field(default_factory=list)
    exports: list[ExportInfo] = Field(default_factory=list)


CAPABILITY_INPUTS: dict[CapabilityName, type[WireModel]] = {
    CapabilityName.LIST_DIR: ListDirInput,
    CapabilityName.READ_FILE: ReadFileInput,
    CapabilityName.SEARCH_CODE: SearchCodeInput,
    CapabilityName.GET_IMPORTS: GetImportsInput,
}


# ==================== 执行选项与调用记录 ====================


@dataclass(frozen=True)
class ExecutionOptions:
    """能力执行限制"""

    max_file_size: int = 100_000
    """read_file 读取的最大字符数"""
    max_results: int = 50
    """目录列表/搜索结果硬上限"""
    max_depth: int = 5
    """list_dir 最大深度"""
    default_search_results: int = 20
    """未指定 maxResults 时的搜索结果数"""
    fallback_max_files: int = 100
    """回退扫描最多读取的文件数"""

    @classmethod
    def from_settings(cls, settings: DistillSettings) -> ExecutionOptions:
        return cls(
            max_file_size=settings.max_file_size,
            max_results=settings.max_results,
            max_depth=settings.max_depth,
            default_search_results=settings.default_search_results,
            fallback_max_files=settings.fallback_max_files,
        )


@dataclass(frozen=True)
class CapabilityCall:
    """一次能力调用的不可变记录

    既用于构造下一轮对话的 tool_result，也作为审计日志返回给调用方。
    """

    name: str
    """请求的能力名称（可能是未知名称）"""
    input: dict[str, Any]
    """原始输入"""
    output: dict[str, Any] | None
    """输出（失败时为 None）"""
    duration_ms: int
    """执行耗时（毫秒）"""
    error: str | None = None
    """错误信息"""
    tokens_estimate: int | None = None
    """输出大小估算（token）"""
    call_id: str = ""
    """对应模型请求的 tool_use id"""

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "toolName": self.name,
            "input": self.input,
            "output": self.output,
            "durationMs": self.duration_ms,
        }
        if self.tokens_estimate is not None:
            data["tokensEstimate"] = self.tokens_estimate
        if self.error is not None:
            data["error"] = self.error
        if self.call_id:
            data["callId"] = self.call_id
        return data
