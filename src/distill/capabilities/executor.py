"""能力执行器

将模型请求的能力名称解析为封闭枚举并分派到对应实现。
任何执行期异常都被记录在 CapabilityCall.error 上，不会逃逸出执行器，
由编排器作为文本错误反馈给模型。
"""

import json
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger
from pydantic import ValidationError

from distill.capabilities.imports import get_imports
from distill.capabilities.list_dir import list_dir
from distill.capabilities.models import (
    CAPABILITY_INPUTS,
    CapabilityCall,
    CapabilityName,
    ExecutionOptions,
    WireModel,
)
from distill.capabilities.read_file import read_file
from distill.capabilities.search_code import search_code
from distill.core.exceptions import InvalidCapabilityInputError
from distill.gateway.base import RepositoryGateway, RepositoryRef

CapabilityHandler = Callable[
    [Any, RepositoryGateway, RepositoryRef, ExecutionOptions], Awaitable[WireModel]
]

CAPABILITY_HANDLERS: dict[CapabilityName, CapabilityHandler] = {
    CapabilityName.LIST_DIR: list_dir,
    CapabilityName.READ_FILE: read_file,
    CapabilityName.SEARCH_CODE: search_code,
    CapabilityName.GET_IMPORTS: get_imports,
}


def estimate_tokens(data: Any) -> int:
    """按 4 字符/token 粗估输出大小"""
    return math.ceil(len(json.dumps(data, ensure_ascii=False)) / 4)


class CapabilityExecutor:
    """能力执行器

    无状态：同一执行器可被一个会话的所有能力调用复用。
    """

    def __init__(
        self,
        gateway: RepositoryGateway,
        ref: RepositoryRef,
        options: ExecutionOptions | None = None,
    ):
        self.gateway = gateway
        self.ref = ref
        self.options = options or ExecutionOptions()

    async def execute(
        self,
        name: str,
        raw_input: dict[str, Any] | None = None,
        call_id: str = "",
    ) -> CapabilityCall:
        """执行一次能力调用

        Args:
            name: 能力名称（来自模型，可能未知）
            raw_input: 原始输入（camelCase 字段）
            call_id: 模型请求 id

        Returns:
            调用记录；失败时 output 为 None、error 为错误信息
        """
        raw = dict(raw_input or {})
        started = time.perf_counter()

        try:
            capability = CapabilityName.parse(name)
            params = self._validate(capability, raw)
            logger.debug(f"[Capability] {name} start input={raw}")
            output = await CAPABILITY_HANDLERS[capability](
                params, self.gateway, self.ref, self.options
            )
        except Exception as e:
            duration_ms = _elapsed_ms(started)
            message = str(e) or type(e).__name__
            logger.warning(f"[Capability] {name} failed after {duration_ms}ms: {message}")
            return CapabilityCall(
                name=name,
                input=raw,
                output=None,
                duration_ms=duration_ms,
                error=message,
                call_id=call_id,
            )

        data = output.to_wire()
        duration_ms = _elapsed_ms(started)
        logger.debug(f"[Capability] {name} done in {duration_ms}ms")
        return CapabilityCall(
            name=name,
            input=raw,
            output=data,
            duration_ms=duration_ms,
            tokens_estimate=estimate_tokens(data),
            call_id=call_id,
        )

    @staticmethod
    def _validate(capability: CapabilityName, raw: dict[str, Any]) -> WireModel:
        try:
            return CAPABILITY_INPUTS[capability].model_validate(raw)
        except ValidationError as e:
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidCapabilityInputError(capability.value, reasons) from e


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# ==================== 文本化 ====================


def format_result(call: CapabilityCall) -> str:
    """将调用结果格式化为模型可读的文本（tool_result 内容）"""
    if call.error is not None:
        return f"Error executing {call.name}: {call.error}"

    output = call.output or {}
    if call.name == CapabilityName.LIST_DIR:
        lines = [
            f"{'📁' if e['type'] == 'directory' else '📄'} {e['name']}"
            for e in output.get("entries", [])
        ]
        text = f"Contents of {output.get('path', '/')}:\n" + "\n".join(lines)
        if output.get("truncated"):
            text += "\n... (truncated)"
        return text

    if call.name == CapabilityName.READ_FILE:
        header = f"File: {output['path']} ({output['lineCount']} lines"
        if output.get("language"):
            header += f", {output['language']}"
        header += ")"
        if output.get("truncated"):
            header += " [truncated]"
        return f"{header}\n\n{output['content']}"

    if call.name == CapabilityName.SEARCH_CODE:
        results = output.get("results", [])
        if not results:
            return f'No matches found for "{output["query"]}"'
        blocks = []
        for r in results:
            location = f"{r['file']}:{r['line']}"
            blocks.append(f"{location}\n{r['context']}" if r.get("context") else f"{location}: {r['content']}")
        header = f'Found {output["totalMatches"]} matches for "{output["query"]}"'
        if output.get("truncated"):
            header += f" (showing first {len(results)})"
        return header + ":\n\n" + "\n\n".join(blocks)

    if call.name == CapabilityName.GET_IMPORTS:
        imports = []
        for i in output.get("imports", []):
            specs = ", ".join(i.get("specifiers", []))
            if specs:
                prefix = "default: " if i.get("isDefault") else ""
                imports.append(f"- {i['source']} ({prefix}{specs})")
            else:
                imports.append(f"- {i['source']}")
        exports = [f"- {e['name']} ({e['type']})" for e in output.get("exports", [])]
        return (
            f"Dependencies for {output['path']}:\n\n"
            f"Imports:\n{chr(10).join(imports) or '(none)'}\n\n"
            f"Exports:\n{chr(10).join(exports) or '(none)'}"
        )

    return json.dumps(output, indent=2, ensure_ascii=False)


def describe_call(name: str, raw_input: dict[str, Any]) -> str:
    """能力调用的可读描述（tool_call 事件）"""
    if name == CapabilityName.LIST_DIR:
        return f"Exploring directory: {raw_input.get('path') or '/'}"
    if name == CapabilityName.READ_FILE:
        return f"Reading file: {raw_input.get('path')}"
    if name == CapabilityName.SEARCH_CODE:
        text = f'Searching for: "{raw_input.get("query")}"'
        if raw_input.get("filePattern"):
            text += f" in {raw_input['filePattern']}"
        return text
    if name == CapabilityName.GET_IMPORTS:
        return f"Analyzing imports in: {raw_input.get('path')}"
    return f"Executing {name}"


def summarize_result(call: CapabilityCall) -> str:
    """能力结果的一行摘要（tool_result 事件）"""
    if call.error is not None:
        return f"Error: {call.error}"

    output = call.output or {}
    if call.name == CapabilityName.LIST_DIR:
        entries = output.get("entries", [])
        dirs = sum(1 for e in entries if e["type"] == "directory")
        return f"Found {len(entries) - dirs} files and {dirs} directories"
    if call.name == CapabilityName.READ_FILE:
        return f"Read {output.get('lineCount', 'unknown')} lines"
    if call.name == CapabilityName.SEARCH_CODE:
        return f"Found {len(output.get('results', []))} matches"
    if call.name == CapabilityName.GET_IMPORTS:
        return f"Found {len(output.get('imports', []))} imports"
    return "Completed"
