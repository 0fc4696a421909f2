"""最终产物提取

模型的最终回答应当只包含一个 ```json 代码块，但可能被 token 上限截断，
也可能夹杂说明文字。提取分三步：

1. 定位：完整代码块 > 未闭合代码块 > `{"taskType"` 起始 > 首个 `{` > 全文；
   去掉最后一个 `}` 之后的说明文字（新的代码围栏除外）。
2. 修复：扫描字符串/转义状态并补全未闭合的字符串，再用尾部词法分析
   剔除末尾的一个悬空成员，最后按括号栈逆序补齐闭合符，并删除闭合符前的逗号。
3. 校验：宽松地校验为 Artifact，校验失败的顶层字段被丢弃后重试一次；
   仍然失败则返回降级产物。该路径永不抛出异常。
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger
from pydantic import ValidationError

from distill.agent.artifact import Artifact

_COMPLETE_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_OPEN_FENCE = re.compile(r"```json\s*([\s\S]*)")
_TASK_TYPE_START = re.compile(r"\{\s*\"taskType\"[\s\S]*")
_PARTIAL_UNICODE_ESCAPE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")

# 尾部悬空成员中"短字符串值"的长度上限
SHORT_VALUE_MAX = 20

_CLOSERS = {"{": "}", "[": "]"}
_PUNCTUATION = "{}[],:"


@dataclass
class ExtractionResult:
    """提取结果"""

    artifact: Artifact
    parsed_cleanly: bool
    """False 表示返回的是降级产物"""
    error: str | None = None


# ==================== 定位 ====================


def locate_json(text: str) -> str:
    """从模型回答中定位 JSON 候选文本"""
    candidate = ""

    match = _COMPLETE_FENCE.search(text)
    if match and match.group(1):
        candidate = match.group(1)

    if not candidate:
        match = _OPEN_FENCE.search(text)
        if match and match.group(1):
            candidate = match.group(1)

    if not candidate:
        match = _TASK_TYPE_START.search(text)
        if match:
            candidate = match.group(0)

    if not candidate:
        start = text.find("{")
        if start != -1:
            candidate = text[start:]

    if not candidate:
        candidate = text

    candidate = candidate.strip()

    last_brace = candidate.rfind("}")
    if last_brace != -1 and last_brace < len(candidate) - 1:
        trailing = candidate[last_brace + 1 :].strip()
        if trailing and not trailing.startswith("```"):
            candidate = candidate[: last_brace + 1]

    return candidate


# ==================== 修复 ====================


@dataclass
class _ScanState:
    in_string: bool
    escape_pending: bool
    open_stack: list[str]


def _scan(buffer: str) -> _ScanState:
    """扫描字符串/转义状态和未闭合的括号"""
    stack: list[str] = []
    in_string = False
    escape = False
    for ch in buffer:
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()
    return _ScanState(in_string=in_string, escape_pending=escape, open_stack=stack)


TokenKind = Literal["punct", "string", "scalar"]


@dataclass
class _Token:
    kind: TokenKind
    text: str
    start: int
    container: str | None
    """词法单元所在的容器（'{' / '[' / None）"""


def _tokenize(buffer: str) -> list[_Token]:
    tokens: list[_Token] = []
    stack: list[str] = []
    i, n = 0, len(buffer)
    while i < n:
        ch = buffer[i]
        container = stack[-1] if stack else None
        if ch.isspace():
            i += 1
        elif ch in _PUNCTUATION:
            tokens.append(_Token("punct", ch, i, container))
            if ch in "{[":
                stack.append(ch)
            elif ch in "}]" and stack:
                stack.pop()
            i += 1
        elif ch == '"':
            j = i + 1
            while j < n and buffer[j] != '"':
                j += 2 if buffer[j] == "\\" else 1
            tokens.append(_Token("string", buffer[i : j + 1], i, container))
            i = j + 1
        else:
            j = i
            while j < n and not buffer[j].isspace() and buffer[j] not in _PUNCTUATION and buffer[j] != '"':
                j += 1
            tokens.append(_Token("scalar", buffer[i:j], i, container))
            i = j
    return tokens


def _is_key(token: _Token) -> bool:
    return token.kind == "string" and token.container == "{"


def _is_short_string(token: _Token) -> bool:
    return token.kind == "string" and len(token.text) - 2 <= SHORT_VALUE_MAX


def _is_punct(char: str):
    return lambda token: token.kind == "punct" and token.text == char


def _is_scalar(token: _Token) -> bool:
    return token.kind == "scalar"


def _is_array_scalar(token: _Token) -> bool:
    return token.kind == "scalar" and token.container == "["


# 悬空成员规则，按优先级排列，只应用第一条匹配的规则。
# 每条规则描述尾部的词法单元序列及其允许的前缀：
# 前缀为 ',' 时连同 ',' 一起删除；前缀为容器起始符时只删除尾部，保留起始符。
_TAIL_RULES: list[tuple[str, list[Any], str]] = [
    ("dangling key", [_is_key], ",{"),
    ("dangling key-colon", [_is_key, _is_punct(":")], ",{"),
    ("short dangling value", [_is_key, _is_punct(":"), _is_short_string], ","),
    ("dangling open array", [_is_key, _is_punct(":"), _is_punct("[")], ","),
    ("dangling open object", [_is_key, _is_punct(":"), _is_punct("{")], ","),
    ("dangling scalar", [_is_key, _is_punct(":"), _is_scalar], ",{"),
    ("dangling array scalar", [_is_array_scalar], ",["),
]


def _strip_dangling_member(buffer: str) -> str:
    tokens = _tokenize(buffer)
    for name, rule, prefixes in _TAIL_RULES:
        if len(tokens) < len(rule) + 1:
            continue
        prefix, *tail = tokens[-(len(rule) + 1) :]
        if prefix.kind != "punct" or prefix.text not in prefixes:
            continue
        if not all(check(token) for check, token in zip(rule, tail)):
            continue
        cut = prefix.start if prefix.text == "," else tail[0].start
        logger.debug(f"[ResultExtractor] strip {name}: {buffer[cut:][:60]!r}")
        return buffer[:cut].rstrip()
    return buffer


def _strip_trailing_commas(buffer: str) -> str:
    """删除紧邻 ']' / '}' 之前的逗号（字符串内不处理）"""
    out: list[str] = []
    in_string = False
    escape = False
    n = len(buffer)
    for i, ch in enumerate(buffer):
        if in_string:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and buffer[j].isspace():
                j += 1
            if j < n and buffer[j] in "]}":
                continue
        out.append(ch)
    return "".join(out)


def _is_unescaped(buffer: str, index: int) -> bool:
    """index 处的反斜杠本身没有被转义（前面连续反斜杠为偶数个）"""
    count = 0
    while index >= 0 and buffer[index] == "\\":
        count += 1
        index -= 1
    return count % 2 == 1


def repair_json(buffer: str) -> str:
    """修复可能被截断的 JSON 文本"""
    state = _scan(buffer)
    if state.in_string:
        if state.escape_pending:
            buffer = buffer[:-1]
        partial = _PARTIAL_UNICODE_ESCAPE.search(buffer)
        if partial and _is_unescaped(buffer, partial.start()):
            buffer = buffer[: partial.start()]
        buffer += '"'

    buffer = _strip_dangling_member(buffer)

    state = _scan(buffer)
    if state.in_string:
        buffer += '"'
    buffer += "".join(_CLOSERS[ch] for ch in reversed(state.open_stack))

    return _strip_trailing_commas(buffer)


# ==================== 校验 ====================


def _validate_lenient(data: dict[str, Any]) -> Artifact:
    """校验为 Artifact；失败的顶层字段被丢弃后重试一次"""
    try:
        return Artifact.model_validate(data)
    except ValidationError as e:
        bad_keys = {err["loc"][0] for err in e.errors() if err["loc"]}
        logger.warning(f"[ResultExtractor] dropping invalid fields: {sorted(map(str, bad_keys))}")
        cleaned = {k: v for k, v in data.items() if k not in bad_keys}
        return Artifact.model_validate(cleaned)


def extract_artifact(text: str) -> ExtractionResult:
    """从模型最终回答中提取产物

    Returns:
        ExtractionResult；无法解析时 artifact 为降级产物、parsed_cleanly=False
    """
    candidate = locate_json(text)
    repaired = repair_json(candidate)

    try:
        data = json.loads(repaired)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        artifact = _validate_lenient(data)
    except ValueError as e:
        # json.JSONDecodeError 与 pydantic.ValidationError 都是 ValueError
        logger.warning(
            f"[ResultExtractor] could not parse artifact ({e}); "
            f"candidate length={len(candidate)}, tail={repaired[-200:]!r}"
        )
        return ExtractionResult(
            artifact=Artifact.degraded(text),
            parsed_cleanly=False,
            error=str(e),
        )

    return ExtractionResult(artifact=artifact, parsed_cleanly=True)
