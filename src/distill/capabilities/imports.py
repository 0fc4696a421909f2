"""get_imports 能力

基于正则的词法级导入/导出提取，不是语法解析器：
字符串或注释里形似 import/export 的文本也可能被提取出来。
支持 JS/TS（ES 模块与 CommonJS require）和 Python。
"""

import re

from distill.capabilities.models import (
    ExecutionOptions,
    ExportInfo,
    ExportType,
    GetImportsInput,
    GetImportsOutput,
    ImportInfo,
)
from distill.gateway.base import RepositoryGateway, RepositoryRef

PYTHON_SUFFIXES = (".py", ".pyi")

# ==================== JS / TS ====================

_ES_IMPORT = re.compile(
    r"""import\s+(?:type\s+)?(?:(?:(\w+)\s*,\s*)?(?:\{\s*([^}]+)\s*\}|\*\s+as\s+(\w+)))?\s*from\s*['"]([^'"]+)['"]"""
)
_ES_DEFAULT_IMPORT = re.compile(r"""import\s+(?:type\s+)?(\w+)\s+from\s*['"]([^'"]+)['"]""")
_ES_SIDE_EFFECT_IMPORT = re.compile(r"""import\s+['"]([^'"]+)['"]""")
_CJS_REQUIRE_BINDING = re.compile(
    r"""(?:const|let|var)\s+(?:(\w+)|\{\s*([^}]+)\s*\})\s*=\s*require\(\s*['"]([^'"]+)['"]\s*\)"""
)
_CJS_REQUIRE = re.compile(r"""require\(\s*['"]([^'"]+)['"]\s*\)""")

_ES_EXPORT_PATTERNS: list[tuple[re.Pattern[str], ExportType]] = [
    (re.compile(r"export\s+(?:async\s+)?function\*?\s+(\w+)"), "function"),
    (re.compile(r"export\s+(?:abstract\s+)?class\s+(\w+)"), "class"),
    (re.compile(r"export\s+(?:const|let|var)\s+(\w+)"), "variable"),
    (re.compile(r"export\s+type\s+(\w+)"), "type"),
    (re.compile(r"export\s+interface\s+(\w+)"), "interface"),
    (
        re.compile(r"export\s+default\s+(?:(?:async\s+)?function\*?|(?:abstract\s+)?class)?\s*((?!async\b)\w+)?"),
        "default",
    ),
]
_ES_NAMED_EXPORT = re.compile(r"""export\s*(?:type\s*)?\{([^}]+)\}(\s*from\s*['"][^'"]+['"])?""")
_ES_STAR_EXPORT = re.compile(r"""export\s*\*\s*(?:as\s+(\w+)\s*)?from\s*['"]([^'"]+)['"]""")


def _binding_names(raw: str, alias_separator: str) -> list[str]:
    """拆分 '{ a, b as c }' 形式的绑定列表，取本地名"""
    names = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        names.append(re.split(alias_separator, part)[-1].strip())
    return names


def merge_imports(imports: list[ImportInfo]) -> list[ImportInfo]:
    """按来源模块去重，合并符号和标志（保持首次出现的顺序）"""
    merged: dict[str, ImportInfo] = {}
    for item in imports:
        existing = merged.get(item.source)
        if existing is None:
            merged[item.source] = item.model_copy(deep=True)
            continue
        for spec in item.specifiers:
            if spec not in existing.specifiers:
                existing.specifiers.append(spec)
        existing.is_default = existing.is_default or item.is_default
        existing.is_namespace = existing.is_namespace or item.is_namespace
    return list(merged.values())


def parse_js_imports(content: str) -> list[ImportInfo]:
    imports: list[ImportInfo] = []

    for match in _ES_IMPORT.finditer(content):
        default, named, namespace, source = match.groups()
        if namespace:
            imports.append(ImportInfo(source=source, specifiers=[namespace], is_namespace=True))
            continue
        if default:
            imports.append(ImportInfo(source=source, specifiers=[default], is_default=True))
        if named:
            imports.append(ImportInfo(source=source, specifiers=_binding_names(named, r"\s+as\s+")))

    for match in _ES_DEFAULT_IMPORT.finditer(content):
        default, source = match.groups()
        if not any(i.source == source and i.is_default for i in imports):
            imports.append(ImportInfo(source=source, specifiers=[default], is_default=True))

    for match in _ES_SIDE_EFFECT_IMPORT.finditer(content):
        source = match.group(1)
        if not any(i.source == source for i in imports):
            imports.append(ImportInfo(source=source))

    for match in _CJS_REQUIRE_BINDING.finditer(content):
        default, destructured, source = match.groups()
        if default:
            imports.append(ImportInfo(source=source, specifiers=[default], is_default=True))
        else:
            imports.append(ImportInfo(source=source, specifiers=_binding_names(destructured, r"\s*:\s*")))

    for match in _CJS_REQUIRE.finditer(content):
        source = match.group(1)
        if not any(i.source == source for i in imports):
            imports.append(ImportInfo(source=source))

    return merge_imports(imports)


def parse_js_exports(content: str) -> list[ExportInfo]:
    exports: list[ExportInfo] = []

    for regex, export_type in _ES_EXPORT_PATTERNS:
        for match in regex.finditer(content):
            exports.append(ExportInfo(name=match.group(1) or "default", type=export_type))

    for match in _ES_NAMED_EXPORT.finditer(content):
        kind: ExportType = "reexport" if match.group(2) else "variable"
        for name in _binding_names(match.group(1), r"\s+as\s+"):
            if not any(e.name == name for e in exports):
                exports.append(ExportInfo(name=name, type=kind))

    for match in _ES_STAR_EXPORT.finditer(content):
        alias, source = match.groups()
        exports.append(ExportInfo(name=alias or f"* from {source}", type="reexport"))

    return exports


# ==================== Python ====================

_PY_IMPORT = re.compile(r"^[ \t]*import\s+([\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)", re.M)
_PY_FROM_IMPORT = re.compile(r"^[ \t]*from\s+([\w.]+)\s+import\s+(\([^)]*\)|[^\n#]+)", re.M)
_PY_DEF = re.compile(r"^(?:async\s+)?def\s+(\w+)", re.M)
_PY_CLASS = re.compile(r"^class\s+(\w+)", re.M)
_PY_ASSIGN = re.compile(r"^([A-Za-z]\w*)\s*(?::[^=\n]+)?=(?!=)", re.M)
_PY_ALL = re.compile(r"^__all__\s*(?::[^=\n]+)?=\s*[\[(]([^\])]*)[\])]", re.M)


def parse_python_imports(content: str) -> list[ImportInfo]:
    imports: list[ImportInfo] = []

    for match in _PY_IMPORT.finditer(content):
        for part in match.group(1).split(","):
            module, _, alias = part.strip().partition(" as ")
            module = module.strip()
            imports.append(
                ImportInfo(source=module, specifiers=[alias.strip() or module], is_namespace=True)
            )

    for match in _PY_FROM_IMPORT.finditer(content):
        source = match.group(1)
        raw = match.group(2).strip().strip("()")
        if raw.strip() == "*":
            imports.append(ImportInfo(source=source, specifiers=["*"], is_namespace=True))
            continue
        names = [line.split("#", 1)[0] for line in raw.splitlines()]
        imports.append(
            ImportInfo(source=source, specifiers=_binding_names(",".join(names), r"\s+as\s+"))
        )

    return merge_imports(imports)


def parse_python_exports(content: str) -> list[ExportInfo]:
    found: list[tuple[int, str, ExportType]] = []
    for regex, kind in ((_PY_DEF, "function"), (_PY_CLASS, "class"), (_PY_ASSIGN, "variable")):
        found.extend((m.start(), m.group(1), kind) for m in regex.finditer(content))

    # 按出现顺序，同名取首个定义
    definitions: dict[str, ExportType] = {}
    for _, name, kind in sorted(found):
        definitions.setdefault(name, kind)

    declared = _PY_ALL.search(content)
    if declared:
        names = re.findall(r"""['"](\w+)['"]""", declared.group(1))
        return [ExportInfo(name=name, type=definitions.get(name, "variable")) for name in names]

    return [
        ExportInfo(name=name, type=export_type)
        for name, export_type in definitions.items()
        if not name.startswith("_")
    ]


async def get_imports(
    params: GetImportsInput,
    gateway: RepositoryGateway,
    ref: RepositoryRef,
    options: ExecutionOptions,
) -> GetImportsOutput:
    """提取文件的导入与导出"""
    path = params.path.strip().lstrip("/")
    data = await gateway.get_file_content(ref.owner, ref.repo, path, ref.branch)

    if path.lower().endswith(PYTHON_SUFFIXES):
        imports = parse_python_imports(data.content)
        exports = parse_python_exports(data.content)
    else:
        imports = parse_js_imports(data.content)
        exports = parse_js_exports(data.content)

    return GetImportsOutput(path=path, imports=imports, exports=exports)
