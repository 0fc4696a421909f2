"""能力 schema

每次模型调用都原样附带的工具定义：名称、带使用建议的描述和 JSON Schema 输入描述。
"""

import copy
from typing import Any

from distill.capabilities.models import CapabilityName

CAPABILITY_DEFINITIONS: dict[CapabilityName, dict[str, Any]] = {
    CapabilityName.LIST_DIR: {
        "name": "list_dir",
        "description": (
            "List the contents of a directory in the repository. Returns files and "
            "subdirectories with their types. Use this to explore the project structure.\n\n"
            "Best practices:\n"
            "- Start by listing the root directory to understand the project structure\n"
            "- Use this before reading files to know what's available\n"
            "- Check for common directories like src/, lib/, components/, etc."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": 'The path to the directory to list. Use "/" or "" for root directory.',
                },
                "maxDepth": {
                    "type": "number",
                    "description": "Maximum depth to recurse into subdirectories (default: 1, max: 5)",
                },
            },
            "required": ["path"],
        },
    },
    CapabilityName.READ_FILE: {
        "name": "read_file",
        "description": (
            "Read the contents of a file from the repository. Returns the file content as "
            "text with line numbers.\n\n"
            "Best practices:\n"
            "- Use list_dir first to find the file path\n"
            "- For large files, use startLine and endLine to read specific sections\n"
            "- Check the file extension to understand the content type\n"
            "- Look for imports at the top of files to understand dependencies"
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": 'The path to the file to read (e.g., "src/index.ts")',
                },
                "startLine": {
                    "type": "number",
                    "description": "Optional: First line number to read (1-indexed)",
                },
                "endLine": {
                    "type": "number",
                    "description": "Optional: Last line number to read (1-indexed)",
                },
            },
            "required": ["path"],
        },
    },
    CapabilityName.SEARCH_CODE: {
        "name": "search_code",
        "description": (
            "Search for code patterns in the repository. Returns matching lines with file "
            "paths and line numbers.\n\n"
            "Best practices:\n"
            "- Use specific search terms for better results\n"
            "- Search for function names, class names, or unique identifiers\n"
            '- Use filePattern to limit search to specific file types (e.g., "*.ts", "*.tsx")\n'
            "- Search for imports to find where a module is used"
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query (text to find in code)",
                },
                "filePattern": {
                    "type": "string",
                    "description": 'Optional: File pattern to search in (e.g., "*.ts", "*.tsx", "src/**/*.ts")',
                },
                "maxResults": {
                    "type": "number",
                    "description": "Optional: Maximum number of results to return (default: 20, max: 50)",
                },
            },
            "required": ["query"],
        },
    },
    CapabilityName.GET_IMPORTS: {
        "name": "get_imports",
        "description": (
            "Analyze a source file to extract its imports and exports. Returns structured "
            "information about dependencies and exported members.\n\n"
            "Best practices:\n"
            "- Use this to understand file dependencies before making changes\n"
            "- Check imports to find related files\n"
            "- Exports tell you what functionality the file provides\n"
            "- Useful for understanding component/module boundaries"
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": 'The path to the source file to analyze (e.g., "src/services/user.service.ts")',
                },
            },
            "required": ["path"],
        },
    },
}


def get_capability_schema() -> list[dict[str, Any]]:
    """获取发送给模型的工具定义列表（深拷贝，调用方可自由修改）"""
    return [copy.deepcopy(CAPABILITY_DEFINITIONS[name]) for name in CapabilityName]
