"""Distill 配置管理

使用 Pydantic Settings 管理配置，支持环境变量和 .env 文件。
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DistillSettings(BaseSettings):
    """Distill 全局配置"""

    model_config = SettingsConfigDict(
        env_prefix="DISTILL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # LLM API 配置
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API Key",
        validation_alias=AliasChoices("ANTHROPIC_API_KEY", "DISTILL_ANTHROPIC_API_KEY"),
    )
    anthropic_base_url: str | None = Field(
        default=None,
        description="Anthropic API 地址（可选，用于代理或兼容服务）",
    )
    model: str = Field(
        default="claude-3-5-haiku-20241022",
        description="默认使用的模型",
    )
    max_tokens: int = Field(
        default=8192,
        description="单次模型调用的最大输出 token 数",
    )
    max_iterations: int = Field(
        default=25,
        description="Agent 循环的最大迭代次数",
    )
    temperature: float = Field(
        default=0.3,
        description="采样温度",
    )

    # 仓库网关配置
    github_token: str | None = Field(
        default=None,
        description="GitHub 访问令牌",
        validation_alias=AliasChoices("GITHUB_TOKEN", "DISTILL_GITHUB_TOKEN"),
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API 地址",
    )
    request_timeout: float = Field(
        default=30.0,
        description="网关 HTTP 请求超时（秒）",
    )

    # 能力执行限制
    max_file_size: int = Field(
        default=100_000,
        description="read_file 读取的最大字符数",
    )
    max_results: int = Field(
        default=50,
        description="目录列表/代码搜索返回结果的硬上限",
    )
    max_depth: int = Field(
        default=5,
        description="list_dir 的最大递归深度",
    )
    default_search_results: int = Field(
        default=20,
        description="未指定时代码搜索返回的结果数",
    )
    fallback_max_files: int = Field(
        default=100,
        description="回退扫描时最多读取的文件数",
    )

    # 流式输出配置
    keepalive_interval: float = Field(
        default=15.0,
        description="SSE 空闲保活间隔（秒）",
    )

    log_level: str = Field(
        default="INFO",
        description="CLI 日志级别",
    )


# 全局配置实例（延迟初始化）
_settings: DistillSettings | None = None


def get_settings() -> DistillSettings:
    """获取全局配置实例"""
    global _settings
    if _settings is None:
        _settings = DistillSettings()
    return _settings


def reset_settings():
    """重置全局配置（主要用于测试）"""
    global _settings
    _settings = None
