"""Distill 核心层

提供全局配置和异常定义。
"""

from .config import DistillSettings, get_settings, reset_settings
from .exceptions import (
    AgentIterationLimitError,
    AgentProtocolError,
    CapabilityError,
    ConfigurationError,
    DistillError,
    GatewayAccessError,
    GatewayAuthError,
    GatewayError,
    GatewayNotFoundError,
    GatewayRateLimitError,
    InvalidCapabilityInputError,
    ModelInvocationError,
    UnknownCapabilityError,
)

__all__ = [
    # Config
    "DistillSettings",
    "get_settings",
    "reset_settings",
    # Exceptions
    "DistillError",
    "ConfigurationError",
    "ModelInvocationError",
    "AgentProtocolError",
    "AgentIterationLimitError",
    "CapabilityError",
    "UnknownCapabilityError",
    "InvalidCapabilityInputError",
    "GatewayError",
    "GatewayAuthError",
    "GatewayAccessError",
    "GatewayNotFoundError",
    "GatewayRateLimitError",
]
