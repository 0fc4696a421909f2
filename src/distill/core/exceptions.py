"""Distill 自定义异常类

所有异常都携带稳定的 code，调用方据此区分错误类别：
- 能力执行错误（Capability / Gateway）：在单次能力调用内恢复，作为文本反馈给模型
- 模型协议错误、迭代超限：致命，中止会话
"""


class DistillError(Exception):
    """Distill 基础异常类"""

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """转换为字典（用于事件和 CLI 输出）"""
        return {"code": self.code, "message": self.message}


class ConfigurationError(DistillError):
    """配置错误"""

    code = "CONFIG_ERROR"


class ModelInvocationError(DistillError):
    """模型服务调用失败"""

    code = "LLM_ERROR"


class AgentProtocolError(DistillError):
    """模型返回了无法处理的响应（未知停止信号、缺少文本等）"""

    code = "AGENT_ERROR"

    def __init__(self, message: str, stop_reason: str | None = None):
        self.stop_reason = stop_reason
        super().__init__(message)


class AgentIterationLimitError(DistillError):
    """超过最大迭代次数仍未得到最终回答"""

    code = "AGENT_TIMEOUT"

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"Agent exceeded maximum iterations ({max_iterations})")


class CapabilityError(DistillError):
    """能力执行错误"""

    code = "CAPABILITY_ERROR"


class UnknownCapabilityError(CapabilityError):
    """模型请求了不存在的能力"""

    code = "UNKNOWN_CAPABILITY"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown capability: {name}")


class InvalidCapabilityInputError(CapabilityError):
    """能力输入参数无效"""

    code = "INVALID_CAPABILITY_INPUT"

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid input for {name}: {reason}")


class GatewayError(DistillError):
    """仓库网关错误"""

    code = "GATEWAY_ERROR"


class GatewayAuthError(GatewayError):
    """认证失败（令牌缺失或失效）"""

    code = "GATEWAY_AUTH_ERROR"

    def __init__(self, message: str = "Repository authentication failed"):
        super().__init__(message)


class GatewayAccessError(GatewayError):
    """无权访问资源"""

    code = "GATEWAY_ACCESS_DENIED"

    def __init__(self, message: str = "No access to this repository"):
        super().__init__(message)


class GatewayNotFoundError(GatewayError):
    """资源不存在"""

    code = "GATEWAY_NOT_FOUND"

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"Repository resource not found: {resource}")


class GatewayRateLimitError(GatewayError):
    """触发远端限流"""

    code = "GATEWAY_RATE_LIMIT"

    def __init__(self, retry_after: int = 60):
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Retry after {retry_after} seconds")
