"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在会话层或 UI 层做统一捕获与用户提示。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "DUPLICATE_MESSAGE_ID"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 trace_id、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，由上层负责重试/退避策略。"""


class ValidationError(BusinessError):
    """参数、配置或消息日志不变量校验失败。"""


class GenerationFailure(BusinessError):
    """生成操作失败（抛异常、返回非法结果或超时）。

    会话层在编排器边界捕获原始异常并包装为本类型，写入 last_error，
    原始异常保存在 cause 与 __cause__ 上。
    """

    def __init__(
        self,
        code: str,
        message: str,
        cause: Optional[BaseException] = None,
        **extra,
    ):
        super().__init__(code, message, http_status=502, **extra)
        self.cause = cause
        self.__cause__ = cause


class GenerationTimeout(GenerationFailure):
    """生成操作超过配置的 generation_timeout。"""


class InvalidGenerationResult(GenerationFailure):
    """生成操作返回的不是 GenerationResult。"""
