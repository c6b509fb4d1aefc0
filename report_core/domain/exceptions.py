"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
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


class UpstreamServiceError(BusinessError):
    """向量化、补全或 Assistant 任务接口在传输/厂商层面失败。"""


class NetworkError(UpstreamServiceError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(UpstreamServiceError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(UpstreamServiceError):
    """Provider 限流错误，由上层负责重试/退避策略。"""


class EmptyResponseError(BusinessError):
    """模型在必须返回内容的场景（如 JSON 生成）下没有返回内容。"""


class ParseError(BusinessError):
    """预期为合法 JSON 的响应解析失败，或结构与约定不符。"""


class JobTerminalFailure(BusinessError):
    """外部任务以 failed/expired/cancelled 结束。

    目前轮询器不会抛出该异常，而是返回兜底文案；保留类型供调用方
    在需要区分失败时自行转换。
    """


class JobTimeoutError(BusinessError, TimeoutError):
    """轮询超过次数/时长上限，或被调用方取消。"""


class TurnInProgressError(BusinessError):
    """同一会话已有一轮回答正在生成。"""


class NotFoundError(BusinessError):
    """记录不存在。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""
