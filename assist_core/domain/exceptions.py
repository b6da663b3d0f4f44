"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。

对话编排相关的错误分为三类：
- 致命且不重试：Unauthenticated、ConfigurationError、ProviderError、StoreConflictError。
- 本地恢复：ProviderNotFound 只在分级回退内部使用，调用方看不到。
- 能力整体不可用：AllVariantsExhausted，与单次 ProviderError 区分。
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


class Unauthenticated(BusinessError):
    """调用方身份缺失。"""

    def __init__(self, message: str = "Not authenticated", **extra):
        super().__init__(code="UNAUTHENTICATED", message=message, http_status=401, **extra)


class ConversationNotFound(BusinessError):
    """会话不存在，或不属于当前调用方。"""

    def __init__(self, conversation_id: str, **extra):
        super().__init__(
            code="CONVERSATION_NOT_FOUND",
            message=f"Chat not found: {conversation_id}",
            http_status=404,
            conversation_id=conversation_id,
            **extra,
        )


class NoUserMessage(BusinessError):
    """既没有显式传入用户消息，会话里也没有可用的最后一条消息。"""

    def __init__(self, message: str = "No user message found", **extra):
        super().__init__(code="NO_USER_MESSAGE", message=message, http_status=400, **extra)


class ConfigurationError(BusinessError):
    """必需的密钥或配置缺失，原样返回给调用方。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="MISSING_API_KEY", message=message, http_status=500, **extra)


class ValidationError(BusinessError):
    """参数校验失败。"""


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ProviderNotFound(BusinessError):
    """模型变体不存在（404 类），由分级回退切换到下一个变体。"""


class ProviderError(BusinessError):
    """后端返回其他非成功响应，本次调用直接失败。"""


class AllVariantsExhausted(BusinessError):
    """所有模型变体都返回“不存在”。"""


class StoreConflictError(BusinessError):
    """追加消息时会话已被其他写入改变。"""
