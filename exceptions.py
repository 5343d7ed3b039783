"""
自定义异常类模块
定义项目中使用的各种异常类型
"""


class NovelEnhancerError(Exception):
    """基础异常类，所有项目相关的异常都应继承此类"""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class ConfigurationError(NovelEnhancerError):
    """配置相关错误"""

    pass


class ProcessingError(NovelEnhancerError):
    """处理过程中的错误"""

    pass


class InvalidContentError(ProcessingError):
    """待增强的文本内容无效"""

    pass


class OutputVerificationError(ProcessingError):
    """写回结果后校验失败"""

    pass


class APIError(NovelEnhancerError):
    """模型API调用错误"""

    def __init__(self, message: str, error_code: str | None = None, is_retryable: bool = False):
        self.error_code = error_code
        self.is_retryable = is_retryable
        super().__init__(message)


class ModelUnavailableError(APIError):
    """Ollama 服务不可用"""

    def __init__(self, message: str, reason: str | None = None):
        self.reason = reason
        super().__init__(message, error_code="LLM_UNAVAILABLE", is_retryable=False)


class RequestTimeoutError(APIError):
    """请求超时"""

    def __init__(self, message: str, timeout: float | None = None):
        self.timeout = timeout
        super().__init__(message, error_code="TIMEOUT", is_retryable=True)


class RequestTerminatedError(APIError):
    """请求被用户主动终止，不会重试"""

    def __init__(self, message: str = "Request was terminated"):
        super().__init__(message, error_code="USER_TERMINATED", is_retryable=False)


class ResponseParseError(APIError):
    """模型响应中没有可用文本"""

    def __init__(self, message: str = "No text found in Ollama response"):
        super().__init__(message, error_code="EMPTY_RESPONSE", is_retryable=True)


class ChannelError(APIError):
    """消息通道错误（空响应、通道关闭）"""

    def __init__(self, message: str):
        super().__init__(message, error_code="CHANNEL", is_retryable=True)
