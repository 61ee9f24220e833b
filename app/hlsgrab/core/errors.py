"""
异常模块
HLS 下载流程中所有可区分的错误类型
"""

from typing import Optional


class HLSError(Exception):
    """所有 HLS 错误的基类"""


class MalformedManifestError(HLSError):
    """内容不是播放列表（缺少 #EXTM3U）或无法解析"""


class EmptyPlaylistError(HLSError):
    """媒体播放列表中没有任何可用片段"""


class UpstreamHTTPError(HLSError):
    """服务器返回非 2xx 状态码"""

    def __init__(self, status: int, url: str = ""):
        self.status = status
        self.url = url
        super().__init__(f"HTTP {status} for {url}" if url else f"HTTP {status}")


class UnexpectedContentTypeError(HLSError):
    """媒体请求返回了 HTML/JSON 页面（错误页或拦截页）"""

    def __init__(self, content_type: str, url: str = ""):
        self.content_type = content_type
        self.url = url
        super().__init__(f"不支持的响应类型 {content_type}: {url}")


class UnsupportedEncryptionError(HLSError):
    """除 AES-128 以外的加密方式"""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"不支持的加密方式: {method}")


class DecryptionError(HLSError):
    """解密或去填充失败（密钥/IV 错误或传输损坏）"""


class NetworkError(HLSError):
    """传输层错误：连接失败、超时、TLS 错误"""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class CancelledError(HLSError):
    """下载被取消"""


class MuxError(HLSError):
    """外部封装工具不可用或执行失败"""


# 可以在本地重试的错误
RETRYABLE_ERRORS = (NetworkError, UpstreamHTTPError, UnexpectedContentTypeError)
