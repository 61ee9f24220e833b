"""
片段拉取模块
负责 HTTP 请求（请求头注入、字节范围、重试）和 AES-128 解密
"""

import logging
import os
import threading
from typing import Callable, Dict, Optional, Union

import requests

from .config import DownloadConfig
from .crypto import AESDecryptor, KeyCache, check_supported, iv_for_task
from .errors import CancelledError, NetworkError, UnexpectedContentTypeError, UpstreamHTTPError
from .models import FetchTask, InitMapDirective, RequestHeaders
from .utils import RetryHandler, create_session

logger = logging.getLogger(__name__)

HeadersLike = Union[RequestHeaders, Dict[str, str], None]

# 伪装成媒体的错误页 / 拦截页
REJECTED_CONTENT_TYPES = ('text/html', 'application/json')


def build_range_header(length: int, start: Optional[int] = None) -> str:
    """
    构造 Range 请求头

    有起点时为 bytes=<start>-<end>，没有起点时为 bytes=0-<length-1>
    """
    if start is None:
        return f"bytes=0-{length - 1}"
    return f"bytes={start}-{start + length - 1}"


class SegmentFetcher:
    """片段拉取器"""

    def __init__(self, session: Optional[requests.Session] = None, config: Optional[DownloadConfig] = None):
        """
        Args:
            session: 共享的 HTTP 会话（连接池），由调用方创建和持有
            config: 下载配置
        """
        self.config = config or DownloadConfig()
        self.session = session or create_session(self.config.verify_ssl, pool_size=self.config.concurrency)
        self.retry_handler = RetryHandler(
            max_attempts=self.config.max_attempts,
            retry_delay=self.config.retry_delay,
        )
        self.decryptor = AESDecryptor()

    # ==================== 请求头 ====================

    def build_headers(self, headers: HeadersLike, accept: str = '*/*') -> Dict[str, str]:
        """把调用方的请求上下文转成 HTTP 请求头"""
        if headers is None:
            headers = RequestHeaders()
        if isinstance(headers, RequestHeaders):
            result = headers.to_dict(accept=accept, accept_language=self.config.accept_language)
        else:
            result = {'Accept': accept}
            result.update(headers)
        result.setdefault('User-Agent', self.config.user_agent)
        return result

    # ==================== 单次请求 ====================

    def _get(self, url: str, headers: Dict[str, str], stream: bool = False) -> requests.Response:
        try:
            response = self.session.get(url, headers=headers, timeout=self.config.timeout, stream=stream)
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"请求失败 {url}: {e}", url=url) from e

        if not 200 <= response.status_code <= 299:
            response.close()
            raise UpstreamHTTPError(response.status_code, url)
        return response

    @staticmethod
    def _read(response: requests.Response, url: str) -> bytes:
        try:
            return response.content
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"读取响应失败 {url}: {e}", url=url) from e

    @staticmethod
    def _check_media_type(response: requests.Response, url: str):
        content_type = (response.headers.get('Content-Type') or '').lower()
        if any(t in content_type for t in REJECTED_CONTENT_TYPES):
            response.close()
            raise UnexpectedContentTypeError(content_type, url)

    # ==================== 公共接口 ====================

    def fetch_text(self, url: str, headers: HeadersLike = None,
                   cancel_event: Optional[threading.Event] = None) -> str:
        """
        获取文本（播放列表、字幕）

        Raises:
            UpstreamHTTPError: 重试耗尽后仍为非 2xx
            NetworkError: 重试耗尽后仍有传输错误
        """
        request_headers = self.build_headers(headers, accept=self.config.playlist_accept)

        def _fetch():
            response = self._get(url, request_headers)
            # RFC 8216 要求播放列表为 UTF-8
            return self._read(response, url).decode('utf-8', errors='replace')

        logger.debug(f"GET(text) {url}")
        return self.retry_handler.execute_with_retry(_fetch, cancel_event=cancel_event)

    def fetch_bytes(self, url: str, headers: HeadersLike = None,
                    byte_range_length: Optional[int] = None,
                    byte_range_start: Optional[int] = None,
                    cancel_event: Optional[threading.Event] = None) -> bytes:
        """
        获取二进制片段

        Args:
            url: 片段地址
            headers: 请求上下文
            byte_range_length: 字节范围长度，None 表示整个资源
            byte_range_start: 字节范围起点，None 时从 0 开始

        Raises:
            UnexpectedContentTypeError: 返回 HTML/JSON（重试耗尽后）
        """
        request_headers = self.build_headers(headers)
        if byte_range_length is not None:
            request_headers['Range'] = build_range_header(byte_range_length, byte_range_start)

        def _fetch():
            response = self._get(url, request_headers)
            self._check_media_type(response, url)
            data = self._read(response, url)
            if byte_range_length is None:
                return data
            start = byte_range_start or 0
            if response.status_code == 200 and len(data) > byte_range_length:
                # 服务器忽略了 Range，返回了整个文件
                logger.debug(f"服务器忽略 Range，本地截取 {url}")
                data = data[start:start + byte_range_length]
            elif len(data) > byte_range_length:
                logger.debug(f"范围响应超出请求长度，截取前 {byte_range_length} bytes {url}")
                data = data[:byte_range_length]
            if len(data) < byte_range_length:
                raise NetworkError(f"字节范围不完整 {url}: {len(data)}/{byte_range_length}", url=url)
            return data

        logger.debug(f"GET {url} range={request_headers.get('Range')}")
        return self.retry_handler.execute_with_retry(_fetch, cancel_event=cancel_event)

    def fetch_key(self, url: str, headers: HeadersLike = None,
                  cancel_event: Optional[threading.Event] = None) -> bytes:
        """下载密钥字节，HTML/JSON 响应同样被拒绝并重试"""
        request_headers = self.build_headers(headers)

        def _fetch():
            response = self._get(url, request_headers)
            self._check_media_type(response, url)
            return self._read(response, url)

        return self.retry_handler.execute_with_retry(_fetch, cancel_event=cancel_event)

    def new_key_cache(self, headers: HeadersLike = None,
                      cancel_event: Optional[threading.Event] = None) -> KeyCache:
        """为一次计划执行创建独立的密钥缓存"""
        return KeyCache(lambda key_url: self.fetch_key(key_url, headers, cancel_event=cancel_event))

    def fetch_init_segment(self, init: InitMapDirective, headers: HeadersLike = None,
                           cancel_event: Optional[threading.Event] = None) -> bytes:
        """下载 fMP4 初始化片段（不解密）"""
        return self.fetch_bytes(init.url, headers, init.byte_range_length, init.byte_range_start,
                                cancel_event=cancel_event)

    def fetch_and_decrypt(self, task: FetchTask, headers: HeadersLike = None,
                          key_cache: Optional[KeyCache] = None,
                          cancel_event: Optional[threading.Event] = None) -> bytes:
        """
        下载片段，必要时解密

        Raises:
            UnsupportedEncryptionError: 加密方式不是 AES-128
            DecryptionError: 解密或去填充失败
        """
        key = task.active_key
        if key is not None and key.is_encrypted():
            # 先检查加密方式，避免白白下载
            check_supported(key)

        segment = task.segment
        data = self.fetch_bytes(segment.url, headers, segment.byte_range_length, segment.byte_range_start,
                                cancel_event=cancel_event)
        if key is None or not key.is_encrypted():
            return data

        if key_cache is None:
            key_cache = self.new_key_cache(headers, cancel_event)
        key_bytes = key_cache.get(key.key_url)
        iv = iv_for_task(task, use_media_sequence=self.config.iv_from_media_sequence)
        return self.decryptor.decrypt(data, key_bytes, iv)

    def download_to_file(self, url: str, output_path: str, headers: HeadersLike = None,
                         progress_callback: Optional[Callable[[int, int], None]] = None,
                         cancel_event: Optional[threading.Event] = None) -> int:
        """
        以流的方式把整个资源写入文件（mp4、字幕等直接资源）

        先写入 <output>.part，完成后再重命名。

        Returns:
            int: 写入的字节数
        """
        request_headers = self.build_headers(headers)
        part_path = output_path + '.part'
        parent = os.path.dirname(os.path.abspath(output_path))
        os.makedirs(parent, exist_ok=True)

        def _download():
            response = self._get(url, request_headers, stream=True)
            self._check_media_type(response, url)
            total_size = int(response.headers.get('Content-Length') or 0)
            written = 0
            try:
                with open(part_path, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=self.config.chunk_size):
                        if cancel_event is not None and cancel_event.is_set():
                            raise CancelledError("下载已取消")
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
                            if progress_callback:
                                progress_callback(written, total_size)
            except requests.exceptions.RequestException as e:
                raise NetworkError(f"下载中断 {url}: {e}", url=url) from e
            finally:
                response.close()
            return written

        try:
            written = self.retry_handler.execute_with_retry(_download, cancel_event=cancel_event)
        except BaseException:
            if not self.config.keep_partial_files and os.path.exists(part_path):
                os.remove(part_path)
            raise

        os.replace(part_path, output_path)
        logger.info(f"下载完成: {output_path} ({written} bytes)")
        return written

    def probe_content_type(self, url: str, headers: HeadersLike = None) -> Optional[str]:
        """HEAD 请求探测 Content-Type，失败返回 None"""
        try:
            response = self.session.head(url, headers=self.build_headers(headers),
                                         timeout=self.config.timeout, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            logger.debug(f"HEAD 探测失败 {url}: {e}")
            return None
        if not 200 <= response.status_code <= 299:
            return None
        return (response.headers.get('Content-Type') or '').lower() or None
