"""
工具模块
日志、HTTP 会话、重试、URL 处理等通用工具
"""

import logging
import threading
import time
import warnings
from typing import Callable, Dict, Optional, Tuple, Type
from urllib.parse import urljoin, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import InsecureRequestWarning

from .errors import CancelledError, RETRYABLE_ERRORS

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logger(name: str, log_file: Optional[str] = None, console_output: bool = True,
                 level: int = logging.INFO) -> logging.Logger:
    """
    配置并返回日志记录器

    Args:
        name: 日志记录器名称
        log_file: 日志文件路径，None 表示不写文件
        console_output: 是否输出到控制台
        level: 日志级别

    Returns:
        logging.Logger: 配置好的日志记录器
    """
    logger = logging.getLogger(name)

    # 避免重复添加 handler
    if any(not isinstance(h, logging.NullHandler) for h in logger.handlers):
        return logger

    logger.setLevel(level)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    return logger


def create_session(verify_ssl: bool = True, headers: Optional[Dict[str, str]] = None,
                   pool_size: int = 10) -> requests.Session:
    """
    创建配置好的 HTTP 会话（进程内共享，线程安全地复用连接池）

    Args:
        verify_ssl: 是否验证 SSL 证书
        headers: 默认请求头
        pool_size: 每个主机的连接池大小，应不小于并发数

    Returns:
        requests.Session: 配置好的会话对象
    """
    session = requests.Session()
    session.verify = verify_ssl

    if not verify_ssl:
        warnings.filterwarnings('ignore', category=InsecureRequestWarning)

    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount('http://', adapter)
    session.mount('https://', adapter)

    if headers:
        session.headers.update(headers)

    return session


def resolve_url(base: str, relative: str) -> str:
    """把相对地址解析为基于 base 的绝对地址"""
    return urljoin(base, relative.strip())


def origin_of(url: Optional[str]) -> Optional[str]:
    """从 URL 取出 Origin（默认端口省略）"""
    if not url:
        return None
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None
    if port is not None and port not in (80, 443):
        return f"{parsed.scheme}://{parsed.hostname}:{port}"
    return f"{parsed.scheme}://{parsed.hostname}"


def extract_filename_from_url(url: str) -> str:
    """
    从 URL 提取文件名,移除查询参数和片段标识

    Args:
        url: URL 字符串

    Returns:
        str: 文件名
    """
    clean_url = url.split('?')[0].split('#')[0]
    return clean_url.split('/')[-1]


class RetryHandler:
    """
    重试处理器 - 线性退避

    第 n 次尝试失败后等待 retry_delay * n 秒再进行第 n+1 次尝试，
    只重试网络类错误，其余错误立即抛出。
    """

    def __init__(self, max_attempts: int = 3, retry_delay: float = 0.3,
                 retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
                 cancel_event: Optional[threading.Event] = None):
        """
        Args:
            max_attempts: 总尝试次数（含第一次）
            retry_delay: 退避基数（秒）
            retry_on: 可重试的异常类型
            cancel_event: 取消事件，退避期间被设置则抛出 CancelledError
        """
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.retry_on = retry_on
        self.cancel_event = cancel_event
        self.logger = logging.getLogger(__name__)

    def _sleep(self, seconds: float, cancel_event: Optional[threading.Event]):
        if cancel_event is None:
            time.sleep(seconds)
        elif cancel_event.wait(seconds):
            raise CancelledError("重试等待期间被取消")

    def execute_with_retry(self, func: Callable, *args, cancel_event: Optional[threading.Event] = None, **kwargs):
        """
        执行函数,失败时重试

        Raises:
            最后一次尝试的异常
        """
        cancel_event = cancel_event or self.cancel_event

        for attempt in range(1, self.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise CancelledError("下载已取消")
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.retry_delay * attempt
                self.logger.warning(f"第 {attempt}/{self.max_attempts} 次尝试失败: {e}，{delay:.1f}s 后重试")
                self._sleep(delay, cancel_event)


def format_file_size(size: int) -> str:
    """格式化文件大小"""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} TB"


def format_time(seconds: float) -> str:
    """格式化时间"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds/60:.1f}m"
    else:
        return f"{seconds/3600:.1f}h"


def format_bandwidth(bandwidth: int) -> str:
    """格式化码率"""
    if bandwidth >= 1_000_000:
        return f"{bandwidth // 1_000_000}M"
    if bandwidth >= 1_000:
        return f"{bandwidth // 1_000}K"
    return f"{bandwidth}bps"


def print_banner():
    """打印欢迎横幅"""
    banner = """
        ╔══════════════════════════════════════════════════════════════╗
        ║                        HLS Grab v1.0                         ║
        ║                                                              ║
        ║  HLS 清单解析与分片下载器                                    ║
        ║  支持变体选择、字节范围、AES-128 解密、并发有序写入          ║
        ╚══════════════════════════════════════════════════════════════╝
    """
    print(banner)
