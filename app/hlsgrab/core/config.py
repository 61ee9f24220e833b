"""
配置模块
定义下载器的各种配置参数
"""

from dataclasses import dataclass, asdict
from typing import Optional

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Linux; Android 13) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36'
)
PLAYLIST_ACCEPT = 'application/x-mpegURL,application/vnd.apple.mpegurl,*/*'


@dataclass
class DownloadConfig:
    """下载配置类"""

    # 并发配置
    concurrency: int = 6
    # 已拉取但尚未写入的片段上限，None 表示 2 * concurrency
    prefetch_window: Optional[int] = None

    # 超时配置（秒）
    connect_timeout: float = 20
    read_timeout: float = 30

    # 重试配置：总尝试次数与线性退避基数
    max_attempts: int = 3
    retry_delay: float = 0.3

    # 直接下载文件时的块大小
    chunk_size: int = 64 * 1024

    # 请求头配置
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = 'tr-TR,tr;q=0.8,en-US;q=0.6,en;q=0.4'
    playlist_accept: str = PLAYLIST_ACCEPT

    verify_ssl: bool = True

    # ============ 播放列表语义 ============
    # 缺少 @start 的 BYTERANGE 是否接续同一 URI 上一段的结尾（RFC 8216）
    # 关闭时按 0 作为起点
    continue_byteranges: bool = False

    # 没有显式 IV 时是否用 EXT-X-MEDIA-SEQUENCE + 位置 生成 IV
    iv_from_media_sequence: bool = False

    # 预检时内容不是播放列表：True 按单个文件直接下载，False 报错
    allow_direct_asset: bool = True

    # 失败或取消后是否保留 .part 文件
    keep_partial_files: bool = False

    # 日志与进度
    enable_logging: bool = True
    log_file: Optional[str] = None
    show_progress: bool = True

    @property
    def timeout(self):
        """requests 使用的 (connect, read) 超时"""
        return self.connect_timeout, self.read_timeout

    @property
    def effective_prefetch_window(self) -> int:
        if self.prefetch_window:
            return max(self.prefetch_window, self.concurrency)
        return self.concurrency * 2

    def validate(self):
        """检查配置是否合理"""
        if self.concurrency < 1:
            raise ValueError(f"concurrency 必须 >= 1: {self.concurrency}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts 必须 >= 1: {self.max_attempts}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay 不能为负: {self.retry_delay}")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ValueError("超时时间必须为正数")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size 必须为正数: {self.chunk_size}")
        return self

    def to_dict(self):
        """转换为字典"""
        return asdict(self)


# 预设配置模板
class ConfigTemplates:
    """配置模板"""

    @staticmethod
    def fast():
        """快速下载配置"""
        return DownloadConfig(
            concurrency=8,
            max_attempts=2,
            retry_delay=0.2,
            connect_timeout=15,
            read_timeout=20,
        )

    @staticmethod
    def stable():
        """稳定下载配置"""
        return DownloadConfig(
            concurrency=4,
            max_attempts=5,
            retry_delay=0.5,
            connect_timeout=30,
            read_timeout=30,
        )

    @staticmethod
    def low_bandwidth():
        """低带宽配置"""
        return DownloadConfig(
            concurrency=2,
            prefetch_window=2,
            max_attempts=3,
            retry_delay=1.0,
            chunk_size=16 * 1024,
        )
