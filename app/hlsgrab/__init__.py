"""
HLS Grab Package
HLS 清单解析与分片下载：变体选择、字节范围、AES-128 解密、并发拉取与有序写入
"""

import logging

from .core.config import ConfigTemplates, DownloadConfig
from .core.errors import HLSError
from .core.models import DownloadRequest, DownloadResult, Preferences, RequestHeaders
from .core.orchestrator import DownloadSession, ManifestFetchOrchestrator

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ManifestFetchOrchestrator",
    "DownloadSession",
    "DownloadRequest",
    "DownloadResult",
    "RequestHeaders",
    "Preferences",
    "DownloadConfig",
    "ConfigTemplates",
    "HLSError",
]
