"""
HLS Grab Core Module
核心下载功能模块
"""

from .assembler import AssemblyResult, StreamAssembler
from .config import ConfigTemplates, DownloadConfig
from .crypto import AESDecryptor, KeyCache, derive_iv
from .errors import (
    CancelledError,
    DecryptionError,
    EmptyPlaylistError,
    HLSError,
    MalformedManifestError,
    MuxError,
    NetworkError,
    UnexpectedContentTypeError,
    UnsupportedEncryptionError,
    UpstreamHTTPError,
)
from .fetcher import SegmentFetcher
from .json_loader import JSONTaskLoader
from .models import (
    DownloadRequest,
    DownloadResult,
    FetchPlan,
    FetchTask,
    MasterPlaylist,
    MediaPlaylist,
    PlaylistKind,
    Preferences,
    Rendition,
    RenditionKind,
    RequestHeaders,
    Variant,
)
from .muxer import FFmpegMuxer, MediaMuxer
from .orchestrator import DownloadSession, ManifestFetchOrchestrator, OrchestratorState
from .parser import ManifestParser
from .planner import FetchPlanBuilder
from .progress import DownloadListener, TrackProgressDisplay, dispatch_events
from .selector import VariantSelector
from .sources import CandidateCollector, CandidateURL, UrlKind, detect_url_kind, is_likely_ad_url
from .subtitles import SubtitleDownloader
from .utils import RetryHandler, create_session, setup_logger

__all__ = [
    # 编排
    "ManifestFetchOrchestrator",
    "DownloadSession",
    "OrchestratorState",

    # 解析与计划
    "ManifestParser",
    "VariantSelector",
    "FetchPlanBuilder",

    # 拉取与组装
    "SegmentFetcher",
    "StreamAssembler",
    "AssemblyResult",
    "SubtitleDownloader",
    "KeyCache",
    "AESDecryptor",
    "derive_iv",

    # 数据模型
    "DownloadRequest",
    "DownloadResult",
    "RequestHeaders",
    "Preferences",
    "MasterPlaylist",
    "MediaPlaylist",
    "PlaylistKind",
    "Variant",
    "Rendition",
    "RenditionKind",
    "FetchPlan",
    "FetchTask",

    # 候选地址
    "CandidateCollector",
    "CandidateURL",
    "UrlKind",
    "detect_url_kind",
    "is_likely_ad_url",

    # 配置
    "DownloadConfig",
    "ConfigTemplates",
    "JSONTaskLoader",

    # 进度
    "DownloadListener",
    "TrackProgressDisplay",
    "dispatch_events",

    # 封装
    "MediaMuxer",
    "FFmpegMuxer",

    # 错误
    "HLSError",
    "MalformedManifestError",
    "EmptyPlaylistError",
    "UpstreamHTTPError",
    "UnexpectedContentTypeError",
    "UnsupportedEncryptionError",
    "DecryptionError",
    "NetworkError",
    "CancelledError",
    "MuxError",

    # 工具
    "RetryHandler",
    "create_session",
    "setup_logger",
]
