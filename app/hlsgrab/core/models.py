"""
数据模型模块
播放列表、变体、轨道、拉取计划等不可变数据结构
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .utils import origin_of


class PlaylistKind(Enum):
    """播放列表类型"""
    MASTER = "master"
    MEDIA = "media"


class RenditionKind(Enum):
    """#EXT-X-MEDIA 的 TYPE"""
    AUDIO = "AUDIO"
    SUBTITLES = "SUBTITLES"
    CLOSED_CAPTIONS = "CLOSED-CAPTIONS"


@dataclass(frozen=True)
class Variant:
    """主播放列表中的一个码率/画质选项"""
    url: str
    bandwidth: int = 0
    raw_attributes: str = ""  # 原始 #EXT-X-STREAM-INF 行，用于启发式打分
    has_separate_audio: bool = False
    audio_group: Optional[str] = None
    subtitles_group: Optional[str] = None
    codecs: Optional[str] = None
    resolution: Optional[str] = None


@dataclass(frozen=True)
class Rendition:
    """音轨 / 字幕 / 隐藏字幕"""
    kind: RenditionKind
    url: Optional[str] = None  # CLOSED-CAPTIONS 没有 URL
    language: Optional[str] = None
    name: Optional[str] = None
    group_id: Optional[str] = None
    instream_id: Optional[str] = None
    default: bool = False
    autoselect: bool = False


@dataclass(frozen=True)
class KeyDirective:
    """#EXT-X-KEY，对其后所有片段生效，直到被下一个 KEY 替换"""
    method: str
    key_url: Optional[str] = None
    explicit_iv: Optional[bytes] = None
    key_format: str = "identity"

    def is_encrypted(self) -> bool:
        return self.method.upper() not in ("", "NONE")

    def is_aes128(self) -> bool:
        return self.method.upper() == "AES-128"


@dataclass(frozen=True)
class ByteRangeDirective:
    """#EXT-X-BYTERANGE:<length>[@<start>]，只作用于下一个 URI 行"""
    length: int
    start: Optional[int] = None


@dataclass(frozen=True)
class InitMapDirective:
    """#EXT-X-MAP，fMP4 初始化片段"""
    url: str
    byte_range_length: Optional[int] = None
    byte_range_start: Optional[int] = None


@dataclass(frozen=True)
class SegmentURI:
    """媒体播放列表中的一个 URI 行（已解析为绝对地址）"""
    url: str
    duration: Optional[float] = None
    title: str = ""


MediaEntry = Union[KeyDirective, ByteRangeDirective, InitMapDirective, SegmentURI]


@dataclass(frozen=True)
class MasterPlaylist:
    """主播放列表"""
    url: str
    variants: Tuple[Variant, ...] = ()
    renditions: Tuple[Rendition, ...] = ()

    kind = PlaylistKind.MASTER

    @property
    def subtitles(self) -> Tuple[Rendition, ...]:
        return tuple(r for r in self.renditions if r.kind is RenditionKind.SUBTITLES)

    @property
    def audio_renditions(self) -> Tuple[Rendition, ...]:
        return tuple(r for r in self.renditions if r.kind is RenditionKind.AUDIO)

    @property
    def closed_captions(self) -> Tuple[Rendition, ...]:
        return tuple(r for r in self.renditions if r.kind is RenditionKind.CLOSED_CAPTIONS)


@dataclass(frozen=True)
class MediaPlaylist:
    """
    媒体播放列表

    entries 按文档顺序保存 KEY / BYTERANGE / MAP / URI 指令，
    由 FetchPlanBuilder 负责把它们折叠成拉取任务。
    """
    url: str
    entries: Tuple[MediaEntry, ...] = ()
    media_sequence: int = 0
    target_duration: Optional[float] = None
    end_list: bool = False

    kind = PlaylistKind.MEDIA

    @property
    def key(self) -> Optional[KeyDirective]:
        """第一个 KEY 指令"""
        for entry in self.entries:
            if isinstance(entry, KeyDirective):
                return entry
        return None

    @property
    def init_map(self) -> Optional[InitMapDirective]:
        """最后一个 MAP 指令（后出现的覆盖前面的）"""
        found = None
        for entry in self.entries:
            if isinstance(entry, InitMapDirective):
                found = entry
        return found

    @property
    def segment_count(self) -> int:
        return sum(1 for e in self.entries if isinstance(e, SegmentURI))


Playlist = Union[MasterPlaylist, MediaPlaylist]


@dataclass(frozen=True)
class SegmentDirective:
    """一个待拉取的片段"""
    url: str
    byte_range_start: Optional[int] = None
    byte_range_length: Optional[int] = None
    sequence_index: int = 0  # 在播放列表中的位置（从 0 开始）
    media_sequence: int = 0  # EXT-X-MEDIA-SEQUENCE + sequence_index
    duration: Optional[float] = None

    @property
    def byte_range(self) -> Optional[Tuple[int, int]]:
        """闭区间 [start, end]；没有 @start 时从 0 开始"""
        if self.byte_range_length is None:
            return None
        start = self.byte_range_start if self.byte_range_start is not None else 0
        return start, start + self.byte_range_length - 1


@dataclass(frozen=True)
class FetchTask:
    """一次 HTTP 请求 + 当时生效的 KEY"""
    segment: SegmentDirective
    active_key: Optional[KeyDirective] = None


@dataclass(frozen=True)
class FetchPlan:
    """有序的拉取计划"""
    tasks: Tuple[FetchTask, ...]
    init_segment: Optional[InitMapDirective] = None
    playlist_url: str = ""
    end_list: bool = False

    @property
    def init_segment_url(self) -> Optional[str]:
        return self.init_segment.url if self.init_segment else None

    @property
    def total_duration(self) -> float:
        return sum(t.segment.duration or 0.0 for t in self.tasks)

    @property
    def is_encrypted(self) -> bool:
        return any(t.active_key is not None and t.active_key.is_encrypted() for t in self.tasks)

    def estimate_size(self, bandwidth: int) -> Optional[int]:
        """按 带宽 * 时长 / 8 估算字节数"""
        duration = self.total_duration
        if bandwidth <= 0 or duration <= 0:
            return None
        return int(bandwidth * duration / 8)

    def __len__(self):
        return len(self.tasks)


@dataclass
class RequestHeaders:
    """调用方提供的请求上下文（UA、Referer、Cookie）"""
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    cookie: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    def to_dict(self, accept: str = "*/*", accept_language: Optional[str] = None) -> Dict[str, str]:
        headers = {}
        if self.user_agent:
            headers['User-Agent'] = self.user_agent
        if self.referer:
            headers['Referer'] = self.referer
            origin = origin_of(self.referer)
            if origin:
                headers['Origin'] = origin
        headers['Accept'] = accept
        if accept_language:
            headers['Accept-Language'] = accept_language
        if self.cookie:
            headers['Cookie'] = self.cookie
        headers.update(self.extra)
        return headers


@dataclass
class Preferences:
    """轨道选择偏好"""
    prefer_dubbed_audio: bool = False
    prefer_subtitles: bool = False
    preferred_language: str = "tr"


@dataclass
class DownloadRequest:
    """一次下载请求"""
    url: str
    output_path: str
    headers: RequestHeaders = field(default_factory=RequestHeaders)
    preferences: Preferences = field(default_factory=Preferences)
    name: str = ""

    def to_dict(self):
        return {
            'name': self.name,
            'url': self.url,
            'output_path': self.output_path,
            'headers': {
                'user_agent': self.headers.user_agent,
                'referer': self.headers.referer,
                'cookie': self.headers.cookie,
            },
            'preferences': {
                'prefer_dubbed_audio': self.preferences.prefer_dubbed_audio,
                'prefer_subtitles': self.preferences.prefer_subtitles,
                'preferred_language': self.preferences.preferred_language,
            },
        }


@dataclass
class DownloadResult:
    """下载完成后的文件路径"""
    video_path: str
    audio_path: Optional[str] = None
    subtitle_path: Optional[str] = None
    merged_path: Optional[str] = None
    bytes_written: int = 0
    segments: int = 0
