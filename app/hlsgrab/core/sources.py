"""
候选 URL 模块
接收浏览器/页面抓取层发现的媒体地址，过滤广告、去重、按扩展名分类并生成下载请求
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Protocol, Set
from urllib.parse import urlparse

from .models import DownloadRequest, Preferences, RequestHeaders
from .utils import extract_filename_from_url

logger = logging.getLogger(__name__)

AD_HINTS = (
    'doubleclick',
    'googlesyndication',
    'adservice',
    'adsystem',
    'tracking',
    'analytics',
    'pubads',
    '/ads/',
    'adserver',
)


class UrlKind(Enum):
    """候选地址类型"""
    M3U8 = 'm3u8'
    MP4 = 'mp4'
    VTT = 'vtt'
    SRT = 'srt'
    ASS = 'ass'
    SSA = 'ssa'
    UNKNOWN = 'unknown'

    @property
    def is_subtitle(self) -> bool:
        return self in (UrlKind.VTT, UrlKind.SRT, UrlKind.ASS, UrlKind.SSA)

    @property
    def is_direct_asset(self) -> bool:
        """不需要解析播放列表、直接整体下载的类型"""
        return self is UrlKind.MP4 or self.is_subtitle


_EXTENSION_KINDS = {
    '.m3u8': UrlKind.M3U8,
    '.vtt': UrlKind.VTT,
    '.srt': UrlKind.SRT,
    '.ass': UrlKind.ASS,
    '.ssa': UrlKind.SSA,
    '.mp4': UrlKind.MP4,
}


def detect_url_kind(url: str) -> UrlKind:
    """按路径扩展名判断地址类型（主机名、查询串不参与判断）"""
    extension = os.path.splitext(urlparse(url).path)[1].lower()
    return _EXTENSION_KINDS.get(extension, UrlKind.UNKNOWN)


def kind_from_content_type(content_type: Optional[str]) -> UrlKind:
    """按 Content-Type 判断地址类型"""
    if not content_type:
        return UrlKind.UNKNOWN
    ct = content_type.lower()
    if 'mpegurl' in ct:
        return UrlKind.M3U8
    if 'vtt' in ct:
        return UrlKind.VTT
    if 'subrip' in ct or 'srt' in ct:
        return UrlKind.SRT
    if 'x-ssa' in ct or 'text/ssa' in ct:
        return UrlKind.SSA
    if 'x-ass' in ct or 'text/ass' in ct:
        return UrlKind.ASS
    if ct.startswith('video/') or 'mp4' in ct:
        return UrlKind.MP4
    return UrlKind.UNKNOWN


def is_likely_ad_url(url: str) -> bool:
    """广告 / 统计类地址"""
    lower = url.lower()
    return any(hint in lower for hint in AD_HINTS)


@dataclass(frozen=True)
class CandidateURL:
    """页面抓取层上报的一个候选地址"""
    url: str
    source_page_url: str = ''
    cookies: Optional[str] = None


class CandidateURLSource(Protocol):
    """候选地址来源（浏览器拦截、页面脚本扫描等，都在核心之外实现）"""

    def __iter__(self) -> Iterator[CandidateURL]:
        ...


@dataclass
class Candidate:
    """已分类的候选地址"""
    url: str
    kind: UrlKind
    headers: RequestHeaders


class CandidateCollector:
    """
    候选地址收集器

    过滤广告地址、按 URL 去重、分类；扩展名无法判断时可选用 HEAD 探测。
    """

    def __init__(self, user_agent: Optional[str] = None, prober=None):
        """
        Args:
            user_agent: 生成请求头时使用的 UA
            prober: 可选，带 probe_content_type(url, headers) 方法的对象（通常是 SegmentFetcher）
        """
        self.user_agent = user_agent
        self.prober = prober
        self._seen: Set[str] = set()
        self.candidates: List[Candidate] = []

    def accept(self, candidate: CandidateURL) -> Optional[Candidate]:
        """接收一个候选地址，被过滤时返回 None"""
        url = candidate.url.strip()
        if not url or urlparse(url).scheme not in ('http', 'https'):
            return None
        if is_likely_ad_url(url):
            logger.debug(f"忽略广告地址: {url}")
            return None
        if url in self._seen:
            return None
        self._seen.add(url)

        headers = RequestHeaders(
            user_agent=self.user_agent,
            referer=candidate.source_page_url or None,
            cookie=candidate.cookies,
        )
        kind = detect_url_kind(url)
        if kind is UrlKind.UNKNOWN and self.prober is not None:
            kind = kind_from_content_type(self.prober.probe_content_type(url, headers))

        accepted = Candidate(url=url, kind=kind, headers=headers)
        self.candidates.append(accepted)
        logger.info(f"发现候选地址 [{kind.value}]: {url}")
        return accepted

    def collect(self, source: Iterable[CandidateURL]) -> List[Candidate]:
        """从来源中收集所有候选地址"""
        return [c for c in (self.accept(item) for item in source) if c is not None]

    def to_request(self, candidate: Candidate, output_dir: str,
                   preferences: Optional[Preferences] = None) -> DownloadRequest:
        """为候选地址生成下载请求"""
        filename = extract_filename_from_url(candidate.url) or 'download'
        stem, extension = os.path.splitext(filename)
        if candidate.kind is UrlKind.M3U8 or candidate.kind is UrlKind.UNKNOWN:
            extension = '.ts'
        elif candidate.kind.is_subtitle or candidate.kind is UrlKind.MP4:
            extension = f".{candidate.kind.value}"
        return DownloadRequest(
            url=candidate.url,
            output_path=os.path.join(output_dir, f"{stem or 'download'}{extension}"),
            headers=candidate.headers,
            preferences=preferences or Preferences(),
            name=stem or 'download',
        )
