"""
M3U8解析器模块
把播放列表文本解析为 MasterPlaylist / MediaPlaylist，不做任何网络请求
支持 #EXT-X-STREAM-INF / #EXT-X-MEDIA / #EXT-X-KEY / #EXT-X-MAP / #EXT-X-BYTERANGE
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from .errors import MalformedManifestError
from .models import (
    ByteRangeDirective, InitMapDirective, KeyDirective, MasterPlaylist, MediaPlaylist,
    PlaylistKind, Rendition, RenditionKind, SegmentURI, Variant,
)
from .utils import resolve_url

logger = logging.getLogger(__name__)

EXTM3U = '#EXTM3U'
STREAM_INF = '#EXT-X-STREAM-INF'
MEDIA = '#EXT-X-MEDIA:'
KEY = '#EXT-X-KEY:'
MAP = '#EXT-X-MAP:'
BYTERANGE = '#EXT-X-BYTERANGE:'
EXTINF = '#EXTINF:'
MEDIA_SEQUENCE = '#EXT-X-MEDIA-SEQUENCE:'
TARGET_DURATION = '#EXT-X-TARGETDURATION:'
ENDLIST = '#EXT-X-ENDLIST'

# KEY=\"v\" | KEY='v' | KEY=v（直到逗号）
_ATTRIBUTE_RE = re.compile(r'''([A-Za-z0-9_-]+)\s*=\s*("[^"]*"|'[^']*'|[^,]*)''')

# CODECS 中出现这些就认为音频已混流
AUDIO_CODEC_TOKENS = ('mp4a', 'ac-3', 'ec-3', 'aac')


def _strip_bom(text: str) -> str:
    return text.lstrip('\ufeff').lstrip()


def is_playlist(text: str) -> bool:
    """内容是否以 #EXTM3U 开头"""
    return _strip_bom(text or '').upper().startswith(EXTM3U)


def is_vtt(text: str) -> bool:
    """内容是否是 WebVTT 字幕（而不是播放列表）"""
    head = _strip_bom(text or '')[:256]
    return head.upper().startswith('WEBVTT') or ('-->' in head and EXTM3U not in head.upper())


def parse_attributes(line: str) -> Dict[str, str]:
    """
    解析标签属性列表

    支持双引号、单引号和裸值三种写法，键名统一转为大写。

    Args:
        line: 完整标签行（如 #EXT-X-MEDIA:TYPE=AUDIO,...）或冒号后的属性部分

    Returns:
        Dict[str, str]: 属性字典
    """
    if line.startswith('#') and ':' in line:
        line = line.split(':', 1)[1]
    attributes = {}
    for match in _ATTRIBUTE_RE.finditer(line):
        key = match.group(1).upper()
        value = match.group(2).strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        attributes.setdefault(key, value.strip())
    return attributes


def parse_iv(iv_string: str) -> bytes:
    """
    解析 IV 字符串

    Args:
        iv_string: 十六进制 IV 字符串，如 "0x12345678..."

    Returns:
        bytes: 16 字节 IV
    """
    value = iv_string.strip()
    if value[:2] in ('0x', '0X'):
        value = value[2:]
    if not value or len(value) > 32:
        raise MalformedManifestError(f"IV 长度无效: {iv_string}")
    try:
        return bytes.fromhex(value.zfill(32))
    except ValueError as e:
        raise MalformedManifestError(f"IV 不是十六进制: {iv_string}") from e


def parse_byterange(value: str) -> Tuple[int, Optional[int]]:
    """解析 <length>[@<start>]"""
    value = value.strip()
    length_part, _, start_part = value.partition('@')
    try:
        length = int(length_part)
        start = int(start_part) if start_part else None
    except ValueError as e:
        raise MalformedManifestError(f"BYTERANGE 格式无效: {value}") from e
    if length <= 0 or (start is not None and start < 0):
        raise MalformedManifestError(f"BYTERANGE 数值无效: {value}")
    return length, start


def _tag_is(line: str, tag: str) -> bool:
    return line[:len(tag)].upper() == tag


def _to_int(value: Optional[str], default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


class ManifestParser:
    """M3U8文件解析器"""

    def classify(self, text: str) -> PlaylistKind:
        """
        判断播放列表类型

        只看是否存在 #EXT-X-STREAM-INF：主播放列表也可能带 #EXT-X-MEDIA，
        所以不能用媒体标签判断。

        Raises:
            MalformedManifestError: 内容不以 #EXTM3U 开头
        """
        if not is_playlist(text):
            raise MalformedManifestError("内容不是 M3U8 播放列表（缺少 #EXTM3U）")
        for raw in text.splitlines():
            if _tag_is(raw.strip(), STREAM_INF):
                return PlaylistKind.MASTER
        return PlaylistKind.MEDIA

    def parse(self, text: str, base_url: str):
        """解析任意播放列表"""
        if self.classify(text) is PlaylistKind.MASTER:
            return self.parse_master(text, base_url)
        return self.parse_media(text, base_url)

    def parse_master(self, text: str, base_url: str) -> MasterPlaylist:
        """
        解析主播放列表

        Args:
            text: 播放列表内容
            base_url: 播放列表自身的 URL，所有相对地址都基于它解析

        Returns:
            MasterPlaylist: 变体与轨道
        """
        if not is_playlist(text):
            raise MalformedManifestError("内容不是 M3U8 播放列表（缺少 #EXTM3U）")

        variants: List[Variant] = []
        renditions: List[Rendition] = []
        pending: Optional[str] = None

        for raw in text.splitlines():
            line = raw.strip()
            if not line:
                continue
            if _tag_is(line, STREAM_INF):
                pending = line
                continue
            if _tag_is(line, MEDIA):
                rendition = self._parse_rendition(line, base_url)
                if rendition is not None:
                    renditions.append(rendition)
                continue
            if line.startswith('#'):
                continue
            if pending is not None:
                variants.append(self._build_variant(pending, resolve_url(base_url, line)))
                pending = None

        logger.debug(f"主播放列表: {len(variants)} 个变体, {len(renditions)} 个轨道")
        return MasterPlaylist(url=base_url, variants=tuple(variants), renditions=tuple(renditions))

    def _build_variant(self, inf_line: str, url: str) -> Variant:
        attrs = parse_attributes(inf_line)
        codecs = attrs.get('CODECS')
        codecs_have_audio = bool(codecs) and any(t in codecs.lower() for t in AUDIO_CODEC_TOKENS)
        audio_group = attrs.get('AUDIO')
        return Variant(
            url=url,
            bandwidth=max(0, _to_int(attrs.get('BANDWIDTH'))),
            raw_attributes=inf_line,
            # 同时声明 AUDIO 组和音频编码的服务器按混流处理
            has_separate_audio=audio_group is not None and not codecs_have_audio,
            audio_group=audio_group,
            subtitles_group=attrs.get('SUBTITLES'),
            codecs=codecs,
            resolution=attrs.get('RESOLUTION'),
        )

    def _parse_rendition(self, line: str, base_url: str) -> Optional[Rendition]:
        attrs = parse_attributes(line)
        try:
            kind = RenditionKind(attrs.get('TYPE', '').upper())
        except ValueError:
            logger.debug(f"忽略未知 TYPE 的 MEDIA 行: {line}")
            return None
        uri = attrs.get('URI')
        url = resolve_url(base_url, uri) if uri and kind is not RenditionKind.CLOSED_CAPTIONS else None
        return Rendition(
            kind=kind,
            url=url,
            language=attrs.get('LANGUAGE') or attrs.get('LANG') or None,
            name=attrs.get('NAME') or None,
            group_id=attrs.get('GROUP-ID') or None,
            instream_id=attrs.get('INSTREAM-ID') or None,
            default=attrs.get('DEFAULT', '').upper() == 'YES',
            autoselect=attrs.get('AUTOSELECT', '').upper() == 'YES',
        )

    def parse_media(self, text: str, base_url: str) -> MediaPlaylist:
        """
        解析媒体播放列表

        指令按文档顺序保留，KEY/MAP/BYTERANGE 的作用范围由 FetchPlanBuilder 处理。
        """
        if not is_playlist(text):
            raise MalformedManifestError("内容不是 M3U8 播放列表（缺少 #EXTM3U）")

        entries = []
        media_sequence = 0
        target_duration = None
        end_list = False
        duration: Optional[float] = None
        title = ''

        for raw in text.splitlines():
            line = raw.strip()
            if not line:
                continue
            if _tag_is(line, EXTINF):
                value, _, title = line[len(EXTINF):].partition(',')
                try:
                    duration = float(value)
                except ValueError:
                    duration = None
            elif _tag_is(line, KEY):
                entries.append(self._parse_key(line, base_url))
            elif _tag_is(line, MAP):
                entries.append(self._parse_map(line, base_url))
            elif _tag_is(line, BYTERANGE):
                length, start = parse_byterange(line[len(BYTERANGE):])
                entries.append(ByteRangeDirective(length=length, start=start))
            elif _tag_is(line, MEDIA_SEQUENCE):
                media_sequence = _to_int(line[len(MEDIA_SEQUENCE):].strip())
            elif _tag_is(line, TARGET_DURATION):
                try:
                    target_duration = float(line[len(TARGET_DURATION):])
                except ValueError:
                    target_duration = None
            elif _tag_is(line, ENDLIST):
                end_list = True
            elif line.startswith('#'):
                continue
            else:
                entries.append(SegmentURI(url=resolve_url(base_url, line), duration=duration, title=title.strip()))
                duration = None
                title = ''

        return MediaPlaylist(
            url=base_url,
            entries=tuple(entries),
            media_sequence=media_sequence,
            target_duration=target_duration,
            end_list=end_list,
        )

    def _parse_key(self, line: str, base_url: str) -> KeyDirective:
        """
        解析 #EXT-X-KEY 标签

        格式示例:
        #EXT-X-KEY:METHOD=AES-128,URI="https://example.com/key.key",IV=0x12345678...
        """
        attrs = parse_attributes(line)
        method = attrs.get('METHOD', 'NONE').upper() or 'NONE'
        if method == 'NONE':
            return KeyDirective(method='NONE')
        uri = attrs.get('URI')
        iv = attrs.get('IV')
        return KeyDirective(
            method=method,
            key_url=resolve_url(base_url, uri) if uri else None,
            explicit_iv=parse_iv(iv) if iv else None,
            key_format=attrs.get('KEYFORMAT', 'identity'),
        )

    def _parse_map(self, line: str, base_url: str) -> InitMapDirective:
        attrs = parse_attributes(line)
        uri = attrs.get('URI')
        if not uri:
            raise MalformedManifestError(f"EXT-X-MAP 缺少 URI: {line}")
        length = start = None
        if attrs.get('BYTERANGE'):
            length, start = parse_byterange(attrs['BYTERANGE'])
        return InitMapDirective(url=resolve_url(base_url, uri), byte_range_length=length, byte_range_start=start)
