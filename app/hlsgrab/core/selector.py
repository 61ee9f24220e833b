"""
变体选择模块
按偏好从主播放列表中选出视频变体、字幕轨和音轨，纯函数，不做网络请求
"""

import logging
import re
from typing import Optional, Sequence

from .models import Preferences, Rendition, RenditionKind, Variant

logger = logging.getLogger(__name__)

DUB_SCORE = 5
SUBTITLE_SCORE = 3

# 配音 / 土耳其语提示词
DUB_HINTS = ('dublaj', 'dub', 'turk', 'türk')
# "tr" 太短，只按独立词匹配，避免命中 "stream"、"track" 这类地址
_TR_TOKEN_RE = re.compile(r'(?<![a-z])(tr|tur)(?![a-z])')
SUBTITLE_HINTS = ('sub', 'subtitle', 'vost', 'vtt', 'srt')


def _hint_text(variant: Variant) -> str:
    return f"{variant.raw_attributes} {variant.url}".lower()


def has_dub_hint(text: str) -> bool:
    text = text.lower()
    return any(h in text for h in DUB_HINTS) or bool(_TR_TOKEN_RE.search(text))


def has_subtitle_hint(text: str) -> bool:
    text = text.lower()
    return any(h in text for h in SUBTITLE_HINTS)


class VariantSelector:
    """变体 / 轨道选择器"""

    def __init__(self, preferences: Optional[Preferences] = None):
        self.preferences = preferences or Preferences()

    def score(self, variant: Variant) -> int:
        """按偏好给变体打分"""
        text = _hint_text(variant)
        score = 0
        if self.preferences.prefer_dubbed_audio and has_dub_hint(text):
            score += DUB_SCORE
        if self.preferences.prefer_subtitles and has_subtitle_hint(text):
            score += SUBTITLE_SCORE
        return score

    def select_variant(self, variants: Sequence[Variant]) -> Optional[Variant]:
        """
        选出最佳变体

        混流变体（无独立音频组）优先，只需下载一条流；
        同一分区内按分数降序，再按带宽降序。
        """
        if not variants:
            return None
        muxed = [v for v in variants if not v.has_separate_audio]
        pool = muxed or list(variants)
        # sorted 是稳定的，同分同带宽时保留清单顺序
        ranked = sorted(pool, key=lambda v: (self.score(v), v.bandwidth), reverse=True)
        return ranked[0]

    def choose_variant_url(self, variants: Sequence[Variant], manifest_url: str) -> str:
        """
        返回要下载的媒体播放列表 URL

        打分选不出时退回全体中带宽最高的变体，仍然没有就把原 URL 当作媒体播放列表。
        """
        chosen = self.select_variant(variants)
        if chosen is None and variants:
            chosen = max(variants, key=lambda v: v.bandwidth)
        if chosen is None:
            return manifest_url
        return chosen.url

    def select_subtitle(self, renditions: Sequence[Rendition]) -> Optional[Rendition]:
        """
        选择字幕轨

        语言代码精确匹配（忽略大小写） > 名称包含偏好语言 > 第一个 > 无
        """
        subtitles = [r for r in renditions if r.kind is RenditionKind.SUBTITLES and r.url]
        if not subtitles:
            return None
        lang = (self.preferences.preferred_language or '').lower()
        if lang:
            for r in subtitles:
                if r.language and r.language.lower() == lang:
                    return r
            for r in subtitles:
                if r.name and lang in r.name.lower():
                    return r
        return subtitles[0]

    def select_audio(self, renditions: Sequence[Rendition], variant: Optional[Variant] = None) -> Optional[Rendition]:
        """
        为独立音频的变体选择音轨

        只在变体声明的 AUDIO 组内选择；偏好语言 > 配音提示 > DEFAULT=YES > 第一个
        """
        candidates = [r for r in renditions if r.kind is RenditionKind.AUDIO and r.url]
        if variant is not None and variant.audio_group:
            in_group = [r for r in candidates if r.group_id == variant.audio_group]
            candidates = in_group or candidates
        if not candidates:
            return None

        lang = (self.preferences.preferred_language or '').lower()
        if self.preferences.prefer_dubbed_audio:
            for r in candidates:
                if (lang and r.language and r.language.lower() == lang) or has_dub_hint(r.name or ''):
                    return r
        if lang:
            for r in candidates:
                if r.language and r.language.lower() == lang:
                    return r
        for r in candidates:
            if r.default:
                return r
        return candidates[0]
