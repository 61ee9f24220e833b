"""
字幕下载模块
把 WebVTT 文件或字幕播放列表下载为单个 .vtt 文件
"""

import logging
import os
import re
import threading
from typing import Callable, Optional

from .errors import CancelledError
from .fetcher import HeadersLike, SegmentFetcher
from .parser import ManifestParser, is_playlist, is_vtt
from .planner import FetchPlanBuilder

logger = logging.getLogger(__name__)

_VTT_HEADER_RE = re.compile(r'^\s*WEBVTT[^\n]*\n', re.IGNORECASE)


def strip_vtt_header(text: str) -> str:
    """去掉后续分段里重复的 BOM 和 WEBVTT 头"""
    return _VTT_HEADER_RE.sub('', text.lstrip('\ufeff'), count=1)


class SubtitleDownloader:
    """字幕下载器"""

    def __init__(self, fetcher: SegmentFetcher, parser: Optional[ManifestParser] = None):
        self.fetcher = fetcher
        self.parser = parser or ManifestParser()

    def download(self, url: str, output_path: str, headers: HeadersLike = None,
                 progress_callback: Optional[Callable[[int, int], None]] = None,
                 cancel_event: Optional[threading.Event] = None) -> str:
        """
        下载字幕

        - 普通 WebVTT：原样写入
        - 字幕播放列表：逐段下载，除第一段外去掉 WEBVTT 头后拼接
        - 其他内容（srt/ass 等）：原样写入

        Returns:
            str: 输出文件路径
        """
        text = self.fetcher.fetch_text(url, headers, cancel_event=cancel_event)
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

        if not is_playlist(text):
            if not is_vtt(text):
                logger.debug(f"字幕内容不是 WebVTT，原样保存: {url}")
            self._write(output_path, text)
            if progress_callback:
                progress_callback(1, 1)
            return output_path

        playlist = self.parser.parse_media(text, url)
        plan = FetchPlanBuilder().build(playlist)
        total = len(plan.tasks)
        logger.info(f"字幕播放列表: {total} 个分段")

        parts = []
        for index, task in enumerate(plan.tasks):
            if cancel_event is not None and cancel_event.is_set():
                raise CancelledError("字幕下载已取消")
            part = self.fetcher.fetch_text(task.segment.url, headers, cancel_event=cancel_event)
            parts.append(part if index == 0 else strip_vtt_header(part))
            if progress_callback:
                progress_callback(index + 1, total)

        self._write(output_path, '\n'.join(p.rstrip('\n') for p in parts) + '\n')
        return output_path

    @staticmethod
    def _write(path: str, text: str):
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write(text)
