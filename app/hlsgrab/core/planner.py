"""
拉取计划模块
把媒体播放列表的指令序列折叠成有序的 FetchTask 列表
"""

import logging
from typing import Dict, List, Optional

from .errors import EmptyPlaylistError
from .models import (
    ByteRangeDirective, FetchPlan, FetchTask, InitMapDirective, KeyDirective,
    MediaPlaylist, SegmentDirective, SegmentURI,
)

logger = logging.getLogger(__name__)


class FetchPlanBuilder:
    """
    拉取计划构建器

    按文档顺序遍历 KEY / BYTERANGE / MAP / URI：
    - KEY 对其后所有片段生效，METHOD=NONE 清除当前密钥
    - BYTERANGE 只被紧随其后的第一个 URI 消费
    - MAP 出现多次时以最后一个为准
    """

    def __init__(self, continue_byteranges: bool = False):
        """
        Args:
            continue_byteranges: 缺少 @start 时是否接续同一 URI 上一段的结尾；
                关闭时起点按 0 处理
        """
        self.continue_byteranges = continue_byteranges

    def build(self, playlist: MediaPlaylist) -> FetchPlan:
        """
        构建拉取计划

        Raises:
            EmptyPlaylistError: 没有任何片段
        """
        active_key: Optional[KeyDirective] = None
        pending_range: Optional[ByteRangeDirective] = None
        init_map: Optional[InitMapDirective] = None
        range_ends: Dict[str, int] = {}
        tasks: List[FetchTask] = []

        for entry in playlist.entries:
            if isinstance(entry, KeyDirective):
                active_key = entry if entry.is_encrypted() else None
            elif isinstance(entry, InitMapDirective):
                init_map = entry
            elif isinstance(entry, ByteRangeDirective):
                pending_range = entry
            elif isinstance(entry, SegmentURI):
                start = length = None
                if pending_range is not None:
                    length = pending_range.length
                    start = pending_range.start
                    if start is None and self.continue_byteranges:
                        start = range_ends.get(entry.url, 0)
                    range_ends[entry.url] = (start or 0) + length
                pending_range = None

                index = len(tasks)
                segment = SegmentDirective(
                    url=entry.url,
                    byte_range_start=start,
                    byte_range_length=length,
                    sequence_index=index,
                    media_sequence=playlist.media_sequence + index,
                    duration=entry.duration,
                )
                tasks.append(FetchTask(segment=segment, active_key=active_key))

        if not tasks:
            raise EmptyPlaylistError(f"播放列表中没有片段: {playlist.url}")

        logger.info(f"拉取计划: {len(tasks)} 个片段, init={'有' if init_map else '无'}, "
                    f"加密={'是' if any(t.active_key for t in tasks) else '否'}")
        return FetchPlan(
            tasks=tuple(tasks),
            init_segment=init_map,
            playlist_url=playlist.url,
            end_list=playlist.end_list,
        )
