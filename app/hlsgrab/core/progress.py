"""
进度事件模块
下载会话对外产出的事件、监听器适配器，以及基于 tqdm 的多轨道进度条
"""

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from tqdm import tqdm

from .models import DownloadResult


@dataclass
class StateChangedEvent:
    """编排器状态变化"""
    state: str


@dataclass
class ProgressEvent:
    """某个轨道的片段进度"""
    track: str
    completed: int
    total: int

    @property
    def percent(self) -> int:
        """计算进度百分比"""
        if self.total <= 0:
            return 0
        return int(self.completed * 100 / self.total)


@dataclass
class TrackCompletedEvent:
    """某个轨道写入完成"""
    track: str
    path: str


@dataclass
class CompletedEvent:
    """整个下载成功结束"""
    result: DownloadResult


@dataclass
class ErrorEvent:
    """整个下载失败结束"""
    message: str
    cause: Optional[BaseException] = None


TERMINAL_EVENTS = (CompletedEvent, ErrorEvent)


class DownloadListener:
    """
    回调式监听器

    UI/通知层可以继承它，再用 dispatch_events 驱动。
    """

    def on_progress(self, track: str, percent: int):
        pass

    def on_track_completed(self, track: str, path: str):
        pass

    def on_all_completed(self, result: DownloadResult):
        pass

    def on_error(self, message: str, cause: Optional[BaseException] = None):
        pass


def dispatch_events(events: Iterable, listener: DownloadListener) -> Optional[DownloadResult]:
    """
    把事件流转发给监听器，同一轨道的相同百分比只通知一次

    Returns:
        成功时返回 DownloadResult，失败返回 None
    """
    last_percent: Dict[str, int] = {}
    for event in events:
        if isinstance(event, ProgressEvent):
            percent = event.percent
            if last_percent.get(event.track) != percent:
                last_percent[event.track] = percent
                listener.on_progress(event.track, percent)
        elif isinstance(event, TrackCompletedEvent):
            listener.on_track_completed(event.track, event.path)
        elif isinstance(event, CompletedEvent):
            listener.on_all_completed(event.result)
            return event.result
        elif isinstance(event, ErrorEvent):
            listener.on_error(event.message, event.cause)
            return None
    return None


class TrackProgressDisplay:
    """
    多轨道进度条

    每个轨道（video / audio / subtitle）一条 tqdm 进度条，类似 pip 的多包下载显示
    """

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._bars: Dict[str, tqdm] = {}
        self._lock = threading.Lock()

    def _bar(self, track: str, total: int) -> Optional[tqdm]:
        if not self._enabled:
            return None
        bar = self._bars.get(track)
        if bar is None:
            bar = tqdm(
                total=total,
                desc=f"{track:<8}",
                position=len(self._bars),
                unit='seg',
                ncols=80,
                leave=True,
                bar_format='{desc}: {percentage:3.0f}%|{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]',
            )
            self._bars[track] = bar
        elif bar.total != total:
            bar.total = total
            bar.refresh()
        return bar

    def handle(self, event):
        """处理一个事件"""
        with self._lock:
            if isinstance(event, ProgressEvent):
                bar = self._bar(event.track, event.total)
                if bar is not None:
                    bar.n = event.completed
                    bar.refresh()
            elif isinstance(event, TrackCompletedEvent):
                bar = self._bars.get(event.track)
                if bar is not None:
                    bar.set_postfix_str('完成')

    def close(self):
        with self._lock:
            for bar in self._bars.values():
                bar.close()
            self._bars.clear()
