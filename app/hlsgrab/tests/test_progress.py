"""
进度事件测试
"""

from app.hlsgrab.core.models import DownloadResult
from app.hlsgrab.core.progress import (
    CompletedEvent, DownloadListener, ErrorEvent, ProgressEvent, TrackCompletedEvent, TrackProgressDisplay,
    dispatch_events,
)


class Recorder(DownloadListener):
    def __init__(self):
        self.calls = []

    def on_progress(self, track, percent):
        self.calls.append((track, percent))

    def on_error(self, message, cause=None):
        self.calls.append(('error', message))


def test_percent():
    assert ProgressEvent('video', 1, 3).percent == 33
    assert ProgressEvent('video', 0, 0).percent == 0


def test_dispatch_deduplicates_percent_per_track():
    recorder = Recorder()
    events = [ProgressEvent('video', i, 300) for i in range(1, 7)] + [
        ProgressEvent('audio', 1, 300),
        CompletedEvent(DownloadResult(video_path='v.ts')),
    ]
    result = dispatch_events(events, recorder)
    assert result.video_path == 'v.ts'
    assert recorder.calls == [('video', 0), ('video', 1), ('video', 2), ('audio', 0)]


def test_dispatch_error_returns_none():
    recorder = Recorder()
    assert dispatch_events([ErrorEvent('boom')], recorder) is None
    assert recorder.calls == [('error', 'boom')]


def test_track_progress_display():
    display = TrackProgressDisplay(enabled=True)
    display.handle(ProgressEvent('video', 2, 10))
    display.handle(ProgressEvent('audio', 1, 4))
    display.handle(TrackCompletedEvent('video', 'v.ts'))
    assert display._bars['video'].n == 2
    assert display._bars['audio'].total == 4
    display.close()
    assert display._bars == {}


def test_disabled_display_creates_no_bars():
    display = TrackProgressDisplay(enabled=False)
    display.handle(ProgressEvent('video', 1, 2))
    assert display._bars == {}
