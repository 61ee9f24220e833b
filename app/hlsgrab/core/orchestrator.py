"""
下载编排模块

单个下载请求的状态机：

    START -> PREFLIGHT_FETCH -> (MASTER_DETECTED -> VARIANT_SELECT -> MEDIA_FETCH) | MEDIA_DETECTED
          -> PLAN_BUILD -> ASSEMBLE -> DONE

任何一步失败都进入 ERROR。预检只请求一次入口 URL，根据内容决定走主播放列表还是媒体播放列表。
"""

import logging
import os
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, List, Optional

from .assembler import StreamAssembler
from .config import DownloadConfig
from .errors import EmptyPlaylistError, HLSError, MalformedManifestError
from .fetcher import SegmentFetcher
from .models import (DownloadRequest, DownloadResult, FetchPlan, MasterPlaylist, PlaylistKind,
                     Rendition, Variant)
from .muxer import MediaMuxer
from .parser import ManifestParser, is_playlist
from .planner import FetchPlanBuilder
from .progress import (CompletedEvent, ErrorEvent, ProgressEvent, StateChangedEvent,
                       TERMINAL_EVENTS, TrackCompletedEvent)
from .selector import VariantSelector
from .sources import UrlKind, detect_url_kind
from .subtitles import SubtitleDownloader

logger = logging.getLogger(__name__)

Exporter = Callable[[str, str], None]
Emit = Callable[[object], None]

TRACK_VIDEO = 'video'
TRACK_AUDIO = 'audio'
TRACK_SUBTITLE = 'subtitle'

MIME_TYPES = {
    '.ts': 'video/mp2t',
    '.mp4': 'video/mp4',
    '.m4a': 'audio/mp4',
    '.aac': 'audio/aac',
    '.vtt': 'text/vtt',
    '.srt': 'application/x-subrip',
    '.ass': 'text/x-ssa',
    '.ssa': 'text/x-ssa',
}


def guess_mime_type(path: str) -> str:
    """按扩展名猜测导出用的 MIME 类型"""
    return MIME_TYPES.get(os.path.splitext(path)[1].lower(), 'application/octet-stream')


def companion_path(output_path: str, suffix: str, extension: Optional[str] = None) -> str:
    """输出文件旁边的伴随文件路径，例如 movie.ts -> movie.audio.ts"""
    stem, ext = os.path.splitext(output_path)
    return f"{stem}.{suffix}{extension if extension is not None else ext}"


class OrchestratorState(Enum):
    """编排器状态"""
    START = 'START'
    PREFLIGHT_FETCH = 'PREFLIGHT_FETCH'
    MASTER_DETECTED = 'MASTER_DETECTED'
    VARIANT_SELECT = 'VARIANT_SELECT'
    MEDIA_FETCH = 'MEDIA_FETCH'
    MEDIA_DETECTED = 'MEDIA_DETECTED'
    PLAN_BUILD = 'PLAN_BUILD'
    ASSEMBLE = 'ASSEMBLE'
    DONE = 'DONE'
    ERROR = 'ERROR'


@dataclass
class Resolution:
    """预检和选择的结果：要下载什么，但还没有下载"""
    request: DownloadRequest
    direct_asset: bool = False
    master: Optional[MasterPlaylist] = None
    variant: Optional[Variant] = None
    media_url: Optional[str] = None
    video_plan: Optional[FetchPlan] = None
    audio: Optional[Rendition] = None
    audio_plan: Optional[FetchPlan] = None
    subtitle: Optional[Rendition] = None
    states: List[OrchestratorState] = field(default_factory=list)

    @property
    def estimated_size(self) -> Optional[int]:
        """按变体带宽和总时长估算的大小（字节）"""
        if self.video_plan is None or self.variant is None:
            return None
        return self.video_plan.estimate_size(self.variant.bandwidth)


class ManifestFetchOrchestrator:
    """
    下载编排器

    HTTP 会话由调用方创建后通过 fetcher 传入；每次下载拥有自己的计划、密钥缓存和进度计数。
    """

    def __init__(self, fetcher: Optional[SegmentFetcher] = None, config: Optional[DownloadConfig] = None,
                 parser: Optional[ManifestParser] = None, muxer: Optional[MediaMuxer] = None,
                 exporter: Optional[Exporter] = None):
        """
        Args:
            fetcher: 片段拉取器
            config: 下载配置，默认取 fetcher 的配置
            parser: 播放列表解析器
            muxer: 可选的封装器，注入后才会合成视频/音轨/字幕
            exporter: 可选的导出回调 exporter(path, mime_type)，每个轨道完成后调用
        """
        self.config = config or (fetcher.config if fetcher is not None else DownloadConfig())
        self.fetcher = fetcher or SegmentFetcher(config=self.config)
        self.parser = parser or ManifestParser()
        self.plan_builder = FetchPlanBuilder(continue_byteranges=self.config.continue_byteranges)
        self.assembler = StreamAssembler(self.fetcher, self.config)
        self.subtitle_downloader = SubtitleDownloader(self.fetcher, self.parser)
        self.muxer = muxer
        self.exporter = exporter

    # ==================== 预检与选择 ====================

    def resolve(self, request: DownloadRequest, emit: Optional[Emit] = None,
                cancel_event: Optional[threading.Event] = None) -> Resolution:
        """
        预检入口 URL、选择变体和轨道并生成拉取计划，不下载任何片段

        Raises:
            MalformedManifestError: 不是播放列表且不允许直接下载
            EmptyPlaylistError: 没有可下载的片段或变体
        """
        resolution = Resolution(request=request)

        def enter(state: OrchestratorState):
            resolution.states.append(state)
            logger.info(f"[{request.name or request.url}] 状态: {state.value}")
            if emit is not None:
                emit(StateChangedEvent(state.value))

        enter(OrchestratorState.START)
        kind = detect_url_kind(request.url)
        if kind.is_direct_asset and self.config.allow_direct_asset:
            logger.info(f"按扩展名识别为直接资源 [{kind.value}]: {request.url}")
            resolution.direct_asset = True
            return resolution

        enter(OrchestratorState.PREFLIGHT_FETCH)
        text = self.fetcher.fetch_text(request.url, request.headers, cancel_event=cancel_event)
        if not is_playlist(text):
            if self.config.allow_direct_asset:
                logger.info(f"入口内容不是播放列表，按直接资源下载: {request.url}")
                resolution.direct_asset = True
                return resolution
            raise MalformedManifestError(f"不是 M3U8 播放列表: {request.url}")

        if self.parser.classify(text) is PlaylistKind.MASTER:
            enter(OrchestratorState.MASTER_DETECTED)
            master = self.parser.parse_master(text, request.url)
            resolution.master = master

            enter(OrchestratorState.VARIANT_SELECT)
            if not master.variants:
                raise EmptyPlaylistError(f"主播放列表没有可用的变体: {request.url}")
            selector = VariantSelector(request.preferences)
            variant = selector.select_variant(master.variants)
            resolution.variant = variant
            resolution.media_url = selector.choose_variant_url(master.variants, request.url)
            logger.info(f"选择变体: {resolution.media_url} (带宽 {variant.bandwidth if variant else 0})")

            if variant is not None and variant.has_separate_audio:
                resolution.audio = selector.select_audio(master.audio_renditions, variant)
            if request.preferences.prefer_subtitles:
                resolution.subtitle = selector.select_subtitle(master.subtitles)

            enter(OrchestratorState.MEDIA_FETCH)
            media_text = self.fetcher.fetch_text(resolution.media_url, request.headers, cancel_event=cancel_event)
            if self.parser.classify(media_text) is not PlaylistKind.MEDIA:
                raise MalformedManifestError(f"变体地址不是媒体播放列表: {resolution.media_url}")
            media = self.parser.parse_media(media_text, resolution.media_url)
        else:
            enter(OrchestratorState.MEDIA_DETECTED)
            resolution.media_url = request.url
            media = self.parser.parse_media(text, request.url)

        enter(OrchestratorState.PLAN_BUILD)
        resolution.video_plan = self.plan_builder.build(media)
        logger.info(f"拉取计划: {len(resolution.video_plan)} 个片段, "
                    f"加密: {resolution.video_plan.is_encrypted}")

        if resolution.audio is not None:
            audio_text = self.fetcher.fetch_text(resolution.audio.url, request.headers, cancel_event=cancel_event)
            audio_media = self.parser.parse_media(audio_text, resolution.audio.url)
            resolution.audio_plan = self.plan_builder.build(audio_media)
            logger.info(f"音轨 [{resolution.audio.language or resolution.audio.name}]: "
                        f"{len(resolution.audio_plan)} 个片段")

        return resolution

    # ==================== 下载 ====================

    def start(self, request: DownloadRequest) -> 'DownloadSession':
        """创建下载会话；迭代会话时才开始下载"""
        return DownloadSession(self, request)

    def download(self, request: DownloadRequest) -> DownloadResult:
        """
        阻塞下载，返回结果

        Raises:
            HLSError: 下载失败时抛出对应的具体错误
        """
        return self.start(request).wait()

    def run(self, request: DownloadRequest, emit: Emit, cancel_event: threading.Event) -> DownloadResult:
        """执行整个状态机，事件通过 emit 发出"""
        resolution = self.resolve(request, emit, cancel_event)
        emit(StateChangedEvent(OrchestratorState.ASSEMBLE.value))
        if resolution.direct_asset:
            result = self._download_direct(request, emit, cancel_event)
        else:
            result = self._assemble_tracks(resolution, emit, cancel_event)

        if self.muxer is not None and (result.audio_path or result.subtitle_path):
            merged = companion_path(request.output_path, 'merged', '.mp4')
            result.merged_path = self.muxer.mux(result.video_path, merged, result.audio_path, result.subtitle_path)
            self._export(result.merged_path)

        emit(StateChangedEvent(OrchestratorState.DONE.value))
        return result

    def _download_direct(self, request: DownloadRequest, emit: Emit,
                         cancel_event: threading.Event) -> DownloadResult:
        def on_progress(written: int, total: int):
            emit(ProgressEvent(TRACK_VIDEO, written, total))

        written = self.fetcher.download_to_file(request.url, request.output_path, request.headers,
                                                progress_callback=on_progress, cancel_event=cancel_event)
        self._track_done(TRACK_VIDEO, request.output_path, emit)
        return DownloadResult(video_path=request.output_path, bytes_written=written, segments=1)

    def _assemble_tracks(self, resolution: Resolution, emit: Emit,
                         cancel_event: threading.Event) -> DownloadResult:
        request = resolution.request

        video = self._assemble_one(TRACK_VIDEO, resolution.video_plan, request.output_path,
                                   request, emit, cancel_event)
        result = DownloadResult(video_path=request.output_path,
                                bytes_written=video.bytes_written,
                                segments=video.segments)

        if resolution.audio_plan is not None:
            audio_path = companion_path(request.output_path, TRACK_AUDIO)
            audio = self._assemble_one(TRACK_AUDIO, resolution.audio_plan, audio_path,
                                       request, emit, cancel_event)
            result.audio_path = audio_path
            result.bytes_written += audio.bytes_written
            result.segments += audio.segments

        if resolution.subtitle is not None:
            suffix = resolution.subtitle.language or TRACK_SUBTITLE
            subtitle_path = companion_path(request.output_path, suffix, '.vtt')

            def on_subtitle_progress(completed: int, total: int):
                emit(ProgressEvent(TRACK_SUBTITLE, completed, total))

            self.subtitle_downloader.download(resolution.subtitle.url, subtitle_path, request.headers,
                                              progress_callback=on_subtitle_progress,
                                              cancel_event=cancel_event)
            result.subtitle_path = subtitle_path
            self._track_done(TRACK_SUBTITLE, subtitle_path, emit)

        return result

    def _assemble_one(self, track: str, plan: FetchPlan, output_path: str, request: DownloadRequest,
                      emit: Emit, cancel_event: threading.Event):
        def on_progress(completed: int, total: int):
            emit(ProgressEvent(track, completed, total))

        assembled = self.assembler.assemble_to_file(plan, output_path, request.headers,
                                                    progress_callback=on_progress,
                                                    cancel_event=cancel_event)
        self._track_done(track, output_path, emit)
        return assembled

    def _track_done(self, track: str, path: str, emit: Emit):
        emit(TrackCompletedEvent(track, path))
        self._export(path)

    def _export(self, path: str):
        if self.exporter is None:
            return
        try:
            self.exporter(path, guess_mime_type(path))
        except Exception as e:
            logger.warning(f"导出失败 {path}: {e}")


_END = object()


class DownloadSession:
    """
    一次下载的事件流

    迭代时在后台线程中执行状态机，按顺序产出 StateChangedEvent / ProgressEvent /
    TrackCompletedEvent，最后一个事件是 CompletedEvent 或 ErrorEvent。
    cancel() 可以在任意线程调用。
    """

    def __init__(self, orchestrator: ManifestFetchOrchestrator, request: DownloadRequest):
        self.orchestrator = orchestrator
        self.request = request
        self.cancel_event = threading.Event()
        self.result: Optional[DownloadResult] = None
        self.error: Optional[BaseException] = None
        self.state = OrchestratorState.START
        self._events: 'queue.Queue' = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._finished = False

    def _ensure_started(self):
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(target=self._worker, name='hlsgrab-session', daemon=True)
                self._thread.start()

    def _emit(self, event):
        if isinstance(event, StateChangedEvent):
            self.state = OrchestratorState(event.state)
        self._events.put(event)

    def _worker(self):
        try:
            self.result = self.orchestrator.run(self.request, self._emit, self.cancel_event)
            self._events.put(CompletedEvent(self.result))
        except HLSError as e:
            logger.error(f"下载失败 [{self.request.name or self.request.url}]: {e}")
            self._fail(e)
        except Exception as e:
            logger.exception(f"下载时发生意外错误 [{self.request.name or self.request.url}]")
            self._fail(e)
        finally:
            self._events.put(_END)

    def _fail(self, error: BaseException):
        self.error = error
        self._emit(StateChangedEvent(OrchestratorState.ERROR.value))
        self._events.put(ErrorEvent(str(error), error))

    def cancel(self):
        """取消下载：不再发出新的请求，未完成的输出会被丢弃"""
        logger.info(f"取消下载: {self.request.name or self.request.url}")
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def __iter__(self) -> Iterator:
        if self._finished:
            return
        self._ensure_started()
        while True:
            event = self._events.get()
            if event is _END:
                self._finished = True
                return
            yield event
            if isinstance(event, TERMINAL_EVENTS):
                # 终止事件之后只剩结束标记
                self._events.get()
                self._finished = True
                return

    def wait(self) -> DownloadResult:
        """
        消费所有事件直到结束

        Raises:
            HLSError: 下载失败时抛出原始错误
        """
        for _ in self:
            pass
        if self._thread is not None:
            self._thread.join()
        if self.error is not None:
            raise self.error
        return self.result
