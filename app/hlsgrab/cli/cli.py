"""
命令行接口模块
提供友好的命令行交互界面
"""

import argparse
import json
import logging
import os
import signal
import sys
from typing import List, Optional

from ..core.config import ConfigTemplates, DownloadConfig
from ..core.errors import HLSError
from ..core.fetcher import SegmentFetcher
from ..core.json_loader import JSONTaskLoader
from ..core.models import DownloadRequest, Preferences, RequestHeaders
from ..core.muxer import FFmpegMuxer
from ..core.orchestrator import ManifestFetchOrchestrator
from ..core.progress import CompletedEvent, ErrorEvent, TrackProgressDisplay
from ..core.utils import (create_session, extract_filename_from_url, format_bandwidth,
                          format_file_size, format_time, print_banner, setup_logger)

PROFILES = {
    'fast': ConfigTemplates.fast,
    'stable': ConfigTemplates.stable,
    'low_bandwidth': ConfigTemplates.low_bandwidth,
}


class HLSGrabCLI:
    """HLS Grab 命令行界面"""

    def __init__(self):
        self.orchestrator: Optional[ManifestFetchOrchestrator] = None

    def parse_arguments(self, argv: Optional[List[str]] = None):
        """解析命令行参数"""
        parser = argparse.ArgumentParser(
            prog='hlsgrab',
            description="HLS Grab - HLS 清单解析与分片下载器",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
使用示例:
  hlsgrab https://example.com/master.m3u8
  hlsgrab https://example.com/master.m3u8 -o movie.ts -c 8
  hlsgrab https://example.com/master.m3u8 --profile stable --dub --subtitles
  hlsgrab https://example.com/master.m3u8 --headers "Cookie=a=1"
  hlsgrab --json tasks.json --output-dir ./videos
            """
        )

        # 基本参数
        parser.add_argument('url', nargs='?', help='播放列表或媒体文件URL')
        parser.add_argument('-o', '--output', help='输出文件路径', default=None)
        parser.add_argument('--output-dir', help='输出目录路径', default='.')
        parser.add_argument('--json', dest='json_file', help='从JSON文件批量加载下载请求')

        # 配置参数
        parser.add_argument('--profile', choices=sorted(PROFILES), help='下载配置模板')
        parser.add_argument('-c', '--concurrency', type=int, help='并发下载数')
        parser.add_argument('--prefetch-window', type=int, help='最多缓存的未写入片段数')
        parser.add_argument('--max-attempts', type=int, help='每个请求的最大尝试次数')
        parser.add_argument('--retry-delay', type=float, help='重试延迟(秒)')
        parser.add_argument('--connect-timeout', type=float, help='连接超时(秒)')
        parser.add_argument('--read-timeout', type=float, help='读取超时(秒)')

        # 请求头参数
        parser.add_argument('--headers', help='自定义请求头 (JSON字符串或key=value格式)')
        parser.add_argument('--user-agent', help='自定义User-Agent')
        parser.add_argument('--referer', help='设置Referer（同时派生Origin）')
        parser.add_argument('--cookie', help='设置Cookie')

        # 轨道偏好
        parser.add_argument('--dub', action='store_true', help='优先选择配音版本')
        parser.add_argument('--subtitles', action='store_true', help='同时下载字幕')
        parser.add_argument('--lang', help='偏好语言代码 (默认: tr)')

        # 功能参数
        parser.add_argument('--continue-byteranges', action='store_true',
                            help='缺少起点的字节范围从上一段结尾继续（RFC 8216）')
        parser.add_argument('--iv-from-media-sequence', action='store_true',
                            help='没有显式IV时使用媒体序列号派生IV')
        parser.add_argument('--no-direct', action='store_true', help='入口不是播放列表时报错而不是直接下载')
        parser.add_argument('--keep-partial', action='store_true', help='失败时保留 .part 文件')
        parser.add_argument('--mux', action='store_true', help='使用FFmpeg合成视频、音轨和字幕')
        parser.add_argument('--no-ssl-verify', action='store_true', help='禁用SSL验证')
        parser.add_argument('--no-progress', action='store_true', help='禁用进度条')
        parser.add_argument('--no-logging', action='store_true', help='禁用日志')
        parser.add_argument('--log-file', help='日志文件路径')
        parser.add_argument('-v', '--verbose', action='store_true', help='在控制台输出详细日志')
        parser.add_argument('--dry-run', action='store_true', help='试运行，只解析并打印拉取计划')

        return parser.parse_args(argv)

    def create_config_from_args(self, args) -> DownloadConfig:
        """从参数创建配置"""
        factory = PROFILES.get(args.profile)
        config = factory() if factory else DownloadConfig()

        if args.concurrency:
            config.concurrency = args.concurrency
        if args.prefetch_window:
            config.prefetch_window = args.prefetch_window
        if args.max_attempts:
            config.max_attempts = args.max_attempts
        if args.retry_delay is not None:
            config.retry_delay = args.retry_delay
        if args.connect_timeout:
            config.connect_timeout = args.connect_timeout
        if args.read_timeout:
            config.read_timeout = args.read_timeout
        if args.user_agent:
            config.user_agent = args.user_agent
        if args.continue_byteranges:
            config.continue_byteranges = True
        if args.iv_from_media_sequence:
            config.iv_from_media_sequence = True
        if args.no_direct:
            config.allow_direct_asset = False
        if args.keep_partial:
            config.keep_partial_files = True
        if args.no_ssl_verify:
            config.verify_ssl = False
        if args.no_progress:
            config.show_progress = False
        if args.no_logging:
            config.enable_logging = False
        if args.log_file:
            config.log_file = args.log_file

        config.validate()
        return config

    def _parse_headers(self, headers_str: str) -> dict:
        """解析请求头字符串"""
        headers_str = headers_str.strip()

        # 尝试解析JSON
        if headers_str.startswith('{'):
            try:
                return {str(k): str(v) for k, v in json.loads(headers_str).items()}
            except ValueError:
                pass

        # 解析key=value格式
        headers = {}
        for part in headers_str.split(','):
            if '=' in part:
                key, value = part.split('=', 1)
                headers[key.strip()] = value.strip()
        return headers

    def create_requests_from_args(self, args) -> List[DownloadRequest]:
        """从参数创建下载请求"""
        preferences = Preferences(
            prefer_dubbed_audio=args.dub,
            prefer_subtitles=args.subtitles,
            preferred_language=args.lang or 'tr',
        )

        extra_headers = self._parse_headers(args.headers) if args.headers else {}

        if args.json_file:
            requests = JSONTaskLoader.load_from_file(args.json_file, args.output_dir)
            for request in requests:
                # 命令行显式给出的偏好和请求头覆盖文件中的值
                if args.dub:
                    request.preferences.prefer_dubbed_audio = True
                if args.subtitles:
                    request.preferences.prefer_subtitles = True
                if args.lang:
                    request.preferences.preferred_language = args.lang
                if args.user_agent:
                    request.headers.user_agent = args.user_agent
                if args.referer:
                    request.headers.referer = args.referer
                if args.cookie:
                    request.headers.cookie = args.cookie
                request.headers.extra.update(extra_headers)
            return requests

        headers = RequestHeaders(
            user_agent=args.user_agent,
            referer=args.referer,
            cookie=args.cookie,
            extra=extra_headers,
        )

        output = args.output
        if not output:
            # 从URL生成默认文件名
            filename = extract_filename_from_url(args.url) or 'output.m3u8'
            stem, ext = os.path.splitext(filename)
            output = f"{stem}.ts" if ext.lower() in ('.m3u8', '') else filename
        if not os.path.isabs(output):
            output = os.path.join(args.output_dir, output)

        name = os.path.splitext(os.path.basename(output))[0]
        return [DownloadRequest(url=args.url, output_path=output, headers=headers,
                                preferences=preferences, name=name)]

    def _print_plan(self, request: DownloadRequest):
        resolution = self.orchestrator.resolve(request)
        print(f"\n[{request.name}] {request.url}")
        print(f"  输出: {request.output_path}")
        if resolution.direct_asset:
            print("  类型: 直接资源（整体下载）")
            return
        if resolution.variant is not None:
            print(f"  变体: {resolution.media_url} ({format_bandwidth(resolution.variant.bandwidth)})")
        plan = resolution.video_plan
        print(f"  片段: {len(plan)}，时长: {format_time(plan.total_duration)}，加密: {'是' if plan.is_encrypted else '否'}")
        if plan.init_segment_url:
            print(f"  初始化片段: {plan.init_segment_url}")
        if resolution.estimated_size:
            print(f"  预估大小: {format_file_size(resolution.estimated_size)}")
        if resolution.audio is not None:
            print(f"  音轨: {resolution.audio.name} [{resolution.audio.language}] ({len(resolution.audio_plan)} 个片段)")
        if resolution.subtitle is not None:
            print(f"  字幕: {resolution.subtitle.name} [{resolution.subtitle.language}]")

    def _do_download(self, request: DownloadRequest, config: DownloadConfig) -> bool:
        """执行一次下载，Ctrl+C 取消当前会话"""
        session = self.orchestrator.start(request)
        display = TrackProgressDisplay(enabled=config.show_progress)

        def _on_sigint(signum, frame):
            session.cancel()

        previous_handler = signal.signal(signal.SIGINT, _on_sigint)
        success = False
        try:
            for event in session:
                display.handle(event)
                if isinstance(event, CompletedEvent):
                    display.close()
                    result = event.result
                    print(f"\n✅ 下载成功: {os.path.abspath(result.video_path)} "
                          f"({format_file_size(result.bytes_written)}, {result.segments} 个片段)")
                    for extra in (result.audio_path, result.subtitle_path, result.merged_path):
                        if extra:
                            print(f"   {os.path.abspath(extra)}")
                    success = True
                elif isinstance(event, ErrorEvent):
                    display.close()
                    if session.cancelled:
                        print("\n下载被用户中断")
                    else:
                        print(f"\n❌ 下载失败: {event.message}")
        finally:
            display.close()
            signal.signal(signal.SIGINT, previous_handler)
        return success

    def run(self, argv: Optional[List[str]] = None) -> bool:
        """主运行函数"""
        args = self.parse_arguments(argv)
        if not args.url and not args.json_file:
            print("错误: 请提供URL或使用 --json 指定任务文件")
            print("使用 --help 查看帮助")
            return False

        print_banner()

        try:
            config = self.create_config_from_args(args)
        except ValueError as e:
            print(f"❌ 配置无效: {e}")
            return False

        if config.enable_logging:
            setup_logger('app.hlsgrab', config.log_file, console_output=args.verbose,
                         level=logging.DEBUG if args.verbose else logging.INFO)

        try:
            download_requests = self.create_requests_from_args(args)
        except (OSError, ValueError, KeyError) as e:
            print(f"❌ 无法加载下载请求: {e}")
            return False

        session = create_session(config.verify_ssl, pool_size=config.concurrency)
        fetcher = SegmentFetcher(session, config)
        self.orchestrator = ManifestFetchOrchestrator(fetcher, config,
                                                      muxer=FFmpegMuxer() if args.mux else None)

        # 试运行模式
        if args.dry_run:
            print("试运行模式:")
            print(f"  配置: {config.to_dict()}")
            ok = True
            for request in download_requests:
                try:
                    self._print_plan(request)
                except HLSError as e:
                    print(f"❌ 解析失败 [{request.name}]: {e}")
                    ok = False
            return ok

        results = [self._do_download(request, config) for request in download_requests]
        if len(results) > 1:
            print(f"\n完成 {sum(results)}/{len(results)} 个下载")
        return all(results)


def main():
    """主入口"""
    cli = HLSGrabCLI()
    success = cli.run()
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
