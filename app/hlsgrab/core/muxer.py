"""
封装模块
把视频、独立音轨和字幕合成一个文件。核心默认不封装，只有注入了 muxer 时才会调用。
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from typing import List, Optional

from .errors import MuxError

logger = logging.getLogger(__name__)


class MediaMuxer(ABC):
    """封装器接口"""

    @abstractmethod
    def mux(self, video_path: str, output_path: str, audio_path: Optional[str] = None,
            subtitle_path: Optional[str] = None) -> str:
        """
        合成输出文件

        Returns:
            str: 输出文件路径

        Raises:
            MuxError: 合成失败
        """


class FFmpegMuxer(MediaMuxer):
    """调用系统 ffmpeg 做无转码封装（-c copy，字幕转为 mov_text）"""

    def __init__(self, ffmpeg_path: str = 'ffmpeg', overwrite: bool = True):
        self.ffmpeg_path = ffmpeg_path
        self.overwrite = overwrite

    def is_available(self) -> bool:
        """检查 ffmpeg 是否可用"""
        try:
            subprocess.run([self.ffmpeg_path, '-version'],
                           stdout=subprocess.PIPE,
                           stderr=subprocess.PIPE,
                           check=True)
        except (subprocess.CalledProcessError, FileNotFoundError):
            return False
        return True

    def build_command(self, video_path: str, output_path: str, audio_path: Optional[str] = None,
                      subtitle_path: Optional[str] = None) -> List[str]:
        """构造 ffmpeg 命令行"""
        cmd = [self.ffmpeg_path, '-i', video_path]
        if audio_path:
            cmd += ['-i', audio_path]
        if subtitle_path:
            cmd += ['-i', subtitle_path]

        cmd += ['-map', '0:v?', '-map', '0:a?' if not audio_path else '1:a']
        if subtitle_path:
            cmd += ['-map', f"{2 if audio_path else 1}:s"]

        cmd += ['-c', 'copy']
        if subtitle_path:
            cmd += ['-c:s', 'mov_text']
        if self.overwrite:
            cmd.append('-y')
        cmd.append(output_path)
        return cmd

    def mux(self, video_path: str, output_path: str, audio_path: Optional[str] = None,
            subtitle_path: Optional[str] = None) -> str:
        if not self.is_available():
            raise MuxError(f"找不到 ffmpeg: {self.ffmpeg_path}")

        cmd = self.build_command(video_path, output_path, audio_path, subtitle_path)
        logger.info(f"运行FFmpeg命令: {' '.join(cmd)}")
        try:
            subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=True)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors='replace') if e.stderr else str(e)
            raise MuxError(f"FFmpeg封装失败: {stderr}") from e

        if not os.path.exists(output_path):
            raise MuxError(f"FFmpeg 没有生成输出文件: {output_path}")
        logger.info(f"封装完成: {output_path}")
        return output_path
