import json
import os
from typing import List

from .models import DownloadRequest, Preferences, RequestHeaders


class JSONTaskLoader:
    """JSON任务加载器"""

    @staticmethod
    def load_from_file(file_path: str, base_output_dir: str) -> List[DownloadRequest]:
        """
        从JSON文件加载下载请求

        JSON格式示例:
        [
            {
                "name": "video1",
                "url": "https://example.com/video1.m3u8",
                "output_path": "video1.ts",
                "headers": {"referer": "https://example.com/watch/1"},
                "preferences": {"prefer_dubbed_audio": true}
            },
            {
                "name": "video2",
                "url": "https://example.com/video2.m3u8"
            }
        ]

        Args:
            file_path: JSON文件路径
            base_output_dir: 基础输出目录

        Returns:
            List[DownloadRequest]: 请求列表
        """
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"JSON文件不存在: {file_path}")

        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, list):
            raise ValueError(f"JSON文件顶层必须是列表: {file_path}")

        requests = []
        for item in data:
            name = item.get('name') or 'download'
            # 相对路径基于 base_output_dir
            output_path = item.get('output_path') or f"{name}.ts"
            if not os.path.isabs(output_path):
                output_path = os.path.join(base_output_dir, output_path)

            headers = item.get('headers') or {}
            preferences = item.get('preferences') or {}
            requests.append(DownloadRequest(
                url=item['url'],
                output_path=output_path,
                headers=RequestHeaders(
                    user_agent=headers.get('user_agent'),
                    referer=headers.get('referer'),
                    cookie=headers.get('cookie'),
                ),
                preferences=Preferences(
                    prefer_dubbed_audio=bool(preferences.get('prefer_dubbed_audio', False)),
                    prefer_subtitles=bool(preferences.get('prefer_subtitles', False)),
                    preferred_language=preferences.get('preferred_language', 'tr'),
                ),
                name=name,
            ))

        return requests

    @staticmethod
    def save_to_file(requests: List[DownloadRequest], file_path: str):
        """保存请求列表到JSON文件"""
        data = [request.to_dict() for request in requests]
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
