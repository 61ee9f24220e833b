"""
JSON 批量任务测试
"""

import json
import os

import pytest

from app.hlsgrab.core.json_loader import JSONTaskLoader
from app.hlsgrab.core.models import DownloadRequest, Preferences, RequestHeaders


def test_load_from_file(tmp_path):
    tasks_file = tmp_path / "tasks.json"
    tasks_file.write_text(json.dumps([
        {
            "name": "ep1",
            "url": "https://cdn.example.com/ep1/master.m3u8",
            "output_path": "ep1/video.ts",
            "headers": {"referer": "https://watch.example.com/ep1", "cookie": "sid=1"},
            "preferences": {"prefer_dubbed_audio": True, "preferred_language": "en"},
        },
        {"name": "ep2", "url": "https://cdn.example.com/ep2/master.m3u8"},
    ]), encoding='utf-8')

    first, second = JSONTaskLoader.load_from_file(str(tasks_file), str(tmp_path / "out"))

    assert first.output_path == os.path.join(str(tmp_path / "out"), "ep1/video.ts")
    assert first.headers.referer == "https://watch.example.com/ep1"
    assert first.headers.cookie == "sid=1"
    assert first.preferences.prefer_dubbed_audio
    assert first.preferences.preferred_language == "en"
    assert second.output_path == os.path.join(str(tmp_path / "out"), "ep2.ts")
    assert second.preferences.preferred_language == "tr"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        JSONTaskLoader.load_from_file(str(tmp_path / "missing.json"), str(tmp_path))


def test_top_level_must_be_list(tmp_path):
    tasks_file = tmp_path / "tasks.json"
    tasks_file.write_text('{"url": "x"}', encoding='utf-8')
    with pytest.raises(ValueError):
        JSONTaskLoader.load_from_file(str(tasks_file), str(tmp_path))


def test_save_and_reload(tmp_path):
    request = DownloadRequest(
        url="https://cdn.example.com/a.m3u8",
        output_path=str(tmp_path / "a.ts"),
        headers=RequestHeaders(user_agent="UA", referer="https://w.example.com"),
        preferences=Preferences(prefer_subtitles=True),
        name="a",
    )
    tasks_file = tmp_path / "saved.json"
    JSONTaskLoader.save_to_file([request], str(tasks_file))

    loaded, = JSONTaskLoader.load_from_file(str(tasks_file), str(tmp_path))
    assert loaded.url == request.url
    assert loaded.output_path == request.output_path
    assert loaded.headers.user_agent == "UA"
    assert loaded.preferences.prefer_subtitles
