"""
命令行测试
"""

import os

from app.hlsgrab.cli.cli import HLSGrabCLI


def test_config_from_profile_and_overrides():
    cli = HLSGrabCLI()
    args = cli.parse_arguments(["https://cdn.example.com/m.m3u8", "--profile", "stable", "-c", "3",
                                "--continue-byteranges", "--no-ssl-verify", "--no-progress"])
    config = cli.create_config_from_args(args)

    assert config.concurrency == 3
    assert config.max_attempts == 5
    assert config.continue_byteranges
    assert not config.verify_ssl
    assert not config.show_progress


def test_parse_headers_json_and_pairs():
    cli = HLSGrabCLI()
    assert cli._parse_headers('{"X-Token": "abc"}') == {"X-Token": "abc"}
    assert cli._parse_headers("X-A=1, X-B=2=3") == {"X-A": "1", "X-B": "2=3"}


def test_request_from_args(tmp_path):
    cli = HLSGrabCLI()
    args = cli.parse_arguments(["https://cdn.example.com/show/master.m3u8?t=1", "--output-dir", str(tmp_path),
                                "--referer", "https://watch.example.com", "--dub", "--subtitles",
                                "--headers", "X-Token=abc"])
    request, = cli.create_requests_from_args(args)

    assert request.output_path == os.path.join(str(tmp_path), "master.ts")
    assert request.name == "master"
    assert request.headers.referer == "https://watch.example.com"
    assert request.headers.extra == {"X-Token": "abc"}
    assert request.preferences.prefer_dubbed_audio
    assert request.preferences.prefer_subtitles


def test_direct_asset_keeps_extension(tmp_path):
    cli = HLSGrabCLI()
    args = cli.parse_arguments(["https://cdn.example.com/movie.mp4", "--output-dir", str(tmp_path)])
    request, = cli.create_requests_from_args(args)
    assert request.output_path == os.path.join(str(tmp_path), "movie.mp4")


def test_run_without_url_fails():
    assert HLSGrabCLI().run([]) is False


def test_run_with_invalid_config():
    assert HLSGrabCLI().run(["https://cdn.example.com/m.m3u8", "--retry-delay", "-1", "--no-logging"]) is False


def test_json_batch_applies_command_line_overrides(tmp_path):
    """批量模式下 --lang/--referer/--cookie/--headers 同样覆盖文件中的值"""
    batch = tmp_path / "batch.json"
    batch.write_text('[{"name": "ep1", "url": "https://cdn.example.com/ep1.m3u8",'
                     ' "headers": {"referer": "https://old.example.com", "cookie": "a=1"}},'
                     ' {"name": "ep2", "url": "https://cdn.example.com/ep2.m3u8"}]', encoding='utf-8')
    cli = HLSGrabCLI()
    args = cli.parse_arguments(["--json", str(batch), "--output-dir", str(tmp_path), "--lang", "en",
                                "--referer", "https://watch.example.com", "--cookie", "sid=9",
                                "--headers", "X-Token=abc"])
    requests = cli.create_requests_from_args(args)

    assert len(requests) == 2
    for request in requests:
        assert request.preferences.preferred_language == "en"
        assert request.headers.referer == "https://watch.example.com"
        assert request.headers.cookie == "sid=9"
        assert request.headers.extra == {"X-Token": "abc"}


def test_json_batch_keeps_file_values_without_overrides(tmp_path):
    batch = tmp_path / "batch.json"
    batch.write_text('[{"name": "ep1", "url": "https://cdn.example.com/ep1.m3u8",'
                     ' "headers": {"referer": "https://old.example.com"},'
                     ' "preferences": {"preferred_language": "de"}}]', encoding='utf-8')
    cli = HLSGrabCLI()
    request, = cli.create_requests_from_args(cli.parse_arguments(["--json", str(batch)]))

    assert request.preferences.preferred_language == "de"
    assert request.headers.referer == "https://old.example.com"
    assert request.headers.extra == {}
