"""
字幕下载测试
"""

from app.hlsgrab.core.subtitles import SubtitleDownloader, strip_vtt_header

SUB = "https://cdn.example.com/subs/"


def test_strip_vtt_header():
    assert strip_vtt_header("\ufeffWEBVTT\n\n1\n00:01.000 --> 00:02.000\nx\n") == "\n1\n00:01.000 --> 00:02.000\nx\n"
    assert strip_vtt_header("WEBVTT - Türkçe\nX-TIMESTAMP-MAP=LOCAL:00:00:00.000\n") == "X-TIMESTAMP-MAP=LOCAL:00:00:00.000\n"
    assert strip_vtt_header("00:01.000 --> 00:02.000\nno header\n") == "00:01.000 --> 00:02.000\nno header\n"


def test_plain_vtt_written_as_is(fake_session, fetcher, tmp_path):
    body = "WEBVTT\n\n00:00.000 --> 00:02.000\nSelam\n"
    fake_session.add(f"{SUB}tr.vtt", body, content_type="text/vtt")
    output = tmp_path / "subs" / "movie.tr.vtt"

    path = SubtitleDownloader(fetcher).download(f"{SUB}tr.vtt", str(output))

    assert path == str(output)
    assert output.read_text(encoding='utf-8') == body


def test_srt_written_as_is(fake_session, fetcher, tmp_path):
    body = "1\n00:00:00,000 --> 00:00:02,000\nHello\n"
    fake_session.add(f"{SUB}en.srt", body, content_type="application/x-subrip")
    output = tmp_path / "movie.en.srt"
    SubtitleDownloader(fetcher).download(f"{SUB}en.srt", str(output))
    assert output.read_text(encoding='utf-8') == body


def test_subtitle_playlist_concatenated(fake_session, fetcher, tmp_path):
    fake_session.add(f"{SUB}tr.m3u8", "#EXTM3U\n#EXTINF:10,\nseg0.vtt\n#EXTINF:10,\nseg1.vtt\n#EXTINF:10,\nseg2.vtt\n")
    for i in range(3):
        fake_session.add(f"{SUB}seg{i}.vtt", f"WEBVTT\n\n00:{i}0.000 --> 00:{i}1.000\ncue {i}\n",
                         content_type="text/vtt")
    progress = []
    output = tmp_path / "movie.vtt"

    SubtitleDownloader(fetcher).download(f"{SUB}tr.m3u8", str(output),
                                         progress_callback=lambda done, total: progress.append((done, total)))

    text = output.read_text(encoding='utf-8')
    assert text.startswith("WEBVTT\n")
    assert text.count("WEBVTT") == 1
    assert [line for line in text.splitlines() if line.startswith("cue")] == ["cue 0", "cue 1", "cue 2"]
    assert progress == [(1, 3), (2, 3), (3, 3)]
