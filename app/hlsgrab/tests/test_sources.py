"""
候选地址测试
"""

import os

from app.hlsgrab.core.models import Preferences
from app.hlsgrab.core.sources import (
    CandidateCollector, CandidateURL, UrlKind, detect_url_kind, is_likely_ad_url, kind_from_content_type,
)


def test_detect_url_kind_by_extension():
    assert detect_url_kind("https://cdn.example.com/v/master.m3u8?token=1") is UrlKind.M3U8
    assert detect_url_kind("https://cdn.example.com/v/movie.MP4") is UrlKind.MP4
    assert detect_url_kind("https://cdn.example.com/s/tr.vtt") is UrlKind.VTT
    assert detect_url_kind("https://cdn.example.com/s/en.srt") is UrlKind.SRT
    assert detect_url_kind("https://cdn.example.com/s/en.ass") is UrlKind.ASS
    assert detect_url_kind("https://cdn.example.com/s/en.ssa") is UrlKind.SSA
    assert detect_url_kind("https://cdn.example.com/play?id=1") is UrlKind.UNKNOWN


def test_detect_url_kind_ignores_host_and_query():
    assert detect_url_kind("https://media.assets.example.com/hls/master") is UrlKind.UNKNOWN
    assert detect_url_kind("https://cdn.example.com/play?fallback=clip.mp4") is UrlKind.UNKNOWN
    assert detect_url_kind("https://cdn.example.com/sub.vtt.d/index") is UrlKind.UNKNOWN


def test_kind_properties():
    assert UrlKind.VTT.is_subtitle
    assert UrlKind.MP4.is_direct_asset
    assert not UrlKind.M3U8.is_direct_asset


def test_kind_from_content_type():
    assert kind_from_content_type("application/vnd.apple.mpegurl") is UrlKind.M3U8
    assert kind_from_content_type("text/vtt; charset=utf-8") is UrlKind.VTT
    assert kind_from_content_type("video/mp4") is UrlKind.MP4
    assert kind_from_content_type(None) is UrlKind.UNKNOWN


def test_is_likely_ad_url():
    assert is_likely_ad_url("https://securepubads.g.doubleclick.net/gampad/ads?x=1")
    assert is_likely_ad_url("https://example.com/ads/preroll.mp4")
    assert not is_likely_ad_url("https://cdn.example.com/v/master.m3u8")


def test_collector_filters_and_deduplicates():
    collector = CandidateCollector(user_agent="UA")
    accepted = collector.collect([
        CandidateURL("https://cdn.example.com/v/master.m3u8", "https://watch.example.com/ep1", "sid=1"),
        CandidateURL("https://cdn.example.com/v/master.m3u8", "https://watch.example.com/ep1"),
        CandidateURL("https://pagead2.googlesyndication.com/x.mp4", "https://watch.example.com/ep1"),
        CandidateURL("blob:https://watch.example.com/1234", "https://watch.example.com/ep1"),
        CandidateURL("https://cdn.example.com/s/tr.vtt", "https://watch.example.com/ep1"),
    ])

    assert [(c.url, c.kind) for c in accepted] == [
        ("https://cdn.example.com/v/master.m3u8", UrlKind.M3U8),
        ("https://cdn.example.com/s/tr.vtt", UrlKind.VTT),
    ]
    first = accepted[0].headers
    assert first.user_agent == "UA"
    assert first.referer == "https://watch.example.com/ep1"
    assert first.cookie == "sid=1"
    assert collector.candidates == accepted


def test_collector_probes_unknown_kind():
    class Prober:
        def __init__(self):
            self.urls = []

        def probe_content_type(self, url, headers):
            self.urls.append(url)
            return "application/x-mpegurl"

    prober = Prober()
    collector = CandidateCollector(prober=prober)
    candidate = collector.accept(CandidateURL("https://cdn.example.com/play?id=9"))
    assert candidate.kind is UrlKind.M3U8
    assert prober.urls == ["https://cdn.example.com/play?id=9"]

    collector.accept(CandidateURL("https://cdn.example.com/v/master.m3u8"))
    assert len(prober.urls) == 1


def test_to_request(tmp_path):
    collector = CandidateCollector()
    playlist = collector.accept(CandidateURL("https://cdn.example.com/v/episode-1.m3u8?t=1", "https://watch.example.com"))
    request = collector.to_request(playlist, str(tmp_path), Preferences(prefer_dubbed_audio=True))

    assert request.output_path == os.path.join(str(tmp_path), "episode-1.ts")
    assert request.name == "episode-1"
    assert request.preferences.prefer_dubbed_audio
    assert request.headers.referer == "https://watch.example.com"

    subtitle = collector.accept(CandidateURL("https://cdn.example.com/s/tr.vtt"))
    assert collector.to_request(subtitle, str(tmp_path)).output_path == os.path.join(str(tmp_path), "tr.vtt")
