"""
拉取计划测试
"""

import pytest

from app.hlsgrab.core.errors import EmptyPlaylistError
from app.hlsgrab.core.parser import ManifestParser
from app.hlsgrab.core.planner import FetchPlanBuilder

BASE = "https://cdn.example.com/v/index.m3u8"


def build(text, **kwargs):
    return FetchPlanBuilder(**kwargs).build(ManifestParser().parse_media(text, BASE))


BYTERANGE_PLAYLIST = """#EXTM3U
#EXT-X-BYTERANGE:1000@0
#EXTINF:4,
media.ts
#EXT-X-BYTERANGE:1000
#EXTINF:4,
media.ts
"""


def test_byterange_without_offset_starts_at_zero():
    """没有 @offset 的字节范围从 0 开始"""
    plan = build(BYTERANGE_PLAYLIST)
    assert [t.segment.byte_range for t in plan.tasks] == [(0, 999), (0, 999)]


def test_byterange_continuation_when_enabled():
    plan = build(BYTERANGE_PLAYLIST, continue_byteranges=True)
    assert [t.segment.byte_range for t in plan.tasks] == [(0, 999), (1000, 1999)]


def test_byterange_consumed_by_next_uri_only():
    plan = build("#EXTM3U\n#EXT-X-BYTERANGE:500@100\na.ts\nb.ts\n")
    assert plan.tasks[0].segment.byte_range == (100, 599)
    assert plan.tasks[1].segment.byte_range is None


def test_key_applies_until_replaced_or_cleared():
    plan = build("""#EXTM3U
#EXT-X-MEDIA-SEQUENCE:7
a.ts
#EXT-X-KEY:METHOD=AES-128,URI="k1"
b.ts
c.ts
#EXT-X-KEY:METHOD=AES-128,URI="k2"
d.ts
#EXT-X-KEY:METHOD=NONE
e.ts
""")
    keys = [t.active_key.key_url if t.active_key else None for t in plan.tasks]
    assert keys == [None,
                    "https://cdn.example.com/v/k1", "https://cdn.example.com/v/k1",
                    "https://cdn.example.com/v/k2",
                    None]
    assert [t.segment.sequence_index for t in plan.tasks] == [0, 1, 2, 3, 4]
    assert [t.segment.media_sequence for t in plan.tasks] == [7, 8, 9, 10, 11]
    assert plan.is_encrypted


def test_last_map_wins():
    plan = build("#EXTM3U\n#EXT-X-MAP:URI=\"init1.mp4\"\na.m4s\n#EXT-X-MAP:URI=\"init2.mp4\"\nb.m4s\n")
    assert plan.init_segment_url == "https://cdn.example.com/v/init2.mp4"


def test_empty_playlist_raises():
    with pytest.raises(EmptyPlaylistError):
        build("#EXTM3U\n#EXT-X-TARGETDURATION:6\n#EXT-X-ENDLIST\n")


def test_duration_and_size_estimate():
    plan = build("#EXTM3U\n#EXTINF:10,\na.ts\n#EXTINF:6,\nb.ts\n#EXT-X-ENDLIST\n")
    assert plan.total_duration == 16
    assert plan.end_list
    assert len(plan) == 2
    # 800 kbps * 16 s / 8 = 1.6 MB
    assert plan.estimate_size(800000) == 1600000
    assert plan.estimate_size(0) is None
