"""
变体选择测试
"""

from app.hlsgrab.core.models import Preferences, Rendition, RenditionKind, Variant
from app.hlsgrab.core.selector import VariantSelector, has_dub_hint, has_subtitle_hint


def test_muxed_partition_preferred_over_higher_bandwidth_split_audio():
    """混流变体优先：返回 b 而不是带宽更高的 c"""
    variants = [
        Variant(url="a", bandwidth=500000, has_separate_audio=False),
        Variant(url="b", bandwidth=900000, has_separate_audio=False),
        Variant(url="c", bandwidth=2000000, has_separate_audio=True),
    ]
    assert VariantSelector().select_variant(variants).url == "b"


def test_dub_preference_beats_bandwidth():
    """偏好配音时，带配音提示的低码率变体胜出"""
    variants = [
        Variant(url="https://cdn.example.com/v/400.m3u8", bandwidth=400000,
                raw_attributes='#EXT-X-STREAM-INF:BANDWIDTH=400000,NAME="tur-dublaj"'),
        Variant(url="https://cdn.example.com/v/1200.m3u8", bandwidth=1200000,
                raw_attributes='#EXT-X-STREAM-INF:BANDWIDTH=1200000'),
    ]
    selector = VariantSelector(Preferences(prefer_dubbed_audio=True))
    assert selector.select_variant(variants).bandwidth == 400000

    # 没有偏好时按带宽
    assert VariantSelector().select_variant(variants).bandwidth == 1200000


def test_subtitle_hint_scores_lower_than_dub():
    variants = [
        Variant(url="https://cdn.example.com/vost/index.m3u8", bandwidth=100),
        Variant(url="https://cdn.example.com/dublaj/index.m3u8", bandwidth=100),
    ]
    selector = VariantSelector(Preferences(prefer_dubbed_audio=True, prefer_subtitles=True))
    assert selector.score(variants[0]) == 3
    assert selector.score(variants[1]) == 5
    assert selector.select_variant(variants).url.endswith("dublaj/index.m3u8")


def test_all_split_audio_falls_back_to_highest_bandwidth():
    variants = [
        Variant(url="x", bandwidth=1, has_separate_audio=True),
        Variant(url="y", bandwidth=3, has_separate_audio=True),
    ]
    assert VariantSelector().select_variant(variants).url == "y"


def test_equal_rank_keeps_manifest_order():
    variants = [Variant(url="first", bandwidth=10), Variant(url="second", bandwidth=10)]
    assert VariantSelector().select_variant(variants).url == "first"


def test_choose_variant_url_without_variants_returns_manifest():
    assert VariantSelector().choose_variant_url([], "https://x.example.com/m.m3u8") == "https://x.example.com/m.m3u8"


def test_tr_hint_only_matches_standalone_token():
    assert has_dub_hint("audio-tr.m3u8")
    assert has_dub_hint("lang=TUR")
    assert not has_dub_hint("https://stream.example.com/track/index.m3u8")
    assert has_subtitle_hint("NAME=\"Subtitles\"")


def test_select_subtitle_by_language_then_name():
    renditions = [
        Rendition(kind=RenditionKind.SUBTITLES, url="en.m3u8", language="en", name="English"),
        Rendition(kind=RenditionKind.SUBTITLES, url="tr.m3u8", language="TR", name="Türkçe"),
        Rendition(kind=RenditionKind.CLOSED_CAPTIONS, language="tr", instream_id="CC1"),
    ]
    selector = VariantSelector(Preferences(preferred_language="tr"))
    assert selector.select_subtitle(renditions).url == "tr.m3u8"

    by_name = VariantSelector(Preferences(preferred_language="english"))
    assert by_name.select_subtitle(renditions).url == "en.m3u8"

    assert VariantSelector(Preferences(preferred_language="de")).select_subtitle(renditions).url == "en.m3u8"
    assert selector.select_subtitle(renditions[2:]) is None


def test_select_audio_within_variant_group():
    renditions = [
        Rendition(kind=RenditionKind.AUDIO, url="other-tr.m3u8", language="tr", group_id="other"),
        Rendition(kind=RenditionKind.AUDIO, url="en.m3u8", language="en", group_id="aud", default=True),
        Rendition(kind=RenditionKind.AUDIO, url="dub.m3u8", language="de", name="Dublaj", group_id="aud"),
    ]
    variant = Variant(url="v.m3u8", has_separate_audio=True, audio_group="aud")

    assert VariantSelector().select_audio(renditions, variant).url == "en.m3u8"
    dubbed = VariantSelector(Preferences(prefer_dubbed_audio=True))
    assert dubbed.select_audio(renditions, variant).url == "dub.m3u8"
