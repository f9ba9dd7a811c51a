"""Tests for platform link normalization."""
import pathlib
import sys

import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1] / "smartlink"))

from modules.normalizer import (
    normalize_platform_links,
    normalize_single,
    normalize_user_input,
)


SPOTIFY_ID = "4uLU6hMCjMI75M1A2tKUQC"


class TestSpotify:
    def test_uri_converted_to_url(self):
        link = normalize_single("spotify", f"spotify:track:{SPOTIFY_ID}")

        assert link.url == f"https://open.spotify.com/track/{SPOTIFY_ID}"
        assert link.track_id == SPOTIFY_ID
        assert link.uri == f"spotify:track:{SPOTIFY_ID}"
        assert "Converted URI" in link.note

    def test_bare_id_builds_url(self):
        link = normalize_single("spotify", SPOTIFY_ID)

        assert link.url == f"https://open.spotify.com/track/{SPOTIFY_ID}"
        assert link.track_id == SPOTIFY_ID

    def test_valid_url_kept_unchanged(self):
        url = f"https://open.spotify.com/intl-de/track/{SPOTIFY_ID}?si=abc"
        link = normalize_single("spotify", f"  {url}  ")

        assert link.url == url
        assert link.track_id == SPOTIFY_ID

    def test_unrecognized_kept_as_is(self):
        link = normalize_single("spotify", "not a spotify link")

        assert link.url == "not a spotify link"
        assert link.track_id is None
        assert link.recognized is False
        assert "kept as-is" in link.note


class TestAppleMusic:
    def test_numeric_id_never_becomes_url(self):
        link = normalize_single("apple_music", "1440833098")

        assert link.url is None
        assert link.track_id == "1440833098"
        assert "needs country + album" in link.note

    def test_album_url_with_track_param(self):
        url = "https://music.apple.com/us/album/bohemian-rhapsody/1440806041?i=1440806768"
        link = normalize_single("apple_music", url)

        assert link.url == url
        assert link.track_id == "1440806768"

    def test_song_url(self):
        url = "https://music.apple.com/gb/song/bohemian-rhapsody/1440806768"
        link = normalize_single("apple_music", url)

        assert link.url == url
        assert link.track_id == "1440806768"


class TestYouTube:
    @pytest.mark.parametrize("value", [
        "https://youtu.be/dQw4w9WgXcQ",
        "https://m.youtube.com/watch?v=dQw4w9WgXcQ&t=42",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "vnd.youtube:dQw4w9WgXcQ",
        "dQw4w9WgXcQ",
    ])
    def test_variants_rebuilt_to_canonical(self, value):
        link = normalize_single("youtube", value)

        assert link.url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert link.track_id == "dQw4w9WgXcQ"

    def test_youtube_music_canonical_host(self):
        link = normalize_single("youtube_music", "https://youtu.be/dQw4w9WgXcQ")

        assert link.url == "https://music.youtube.com/watch?v=dQw4w9WgXcQ"


class TestOtherPlatforms:
    def test_tidal_deep_link(self):
        link = normalize_single("tidal", "tidal://track/77646168")

        assert link.url == "https://listen.tidal.com/track/77646168"
        assert link.track_id == "77646168"

    def test_tidal_browse_url_kept(self):
        url = "https://tidal.com/browse/track/77646168"
        assert normalize_single("tidal", url).url == url

    def test_deezer_localized_url_rebuilt(self):
        link = normalize_single("deezer", "https://www.deezer.com/fr/track/3135556")

        assert link.url == "https://www.deezer.com/track/3135556"
        assert link.track_id == "3135556"

    def test_deezer_bare_id(self):
        assert normalize_single("deezer", "3135556").url == "https://www.deezer.com/track/3135556"

    def test_soundcloud_uri_has_no_url(self):
        link = normalize_single("soundcloud", "soundcloud:tracks:123456")

        assert link.url is None
        assert link.track_id == "123456"

    def test_soundcloud_mobile_url_rebuilt(self):
        link = normalize_single("soundcloud", "https://m.soundcloud.com/artist/track-name?in=x")

        assert link.url == "https://soundcloud.com/artist/track-name"

    def test_amazon_asin(self):
        link = normalize_single("amazon", "B0ABCDEF12")

        assert link.url == "https://music.amazon.com/tracks/B0ABCDEF12"
        assert link.track_id == "B0ABCDEF12"

    def test_amazon_album_url_track_asin(self):
        url = "https://music.amazon.com/albums/B0ALBUM123?trackAsin=B0TRACK456"
        link = normalize_single("amazon", url)

        assert link.url == url
        assert link.track_id == "B0TRACK456"


class TestIdempotence:
    @pytest.mark.parametrize("platform,value", [
        ("spotify", f"spotify:track:{SPOTIFY_ID}"),
        ("youtube", "https://youtu.be/dQw4w9WgXcQ"),
        ("youtube_music", "dQw4w9WgXcQ"),
        ("tidal", "tidal://track/77646168"),
        ("deezer", "deezer://www.deezer.com/track/3135556"),
        ("soundcloud", "https://www.soundcloud.com/artist/track"),
        ("amazon", "B0ABCDEF12"),
        ("apple_music", "https://music.apple.com/gb/song/bohemian-rhapsody/1440806768"),
        ("apple_music", "https://music.apple.com/us/album/bohemian-rhapsody/1440806041?i=1440806768"),
    ])
    def test_normalizing_a_canonical_url_is_a_no_op(self, platform, value):
        first = normalize_single(platform, value)
        second = normalize_single(platform, first.url)

        assert second.url == first.url
        assert second.track_id == first.track_id


class TestNormalizePlatformLinks:
    def test_returns_full_link_set(self):
        result = normalize_platform_links({"spotify": SPOTIFY_ID})

        assert set(result.links) == {
            "spotify", "apple_music", "youtube", "youtube_music",
            "tidal", "deezer", "soundcloud", "amazon",
        }
        assert result.links["spotify"] == f"https://open.spotify.com/track/{SPOTIFY_ID}"
        assert result.links["deezer"] is None
        assert result.raw_ids["spotify_track_id"] == SPOTIFY_ID
        assert result.raw_ids["spotify_uri"] == f"spotify:track:{SPOTIFY_ID}"
        assert result.link_count() == 1

    def test_metadata_nested_track_object(self):
        metadata = {
            "deezer": {"track": {"id": "3135556"}},
            "tidal": [{"id": 77646168, "link": "https://listen.tidal.com/track/77646168"}],
        }

        result = normalize_platform_links({}, metadata)

        assert result.links["deezer"] == "https://www.deezer.com/track/3135556"
        assert result.links["tidal"] == "https://listen.tidal.com/track/77646168"
        assert result.raw_ids["tidal_track_id"] == "77646168"
        assert any("from ACRCloud" in note for note in result.notes)

    def test_single_object_beats_array_and_flat_id(self):
        metadata = {
            "deezer": {
                "track": {"id": "111"},
                "tracks": [{"id": "222"}],
                "id": "333",
            }
        }

        result = normalize_platform_links({}, metadata)

        assert result.raw_ids["deezer_track_id"] == "111"

    def test_apple_music_metadata_id_then_link(self):
        metadata = {
            "applemusic": [{
                "id": "1440806768",
                "link": "https://music.apple.com/us/album/x/1440806041?i=1440806768",
            }]
        }

        result = normalize_platform_links({}, metadata)

        assert result.raw_ids["apple_music_id"] == "1440806768"
        assert result.links["apple_music"] == (
            "https://music.apple.com/us/album/x/1440806041?i=1440806768"
        )

    def test_direct_input_wins_over_metadata(self):
        metadata = {"spotify": [{"id": "0000000000000000000000"}]}

        result = normalize_platform_links({"spotify": SPOTIFY_ID}, metadata)

        assert result.links["spotify"] == f"https://open.spotify.com/track/{SPOTIFY_ID}"
        assert result.raw_ids["spotify_track_id"] == SPOTIFY_ID

    def test_direct_raw_id_kept_when_metadata_supplies_url(self):
        metadata = {"applemusic": [{"id": "999", "link": "https://music.apple.com/us/song/x/999"}]}

        result = normalize_platform_links({"apple_music": "1440806768"}, metadata)

        assert result.links["apple_music"] == "https://music.apple.com/us/song/x/999"
        assert result.raw_ids["apple_music_id"] == "1440806768"

    def test_isrc_and_upc_copied_through(self):
        result = normalize_platform_links({}, {"isrc": "not-validated", "upc": "00602547"})

        assert result.raw_ids["isrc"] == "not-validated"
        assert result.raw_ids["upc"] == "00602547"

    def test_garbage_metadata_never_raises(self):
        metadata = {"spotify": "oops", "deezer": [None], "tidal": [{"id": None}], "youtube": 42}

        result = normalize_platform_links({}, metadata)

        assert result.link_count() == 0


class TestNormalizeUserInput:
    def test_returns_canonical_url(self):
        assert normalize_user_input("deezer", " 3135556 ") == "https://www.deezer.com/track/3135556"

    def test_returns_trimmed_value_without_url(self):
        assert normalize_user_input("apple_music", " 1440806768 ") == "1440806768"

    def test_empty_input(self):
        assert normalize_user_input("spotify", "   ") == ""
