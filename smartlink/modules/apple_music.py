"""Apple Music link strategy.

Apple Music web URLs need a storefront code and an album id, neither of which
is available from a bare catalog id. A numeric id is therefore stored as the
raw id only and never turned into a fabricated URL.
"""
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .base import PlatformRegistry, PlatformStrategy, with_scheme
from .helperClasses import NormalizedLink


_ALBUM_PATTERN = re.compile(r"music\.apple\.com/[^?#]*/album/(?:[^/?#]+/)?(\d+)", re.I)
_SONG_PATTERN = re.compile(r"music\.apple\.com/[^?#]*/song/(?:[^/?#]+/)?(\d+)", re.I)
_ID_PATTERN = re.compile(r"^\d+$")


def _track_param(url: str) -> Optional[str]:
    """The ``?i=`` query parameter holds the track id on album URLs."""
    values = parse_qs(urlparse(with_scheme(url)).query).get("i")
    if values and _ID_PATTERN.match(values[0]):
        return values[0]
    return None


@PlatformRegistry.register
class AppleMusicPlatform(PlatformStrategy):
    name = "apple_music"
    label = "Apple Music"
    raw_id_key = "apple_music_id"
    acr_keys = ("applemusic", "apple_music")

    def parse(self, value: str) -> Optional[NormalizedLink]:
        if "music.apple.com" in value.lower():
            song = _SONG_PATTERN.search(value)
            if song:
                return self.link(with_scheme(value), song.group(1), "Already valid URL")
            album = _ALBUM_PATTERN.search(value)
            track_id = _track_param(value) or (album.group(1) if album else None)
            return self.link(with_scheme(value), track_id, "Already valid URL")

        if _ID_PATTERN.match(value):
            return self.link(None, value, "ID only, no URL (needs country + album)")

        return None
