"""YouTube and YouTube Music link strategies.

Both platforms share the 11-character video id. The canonical forms are
``www.youtube.com/watch?v=<id>`` and ``music.youtube.com/watch?v=<id>``; short
links, mobile hosts and embed URLs are rebuilt into them.
"""
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .base import PlatformRegistry, PlatformStrategy, with_scheme
from .helperClasses import NormalizedLink


YOUTUBE_WATCH_BASE = "https://www.youtube.com/watch?v="
YOUTUBE_MUSIC_WATCH_BASE = "https://music.youtube.com/watch?v="

_VIDEO_ID = r"[A-Za-z0-9_-]{11}"
_ID_PATTERN = re.compile(rf"^{_VIDEO_ID}$")
_URI_PATTERN = re.compile(rf"^vnd\.youtube:(?://)?({_VIDEO_ID})$", re.I)
_SHORT_PATTERN = re.compile(rf"youtu\.be/({_VIDEO_ID})", re.I)
_PATH_PATTERN = re.compile(rf"youtube\.com/(?:embed|shorts|v|live)/({_VIDEO_ID})", re.I)


def extract_video_id(value: str) -> Optional[str]:
    """Pull the video id out of any YouTube or YouTube Music URL."""
    lowered = value.lower()
    if "youtube.com" not in lowered and "youtu.be" not in lowered:
        return None
    short = _SHORT_PATTERN.search(value)
    if short:
        return short.group(1)
    path = _PATH_PATTERN.search(value)
    if path:
        return path.group(1)
    if "/watch" in lowered:
        ids = parse_qs(urlparse(with_scheme(value)).query).get("v")
        if ids and _ID_PATTERN.match(ids[0]):
            return ids[0]
    return None


class _YouTubeFamily(PlatformStrategy):
    watch_base: str
    id_keys = ("vid", "id", "video_id")

    def build_url(self, track_id: str) -> Optional[str]:
        return f"{self.watch_base}{track_id}"

    def parse(self, value: str) -> Optional[NormalizedLink]:
        uri = _URI_PATTERN.match(value)
        if uri:
            video_id = uri.group(1)
            return self.link(self.build_url(video_id), video_id, "Converted URI to URL")

        video_id = extract_video_id(value)
        if video_id:
            canonical = self.build_url(video_id)
            if value == canonical:
                return self.link(value, video_id, "Already valid URL")
            return self.link(canonical, video_id, "Extracted video ID from URL")

        if _ID_PATTERN.match(value):
            return self.link(self.build_url(value), value, "Built URL from video ID")

        return None


@PlatformRegistry.register
class YouTubePlatform(_YouTubeFamily):
    name = "youtube"
    label = "YouTube"
    raw_id_key = "youtube_video_id"
    acr_keys = ("youtube",)
    watch_base = YOUTUBE_WATCH_BASE


@PlatformRegistry.register
class YouTubeMusicPlatform(_YouTubeFamily):
    name = "youtube_music"
    label = "YouTube Music"
    raw_id_key = "youtube_music_video_id"
    acr_keys = ("youtubemusic", "youtube_music")
    watch_base = YOUTUBE_MUSIC_WATCH_BASE
