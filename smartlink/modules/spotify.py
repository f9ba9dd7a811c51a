"""Spotify link strategy.

Handles ``spotify:track:<id>`` URIs, ``open.spotify.com/track/<id>`` URLs
(including ``intl-xx`` localized paths) and bare 22-character track IDs.
"""
import re
from typing import Optional

from .base import PlatformRegistry, PlatformStrategy, with_scheme
from .helperClasses import NormalizedLink


SPOTIFY_TRACK_BASE = "https://open.spotify.com/track"
SPOTIFY_URI_PREFIX = "spotify:track:"

_URL_PATTERN = re.compile(r"open\.spotify\.com/(?:intl-[a-z-]+/)?track/([A-Za-z0-9]+)", re.I)
_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{22}$")


@PlatformRegistry.register
class SpotifyPlatform(PlatformStrategy):
    name = "spotify"
    label = "Spotify"
    raw_id_key = "spotify_track_id"
    raw_uri_key = "spotify_uri"
    acr_keys = ("spotify",)

    def build_url(self, track_id: str) -> Optional[str]:
        return f"{SPOTIFY_TRACK_BASE}/{track_id}"

    def parse(self, value: str) -> Optional[NormalizedLink]:
        if value.startswith(SPOTIFY_URI_PREFIX):
            track_id = value[len(SPOTIFY_URI_PREFIX):].split("?")[0]
            if not re.fullmatch(r"[A-Za-z0-9]+", track_id):
                return None
            return self.link(
                self.build_url(track_id),
                track_id,
                "Converted URI to URL",
                uri=f"{SPOTIFY_URI_PREFIX}{track_id}",
            )

        match = _URL_PATTERN.search(value)
        if match:
            track_id = match.group(1)
            return self.link(
                with_scheme(value),
                track_id,
                "Already valid URL",
                uri=f"{SPOTIFY_URI_PREFIX}{track_id}",
            )

        if _ID_PATTERN.match(value):
            return self.link(
                self.build_url(value),
                value,
                "Built URL from track ID",
                uri=f"{SPOTIFY_URI_PREFIX}{value}",
            )

        return None
