"""Deezer link strategy."""
import re
from typing import Optional

from .base import PlatformRegistry, PlatformStrategy
from .helperClasses import NormalizedLink


DEEZER_TRACK_BASE = "https://www.deezer.com/track"

_CANONICAL_PATTERN = re.compile(r"^https://www\.deezer\.com/track/(\d+)$")
_URL_PATTERN = re.compile(r"deezer\.com/(?:[a-z]{2}/)?track/(\d+)", re.I)
_URI_PATTERN = re.compile(r"^deezer://(?:www\.deezer\.com/)?track/(\d+)$", re.I)
_ID_PATTERN = re.compile(r"^\d+$")


@PlatformRegistry.register
class DeezerPlatform(PlatformStrategy):
    name = "deezer"
    label = "Deezer"
    raw_id_key = "deezer_track_id"
    acr_keys = ("deezer",)

    def build_url(self, track_id: str) -> Optional[str]:
        return f"{DEEZER_TRACK_BASE}/{track_id}"

    def parse(self, value: str) -> Optional[NormalizedLink]:
        match = _URI_PATTERN.match(value)
        if match:
            track_id = match.group(1)
            return self.link(self.build_url(track_id), track_id, "Converted deep link to URL")

        canonical = _CANONICAL_PATTERN.match(value)
        if canonical:
            return self.link(value, canonical.group(1), "Already valid URL")

        # Localized paths (/fr/track/...) and share links are rebuilt
        match = _URL_PATTERN.search(value)
        if match:
            track_id = match.group(1)
            return self.link(self.build_url(track_id), track_id, "Rebuilt canonical URL")

        if _ID_PATTERN.match(value):
            return self.link(self.build_url(value), value, "Built URL from track ID")

        return None
