"""Tidal link strategy.

Accepts ``tidal://track/<id>`` deep links, ``tidal.com`` / ``listen.tidal.com``
URLs (``/browse/track/<id>`` or ``/track/<id>``) and bare numeric ids.
"""
import re
from typing import Optional

from .base import PlatformRegistry, PlatformStrategy, with_scheme
from .helperClasses import NormalizedLink


TIDAL_TRACK_BASE = "https://listen.tidal.com/track"
TIDAL_URI_PREFIX = "tidal://track/"

_URL_PATTERN = re.compile(r"tidal\.com/(?:browse/)?track/(\d+)", re.I)
_ID_PATTERN = re.compile(r"^\d+$")


@PlatformRegistry.register
class TidalPlatform(PlatformStrategy):
    name = "tidal"
    label = "Tidal"
    raw_id_key = "tidal_track_id"
    acr_keys = ("tidal",)

    def build_url(self, track_id: str) -> Optional[str]:
        return f"{TIDAL_TRACK_BASE}/{track_id}"

    def parse(self, value: str) -> Optional[NormalizedLink]:
        if value.lower().startswith(TIDAL_URI_PREFIX):
            track_id = value[len(TIDAL_URI_PREFIX):].split("?")[0].strip("/")
            if not _ID_PATTERN.match(track_id):
                return None
            return self.link(self.build_url(track_id), track_id, "Converted deep link to URL")

        match = _URL_PATTERN.search(value)
        if match:
            return self.link(with_scheme(value), match.group(1), "Already valid URL")

        if _ID_PATTERN.match(value):
            return self.link(self.build_url(value), value, "Built URL from track ID")

        return None
