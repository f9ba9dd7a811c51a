"""Amazon Music link strategy."""
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .base import PlatformRegistry, PlatformStrategy, with_scheme
from .helperClasses import NormalizedLink


AMAZON_TRACK_BASE = "https://music.amazon.com/tracks"

_ASIN_PATTERN = re.compile(r"^B0[A-Z0-9]{8}$")
_TRACK_PATH_PATTERN = re.compile(r"music\.amazon\.[a-z.]+/tracks/(B0[A-Z0-9]{8})", re.I)


@PlatformRegistry.register
class AmazonMusicPlatform(PlatformStrategy):
    name = "amazon"
    label = "Amazon Music"
    raw_id_key = "amazon_asin"
    acr_keys = ("amazonmusic", "amazon_music", "amazon")

    def build_url(self, track_id: str) -> Optional[str]:
        return f"{AMAZON_TRACK_BASE}/{track_id}"

    def parse(self, value: str) -> Optional[NormalizedLink]:
        if "music.amazon." in value.lower():
            match = _TRACK_PATH_PATTERN.search(value)
            asin = match.group(1) if match else None
            if not asin:
                # Album URLs carry the track as ?trackAsin=
                values = parse_qs(urlparse(with_scheme(value)).query).get("trackAsin")
                if values and _ASIN_PATTERN.match(values[0]):
                    asin = values[0]
            return self.link(with_scheme(value), asin, "Already valid URL")

        if _ASIN_PATTERN.match(value):
            return self.link(self.build_url(value), value, "Built URL from ASIN")

        return None
