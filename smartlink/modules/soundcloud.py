"""SoundCloud link strategy.

SoundCloud track URLs are permalinks (``/<artist>/<track>``) that cannot be
derived from a numeric id, so ``soundcloud:tracks:<id>`` URIs keep the raw id
without a URL.
"""
import re
from typing import Optional

from .base import PlatformRegistry, PlatformStrategy
from .helperClasses import NormalizedLink


_URI_PATTERN = re.compile(r"^soundcloud:tracks?:(\d+)$", re.I)
_URL_PATTERN = re.compile(r"^(?:https?://)?(?:www\.|m\.)?soundcloud\.com/([^?#]+)", re.I)


@PlatformRegistry.register
class SoundCloudPlatform(PlatformStrategy):
    name = "soundcloud"
    label = "SoundCloud"
    raw_id_key = "soundcloud_track_id"
    acr_keys = ("soundcloud",)
    url_keys = ("link", "url", "permalink_url")

    def parse(self, value: str) -> Optional[NormalizedLink]:
        uri = _URI_PATTERN.match(value)
        if uri:
            return self.link(None, uri.group(1), "Track ID only, no permalink URL")

        match = _URL_PATTERN.match(value)
        if match:
            canonical = f"https://soundcloud.com/{match.group(1).rstrip('/')}"
            if value == canonical:
                return self.link(value, None, "Already valid URL")
            return self.link(canonical, None, "Rebuilt canonical permalink")

        return None
