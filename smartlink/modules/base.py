from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .helperClasses import PLATFORM_KEYS, NormalizedLink


def with_scheme(url: str) -> str:
    if url.lower().startswith(("http://", "https://")):
        return url
    return "https://" + url.lstrip("/")


class PlatformStrategy(ABC):
    """Base class for streaming platform link strategies.

    A strategy knows how to recognize one platform's identifiers (URI schemes,
    web URLs, bare IDs), how to build the canonical track URL and where to look
    for an identifier inside an ACRCloud ``external_metadata`` blob. Adding a
    platform means writing one subclass and registering it.
    """
    name: str  # PlatformLinkSet key
    label: str
    raw_id_key: str
    raw_uri_key: Optional[str] = None

    # Keys of this platform inside ACRCloud external_metadata
    acr_keys: Tuple[str, ...] = ()
    # Keys holding a bare track id inside a metadata object
    id_keys: Tuple[str, ...] = ("id",)
    # Keys holding a URL inside a metadata object
    url_keys: Tuple[str, ...] = ("link", "url")

    def normalize(self, value: Optional[str]) -> NormalizedLink:
        """Normalize an ID, URI or URL. Never raises."""
        trimmed = (value or "").strip()
        if not trimmed:
            return NormalizedLink(
                platform=self.name,
                url=None,
                track_id=None,
                note=f"{self.label}: Empty input",
                recognized=False,
            )
        try:
            parsed = self.parse(trimmed)
        except (ValueError, IndexError) as e:
            logging.debug("%s parser rejected %r: %s", self.label, trimmed, e)
            parsed = None
        if parsed is None:
            return self.kept_as_is(trimmed)
        return parsed

    @abstractmethod
    def parse(self, value: str) -> Optional[NormalizedLink]:
        """Return a normalized link, or None when the format is unknown."""
        raise NotImplementedError

    def build_url(self, track_id: str) -> Optional[str]:
        """Build the canonical URL from a bare id. None when not possible."""
        return None

    def kept_as_is(self, value: str) -> NormalizedLink:
        logging.warning("Unrecognized %s format, kept as-is: %s", self.label, value)
        return NormalizedLink(
            platform=self.name,
            url=value,
            track_id=None,
            note=f"{self.label}: Unrecognized format, kept as-is",
            recognized=False,
        )

    def link(
        self,
        url: Optional[str],
        track_id: Optional[str],
        note: str,
        uri: Optional[str] = None,
    ) -> NormalizedLink:
        return NormalizedLink(
            platform=self.name,
            url=url,
            track_id=track_id,
            note=f"{self.label}: {note}",
            uri=uri,
        )

    # ============================================================
    # ACRCloud external metadata
    # ============================================================

    def from_external_metadata(self, metadata: Any) -> Optional[NormalizedLink]:
        """Extract the first usable identifier for this platform.

        Precedence: nested single object (``track``), then the first element
        of a nested array (``tracks`` or the platform value itself), then a
        flat top-level id or link. When the winning candidate yields only a
        raw id, a later candidate may still contribute the URL.
        """
        if not isinstance(metadata, dict):
            return None

        best: Optional[NormalizedLink] = None
        for value, source in self._metadata_candidates(metadata):
            candidate = self.normalize(value)
            if not candidate.recognized:
                continue
            if best is None:
                best = candidate
                best.note = f"{self.label}: Used {source} from ACRCloud"
                if best.url:
                    return best
            elif candidate.url:
                best.url = candidate.url
                best.note += f", URL from {source}"
                return best
        return best

    def _metadata_candidates(self, metadata: Dict[str, Any]) -> Iterator[Tuple[str, str]]:
        for acr_key in self.acr_keys:
            entry = metadata.get(acr_key)
            if isinstance(entry, dict):
                track = entry.get("track")
                if isinstance(track, dict):
                    yield from self._object_values(track, acr_key, "track object")
                tracks = entry.get("tracks")
                if isinstance(tracks, list) and tracks and isinstance(tracks[0], dict):
                    yield from self._object_values(tracks[0], acr_key, "tracks array")
                yield from self._object_values(entry, acr_key, "direct ID")
            elif isinstance(entry, list) and entry and isinstance(entry[0], dict):
                first = entry[0]
                track = first.get("track")
                if isinstance(track, dict):
                    yield from self._object_values(track, acr_key, "track object")
                yield from self._object_values(first, acr_key, "first array entry")

    def _object_values(
        self, obj: Dict[str, Any], acr_key: str, source: str
    ) -> Iterator[Tuple[str, str]]:
        for key in self.id_keys:
            value = obj.get(key)
            if isinstance(value, (str, int)) and str(value).strip():
                yield str(value), f"{source} ID"
        for key in self.url_keys:
            value = obj.get(key)
            if isinstance(value, str) and value.strip():
                yield value, f"{source} URL"
        external_urls = obj.get("external_urls")
        if isinstance(external_urls, dict):
            value = external_urls.get(acr_key) or external_urls.get(self.name)
            if isinstance(value, str) and value.strip():
                yield value, f"{source} URL"


class PlatformRegistry:
    _strategies: Dict[str, PlatformStrategy] = {}

    @classmethod
    def register(cls, strategy_cls):
        instance = strategy_cls()
        cls._strategies[instance.name] = instance
        return strategy_cls

    @classmethod
    def strategies(cls) -> Iterable[PlatformStrategy]:
        """Registered strategies, link-set order first."""
        ordered: List[PlatformStrategy] = [
            cls._strategies[key] for key in PLATFORM_KEYS if key in cls._strategies
        ]
        ordered.extend(
            strategy for name, strategy in cls._strategies.items()
            if name not in PLATFORM_KEYS
        )
        return ordered

    @classmethod
    def get(cls, name: str) -> Optional[PlatformStrategy]:
        """Get a strategy by link-set key."""
        return cls._strategies.get(name.lower().replace("-", "_"))

    @classmethod
    def names(cls) -> List[str]:
        return [strategy.name for strategy in cls.strategies()]
