from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# Link-set keys in display order
PLATFORM_KEYS = (
    "spotify",
    "apple_music",
    "youtube",
    "youtube_music",
    "tidal",
    "deezer",
    "soundcloud",
    "amazon",
)

# Canonical URL selection order
CANONICAL_PRIORITY = (
    "spotify",
    "apple_music",
    "youtube_music",
    "youtube",
    "tidal",
    "deezer",
    "amazon",
    "soundcloud",
)

# Confidence thresholds
CONF_STRONG = 0.80
CONF_OK = 0.65
CONF_MIN = 0.50


class ResolverPath(str, Enum):
    """Which resolution tier produced a result."""
    CACHE = "cache"
    ACRCLOUD_STRONG = "acrcloud_strong"
    ACRCLOUD_OK = "acrcloud_ok"
    FALLBACK_ONLY = "fallback_only"
    ACRCLOUD_FAILED_FALLBACK = "acrcloud_failed_fallback"
    NONE = "none"


def empty_link_set() -> Dict[str, Optional[str]]:
    return {key: None for key in PLATFORM_KEYS}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class ResolutionRequest:
    # Audio references
    audio_url: Optional[str] = None
    audio_file_path: Optional[str] = None

    # Track identifiers
    isrc: Optional[str] = None
    acrid: Optional[str] = None  # ACRCloud fingerprint match id

    # Direct platform input (ID, URI or URL)
    spotify_url: Optional[str] = None
    apple_music_url: Optional[str] = None
    youtube_url: Optional[str] = None
    youtube_music_url: Optional[str] = None
    tidal_url: Optional[str] = None
    deezer_url: Optional[str] = None
    soundcloud_url: Optional[str] = None
    amazon_url: Optional[str] = None

    # Free-text hints
    hint_title: Optional[str] = None
    hint_artist: Optional[str] = None
    hint_album: Optional[str] = None

    smart_link_id: Optional[str] = None
    force_refresh: bool = False

    def platform_inputs(self) -> Dict[str, str]:
        """Return the non-empty direct platform inputs keyed by link-set key."""
        inputs = {}
        for key in PLATFORM_KEYS:
            value = _clean(getattr(self, f"{key}_url", None))
            if value:
                inputs[key] = value
        return inputs

    def has_hints(self) -> bool:
        return bool(_clean(self.hint_title) and _clean(self.hint_artist))

    def has_identifier(self) -> bool:
        return bool(
            _clean(self.audio_url)
            or _clean(self.audio_file_path)
            or _clean(self.isrc)
            or _clean(self.acrid)
            or self.platform_inputs()
            or self.has_hints()
        )

    def identity(self) -> Dict[str, Optional[str]]:
        """Strongest cache identity: acrid > isrc > smart_link_id."""
        if _clean(self.acrid):
            return {"acrid": _clean(self.acrid)}
        if _clean(self.isrc):
            return {"isrc": _clean(self.isrc).upper()}
        if _clean(self.smart_link_id):
            return {"smart_link_id": _clean(self.smart_link_id)}
        return {}


@dataclass
class NormalizedLink:
    platform: str
    url: Optional[str]
    track_id: Optional[str]
    note: str
    uri: Optional[str] = None
    recognized: bool = True


@dataclass
class NormalizationResult:
    links: Dict[str, Optional[str]] = field(default_factory=empty_link_set)
    raw_ids: Dict[str, str] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)

    def link_count(self) -> int:
        return sum(1 for url in self.links.values() if url)


@dataclass
class AcrCloudMatch:
    acrid: Optional[str] = None
    score: Optional[float] = None
    title: Optional[str] = None
    artists: List[str] = field(default_factory=list)
    album: Optional[str] = None
    release_date: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


@dataclass
class ResolutionResult:
    success: bool
    resolver_path: ResolverPath

    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    isrc: Optional[str] = None
    duration_ms: Optional[int] = None
    cover_image_url: Optional[str] = None

    canonical_url: Optional[str] = None
    canonical_platform: Optional[str] = None

    platform_links: Dict[str, Optional[str]] = field(default_factory=empty_link_set)
    raw_ids: Dict[str, str] = field(default_factory=dict)
    acrcloud: Optional[AcrCloudMatch] = None

    confidence: float = 0.0
    resolver_sources: List[str] = field(default_factory=list)
    needs_manual_review: bool = True
    track_resolution_id: Optional[str] = None

    error: Optional[str] = None
    notes: Optional[List[str]] = None

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        body = asdict(self)
        body["resolver_path"] = self.resolver_path.value
        if body["acrcloud"] is not None and not include_raw:
            body["acrcloud"].pop("raw", None)
        if body["notes"] is None:
            body.pop("notes")
        return body


@dataclass
class ResolutionRecord:
    id: str
    acrid: Optional[str]
    isrc: Optional[str]
    smart_link_id: Optional[str]
    title: Optional[str]
    artist: Optional[str]
    album: Optional[str]
    duration_ms: Optional[int]
    cover_image_url: Optional[str]
    platform_links: Dict[str, Optional[str]]
    raw_ids: Dict[str, str]
    acrcloud: Optional[Dict[str, Any]]
    confidence: float
    resolver_path: str
    resolver_sources: List[str]
    needs_manual_review: bool
    spotify_track_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def status(self) -> str:
        return "resolved" if self.confidence >= CONF_OK else "needs_review"


@dataclass
class AcrCloudConfig:
    base_url: Optional[str] = "https://eu-api-v2.acrcloud.com"
    bearer_token: Optional[str] = None
    platforms: Optional[str] = None
    request_timeout_seconds: int = 10
    max_retries: int = 2
    retry_backoff_seconds: float = 1.0
    max_requests_per_second: float = 5.0


@dataclass
class ResolverConfig:
    acrcloud: AcrCloudConfig = field(default_factory=AcrCloudConfig)

    db_path: str = "smartlink.db"
    cache_ttl_days: int = 30

    include_debug_notes: bool = False

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # Used by the caller-side client wrapper
    resolver_endpoint_url: str = "http://localhost:8080/api/smartlinks/resolve"
