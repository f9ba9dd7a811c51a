"""Resolver pipeline for smart link tracks.

Turns whatever the caller knows about a recording (ISRC, ACRCloud acrid, a
platform link, an audio URL, title/artist hints) into one confidence-scored
set of per-platform links. Tiers are tried in strict order and the first one
that produces a result wins:

1. cache                    stored resolution for the request identity
                            (ignored below 0.50 confidence)
2. acrcloud_strong          ACRCloud match with score >= 0.80
3. acrcloud_ok              ACRCloud match with score in [0.65, 0.80)
4. fallback_only            direct input only (no usable ACRCloud answer)
5. acrcloud_failed_fallback direct input only (ACRCloud call failed)
6. none                     nothing resolved

Every non-cache, non-none outcome is persisted so the next request for the
same recording is served from the cache.
"""
import logging
import re
from dataclasses import asdict
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional, Tuple

from .acrcloud import (
    AcrCloudClient,
    AcrFailure,
    AcrSuccess,
    extract_first_track,
    extract_metadata,
)
from .helperClasses import (
    CANONICAL_PRIORITY,
    CONF_MIN,
    CONF_OK,
    CONF_STRONG,
    PLATFORM_KEYS,
    AcrCloudMatch,
    NormalizationResult,
    ResolutionRecord,
    ResolutionRequest,
    ResolutionResult,
    ResolverConfig,
    ResolverPath,
    empty_link_set,
)
from .normalizer import acr_metadata_keys, normalize_platform_links
from .store import ResolutionStore

HINT_SIMILARITY_THRESHOLD = 0.7

_FEATURING_PATTERN = re.compile(r"\(feat\.|featuring|ft\.|ft\)", re.IGNORECASE)
_PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")


def select_canonical(links: Dict[str, Optional[str]]) -> Tuple[Optional[str], Optional[str]]:
    """Pick (url, platform) by platform priority."""
    for platform in CANONICAL_PRIORITY:
        url = links.get(platform)
        if url:
            return url, platform
    return None, None


def fallback_confidence(link_count: int) -> float:
    """Confidence for direct-input-only results: 0.30 for one link, +0.10 per extra, max 0.60."""
    if link_count <= 0:
        return 0.0
    return round(min(0.30 + 0.10 * (link_count - 1), 0.60), 2)


def _normalize_text(value: str) -> str:
    value = _FEATURING_PATTERN.sub("", value.lower())
    value = _PUNCTUATION_PATTERN.sub("", value)
    return " ".join(value.split())


def similarity(a: str, b: str) -> float:
    a, b = _normalize_text(a), _normalize_text(b)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


def hint_similarity(
    title: Optional[str],
    artist: Optional[str],
    hint_title: Optional[str],
    hint_artist: Optional[str],
) -> float:
    """Weighted title (0.6) / artist (0.4) similarity against caller hints.

    A side without a hint, or without a matched value, counts as a full match.
    """
    title_score = similarity(hint_title, title) if hint_title and title else 1.0
    artist_score = similarity(hint_artist, artist) if hint_artist and artist else 1.0
    return title_score * 0.6 + artist_score * 0.4


def normalized_score(track: Dict[str, Any]) -> float:
    """ACRCloud's 0-100 score as 0-1. A missing score counts as a full match."""
    raw = track.get("score")
    try:
        score = float(raw) if raw not in (None, "") else 100.0
    except (TypeError, ValueError):
        logging.warning("Ignoring non-numeric ACRCloud score: %r", raw)
        score = 100.0
    return max(0.0, min(score, 100.0)) / 100.0


def build_lookup(request: ResolutionRequest) -> Optional[Dict[str, str]]:
    """Choose the ACRCloud query for a request, or None when nothing is queryable."""
    isrc = (request.isrc or "").strip()
    if isrc:
        return {"isrc": isrc.upper()}

    for platform, value in request.platform_inputs().items():
        if value.lower().startswith(("http://", "https://")):
            logging.debug("Using %s link as ACRCloud source_url", platform)
            return {"source_url": value}

    audio_url = (request.audio_url or "").strip()
    if audio_url.lower().startswith(("http://", "https://")):
        return {"source_url": audio_url}

    if request.has_hints():
        return {
            "query": f"{request.hint_artist.strip()} {request.hint_title.strip()}",
            "query_format": "json",
        }
    return None


def _duration_ms(track: Dict[str, Any]) -> Optional[int]:
    value = track.get("duration_ms")
    try:
        return int(value) if value else None
    except (TypeError, ValueError):
        return None


def _cover_image_url(track: Dict[str, Any]) -> Optional[str]:
    album = track.get("album")
    if not isinstance(album, dict):
        return None
    images = album.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict):
        return images[0].get("url") or None
    return album.get("cover") or None


def _acr_match(track: Dict[str, Any], score: float) -> AcrCloudMatch:
    artists = track.get("artists")
    if not isinstance(artists, list):
        artists = []
    artists = [
        artist.get("name") for artist in artists
        if isinstance(artist, dict) and artist.get("name")
    ]
    album = track.get("album")
    return AcrCloudMatch(
        acrid=track.get("acrid"),
        score=score,
        title=track.get("name") or track.get("title"),
        artists=artists,
        album=album.get("name") if isinstance(album, dict) else None,
        release_date=track.get("release_date"),
        raw=track,
    )


def acr_answered_platforms(acr: AcrSuccess) -> List[str]:
    """Link-set keys of the platforms ACRCloud returned at least one entry for."""
    keys = acr_metadata_keys()
    answered = {
        keys.get(platform, platform)
        for platform, entries in acr.links_by_platform.items()
        if entries
    }
    return [key for key in PLATFORM_KEYS if key in answered] + sorted(answered - set(PLATFORM_KEYS))


class ResolverOrchestrator:
    """Runs the resolution tiers for a single request."""

    def __init__(
        self,
        acr_client: AcrCloudClient,
        store: Optional[ResolutionStore],
        config: Optional[ResolverConfig] = None,
    ):
        self.acr_client = acr_client
        self.store = store
        self.config = config or ResolverConfig()

    async def resolve(self, request: ResolutionRequest) -> ResolutionResult:
        direct = normalize_platform_links(request.platform_inputs())
        identity = request.identity()
        if not identity and direct.raw_ids.get("spotify_track_id"):
            identity = {"spotify_track_id": direct.raw_ids["spotify_track_id"]}
        logging.info(
            "Resolving track (identity=%s, force_refresh=%s)",
            ",".join(identity) or "none",
            request.force_refresh,
        )

        if identity and not request.force_refresh:
            cached = await self._read_cache(identity)
            if cached is not None:
                logging.info("Resolution served from cache (%s)", cached.track_resolution_id)
                return cached

        lookup = build_lookup(request)

        if lookup is None:
            logging.info("Nothing queryable for ACRCloud, using direct input only")
            result = self._fallback(request, direct, ResolverPath.FALLBACK_ONLY, [])
            return await self._persist(request, result)

        acr = await self.acr_client.lookup(**lookup)

        if isinstance(acr, AcrFailure):
            logging.warning("ACRCloud lookup failed: %s", acr.debug.error)
            result = self._fallback(
                request,
                direct,
                ResolverPath.ACRCLOUD_FAILED_FALLBACK,
                ["acrcloud_failed"],
                error=acr.debug.error,
            )
            return await self._persist(request, result)

        track = extract_first_track(acr.data)
        if track is None or not track.get("external_metadata"):
            logging.info("ACRCloud returned no usable match")
            result = self._fallback(
                request, direct, ResolverPath.FALLBACK_ONLY, ["acrcloud_no_match"]
            )
            return await self._persist(request, result)

        score = normalized_score(track)
        if score < CONF_OK:
            logging.info("ACRCloud match below threshold (%.2f < %.2f)", score, CONF_OK)
            result = self._fallback(
                request, direct, ResolverPath.FALLBACK_ONLY, ["acrcloud_low_confidence"]
            )
            return await self._persist(request, result)

        result = self._from_acrcloud(request, acr, track, score, direct)
        return await self._persist(request, result)

    # ============================================================
    # Tiers
    # ============================================================

    async def _read_cache(self, identity: Dict[str, Optional[str]]) -> Optional[ResolutionResult]:
        if self.store is None:
            return None
        try:
            record = await self.store.find(identity)
        except Exception as e:
            logging.error("Failed to read resolution cache: %s", e)
            return None
        if record is None:
            return None
        if record.confidence < CONF_MIN:
            logging.info(
                "Ignoring cached resolution %s (confidence %.2f < %.2f)",
                record.id,
                record.confidence,
                CONF_MIN,
            )
            return None

        links = empty_link_set()
        links.update({k: v for k, v in record.platform_links.items() if k in PLATFORM_KEYS})
        canonical_url, canonical_platform = select_canonical(links)

        acrcloud = None
        if record.acrcloud:
            known = set(AcrCloudMatch.__dataclass_fields__)
            acrcloud = AcrCloudMatch(**{k: v for k, v in record.acrcloud.items() if k in known})

        return ResolutionResult(
            success=True,
            resolver_path=ResolverPath.CACHE,
            title=record.title,
            artist=record.artist,
            album=record.album,
            isrc=record.isrc,
            duration_ms=record.duration_ms,
            cover_image_url=record.cover_image_url,
            canonical_url=canonical_url,
            canonical_platform=canonical_platform,
            platform_links=links,
            raw_ids=dict(record.raw_ids),
            acrcloud=acrcloud,
            confidence=record.confidence,
            resolver_sources=["cache", *record.resolver_sources],
            needs_manual_review=record.needs_manual_review,
            track_resolution_id=record.id,
        )

    def _from_acrcloud(
        self,
        request: ResolutionRequest,
        acr: AcrSuccess,
        track: Dict[str, Any],
        score: float,
        direct: NormalizationResult,
    ) -> ResolutionResult:
        merged = normalize_platform_links(request.platform_inputs(), track.get("external_metadata"))
        metadata = extract_metadata(acr.data)
        match = _acr_match(track, score)

        title = metadata["title"] or request.hint_title
        artist = metadata["artist"] or request.hint_artist
        album = metadata["album"] or request.hint_album
        isrc = merged.raw_ids.get("isrc") or metadata["isrc"] or request.isrc

        if score >= CONF_STRONG:
            path = ResolverPath.ACRCLOUD_STRONG
            needs_review = False
            if request.hint_title or request.hint_artist:
                matched = hint_similarity(title, artist, request.hint_title, request.hint_artist)
                if matched < HINT_SIMILARITY_THRESHOLD:
                    logging.warning(
                        "ACRCloud match disagrees with hints (similarity %.2f), flagging for review",
                        matched,
                    )
                    needs_review = True
        else:
            path = ResolverPath.ACRCLOUD_OK
            needs_review = True

        sources = ["acrcloud"]
        if direct.link_count() > 0:
            sources.append("direct_input")

        canonical_url, canonical_platform = select_canonical(merged.links)
        answered = acr_answered_platforms(acr)
        logging.info(
            "ACRCloud resolution %s (confidence %.2f, %d links, answered by %s)",
            path.value,
            score,
            merged.link_count(),
            ", ".join(answered) or "no platform",
        )
        notes = None
        if self.config.include_debug_notes:
            notes = list(merged.notes)
            notes.append(f"ACRCloud returned links for: {', '.join(answered) or 'none'}")

        return ResolutionResult(
            success=True,
            resolver_path=path,
            title=title,
            artist=artist,
            album=album,
            isrc=isrc.upper() if isrc else None,
            duration_ms=_duration_ms(track),
            cover_image_url=_cover_image_url(track),
            canonical_url=canonical_url,
            canonical_platform=canonical_platform,
            platform_links=merged.links,
            raw_ids=merged.raw_ids,
            acrcloud=match,
            confidence=score,
            resolver_sources=sources,
            needs_manual_review=needs_review,
            notes=notes,
        )

    def _fallback(
        self,
        request: ResolutionRequest,
        direct: NormalizationResult,
        path: ResolverPath,
        sources: List[str],
        error: Optional[str] = None,
    ) -> ResolutionResult:
        notes = list(direct.notes) if self.config.include_debug_notes else None
        link_count = direct.link_count()
        if link_count == 0:
            logging.info("No platform links resolved")
            return ResolutionResult(
                success=False,
                resolver_path=ResolverPath.NONE,
                resolver_sources=sources,
                error=error,
                notes=notes,
            )

        canonical_url, canonical_platform = select_canonical(direct.links)
        return ResolutionResult(
            success=True,
            resolver_path=path,
            title=request.hint_title,
            artist=request.hint_artist,
            album=request.hint_album,
            isrc=request.isrc.strip().upper() if request.isrc and request.isrc.strip() else None,
            canonical_url=canonical_url,
            canonical_platform=canonical_platform,
            platform_links=direct.links,
            raw_ids=direct.raw_ids,
            confidence=fallback_confidence(link_count),
            resolver_sources=[*sources, "direct_input"],
            needs_manual_review=True,
            error=error,
            notes=notes,
        )

    # ============================================================
    # Persistence
    # ============================================================

    def _to_record(self, request: ResolutionRequest, result: ResolutionResult) -> ResolutionRecord:
        acrcloud = None
        if result.acrcloud is not None:
            acrcloud = asdict(result.acrcloud)
            acrcloud.pop("raw", None)
        acrid = (result.acrcloud.acrid if result.acrcloud else None) or (request.acrid or "").strip()
        return ResolutionRecord(
            id="",
            acrid=acrid or None,
            isrc=result.isrc,
            smart_link_id=(request.smart_link_id or "").strip() or None,
            spotify_track_id=result.raw_ids.get("spotify_track_id"),
            title=result.title,
            artist=result.artist,
            album=result.album,
            duration_ms=result.duration_ms,
            cover_image_url=result.cover_image_url,
            platform_links=result.platform_links,
            raw_ids=result.raw_ids,
            acrcloud=acrcloud,
            confidence=result.confidence,
            resolver_path=result.resolver_path.value,
            resolver_sources=result.resolver_sources,
            needs_manual_review=result.needs_manual_review,
        )

    async def _persist(self, request: ResolutionRequest, result: ResolutionResult) -> ResolutionResult:
        if self.store is None or result.resolver_path in (ResolverPath.CACHE, ResolverPath.NONE):
            return result

        record = self._to_record(request, result)
        try:
            record_id = await self.store.upsert(record)
            if record_id is None:
                return result
            result.track_resolution_id = record_id
            if record.smart_link_id:
                await self.store.attach_to_smart_link(record.smart_link_id, record)
        except Exception as e:
            logging.error("Failed to persist resolution (%s): %s", result.resolver_path.value, e)
        return result
