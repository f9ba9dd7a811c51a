"""ACRCloud External Metadata client.

Looks a recording up by ISRC, by a source URL on any supported platform or by a
free-text query and returns the platform links ACRCloud knows for it. The client
never raises: every outcome is an explicit ``AcrSuccess`` or ``AcrFailure``
carrying a token-free debug record of what was requested.

Requires a Bearer token (ACRCLOUD_BEARER_TOKEN). ACRCloud accepts at most five
platforms per request.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp
from aiolimiter import AsyncLimiter
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .helperClasses import AcrCloudConfig

DEFAULT_PLATFORMS = "spotify,applemusic,youtube,amazonmusic,tidal"
MAX_PLATFORMS_PER_REQUEST = 5
TRACKS_ENDPOINT = "/api/external-metadata/tracks"


class AcrCloudRetryableError(Exception):
    """Rate limit or server error from ACRCloud, worth another attempt."""

    def __init__(self, status: int, data: Any = None):
        super().__init__(f"ACRCloud API returned {status}")
        self.status = status
        self.data = data


@dataclass
class AcrDebug:
    used_mode: Optional[str] = None  # isrc, source_url or query
    requested: Dict[str, str] = field(default_factory=dict)
    status: int = 0  # 0 for transport or configuration failures
    had_external_metadata: bool = False
    platforms: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AcrSuccess:
    data: Dict[str, Any]
    links_by_platform: Dict[str, List[Dict[str, str]]]
    debug: AcrDebug
    ok: bool = True


@dataclass
class AcrFailure:
    debug: AcrDebug
    data: Any = None
    ok: bool = False


AcrResult = Union[AcrSuccess, AcrFailure]


def bound_platforms(platforms: Optional[str]) -> str:
    """Clean a comma-separated platform list and cap it at five entries."""
    requested = [p.strip() for p in (platforms or "").split(",") if p.strip()]
    if not requested:
        return DEFAULT_PLATFORMS
    if len(requested) > MAX_PLATFORMS_PER_REQUEST:
        logging.warning(
            "ACRCloud accepts at most %d platforms per request, dropping: %s",
            MAX_PLATFORMS_PER_REQUEST,
            ",".join(requested[MAX_PLATFORMS_PER_REQUEST:]),
        )
        requested = requested[:MAX_PLATFORMS_PER_REQUEST]
    return ",".join(requested)


def _build_limiter(max_requests_per_second: float) -> AsyncLimiter:
    rate = max_requests_per_second if max_requests_per_second > 0 else 1.0
    if rate >= 1:
        return AsyncLimiter(rate, 1.0)
    # One request every 1/rate seconds
    return AsyncLimiter(1, 1.0 / rate)


class AcrCloudClient:
    """Async client for the ACRCloud External Metadata API."""

    def __init__(self, config: Optional[AcrCloudConfig] = None):
        self.config = config or AcrCloudConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._limiter = _build_limiter(self.config.max_requests_per_second)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def lookup(
        self,
        isrc: Optional[str] = None,
        source_url: Optional[str] = None,
        query: Optional[str] = None,
        query_format: Optional[str] = None,
        platforms: Optional[str] = None,
    ) -> AcrResult:
        """Query ACRCloud using exactly one mode: isrc > source_url > query."""
        requested = {
            key: value
            for key, value in (
                ("isrc", isrc),
                ("source_url", source_url),
                ("query", query),
                ("format", query_format),
                ("platforms", platforms),
            )
            if value
        }
        debug = AcrDebug(requested=requested)

        base_url = (self.config.base_url or "").strip().rstrip("/")
        if not base_url:
            logging.error("ACRCloud base URL not configured")
            debug.error = "ACRCLOUD_BASE_URL not configured"
            return AcrFailure(debug=debug)
        if not self.config.bearer_token:
            logging.error("Missing ACRCLOUD_BEARER_TOKEN, skipping ACRCloud lookup")
            debug.error = "ACRCLOUD_BEARER_TOKEN not configured"
            return AcrFailure(debug=debug)

        params: Dict[str, str] = {}
        if isrc:
            debug.used_mode = "isrc"
            params["isrc"] = isrc
        elif source_url:
            debug.used_mode = "source_url"
            params["source_url"] = source_url
        elif query:
            debug.used_mode = "query"
            params["query"] = query
            if query_format == "json":
                params["format"] = "json"
        else:
            debug.error = "No valid query parameter provided (need isrc, source_url, or query)"
            return AcrFailure(debug=debug)

        debug.platforms = bound_platforms(platforms or self.config.platforms)
        params["platforms"] = debug.platforms

        logging.info(
            "Calling ACRCloud external metadata (mode=%s, platforms=%s)",
            debug.used_mode,
            debug.platforms,
        )

        try:
            status, data = await self._get_with_retries(f"{base_url}{TRACKS_ENDPOINT}", params)
        except AcrCloudRetryableError as e:
            logging.error("ACRCloud API error after retries: %s", e.status)
            debug.status = e.status
            debug.error = str(e)
            return AcrFailure(debug=debug, data=e.data)
        except asyncio.TimeoutError:
            logging.warning("ACRCloud request timed out (mode=%s)", debug.used_mode)
            debug.error = "ACRCloud request timed out"
            return AcrFailure(debug=debug)
        except aiohttp.ClientError as e:
            logging.error("ACRCloud request failed: %s", e)
            debug.error = str(e) or "Network error"
            return AcrFailure(debug=debug)

        debug.status = status
        if status < 200 or status >= 300:
            logging.error("ACRCloud API error: %s", status)
            debug.error = f"ACRCloud API returned {status}"
            return AcrFailure(debug=debug, data=data)
        if not isinstance(data, dict):
            logging.error("Malformed ACRCloud response body (status %s)", status)
            debug.error = "Malformed ACRCloud response body"
            return AcrFailure(debug=debug, data=data)

        first = extract_first_track(data)
        external_metadata = first.get("external_metadata") if first else None
        debug.had_external_metadata = bool(external_metadata)

        results = data.get("data")
        logging.info(
            "ACRCloud success (status=%s, results=%d, external_metadata=%s)",
            status,
            len(results) if isinstance(results, list) else 0,
            sorted(external_metadata) if isinstance(external_metadata, dict) else [],
        )

        return AcrSuccess(
            data=data,
            links_by_platform=_links_by_platform(external_metadata),
            debug=debug,
        )

    async def _get_with_retries(self, url: str, params: Dict[str, str]) -> Tuple[int, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(self.config.max_retries, 0) + 1),
            wait=wait_exponential(multiplier=self.config.retry_backoff_seconds, max=30),
            retry=retry_if_exception_type(
                (AcrCloudRetryableError, aiohttp.ClientError, asyncio.TimeoutError)
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get_once(url, params)
        raise AcrCloudRetryableError(0)  # pragma: no cover

    async def _get_once(self, url: str, params: Dict[str, str]) -> Tuple[int, Any]:
        headers = {
            "Authorization": f"Bearer {self.config.bearer_token}",
            "Accept": "application/json",
        }
        async with self._limiter:
            session = await self._get_session()
            async with session.get(url, params=params, headers=headers) as response:
                status = response.status
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None
                if status == 429 or status >= 500:
                    logging.warning("ACRCloud returned %s, will retry if attempts remain", status)
                    raise AcrCloudRetryableError(status, data)
                return status, data


def _links_by_platform(external_metadata: Any) -> Dict[str, List[Dict[str, str]]]:
    links: Dict[str, List[Dict[str, str]]] = {}
    if not isinstance(external_metadata, dict):
        return links
    for platform, items in external_metadata.items():
        if isinstance(items, dict):
            items = [items]
        if not isinstance(items, list):
            continue
        entries = []
        for item in items:
            if not isinstance(item, dict):
                continue
            track = item.get("track") if isinstance(item.get("track"), dict) else {}
            entries.append({
                "url": str(item.get("link") or item.get("url") or track.get("link") or ""),
                "id": str(item.get("id") or track.get("id") or ""),
            })
        links[platform] = entries
    return links


def extract_first_track(data: Any) -> Optional[Dict[str, Any]]:
    """Return the first result object of a response, if any."""
    if not isinstance(data, dict):
        return None
    results = data.get("data")
    if isinstance(results, list) and results and isinstance(results[0], dict):
        return results[0]
    return None


def extract_isrc(data: Any) -> Optional[str]:
    track = extract_first_track(data)
    if track is None:
        return None
    external_ids = track.get("external_ids")
    if isinstance(external_ids, dict) and external_ids.get("isrc"):
        return str(external_ids["isrc"])
    return str(track["isrc"]) if track.get("isrc") else None


def extract_metadata(data: Any) -> Dict[str, Optional[str]]:
    """Flatten title, first artist, album and ISRC out of a response."""
    track = extract_first_track(data)
    if track is None:
        return {"title": None, "artist": None, "album": None, "isrc": None}

    artist = None
    artists = track.get("artists")
    if isinstance(artists, list) and artists:
        first = artists[0]
        if isinstance(first, dict):
            artist = first.get("name") or None
        elif isinstance(first, str):
            artist = first or None

    album = track.get("album")
    return {
        "title": track.get("name") or track.get("title") or None,
        "artist": artist,
        "album": album.get("name") or None if isinstance(album, dict) else None,
        "isrc": extract_isrc(data),
    }
