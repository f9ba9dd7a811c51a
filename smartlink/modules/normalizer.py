"""
Platform Link Normalizer

Converts any mix of platform IDs, URIs and URLs (plus an optional ACRCloud
``external_metadata`` blob) into canonical per-platform URLs and the raw ids
extracted along the way. Everything here is pure and never raises: an
unrecognized value is passed through unchanged with a note, which is more
useful to a human reviewer than an exception.

Precedence per platform:
1. Direct input supplied by the caller
2. ACRCloud metadata (only when the direct input produced no URL)
"""

import logging
from typing import Any, Dict, Mapping, Optional

# Importing the strategy modules registers them
from . import amazon, apple_music, deezer, soundcloud, spotify, tidal, youtube  # noqa: F401
from .base import PlatformRegistry, PlatformStrategy
from .helperClasses import NormalizationResult, NormalizedLink


def normalize_platform_links(
    inputs: Optional[Mapping[str, Optional[str]]] = None,
    external_metadata: Optional[Mapping[str, Any]] = None,
) -> NormalizationResult:
    """Normalize direct platform input and ACRCloud metadata into one link set.

    Args:
        inputs: Direct input keyed by platform (``spotify``, ``apple_music``, ...)
        external_metadata: ACRCloud ``external_metadata`` object, if any

    Returns:
        NormalizationResult with the full PlatformLinkSet, raw ids and notes
    """
    inputs = inputs or {}
    result = NormalizationResult()

    for strategy in PlatformRegistry.strategies():
        direct_value = inputs.get(strategy.name)
        direct: Optional[NormalizedLink] = None

        if direct_value and str(direct_value).strip():
            direct = strategy.normalize(str(direct_value))
            _apply(result, strategy, direct)

        if not isinstance(external_metadata, Mapping):
            continue
        if direct is not None and direct.url:
            if strategy.from_external_metadata(dict(external_metadata)):
                result.notes.append(f"{strategy.label}: Kept direct input over ACRCloud value")
            continue

        from_metadata = strategy.from_external_metadata(dict(external_metadata))
        if from_metadata is not None:
            _apply(result, strategy, from_metadata)

    if isinstance(external_metadata, Mapping):
        # Copied through unvalidated
        for key in ("isrc", "upc"):
            value = external_metadata.get(key)
            if isinstance(value, str) and value.strip():
                result.raw_ids[key] = value.strip()

    return result


def _apply(result: NormalizationResult, strategy: PlatformStrategy, link: NormalizedLink) -> None:
    """Merge one normalized link without overwriting values already present."""
    if link.url and not result.links.get(strategy.name):
        result.links[strategy.name] = link.url
    if link.track_id and strategy.raw_id_key not in result.raw_ids:
        result.raw_ids[strategy.raw_id_key] = link.track_id
    if link.uri and strategy.raw_uri_key and strategy.raw_uri_key not in result.raw_ids:
        result.raw_ids[strategy.raw_uri_key] = link.uri
    result.notes.append(link.note)


def normalize_single(platform: str, value: Optional[str]) -> NormalizedLink:
    """Normalize a single value for one platform."""
    strategy = PlatformRegistry.get(platform)
    trimmed = (value or "").strip()
    if strategy is None:
        logging.warning("No link strategy registered for platform %s", platform)
        return NormalizedLink(
            platform=platform,
            url=trimmed or None,
            track_id=None,
            note=f"{platform}: Unknown platform, kept as-is",
            recognized=False,
        )
    return strategy.normalize(trimmed)


def normalize_user_input(platform: str, value: Optional[str]) -> str:
    """Auto-convert a value typed into an editing form.

    Returns the canonical URL when one can be built, otherwise the trimmed
    input so the field round-trips unchanged.
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return ""
    return normalize_single(platform, trimmed).url or trimmed


def acr_metadata_keys() -> Dict[str, str]:
    """Map every ACRCloud metadata key to its link-set key."""
    keys: Dict[str, str] = {}
    for strategy in PlatformRegistry.strategies():
        for acr_key in strategy.acr_keys:
            keys.setdefault(acr_key, strategy.name)
    return keys
