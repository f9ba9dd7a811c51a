"""Caller-side wrapper around the resolver endpoint.

Posts snake_case fields to the resolver and hands back the result in camelCase
for UI code. Never raises: transport errors, non-2xx answers and malformed
bodies all come back as a well-formed failed result.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .helperClasses import CONF_MIN, CONF_OK, CONF_STRONG, ResolverConfig, empty_link_set

RESOLVER_PATH_LABELS = {
    "cache": "Cached",
    "acrcloud_strong": "ACRCloud (Strong Match)",
    "acrcloud_ok": "ACRCloud (Good Match)",
    "fallback_only": "Direct Links Only",
    "acrcloud_failed_fallback": "Fallback (ACRCloud Unavailable)",
    "none": "Not Resolved",
}


def _camel(key: str) -> str:
    head, *tail = key.split("_")
    return head + "".join(part.title() for part in tail)


def to_camel_result(body: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a snake_case result body into the camelCase shape.

    Platform link and raw id keys are data, not field names, and keep their
    snake_case spelling.
    """
    result: Dict[str, Any] = {}
    for key, value in body.items():
        if key == "acrcloud" and isinstance(value, dict):
            value = {_camel(k): v for k, v in value.items()}
        result[_camel(key)] = value
    result.setdefault("platformLinks", empty_link_set())
    return result


def failed_result(error: str) -> Dict[str, Any]:
    return {
        "success": False,
        "resolverPath": "none",
        "platformLinks": empty_link_set(),
        "confidence": 0,
        "resolverSources": [],
        "needsManualReview": True,
        "error": error,
    }


def resolver_path_label(path: Optional[str]) -> str:
    return RESOLVER_PATH_LABELS.get(path or "", "Unknown")


def confidence_color(confidence: float) -> str:
    if confidence >= CONF_STRONG:
        return "green"
    if confidence >= CONF_OK:
        return "yellow"
    return "red"


def confidence_label(confidence: float) -> str:
    if confidence >= CONF_STRONG:
        return "High"
    if confidence >= CONF_OK:
        return "Medium"
    if confidence >= CONF_MIN:
        return "Low"
    return "Very Low"


class SmartLinkResolverClient:
    """Async client for the resolver endpoint."""

    def __init__(
        self,
        endpoint_url: str = "http://localhost:8080/api/smartlinks/resolve",
        timeout: int = 30,
    ):
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: ResolverConfig, timeout: int = 30) -> "SmartLinkResolverClient":
        return cls(config.resolver_endpoint_url, timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def resolve(self, **fields: Any) -> Dict[str, Any]:
        """Resolve a track. Accepts the snake_case request fields as keywords."""
        payload = {key: value for key, value in fields.items() if value is not None}
        try:
            session = await self._get_session()
            async with session.post(self.endpoint_url, json=payload) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                if response.status < 200 or response.status >= 300:
                    error = body.get("error") if isinstance(body, dict) else None
                    logging.warning("Resolver returned %s: %s", response.status, error)
                    return failed_result(error or f"Resolver returned {response.status}")
        except asyncio.TimeoutError:
            logging.warning("Resolver request timed out")
            return failed_result("Resolver request timed out")
        except aiohttp.ClientError as e:
            logging.error("Resolver request failed: %s", e)
            return failed_result(str(e) or "Network error")

        if not isinstance(body, dict):
            logging.error("Malformed resolver response body")
            return failed_result("Malformed resolver response")
        return to_camel_result(body)
