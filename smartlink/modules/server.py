"""HTTP endpoint for the smart link resolver.

Routes:
- POST /api/smartlinks/resolve   resolve a track (snake_case or camelCase body)
- OPTIONS /api/smartlinks/resolve CORS preflight
- GET /healthz                   liveness check

Resolution failures are reported in a 200 body (``success: false`` with
``resolver_path: "none"``), never as a 5xx. Only malformed input is rejected
with a 400 and only unexpected exceptions produce a 500.
"""
import logging
from typing import Any, Dict, List, Optional

from aiohttp import web
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .acrcloud import AcrCloudClient
from .helperClasses import ResolutionRequest, ResolverConfig
from .orchestrator import ResolverOrchestrator
from .store import ResolutionStore

RESOLVE_PATH = "/api/smartlinks/resolve"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

MISSING_IDENTIFIER_ERROR = (
    "Provide at least one of: audio_url, audio_file_path, isrc, acrid, "
    "a platform URL, or hint_title with hint_artist"
)

ORCHESTRATOR_KEY = web.AppKey("orchestrator", ResolverOrchestrator)
ACR_CLIENT_KEY = web.AppKey("acr_client", AcrCloudClient)
STORE_KEY = web.AppKey("store", ResolutionStore)


class ResolveRequestBody(BaseModel):
    """Request body. Field names are accepted in snake_case and camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    audio_url: Optional[str] = None
    audio_file_path: Optional[str] = None
    isrc: Optional[str] = None
    acrid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("acrid", "fingerprint_id", "fingerprintId"),
    )

    spotify_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "spotify_url", "spotifyUrl", "spotify_track_id", "spotifyTrackId"
        ),
    )
    apple_music_url: Optional[str] = None
    youtube_url: Optional[str] = None
    youtube_music_url: Optional[str] = None
    tidal_url: Optional[str] = None
    deezer_url: Optional[str] = None
    soundcloud_url: Optional[str] = None
    amazon_url: Optional[str] = None

    hint_title: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("hint_title", "hintTitle", "title")
    )
    hint_artist: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("hint_artist", "hintArtist", "artist")
    )
    hint_album: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("hint_album", "hintAlbum", "album")
    )

    smart_link_id: Optional[str] = None
    force_refresh: bool = False

    def to_request(self) -> ResolutionRequest:
        return ResolutionRequest(**self.model_dump())


def _json_error(status: int, error: str, details: Optional[List[Dict[str, Any]]] = None) -> web.Response:
    body: Dict[str, Any] = {"success": False, "error": error}
    if details:
        body["details"] = details
    return web.json_response(body, status=status, headers=CORS_HEADERS)


def _validation_details(error: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in item["loc"]), "message": item["msg"]}
        for item in error.errors()
    ]


async def handle_resolve(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except ValueError:
        return _json_error(400, "Request body must be valid JSON")
    if not isinstance(payload, dict):
        return _json_error(400, "Request body must be a JSON object")

    try:
        body = ResolveRequestBody.model_validate(payload)
    except ValidationError as e:
        logging.info("Rejected resolve request: %d validation error(s)", e.error_count())
        return _json_error(400, "Invalid request body", _validation_details(e))

    resolution_request = body.to_request()
    if not resolution_request.has_identifier():
        return _json_error(400, MISSING_IDENTIFIER_ERROR)

    orchestrator = request.app[ORCHESTRATOR_KEY]
    try:
        result = await orchestrator.resolve(resolution_request)
    except Exception:
        logging.exception("Unexpected error while resolving track")
        return _json_error(500, "Internal server error")

    return web.json_response(result.to_dict(), headers=CORS_HEADERS)


async def handle_preflight(request: web.Request) -> web.Response:
    return web.Response(status=200, text="", headers=CORS_HEADERS)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def _initialize_store(app: web.Application) -> None:
    await app[STORE_KEY].initialize()


async def _close_acr_client(app: web.Application) -> None:
    await app[ACR_CLIENT_KEY].close()


def create_app(
    config: Optional[ResolverConfig] = None,
    orchestrator: Optional[ResolverOrchestrator] = None,
) -> web.Application:
    """Build the aiohttp application.

    When no orchestrator is given one is wired from the config: an ACRCloud
    client (closed on cleanup) and a SQLite store (initialized on startup).
    """
    config = config or ResolverConfig()
    app = web.Application()

    if orchestrator is None:
        acr_client = AcrCloudClient(config.acrcloud)
        store = ResolutionStore(config.db_path, config.cache_ttl_days)
        orchestrator = ResolverOrchestrator(acr_client, store, config)
        app[ACR_CLIENT_KEY] = acr_client
        app[STORE_KEY] = store
        app.on_startup.append(_initialize_store)
        app.on_cleanup.append(_close_acr_client)

    app[ORCHESTRATOR_KEY] = orchestrator
    app.router.add_post(RESOLVE_PATH, handle_resolve)
    app.router.add_route("OPTIONS", RESOLVE_PATH, handle_preflight)
    app.router.add_get("/healthz", handle_health)
    return app
