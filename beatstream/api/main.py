"""
FastAPI application entrypoint for the BeatStream backend.

Routers:
- /auth (Google login, profile)
- /songs (catalog, presigned stream/upload URLs, admin edits)
- /songs/* ingestion (admin import from YouTube/Spotify)
- /playlists, /artists, /albums
- /health

Every error response has the shape {"error": str, "details": any?}.

CORS is enabled for local development (http://localhost:3000) and can be extended
via environment variables.
"""

from __future__ import annotations

import logging
import os as _os
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from beatstream.api.errors import ApiError, error_body
from beatstream.api.routes_artists import albums_router
from beatstream.api.routes_artists import router as artists_router
from beatstream.api.routes_auth import router as auth_router
from beatstream.api.routes_ingest import router as ingest_router
from beatstream.api.routes_playlists import router as playlists_router
from beatstream.api.routes_songs import router as songs_router

logging.basicConfig(
    level=_os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Auth", "description": "Google sign-in and session tokens."},
    {"name": "Songs", "description": "Catalog, presigned streaming/upload URLs and admin edits."},
    {"name": "Ingestion", "description": "Admin import of tracks from YouTube and Spotify."},
    {"name": "Playlists", "description": "User playlists."},
    {"name": "Artists", "description": "Artists."},
    {"name": "Albums", "description": "Albums."},
    {"name": "Health", "description": "Service health and basic runtime info."},
]

app = FastAPI(
    title="BeatStream Backend API",
    description=(
        "Backend for a music-streaming app.\n\n"
        "Authentication: Bearer session token from POST /auth/login.\n\n"
        "Streaming:\n"
        "- POST /songs/{song_id}/stream-url returns a short-lived presigned URL; "
        "audio is fetched from object storage directly."
    ),
    version="3.0.0",
    openapi_tags=openapi_tags,
)

# CORS: allow React dev server + configurable origin via env.
# Note: credentials=true requires explicit origins (not '*') in browsers, so we include common local dev URLs.
# Add additional origins via:
# - CORS_ALLOW_ORIGINS (our documented var), OR
# - ALLOWED_ORIGINS (platform/env commonly provided), as comma-separated values, OR
# - FRONTEND_URL (single deployed frontend origin).
cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

_allow_origins_raw = _os.getenv("CORS_ALLOW_ORIGINS") or _os.getenv("ALLOWED_ORIGINS", "")
cors_origins.extend(o.strip() for o in _allow_origins_raw.split(",") if o.strip())
if _os.getenv("FRONTEND_URL"):
    cors_origins.append(_os.getenv("FRONTEND_URL").rstrip("/"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("api_error: %s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(StarletteHTTPException)
async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed."
    details = None if isinstance(exc.detail, str) else exc.detail
    return JSONResponse(status_code=exc.status_code, content=error_body(message, details), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request.", details),
    )


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error: %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error."),
    )


app.include_router(auth_router)
# Ingestion first: its static /songs/* paths must match before /songs/{song_id}.
app.include_router(ingest_router)
app.include_router(songs_router)
app.include_router(playlists_router)
app.include_router(artists_router)
app.include_router(albums_router)


@app.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint.",
    tags=["Health"],
)
def health_check():
    """Return basic service health information."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
