"""HTTP API: ranked clip listing, single-file assembly and ZIP export."""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from config.settings import (
    API_HOST,
    API_PORT,
    APP_VERSION,
    DAYS_TO_FETCH,
    GAME_ID,
    GAME_SLUG,
    HTTP_TIMEOUT_SECONDS,
    LANGUAGE,
    LOG_DIR,
    TIMEZONE,
    TOKEN_MARGIN_SECONDS,
    WINDOW_CONCURRENCY,
    WINDOW_MINUTES,
    require_credentials,
)
from download.assembler import ClipAssembler
from download.bundle import export_bundle
from download.fetcher import ClipMediaFetcher
from engine.aggregator import aggregate
from engine.errors import AssemblerBusyError, ClipHarvestError, SlugDerivationError
from engine.logs import configure_logging
from twitch.client import TwitchHelixClient
from twitch.token_cache import AppTokenCache
from twitch.types import ClipRecord

APP_NAME = "Clip Harvester API"

logger = logging.getLogger(__name__)


class ClipModel(BaseModel):
    id: str = Field(min_length=1)
    title: str = ""
    broadcaster_id: str = ""
    broadcaster_name: str = ""
    creator_id: str = ""
    creator_name: str = ""
    language: str = ""
    created_at: str = ""
    duration: float = 0.0
    view_count: int = 0
    thumbnail_url: str = ""
    game_id: str = ""
    url: str = ""
    embed_url: str = ""
    video_id: str = ""
    vod_offset: Optional[int] = None


class ClipSelection(BaseModel):
    clips: list[ClipModel] = Field(default_factory=list)

    def records(self) -> list[ClipRecord]:
        return [ClipRecord.from_api(clip.model_dump()) for clip in self.clips]


app = FastAPI(
    title=APP_NAME,
    description="Aggregates Twitch clips per game and language, and assembles selections into one video.",
)


@app.on_event("startup")
async def startup():
    configure_logging(LOG_DIR, filename="api.log")


def _helix_client() -> TwitchHelixClient:
    client = getattr(app.state, "helix_client", None)
    if client is None:
        client_id, client_secret = require_credentials()
        tokens = AppTokenCache(
            client_id,
            client_secret,
            margin_seconds=TOKEN_MARGIN_SECONDS,
            timeout_sec=HTTP_TIMEOUT_SECONDS,
        )
        client = TwitchHelixClient(tokens, timeout_sec=HTTP_TIMEOUT_SECONDS)
        app.state.helix_client = client
    return client


def _media_fetcher() -> ClipMediaFetcher:
    fetcher = getattr(app.state, "media_fetcher", None)
    if fetcher is None:
        fetcher = ClipMediaFetcher(timeout_sec=HTTP_TIMEOUT_SECONDS)
        app.state.media_fetcher = fetcher
    return fetcher


def _assembler() -> ClipAssembler:
    assembler = getattr(app.state, "assembler", None)
    if assembler is None:
        assembler = ClipAssembler(_media_fetcher())
        app.state.assembler = assembler
    return assembler


def _attachment(filename: str) -> dict[str, str]:
    safe = filename.replace('"', "'")
    return {"Content-Disposition": f'attachment; filename="{safe}"'}


@app.get("/api/clips")
async def api_clips(
    days: int = Query(DAYS_TO_FETCH, ge=0, le=14),
    window_minutes: int = Query(WINDOW_MINUTES, ge=1, le=24 * 60),
    concurrency: int = Query(WINDOW_CONCURRENCY, ge=1, le=50),
):
    try:
        client = _helix_client()
        result = await aggregate(
            client,
            game_id=GAME_ID,
            language=LANGUAGE,
            lookback_days=days,
            window_minutes=window_minutes,
            concurrency=concurrency,
            tz=TIMEZONE,
        )
    except Exception:
        logger.exception("Error fetching clips")
        raise HTTPException(status_code=500, detail="Failed to fetch clips")
    return result.to_payload()


@app.post("/api/assemble")
async def api_assemble(selection: ClipSelection):
    clips = selection.records()
    if not clips:
        raise HTTPException(status_code=400, detail="no clips selected")
    assembler = _assembler()
    try:
        data = await assembler.assemble(clips)
    except AssemblerBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SlugDerivationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ClipHarvestError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    filename = f"clips_assembles_{datetime.now(timezone.utc):%Y-%m-%d}.mp4"
    return Response(content=data, media_type="video/mp4", headers=_attachment(filename))


@app.post("/api/export")
async def api_export(selection: ClipSelection):
    clips = selection.records()
    if not clips:
        raise HTTPException(status_code=400, detail="no clips selected")
    result = await export_bundle(_media_fetcher(), clips)
    headers = _attachment(f"clips-{GAME_SLUG}-{LANGUAGE}-{len(clips)}.zip")
    headers["X-Failed-Clips"] = ",".join(result.failed)
    return Response(content=result.archive, media_type="application/zip", headers=headers)


@app.get("/api/version")
async def api_version():
    return {
        "app_version": APP_VERSION,
        "python_version": sys.version.split()[0],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=API_HOST, port=API_PORT, reload=False)
