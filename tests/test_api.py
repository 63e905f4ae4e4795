from __future__ import annotations

import importlib
import io
import sys
import zipfile
from pathlib import Path

import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from download.assembler import ClipAssembler
from engine.errors import ItemDownloadError, UpstreamQueryError
from twitch.playback import extract_slug


class _FakeHelix:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail

    def get_clips_page(self, game_id, started_at, ended_at, *, first=100, after=None):
        if self.fail:
            raise UpstreamQueryError(500, f"[{started_at}, {ended_at})")
        return {
            "data": [
                {"id": "low", "language": "fr", "view_count": 3},
                {"id": "high", "language": "fr", "view_count": 40},
                {"id": "other", "language": "en", "view_count": 900},
            ],
            "cursor": None,
        }


class _FakeFetcher:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()

    def fetch(self, clip) -> bytes:
        extract_slug(clip.thumbnail_url)
        if clip.id in self.failing:
            raise ItemDownloadError("media request failed (404)", clip_id=clip.id)
        return clip.id.encode()


class _CopyEngine:
    def remux_to_mpegts(self, source: Path, target: Path) -> Path:
        target.write_bytes(source.read_bytes())
        return target

    def concat(self, manifest: Path, target: Path) -> Path:
        names = [line[len("file '") : -1] for line in manifest.read_text(encoding="utf-8").splitlines()]
        target.write_bytes(b"|".join((manifest.parent / name).read_bytes() for name in names))
        return target


def _clip(clip_id: str, **fields) -> dict:
    payload = {
        "id": clip_id,
        "title": f"Clip {clip_id}",
        "creator_name": "creator",
        "created_at": "2026-02-01T20:15:00Z",
        "duration": 10.0,
        "thumbnail_url": f"https://static-cdn.jtvnw.net/twitch-clips-thumbnails-prod/{clip_id}-slug/uuid/preview-480x272.jpg",
    }
    payload.update(fields)
    return payload


def _build_client(tmp_path: Path, *, helix=None, fetcher=None):
    sys.modules.pop("api.main", None)
    module = importlib.import_module("api.main")
    module.app.router.on_startup.clear()
    module.app.router.on_shutdown.clear()
    fetcher = fetcher or _FakeFetcher()
    module.app.state.helix_client = helix or _FakeHelix()
    module.app.state.media_fetcher = fetcher
    module.app.state.assembler = ClipAssembler(
        fetcher,
        engine=_CopyEngine(),
        work_root=tmp_path,
        validate_output_duration=False,
    )
    return TestClient(module.app), module


def test_clips_returns_ranked_deduplicated_payload(tmp_path: Path) -> None:
    client, _ = _build_client(tmp_path)

    response = client.get("/api/clips", params={"days": 0, "window_minutes": 720})

    assert response.status_code == 200
    body = response.json()
    assert [clip["id"] for clip in body["clips"]] == ["high", "low"]
    assert body["total"] == 2
    assert body["totalViews"] == 43


def test_clips_upstream_failure_returns_500(tmp_path: Path) -> None:
    client, _ = _build_client(tmp_path, helix=_FakeHelix(fail=True))

    response = client.get("/api/clips", params={"days": 0})

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to fetch clips"}


def test_assemble_returns_mp4_attachment(tmp_path: Path) -> None:
    client, _ = _build_client(tmp_path)

    response = client.post("/api/assemble", json={"clips": [_clip("b"), _clip("a")]})

    assert response.status_code == 200
    assert response.headers["content-type"] == "video/mp4"
    assert "clips_assembles_" in response.headers["content-disposition"]
    assert response.content == b"b|a"
    assert list(tmp_path.iterdir()) == []


def test_assemble_empty_selection_returns_400(tmp_path: Path) -> None:
    client, _ = _build_client(tmp_path)

    response = client.post("/api/assemble", json={"clips": []})

    assert response.status_code == 400


def test_assemble_bad_thumbnail_returns_400(tmp_path: Path) -> None:
    client, _ = _build_client(tmp_path)

    response = client.post("/api/assemble", json={"clips": [_clip("a", thumbnail_url="https://example.com/a.jpg")]})

    assert response.status_code == 400
    assert "slug" in response.json()["detail"]


def test_assemble_download_failure_returns_502(tmp_path: Path) -> None:
    client, _ = _build_client(tmp_path, fetcher=_FakeFetcher(failing={"b"}))

    response = client.post("/api/assemble", json={"clips": [_clip("a"), _clip("b")]})

    assert response.status_code == 502
    assert "index=1" in response.json()["detail"]
    assert list(tmp_path.iterdir()) == []


def test_assemble_while_busy_returns_409(tmp_path: Path, make_clip) -> None:
    client, module = _build_client(tmp_path)
    module.app.state.assembler.start([make_clip("held")])

    response = client.post("/api/assemble", json={"clips": [_clip("a")]})

    assert response.status_code == 409


def test_export_returns_zip_and_failed_header(tmp_path: Path) -> None:
    client, _ = _build_client(tmp_path, fetcher=_FakeFetcher(failing={"b"}))

    response = client.post("/api/export", json={"clips": [_clip("a"), _clip("b")]})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert "clips-lol-fr-2.zip" in response.headers["content-disposition"]
    assert response.headers["x-failed-clips"] == "b"
    with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
        assert len(zf.namelist()) == 1


def test_version_endpoint(tmp_path: Path) -> None:
    client, module = _build_client(tmp_path)

    response = client.get("/api/version")

    assert response.status_code == 200
    assert response.json()["app_version"] == module.APP_VERSION


@pytest.mark.parametrize("route", ["/api/assemble", "/api/export"])
def test_clip_without_id_is_rejected(tmp_path: Path, route: str) -> None:
    client, _ = _build_client(tmp_path)

    response = client.post(route, json={"clips": [_clip("")]})

    assert response.status_code == 422
    assert list(tmp_path.iterdir()) == []
