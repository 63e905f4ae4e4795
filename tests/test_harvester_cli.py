from __future__ import annotations

import io
import json
import logging
import zipfile
from pathlib import Path
from types import SimpleNamespace

import pytest
import requests

import harvester
from engine.errors import ItemDownloadError
from twitch.client import TwitchHelixClient


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger("")
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


class _FakeFetcher:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()

    def fetch(self, clip) -> bytes:
        if clip.id in self.failing:
            raise ItemDownloadError("media request failed (404)", clip_id=clip.id)
        return clip.id.encode()


def _write_clips(path: Path, payload) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_clip_list_accepts_list_and_payload(tmp_path: Path) -> None:
    as_list = _write_clips(tmp_path / "list.json", [{"id": "a"}, {"id": "b"}, {"id": "c"}])
    as_payload = _write_clips(tmp_path / "payload.json", {"clips": [{"id": "x", "view_count": 7}], "total": 1})

    assert [clip.id for clip in harvester.load_clip_list(as_list)] == ["a", "b", "c"]
    assert [clip.id for clip in harvester.load_clip_list(as_list, limit=2)] == ["a", "b"]
    assert harvester.load_clip_list(as_payload)[0].view_count == 7


def test_load_clip_list_rejects_other_shapes(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        harvester.load_clip_list(_write_clips(tmp_path / "bad.json", "nope"))


def test_parser_defaults_for_clips_command() -> None:
    args = harvester.build_parser().parse_args(["clips"])

    assert args.command == "clips"
    assert args.game_id == "21779"
    assert args.language == "fr"
    assert args.lenient is False
    assert args.retries == 0


def test_export_command_writes_archive(monkeypatch, tmp_path: Path) -> None:
    clips = _write_clips(tmp_path / "clips.json", {"clips": [{"id": "a", "title": "A"}, {"id": "b", "title": "B"}]})
    output = tmp_path / "out.zip"
    monkeypatch.setattr(harvester, "ClipMediaFetcher", lambda **kwargs: _FakeFetcher(failing={"b"}))

    code = harvester.main(["--log-dir", str(tmp_path / "logs"), "export", str(clips), "--output", str(output)])

    assert code == 0
    with zipfile.ZipFile(io.BytesIO(output.read_bytes())) as zf:
        assert len(zf.namelist()) == 1
    assert (tmp_path / "logs" / "harvester.log").exists()


def test_assemble_command_returns_1_on_download_failure(monkeypatch, tmp_path: Path) -> None:
    clips = _write_clips(tmp_path / "clips.json", [{"id": "a"}])
    output = tmp_path / "out.mp4"
    monkeypatch.setattr(harvester, "ClipMediaFetcher", lambda **kwargs: _FakeFetcher(failing={"a"}))

    code = harvester.main(["--log-dir", str(tmp_path / "logs"), "assemble", str(clips), "--output", str(output)])

    assert code == 1
    assert not output.exists()


def test_clips_command_returns_1_when_twitch_is_unreachable(monkeypatch, tmp_path: Path) -> None:
    class _BrokenSession:
        def get(self, url, params=None, headers=None, timeout=None):
            raise requests.ConnectionError("connection reset")

    monkeypatch.setattr(harvester, "require_credentials", lambda: ("cid", "secret"))
    monkeypatch.setattr(
        "twitch.oauth_client.requests.post",
        lambda *args, **kwargs: SimpleNamespace(
            status_code=200, text="", json=lambda: {"access_token": "tok", "expires_in": 3600}
        ),
    )
    monkeypatch.setattr(
        harvester,
        "TwitchHelixClient",
        lambda tokens, timeout_sec=20: TwitchHelixClient(tokens, timeout_sec=timeout_sec, session=_BrokenSession()),
    )
    output = tmp_path / "clips.json"

    code = harvester.main(
        ["--log-dir", str(tmp_path / "logs"), "clips", "--days", "0", "--window-minutes", "1440", "--output", str(output)]
    )

    assert code == 1
    assert not output.exists()
