#!/usr/bin/env python3
"""
Twitch clip harvester.
- clips:    list every clip of one game in one language over the last few days,
            deduplicated and ranked by views, as JSON.
- assemble: download a clip list, remux and concatenate it into a single MP4.
- export:   download a clip list into a ZIP archive, skipping clips that fail.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from config.settings import (
    DAYS_TO_FETCH,
    DOWNLOAD_BATCH_SIZE,
    GAME_ID,
    HTTP_TIMEOUT_SECONDS,
    LANGUAGE,
    LOG_DIR,
    TIMEZONE,
    TOKEN_MARGIN_SECONDS,
    WINDOW_CONCURRENCY,
    WINDOW_MINUTES,
    require_credentials,
)
from download.assembler import AssemblyProgress, ClipAssembler
from download.bundle import export_bundle
from download.fetcher import ClipMediaFetcher
from engine.aggregator import aggregate_clips
from engine.errors import ClipHarvestError
from engine.logs import configure_logging
from twitch.client import TwitchHelixClient
from twitch.token_cache import AppTokenCache
from twitch.types import ClipRecord


def load_clip_list(path, limit=None):
    """Read clips from a JSON file: either a list or a ``{"clips": [...]}`` payload."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("clips") or []
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a clip list")
    clips = [ClipRecord.from_api(item) for item in data]
    if limit:
        clips = clips[:limit]
    return clips


def _log_progress(progress: AssemblyProgress):
    logging.info("assembly %s %d/%d", progress.phase, progress.current, progress.total)


def cmd_clips(args):
    client_id, client_secret = require_credentials()
    tokens = AppTokenCache(
        client_id,
        client_secret,
        margin_seconds=TOKEN_MARGIN_SECONDS,
        timeout_sec=HTTP_TIMEOUT_SECONDS,
    )
    client = TwitchHelixClient(tokens, timeout_sec=HTTP_TIMEOUT_SECONDS)
    result = aggregate_clips(
        client,
        game_id=args.game_id,
        language=args.language,
        lookback_days=args.days,
        window_minutes=args.window_minutes,
        concurrency=args.concurrency,
        tz=TIMEZONE,
        strict=not args.lenient,
        window_retries=args.retries,
    )
    for failed in result.failed_windows:
        logging.warning("window %s skipped: %s", failed.window, failed.error)
    text = json.dumps(result.to_payload(), ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        logging.info("Wrote %d clips (%d views) to %s", result.total, result.total_views, args.output)
    else:
        sys.stdout.write(text + "\n")
    return 0


def cmd_assemble(args):
    clips = load_clip_list(args.clips, args.limit)
    if not clips:
        logging.error("No clips to assemble in %s", args.clips)
        return 1
    assembler = ClipAssembler(
        ClipMediaFetcher(timeout_sec=HTTP_TIMEOUT_SECONDS),
        batch_size=args.batch_size,
    )
    data = asyncio.run(assembler.assemble(clips, on_progress=_log_progress))
    Path(args.output).write_bytes(data)
    logging.info("Assembled %d clips into %s (%d bytes)", len(clips), args.output, len(data))
    return 0


def cmd_export(args):
    clips = load_clip_list(args.clips, args.limit)
    result = asyncio.run(
        export_bundle(
            ClipMediaFetcher(timeout_sec=HTTP_TIMEOUT_SECONDS),
            clips,
            batch_size=args.batch_size,
            on_progress=lambda done, total: logging.info("export %d/%d", done, total),
        )
    )
    Path(args.output).write_bytes(result.archive)
    if result.failed:
        logging.warning("Skipped %d clips: %s", len(result.failed), ", ".join(result.failed))
    logging.info("Exported %d/%d clips to %s", len(result.included), result.total, args.output)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--log-dir", default=str(LOG_DIR), help="Directory for harvester.log")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    clips = sub.add_parser("clips", help="Aggregate and rank clips")
    clips.add_argument("--game-id", default=GAME_ID)
    clips.add_argument("--language", default=LANGUAGE)
    clips.add_argument("--days", type=int, default=DAYS_TO_FETCH)
    clips.add_argument("--window-minutes", type=int, default=WINDOW_MINUTES)
    clips.add_argument("--concurrency", type=int, default=WINDOW_CONCURRENCY)
    clips.add_argument("--lenient", action="store_true", help="Skip failed windows instead of aborting")
    clips.add_argument("--retries", type=int, default=0, help="Retries per failed window")
    clips.add_argument("--output", help="Write JSON here instead of stdout")
    clips.set_defaults(func=cmd_clips)

    for name, func, help_text in (
        ("assemble", cmd_assemble, "Concatenate clips into one MP4"),
        ("export", cmd_export, "Download clips into a ZIP archive"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("clips", help="JSON file written by the clips command")
        command.add_argument("--output", required=True)
        command.add_argument("--limit", type=int, default=None, help="Only use the first N clips")
        command.add_argument("--batch-size", type=int, default=DOWNLOAD_BATCH_SIZE)
        command.set_defaults(func=func)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)
    try:
        return args.func(args)
    except ClipHarvestError as exc:
        logging.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
