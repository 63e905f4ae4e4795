"""Download, remux and concatenate an ordered clip selection into one MP4.

Phases: ``downloading`` (fail-fast parallel batches) -> ``repackaging`` (one
MP4 -> MPEG-TS stream copy per clip) -> ``concatenating`` (concat demuxer,
stream copy, faststart) -> ``complete``. Any phase may end in ``failed``.
Every artifact a job creates lives in that job's own directory and is deleted
when the job ends, whatever the outcome.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
import threading
import time
import uuid
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Protocol, Sequence

from config.settings import (
    ASSEMBLY_DURATION_TOLERANCE_SECONDS,
    ASSEMBLY_VALIDATE_DURATION,
    DOWNLOAD_BATCH_SIZE,
    WORK_DIR,
)
from download.fetcher import fetch_or_raise
from engine.errors import AssemblerBusyError, CleanupWarning
from engine.events import log_event
from media.ffmpeg import FfmpegEngine, build_manifest
from media.validation import expected_assembly_seconds, validate_duration
from twitch.types import ClipRecord

logger = logging.getLogger(__name__)

PHASE_IDLE = "idle"
PHASE_DOWNLOADING = "downloading"
PHASE_REPACKAGING = "repackaging"
PHASE_CONCATENATING = "concatenating"
PHASE_COMPLETE = "complete"
PHASE_FAILED = "failed"
TERMINAL_PHASES = {PHASE_COMPLETE, PHASE_FAILED}

MANIFEST_NAME = "filelist.txt"
OUTPUT_NAME = "output.mp4"


class _Fetcher(Protocol):
    def fetch(self, clip: ClipRecord) -> bytes:
        """Return the MP4 bytes of one clip."""


class _MediaEngine(Protocol):
    def remux_to_mpegts(self, source: Path, target: Path) -> Path:
        """Stream-copy ``source`` into an MPEG-TS file at ``target``."""

    def concat(self, manifest: Path, target: Path) -> Path:
        """Join the manifest's segments, in order, into ``target``."""


@dataclass(frozen=True)
class AssemblyProgress:
    phase: str
    current: int
    total: int

    def to_dict(self) -> dict[str, int | str]:
        return {"phase": self.phase, "current": self.current, "total": self.total}


ProgressCallback = Callable[[AssemblyProgress], None]


@dataclass
class AssemblyJob:
    """Caller-owned handle for one assembly run."""

    job_id: str
    clips: tuple[ClipRecord, ...]
    work_dir: Path
    phase: str = PHASE_IDLE
    progress: AssemblyProgress | None = None
    artifacts: list[Path] = field(default_factory=list)
    cleanup_failures: list[Path] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def total(self) -> int:
        return len(self.clips)

    @property
    def finished(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def track(self, path: Path) -> Path:
        self.artifacts.append(path)
        return path


async def _settle(func, *args):
    """Run a blocking engine call in a thread.

    On cancellation the call is waited for before re-raising, so the file it
    writes exists before cleanup runs rather than appearing after it.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait({future})
        if not future.cancelled():
            future.exception()
        raise


def input_name(index: int) -> str:
    return f"input_{index:04d}.mp4"


def segment_name(index: int) -> str:
    return f"seg_{index:04d}.ts"


class ClipAssembler:
    """Runs at most one assembly job at a time; a second ``start`` is rejected."""

    def __init__(
        self,
        fetcher: _Fetcher,
        *,
        engine: _MediaEngine | None = None,
        batch_size: int = DOWNLOAD_BATCH_SIZE,
        work_root: Path | None = None,
        validate_output_duration: bool = ASSEMBLY_VALIDATE_DURATION,
        duration_tolerance_seconds: float = ASSEMBLY_DURATION_TOLERANCE_SECONDS,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.fetcher = fetcher
        self.engine = engine or FfmpegEngine()
        self.batch_size = batch_size
        self.work_root = Path(work_root) if work_root else WORK_DIR
        self.validate_output_duration = validate_output_duration
        self.duration_tolerance_seconds = duration_tolerance_seconds
        self._lock = threading.Lock()
        self._active: AssemblyJob | None = None

    @property
    def busy(self) -> bool:
        return self._active is not None

    def start(self, clips: Sequence[ClipRecord]) -> AssemblyJob:
        """Reserve this assembler for ``clips`` and return the job handle."""
        if not clips:
            raise ValueError("at least one clip is required")
        with self._lock:
            if self._active is not None:
                raise AssemblerBusyError(f"assembly job {self._active.job_id} is still running")
            job_id = uuid.uuid4().hex[:12]
            self.work_root.mkdir(parents=True, exist_ok=True)
            work_dir = Path(tempfile.mkdtemp(prefix=f"assembly-{job_id}-", dir=str(self.work_root)))
            job = AssemblyJob(job_id=job_id, clips=tuple(clips), work_dir=work_dir)
            self._active = job
        return job

    async def assemble(self, clips: Sequence[ClipRecord], on_progress: ProgressCallback | None = None) -> bytes:
        job = self.start(clips)
        return await self.run(job, on_progress=on_progress)

    async def run(self, job: AssemblyJob, on_progress: ProgressCallback | None = None) -> bytes:
        """Drive ``job`` through every phase and return the assembled MP4 bytes."""
        if job is not self._active:
            raise AssemblerBusyError(f"assembly job {job.job_id} is not the active job")

        started = time.monotonic()
        log_event(logging.INFO, "assembly_started", job_id=job.job_id, clips=job.total)
        try:
            inputs = await self._download(job, on_progress)
            segments = await self._repackage(job, inputs, on_progress)
            output = await self._concatenate(job, segments, on_progress)
            data = output.read_bytes()
            if self.validate_output_duration:
                await self._check_duration(job, output)
            self._advance(job, PHASE_COMPLETE, 1, 1, on_progress)
            log_event(
                logging.INFO,
                "assembly_finished",
                job_id=job.job_id,
                clips=job.total,
                bytes=len(data),
                elapsed_sec=round(time.monotonic() - started, 2),
            )
            return data
        except BaseException as exc:
            job.error = exc
            current = job.progress.current if job.progress else 0
            total = job.progress.total if job.progress else job.total
            self._advance(job, PHASE_FAILED, current, total, on_progress)
            log_event(logging.ERROR, "assembly_failed", job_id=job.job_id, error=str(exc))
            raise
        finally:
            self._cleanup(job)
            with self._lock:
                if self._active is job:
                    self._active = None

    def _advance(
        self,
        job: AssemblyJob,
        phase: str,
        current: int,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> None:
        job.phase = phase
        job.progress = AssemblyProgress(phase=phase, current=current, total=total)
        if on_progress is None:
            return
        try:
            on_progress(job.progress)
        except Exception:
            logger.exception("progress callback failed job=%s phase=%s", job.job_id, phase)

    async def _download(self, job: AssemblyJob, on_progress: ProgressCallback | None) -> list[Path]:
        total = job.total
        self._advance(job, PHASE_DOWNLOADING, 0, total, on_progress)
        inputs: list[Path] = []
        for offset in range(0, total, self.batch_size):
            batch = job.clips[offset : offset + self.batch_size]
            payloads = await asyncio.gather(
                *(
                    asyncio.to_thread(fetch_or_raise, self.fetcher, clip, offset + position)
                    for position, clip in enumerate(batch)
                ),
                return_exceptions=True,
            )
            for payload in payloads:
                if isinstance(payload, BaseException):
                    raise payload
            for position, payload in enumerate(payloads):
                path = job.track(job.work_dir / input_name(offset + position))
                path.write_bytes(payload)
                inputs.append(path)
            self._advance(job, PHASE_DOWNLOADING, min(offset + self.batch_size, total), total, on_progress)
        return inputs

    async def _repackage(
        self,
        job: AssemblyJob,
        inputs: Sequence[Path],
        on_progress: ProgressCallback | None,
    ) -> list[Path]:
        total = len(inputs)
        self._advance(job, PHASE_REPACKAGING, 0, total, on_progress)
        segments: list[Path] = []
        for index, source in enumerate(inputs):
            target = job.track(job.work_dir / segment_name(index))
            await _settle(self.engine.remux_to_mpegts, source, target)
            segments.append(target)
            self._advance(job, PHASE_REPACKAGING, index + 1, total, on_progress)
        return segments

    async def _concatenate(
        self,
        job: AssemblyJob,
        segments: Sequence[Path],
        on_progress: ProgressCallback | None,
    ) -> Path:
        self._advance(job, PHASE_CONCATENATING, 0, 1, on_progress)
        manifest = job.track(job.work_dir / MANIFEST_NAME)
        manifest.write_text(build_manifest([segment.name for segment in segments]), encoding="utf-8")
        output = job.track(job.work_dir / OUTPUT_NAME)
        await _settle(self.engine.concat, manifest, output)
        self._advance(job, PHASE_CONCATENATING, 1, 1, on_progress)
        return output

    async def _check_duration(self, job: AssemblyJob, output: Path) -> None:
        expected = expected_assembly_seconds(clip.duration for clip in job.clips)
        if expected <= 0:
            return
        await asyncio.to_thread(
            validate_duration,
            str(output),
            expected,
            self.duration_tolerance_seconds,
        )

    def _cleanup(self, job: AssemblyJob) -> None:
        for path in job.artifacts:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                job.cleanup_failures.append(path)
                logger.warning("cleanup failed job=%s path=%s err=%s", job.job_id, path, exc)
                warnings.warn(f"could not delete {path}: {exc}", CleanupWarning, stacklevel=2)
        try:
            job.work_dir.rmdir()
        except FileNotFoundError:
            pass
        except OSError as exc:
            job.cleanup_failures.append(job.work_dir)
            logger.warning("cleanup failed job=%s dir=%s err=%s", job.job_id, job.work_dir, exc)
            warnings.warn(f"could not delete {job.work_dir}: {exc}", CleanupWarning, stacklevel=2)
