"""Ordered download strategies that escalate until a clip file exists."""

import contextlib
import glob
import os
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .cache import FullSourceCache
from .errors import ClipExtractionError, FinalAttemptError, TranscoderError
from .models import (
    FALLBACK_PROCESSING_EVENT,
    CascadeResult,
    ClipRequest,
    ExtractionAttempt,
    Outcome,
    OutcomeStatus,
    QualityConfig,
    Strategy,
)
from .retry import RetryExecutor
from .ytdlp_options import (
    build_compat_command,
    build_direct_command,
    build_full_source_command,
    full_source_prefix,
)

MIN_CLIP_TIMEOUT = 180
MAX_CLIP_TIMEOUT = 720

# Partial or sidecar files yt-dlp may leave next to a full download.
_IGNORED_SUFFIXES = (".part", ".ytdl", ".tmp", ".temp")


def clip_timeout(duration_seconds: int) -> int:
    """Per-attempt timeout for a ranged download: twice the clip plus a minute, clamped."""
    return min(max(duration_seconds * 2 + 60, MIN_CLIP_TIMEOUT), MAX_CLIP_TIMEOUT)


def _has_output(path: str) -> bool:
    return os.path.exists(path) and os.path.getsize(path) > 0


def find_full_source(directory: str, max_height: int) -> Optional[str]:
    """Locate the file a full-source download produced for *max_height*."""
    pattern = os.path.join(glob.escape(directory), full_source_prefix(max_height) + ".*")
    for candidate in sorted(glob.glob(pattern)):
        if candidate.endswith(_IGNORED_SUFFIXES):
            continue
        if _has_output(candidate):
            return candidate
    return None


def _remove_file(path: str) -> None:
    with contextlib.suppress(FileNotFoundError):
        os.remove(path)


def remove_full_source(directory: str, max_height: int) -> None:
    """Delete whatever a previous full-source download for *max_height* left behind."""
    pattern = os.path.join(glob.escape(directory), full_source_prefix(max_height) + ".*")
    for leftover in glob.glob(pattern):
        _remove_file(leftover)


@dataclass
class ExtractionContext:
    """Everything a strategy needs to produce one clip."""
    clip: ClipRequest
    video_url: str
    output_path: str
    work_dir: str
    quality: QualityConfig
    max_retries: int
    cookie_file: Optional[str] = None
    enable_fallbacks: bool = True


class SourceDurationLookup:
    """Looks the source runtime up once per run, on first use."""

    def __init__(self, inspector, video_url: str, sessions=None, cookie_file: Optional[str] = None) -> None:
        self.inspector = inspector
        self.video_url = video_url
        self.sessions = sessions
        self.cookie_file = cookie_file
        self._looked_up = False
        self._seconds: Optional[int] = None

    def __call__(self) -> Optional[int]:
        if not self._looked_up:
            session = self.sessions.current if self.sessions is not None else None
            self._seconds = self.inspector.duration_seconds(self.video_url, session, self.cookie_file)
            self._looked_up = True
        return self._seconds


class RangedDownload:
    """Tier that asks yt-dlp for just the clip's time range."""

    strategy: Strategy

    def __init__(self, retry: RetryExecutor) -> None:
        self.retry = retry

    def build_command(self, ctx: ExtractionContext, session):
        clip = ctx.clip
        return build_direct_command(
            ctx.video_url,
            ctx.output_path,
            clip.start_seconds,
            clip.end_seconds,
            ctx.quality.max_height,
            session,
            ctx.cookie_file,
            label=clip.name,
        )

    def _fresh_command(self, ctx: ExtractionContext, session):
        # yt-dlp skips targets that already exist, including a truncated one
        _remove_file(ctx.output_path)
        return self.build_command(ctx, session)

    def attempt(self, ctx: ExtractionContext) -> Outcome:
        try:
            self.retry.run(
                lambda session: self._fresh_command(ctx, session),
                ctx.max_retries,
                clip_timeout(ctx.clip.duration_seconds),
                label=f"{ctx.clip.name} ({self.strategy.value})",
            )
        except FinalAttemptError as exc:
            return Outcome.fail(exc)

        if not _has_output(ctx.output_path):
            return Outcome.fail(ClipExtractionError(f"yt-dlp reported success but {ctx.output_path} is missing"))
        return Outcome.success(ctx.output_path)


class DirectRangedDownload(RangedDownload):
    strategy = Strategy.DIRECT


class CompatRangedDownload(RangedDownload):
    """Same range with a permissive format selector."""

    strategy = Strategy.COMPAT

    def build_command(self, ctx: ExtractionContext, session):
        clip = ctx.clip
        return build_compat_command(
            ctx.video_url,
            ctx.output_path,
            clip.start_seconds,
            clip.end_seconds,
            ctx.quality.max_height,
            session,
            ctx.cookie_file,
            label=clip.name,
        )


class FullSourceExtraction:
    """
    Download the whole source (once per resolution cap) and cut the clip locally.

    Skipped for sources longer than ``max_source_seconds``; an unknown runtime
    does not block the attempt.
    """

    strategy = Strategy.FULL_EXTRACT

    def __init__(
        self,
        retry: RetryExecutor,
        cache: FullSourceCache,
        transcoder,
        source_duration: Callable[[], Optional[int]],
        max_source_seconds: int,
        full_source_timeout: float,
        full_source_attempts: int,
    ) -> None:
        self.retry = retry
        self.cache = cache
        self.transcoder = transcoder
        self.source_duration = source_duration
        self.max_source_seconds = max_source_seconds
        self.full_source_timeout = full_source_timeout
        self.full_source_attempts = full_source_attempts

    def _fresh_command(self, ctx: ExtractionContext, session):
        max_height = ctx.quality.max_height
        remove_full_source(ctx.work_dir, max_height)
        return build_full_source_command(
            ctx.video_url, ctx.work_dir, max_height, session, ctx.cookie_file, label=ctx.clip.name
        )

    def _download(self, ctx: ExtractionContext) -> str:
        max_height = ctx.quality.max_height
        try:
            self.retry.run(
                lambda session: self._fresh_command(ctx, session),
                self.full_source_attempts,
                self.full_source_timeout,
                label=f"full source {max_height}p",
            )
        except FinalAttemptError:
            remove_full_source(ctx.work_dir, max_height)
            raise
        path = find_full_source(ctx.work_dir, max_height)
        if path is None:
            remove_full_source(ctx.work_dir, max_height)
            raise ClipExtractionError("Full source download produced no file")
        self.cache.put(max_height, path)
        return path

    def attempt(self, ctx: ExtractionContext) -> Outcome:
        runtime = self.source_duration()
        if runtime is not None and runtime > self.max_source_seconds:
            return Outcome.skip(
                f"source runtime {runtime // 60} min exceeds the {self.max_source_seconds // 60} min limit"
            )

        max_height = ctx.quality.max_height
        source = self.cache.get(max_height)
        if source is not None:
            print(f"[CACHE] Reusing full source for {max_height}p")
        else:
            try:
                source = self._download(ctx)
            except (FinalAttemptError, ClipExtractionError) as exc:
                return Outcome.fail(exc)

        clip = ctx.clip
        try:
            self.transcoder.extract_range(
                source,
                clip.start_seconds,
                clip.duration_seconds,
                ctx.output_path,
                timeout=clip_timeout(clip.duration_seconds),
            )
        except TranscoderError as exc:
            self.cache.invalidate()
            return Outcome.fail(exc)
        return Outcome.success(ctx.output_path)


class ExtractionCascade:
    """
    Runs strategies in order until one produces the clip.

    Fallback tiers only run when ``enable_fallbacks`` is set, and a fallback
    success is metered with the additional processing event.
    """

    def __init__(self, strategies: Sequence, metering, sessions=None) -> None:
        self.strategies = list(strategies)
        self.metering = metering
        self.sessions = sessions

    def _session_id(self) -> Optional[str]:
        current = self.sessions.current if self.sessions is not None else None
        return current.session_id if current is not None else None

    def extract(self, ctx: ExtractionContext) -> CascadeResult:
        enabled = self.strategies if ctx.enable_fallbacks else self.strategies[:1]
        attempts: List[ExtractionAttempt] = []
        last_reason: Optional[str] = None

        for number, strategy in enumerate(enabled, start=1):
            if number > 1:
                print(f"Tier {number - 1} failed for {ctx.clip.name}. Attempting {strategy.strategy.value} fallback")
            record = ExtractionAttempt(strategy.strategy, number, proxy_session_id=self._session_id())
            attempts.append(record)

            _remove_file(ctx.output_path)
            outcome = strategy.attempt(ctx)
            record.outcome = outcome.status
            print(f"[STRATEGY] {ctx.clip.name}: {record.describe()}")

            if outcome.succeeded:
                fallback_charged = None
                if strategy.strategy is not Strategy.DIRECT:
                    fallback_charged = self.metering.charge(FALLBACK_PROCESSING_EVENT)
                    if not fallback_charged:
                        print(
                            f"Warning: {strategy.strategy.value} fallback succeeded but the additional "
                            "processing charge failed",
                            file=sys.stderr,
                        )
                return CascadeResult(
                    path=outcome.path,
                    strategy=strategy.strategy,
                    fallback_charged=fallback_charged,
                    attempts=attempts,
                )

            if outcome.status is OutcomeStatus.SKIP:
                print(f"[SKIP] {strategy.strategy.value} for {ctx.clip.name}: {outcome.reason}")
            else:
                last_reason = outcome.reason

        message = "All download strategies failed to produce the expected output file."
        if last_reason:
            message += f" Last error: {last_reason}"
        raise ClipExtractionError(message)


def build_cascade(
    retry: RetryExecutor,
    cache: FullSourceCache,
    transcoder,
    source_duration: Callable[[], Optional[int]],
    metering,
    sessions=None,
    max_source_minutes: int = 120,
    full_source_timeout: float = 1800.0,
    full_source_attempts: int = 2,
) -> ExtractionCascade:
    strategies = [
        DirectRangedDownload(retry),
        CompatRangedDownload(retry),
        FullSourceExtraction(
            retry,
            cache,
            transcoder,
            source_duration,
            max_source_minutes * 60,
            full_source_timeout,
            full_source_attempts,
        ),
    ]
    return ExtractionCascade(strategies, metering, sessions)
