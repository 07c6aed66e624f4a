"""Run orchestration: validate, set up, process clips in order, clean up, summarize."""

import contextlib
import os
import shutil
import sys
import tempfile
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .cache import FullSourceCache
from .cascade import ExtractionContext, SourceDurationLookup, build_cascade
from .checkpoint import CheckpointManager, JsonFileStore
from .config import ClipperSettings
from .dataset import DatasetWriter
from .errors import (
    AuthenticationChallengeError,
    ClipExtractionError,
    ClipperError,
    ErrorAnalyzer,
    ProxyConfigurationError,
    StorageError,
    TranscoderError,
)
from .logger import log_with_timestamp
from .metering import EventLedgerSink, MeteringClient
from .models import (
    OUTPUT_FORMAT,
    RUN_STARTED_EVENT,
    ClipJobRequest,
    ClipRequest,
    ClipResult,
    QualityConfig,
    RunProgress,
    RunSummary,
)
from .provider import YtDlpRunner, YtDlpSourceInspector
from .proxy import ProxySessionManager, build_proxy_issuer, probe_proxy
from .quality import chargeable_event, is_fair_pricing, quality_warning, resolve
from .retry import RetryExecutor
from .storage import LocalObjectStore, object_key
from .transcoder import FFmpegTranscoder


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def print_run_summary(summary: RunSummary, video_url: str, proxy_rotations: int = 0) -> None:
    """Print the colored end-of-run banner."""
    summary_label = f"Summary for {video_url}"
    border_width = max(len(f" {summary_label} "), 36)
    border_color = "\033[95m"
    header_color = "\033[1;45;97m"
    label_color = "\033[1;36m"
    value_color = "\033[1;33m"
    reset = "\033[0m"

    border_line = f"{border_color}{'=' * border_width}{reset}"
    header_text = f" {summary_label} "

    print("\n" + border_line)
    print(f"{header_color}{header_text.center(border_width)}{reset}")
    print(border_line)
    print(f"{label_color}Total clips:{reset} {value_color}{summary.total_clips}{reset}")
    print(f"{label_color}Clips processed:{reset} {value_color}{summary.processed_count}{reset}")
    print(f"{label_color}Clips failed:{reset} {value_color}{summary.failed_count}{reset}")
    print(f"{label_color}Quality:{reset} {value_color}{summary.quality_used}{reset}")
    if summary.resumed_from_previous:
        print(f"{label_color}Resumed from previous run:{reset} {value_color}yes{reset}")
    if proxy_rotations > 0:
        print(f"{label_color}Proxy rotations:{reset} {value_color}{proxy_rotations}{reset}")
    print(border_line)


class ClipRunner:
    """
    Drives one run end to end.

    Collaborators default to the local implementations built from *settings*;
    tests inject fakes for the provider, transcoder, sinks and clock.
    """

    def __init__(
        self,
        settings: Optional[ClipperSettings] = None,
        runner=None,
        inspector=None,
        transcoder=None,
        store=None,
        metering=None,
        dataset=None,
        checkpoint_store=None,
        session_manager_factory: Optional[Callable[..., ProxySessionManager]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
        error_analyzer: Optional[ErrorAnalyzer] = None,
    ) -> None:
        self.settings = settings or ClipperSettings()
        self.error_analyzer = error_analyzer or ErrorAnalyzer()
        if self.settings.error_log:
            self.error_analyzer.set_error_log_path(self.settings.error_log)

        self.runner = runner or YtDlpRunner(error_analyzer=self.error_analyzer)
        self.inspector = inspector or YtDlpSourceInspector()
        self.transcoder = transcoder or FFmpegTranscoder(self.settings.ffmpeg_path, self.settings.ffprobe_path)
        self.store = store or LocalObjectStore(self.settings.storage_dir, self.settings.storage_base_url)
        self.metering = metering or MeteringClient(EventLedgerSink(self.settings.ledger_path))
        self.dataset = dataset or DatasetWriter(self.settings.dataset_path)
        self.checkpoints = CheckpointManager(checkpoint_store or JsonFileStore(self.settings.checkpoint_dir))
        self.session_manager_factory = session_manager_factory or self._default_session_manager
        self.sleep = sleep
        self.clock = clock

    def _default_session_manager(self, issuer) -> ProxySessionManager:
        settings = self.settings
        return ProxySessionManager(
            issuer,
            probe=lambda url: probe_proxy(url, settings.probe_url, settings.probe_timeout),
            max_attempts=settings.session_attempts,
            attempt_delay=settings.session_attempt_delay,
            sleep=self.sleep,
        )

    def build_session_manager(self, request: ClipJobRequest) -> Optional[ProxySessionManager]:
        """
        Decide whether the run uses a proxy.

        An explicit ``useProxy: true`` without a configured proxy source is a
        configuration error. When ``useProxy`` is omitted a proxy is used only
        if one is configured.
        """
        use_proxy = request.proxy.use_proxy
        if use_proxy is False:
            return None
        if not self.settings.proxy_configured:
            if use_proxy:
                raise ProxyConfigurationError(
                    "Proxy use was requested but no proxy template or proxy file is configured"
                )
            return None

        issuer = build_proxy_issuer(
            self.settings.proxy_template,
            self.settings.proxy_file,
            request.proxy.proxy_groups,
        )
        return self.session_manager_factory(issuer)

    @staticmethod
    def _write_cookie_file(temp_dir: str, request: ClipJobRequest) -> Optional[str]:
        if not request.use_cookies:
            return None
        if not request.cookies:
            print("Warning: useCookies is set but no cookies were provided; continuing without cookies", file=sys.stderr)
            return None
        cookie_path = os.path.join(temp_dir, f"cookies_{int(time.time() * 1000)}.txt")
        with open(cookie_path, "w", encoding="utf-8") as handle:
            handle.write(request.cookies)
        print("Cookie file written for authenticated requests")
        return cookie_path

    def run(self, request: ClipJobRequest) -> RunSummary:
        settings = self.settings
        quality = resolve(request.quality)
        fair = is_fair_pricing(self.clock(), settings.pricing_cutover)
        print(
            f"Processing clips at {quality.tier.value} quality (max height: {quality.max_height}px, "
            + ("charged for actual quality delivered)" if fair else "flat-rate pricing)")
        )
        if request.removed_params:
            print(f"Removed URL parameters: {', '.join(request.removed_params)}")

        # Configuration problems surface before anything is charged or written.
        sessions = self.build_session_manager(request)

        run_start_charged = self.metering.charge(RUN_STARTED_EVENT)
        if not run_start_charged:
            print("[WARN] Failed to charge for run_started event, but continuing execution", file=sys.stderr)

        if settings.temp_root:
            os.makedirs(settings.temp_root, exist_ok=True)
        temp_dir = tempfile.mkdtemp(prefix="video-processing-", dir=settings.temp_root)
        cache = FullSourceCache()
        cookie_file: Optional[str] = None
        try:
            cookie_file = self._write_cookie_file(temp_dir, request)

            progress = self.checkpoints.load(request.video_identity)
            resumed = progress is not None
            if progress is None:
                progress = RunProgress(video_identity=request.video_identity, total_clips=len(request.clips))

            if sessions is not None:
                sessions.establish()

            retry = RetryExecutor(self.runner, sessions, sleep=self.sleep, base_delay=settings.backoff_base)
            cascade = build_cascade(
                retry,
                cache,
                self.transcoder,
                SourceDurationLookup(self.inspector, request.video_url, sessions, cookie_file),
                self.metering,
                sessions,
                max_source_minutes=settings.max_source_minutes,
                full_source_timeout=settings.full_source_timeout,
                full_source_attempts=settings.full_source_attempts,
            )

            for index, clip in enumerate(request.clips):
                if clip.name in progress.completed_clip_names:
                    print(f"[SKIP] Clip \"{clip.name}\" already processed, skipping...")
                    continue

                result = self._process_clip(index, clip, request, quality, cascade, temp_dir, cookie_file)
                self.dataset.push(result.to_record())

                if result.failed:
                    progress.failed_count += 1
                else:
                    progress.processed_count += 1
                progress.completed_clip_names.add(clip.name)
                self.checkpoints.save(progress)
        finally:
            cache.clear()
            if cookie_file:
                with contextlib.suppress(FileNotFoundError):
                    os.remove(cookie_file)
            shutil.rmtree(temp_dir, ignore_errors=True)

        self.checkpoints.clear()

        summary = RunSummary(
            total_clips=len(request.clips),
            processed_count=progress.processed_count,
            failed_count=progress.failed_count,
            run_start_charged=run_start_charged,
            run_finished=self.clock().isoformat(),
            quality_used=quality.tier.value,
            resumed_from_previous=resumed,
        )
        self.dataset.push(summary.to_record())
        print_run_summary(summary, request.video_url, sessions.rotations if sessions is not None else 0)
        self.error_analyzer.print_summary()
        return summary

    def _thumbnail(self, clip_path: str, clip: ClipRequest, temp_dir: str) -> Optional[str]:
        thumb_path = os.path.join(temp_dir, f"{clip.identifier}_thumb.jpg")
        try:
            return self.transcoder.generate_thumbnail(clip_path, thumb_path)
        except TranscoderError as exc:
            print(f"Warning: Failed to generate thumbnail for {clip.name}: {exc}", file=sys.stderr)
            return None

    def _process_clip(
        self,
        index: int,
        clip: ClipRequest,
        request: ClipJobRequest,
        quality: QualityConfig,
        cascade,
        temp_dir: str,
        cookie_file: Optional[str],
    ) -> ClipResult:
        log_with_timestamp(
            f"Processing clip {index + 1}/{len(request.clips)}: \"{clip.name}\" ({clip.start} - {clip.end})"
        )
        output_path = os.path.join(temp_dir, f"{clip.identifier}.{OUTPUT_FORMAT}")
        result = ClipResult(
            name=clip.name,
            description=clip.description,
            start_time=clip.start,
            end_time=clip.end,
            quality=quality.tier.value,
            max_height=quality.max_height,
            clip_index=index + 1,
            video_url=request.video_identity,
            processing_time=self.clock().isoformat(),
            failed=True,
        )
        ctx = ExtractionContext(
            clip=clip,
            video_url=request.video_url,
            output_path=output_path,
            work_dir=temp_dir,
            quality=quality,
            max_retries=request.max_retries,
            cookie_file=cookie_file,
            enable_fallbacks=request.enable_fallbacks,
        )

        thumb_path: Optional[str] = None
        try:
            extracted = cascade.extract(ctx)
            result.strategy = extracted.strategy.value
            result.fallback_charged = extracted.fallback_charged

            resolution = self.transcoder.probe_resolution(extracted.path)
            if resolution is not None:
                result.actual_resolution = resolution.label
                result.actual_height = resolution.height
                print(f"Detected resolution: {resolution.width}x{resolution.height}")
            result.quality_warning = quality_warning(
                request.quality, resolution, self.clock(), self.settings.pricing_cutover
            )
            if result.quality_warning:
                print(result.quality_warning)

            thumb_path = self._thumbnail(extracted.path, clip, temp_dir)
            result.duration = clip.duration_seconds
            result.size = os.path.getsize(extracted.path)
            result.url = self.store.put_file(
                object_key(clip.identifier, OUTPUT_FORMAT), extracted.path, f"video/{OUTPUT_FORMAT}"
            )
            if thumb_path:
                try:
                    result.thumbnail_url = self.store.put_file(
                        object_key(clip.identifier, "jpg"), thumb_path, "image/jpeg"
                    )
                except StorageError as exc:
                    print(f"Warning: Failed to upload thumbnail for {clip.name}: {exc}", file=sys.stderr)

            event = chargeable_event(request.quality, resolution, self.clock(), self.settings.pricing_cutover)
            result.event_charged = event
            result.charged = self.metering.charge(event)
            result.failed = False
            print(f"Clip \"{clip.name}\" processed successfully: {result.url}")
        except AuthenticationChallengeError:
            raise
        except (ClipperError, OSError) as exc:
            result.error = str(exc)
            print(f"Error processing clip \"{clip.name}\": {exc}", file=sys.stderr)
            # Provider failures were already recorded as yt-dlp reported them.
            if not isinstance(exc, ClipExtractionError):
                self.error_analyzer.categorize_and_record(clip.name, str(exc))
        finally:
            for path in (output_path, thumb_path):
                if path:
                    with contextlib.suppress(FileNotFoundError):
                        os.remove(path)

        return result
