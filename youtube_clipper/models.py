"""Data models, enums, and constants for the clip extractor."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .timecode import time_to_seconds

# Input limits
MAX_CLIPS_PER_RUN = 20
DEFAULT_MAX_CLIP_SECONDS = 600  # 10 minutes
DEFAULT_MAX_SOURCE_MINUTES = 120
DEFAULT_MAX_RETRIES = 3

# Metering event names
RUN_STARTED_EVENT = "run_started"
FLAT_CLIP_EVENT = "clip_processed"
FALLBACK_PROCESSING_EVENT = "clip_processed"

OUTPUT_FORMAT = "mp4"
SUMMARY_MARKER = "#summary"

# User-Agent rotation pool to appear as different browsers
USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
]


class QualityTier(Enum):
    """Requested output quality, ordered from lowest to highest."""
    P360 = "360p"
    P480 = "480p"
    P720 = "720p"
    P1080 = "1080p"


QUALITY_CHOICES = tuple(tier.value for tier in QualityTier)
DEFAULT_QUALITY = QualityTier.P720


@dataclass(frozen=True)
class QualityConfig:
    """Resolution cap and metering event for one quality tier."""
    tier: QualityTier
    max_height: int
    metering_event: str


@dataclass(frozen=True)
class Resolution:
    """Resolution measured on a delivered file."""
    width: int
    height: int

    @property
    def label(self) -> str:
        return f"{self.height}p"


@dataclass(frozen=True)
class ClipRequest:
    """A named sub-range of the source video."""
    name: str
    start: str
    end: str
    label: Optional[str] = None

    @property
    def start_seconds(self) -> int:
        return time_to_seconds(self.start)

    @property
    def end_seconds(self) -> int:
        return time_to_seconds(self.end)

    @property
    def duration_seconds(self) -> int:
        return self.end_seconds - self.start_seconds

    @property
    def identifier(self) -> str:
        """File-name friendly identifier, e.g. ``clip_Main_Content``."""
        return "clip_" + "_".join(self.name.split())

    @property
    def description(self) -> str:
        return self.label or f"Clip from {self.start} to {self.end}"


@dataclass(frozen=True)
class ProxyOptions:
    """Proxy settings from the run request."""
    use_proxy: Optional[bool] = None
    proxy_groups: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ClipJobRequest:
    """Validated run request."""
    video_url: str
    video_identity: str
    clips: List[ClipRequest]
    quality: QualityTier = DEFAULT_QUALITY
    proxy: ProxyOptions = field(default_factory=ProxyOptions)
    use_cookies: bool = False
    cookies: Optional[str] = None
    max_retries: int = DEFAULT_MAX_RETRIES
    enable_fallbacks: bool = True
    removed_params: List[str] = field(default_factory=list)


class ProxyQuality(Enum):
    """Latency bucket of a probed proxy session."""
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    FAILED = "failed"


@dataclass(frozen=True)
class ProxyHealth:
    success: bool
    latency_ms: int
    quality: ProxyQuality

    @property
    def acceptable(self) -> bool:
        return self.quality in (ProxyQuality.GOOD, ProxyQuality.FAIR)


@dataclass(frozen=True)
class ProxySession:
    """A sticky proxy identity. Replaced as a whole on rotation, never mutated."""
    url: str
    session_id: str
    health: ProxyHealth


class Strategy(Enum):
    """Tiers of the extraction cascade, in escalation order."""
    DIRECT = "direct"
    COMPAT = "compat"
    FULL_EXTRACT = "full_extract"


class OutcomeStatus(Enum):
    SUCCESS = "success"
    SKIP = "skip"
    FAIL = "fail"


@dataclass(frozen=True)
class Outcome:
    """Result of a single cascade strategy."""
    status: OutcomeStatus
    path: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, path: str) -> "Outcome":
        return cls(OutcomeStatus.SUCCESS, path=path)

    @classmethod
    def skip(cls, reason: str) -> "Outcome":
        return cls(OutcomeStatus.SKIP, reason=reason)

    @classmethod
    def fail(cls, error: Exception) -> "Outcome":
        return cls(OutcomeStatus.FAIL, reason=str(error), error=error)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


@dataclass
class ExtractionAttempt:
    """Log entry for one strategy attempt within a single clip."""
    strategy: Strategy
    attempt_number: int
    outcome: Optional[OutcomeStatus] = None
    proxy_session_id: Optional[str] = None

    def describe(self) -> str:
        outcome = self.outcome.value if self.outcome else "pending"
        session = self.proxy_session_id or "direct-connection"
        return f"tier {self.attempt_number} ({self.strategy.value}) -> {outcome} [session={session}]"


@dataclass
class CascadeResult:
    path: str
    strategy: Strategy
    fallback_charged: Optional[bool] = None
    attempts: List[ExtractionAttempt] = field(default_factory=list)


@dataclass(frozen=True)
class CachedFullSource:
    file_path: str
    resolution_cap: int


@dataclass
class RunProgress:
    """Persisted progress of a run, written after every clip."""
    video_identity: str
    total_clips: int
    processed_count: int = 0
    failed_count: int = 0
    completed_clip_names: Set[str] = field(default_factory=set)
    last_updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "videoIdentity": self.video_identity,
            "totalClips": self.total_clips,
            "processedCount": self.processed_count,
            "failedCount": self.failed_count,
            "completedClips": self.processed_count + self.failed_count,
            "completedClipNames": sorted(self.completed_clip_names),
            "lastUpdatedAt": self.last_updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "RunProgress":
        return cls(
            video_identity=str(data["videoIdentity"]),
            total_clips=int(data.get("totalClips", 0)),
            processed_count=int(data.get("processedCount", 0)),
            failed_count=int(data.get("failedCount", 0)),
            completed_clip_names=set(data.get("completedClipNames") or []),
            last_updated_at=data.get("lastUpdatedAt"),
        )


@dataclass
class ClipResult:
    """Per-clip record pushed to the dataset."""
    name: str
    description: str
    start_time: str
    end_time: str
    quality: str
    max_height: int
    clip_index: int
    video_url: str
    processing_time: str
    failed: bool
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    size: Optional[int] = None
    actual_resolution: Optional[str] = None
    actual_height: Optional[int] = None
    quality_warning: Optional[str] = None
    output_format: str = OUTPUT_FORMAT
    charged: bool = False
    event_charged: Optional[str] = None
    strategy: Optional[str] = None
    fallback_charged: Optional[bool] = None
    error: Optional[str] = None

    def to_record(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "url": self.url,
            "thumbnailUrl": self.thumbnail_url,
            "duration": self.duration,
            "size": self.size,
            "quality": self.quality,
            "maxHeight": self.max_height,
            "actualResolution": self.actual_resolution,
            "actualHeight": self.actual_height,
            "qualityWarning": self.quality_warning,
            "outputFormat": self.output_format,
            "clipIndex": self.clip_index,
            "videoUrl": self.video_url,
            "processingTime": self.processing_time,
            "failed": self.failed,
            "charged": self.charged,
            "requestedQuality": self.quality,
            "eventCharged": self.event_charged,
            "strategy": self.strategy,
            "fallbackCharged": self.fallback_charged,
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Terminal record of a run."""
    total_clips: int
    processed_count: int
    failed_count: int
    run_start_charged: bool
    run_finished: str
    quality_used: str
    resumed_from_previous: bool

    def to_record(self) -> Dict[str, object]:
        return {
            SUMMARY_MARKER: True,
            "totalClips": self.total_clips,
            "processedCount": self.processed_count,
            "failedCount": self.failed_count,
            "runStartCharged": self.run_start_charged,
            "runFinished": self.run_finished,
            "qualityUsed": self.quality_used,
            "resumedFromPrevious": self.resumed_from_previous,
        }


@dataclass
class ErrorPattern:
    """Tracks a specific error pattern and its occurrences."""
    error_type: str
    count: int = 0
    clip_names: List[str] = field(default_factory=list)
    sample_messages: List[str] = field(default_factory=list)
    first_seen: Optional[float] = None
    last_seen: Optional[float] = None

    def record(self, clip_name: Optional[str], message: str) -> None:
        """Record an occurrence of this error pattern."""
        self.count += 1
        timestamp = time.time()

        if self.first_seen is None:
            self.first_seen = timestamp
        self.last_seen = timestamp

        if clip_name and clip_name not in self.clip_names:
            self.clip_names.append(clip_name)

        # Keep only the first 5 sample messages to avoid memory bloat
        if len(self.sample_messages) < 5 and message not in self.sample_messages:
            self.sample_messages.append(message)
