"""YouTube clip extractor package."""

# Import main components for easier access
from .cache import FullSourceCache
from .cascade import ExtractionCascade, ExtractionContext, build_cascade, clip_timeout
from .checkpoint import CheckpointManager, JsonFileStore
from .cli import main
from .config import (
    ClipperSettings,
    apply_environment_defaults,
    build_request,
    build_settings,
    parse_args,
    positive_int,
)
from .errors import (
    AuthenticationChallengeError,
    ClipExtractionError,
    ClipperError,
    ErrorAnalyzer,
    FinalAttemptError,
    ProviderError,
    ValidationError,
)
from .health_check import run_health_check
from .logger import DownloadLogger
from .models import (
    QUALITY_CHOICES,
    ClipJobRequest,
    ClipRequest,
    ClipResult,
    QualityTier,
    RunProgress,
    RunSummary,
    Strategy,
)
from .orchestrator import ClipRunner
from .proxy import ProxySessionManager, build_proxy_issuer
from .quality import chargeable_event, classify, resolve
from .retry import RetryExecutor
from .sources import clean_video_url
from .timecode import format_timecode, time_to_seconds
from .validation import parse_request

__all__ = [
    # Main entry points
    "main",
    "ClipRunner",
    "run_health_check",
    "parse_request",
    # Configuration
    "ClipperSettings",
    "parse_args",
    "apply_environment_defaults",
    "build_settings",
    "build_request",
    "positive_int",
    # Pipeline components
    "ExtractionCascade",
    "ExtractionContext",
    "build_cascade",
    "clip_timeout",
    "RetryExecutor",
    "ProxySessionManager",
    "build_proxy_issuer",
    "FullSourceCache",
    "CheckpointManager",
    "JsonFileStore",
    # Quality and pricing
    "resolve",
    "classify",
    "chargeable_event",
    # Models and data structures
    "ClipRequest",
    "ClipJobRequest",
    "ClipResult",
    "RunProgress",
    "RunSummary",
    "QualityTier",
    "Strategy",
    "DownloadLogger",
    "ErrorAnalyzer",
    # Errors
    "ClipperError",
    "ValidationError",
    "AuthenticationChallengeError",
    "ProviderError",
    "FinalAttemptError",
    "ClipExtractionError",
    # Helpers
    "clean_video_url",
    "time_to_seconds",
    "format_timecode",
    # Constants
    "QUALITY_CHOICES",
]
