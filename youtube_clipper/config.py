"""Configuration and argument parsing for the clip extractor."""

import argparse
import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .models import (
    DEFAULT_MAX_CLIP_SECONDS,
    DEFAULT_MAX_SOURCE_MINUTES,
    MAX_CLIPS_PER_RUN,
    QUALITY_CHOICES,
)
from .proxy import (
    DEFAULT_ATTEMPT_DELAY,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_PROBE_URL,
    DEFAULT_SESSION_ATTEMPTS,
)
from .retry import BACKOFF_BASE_SECONDS

DEFAULT_CONFIG_PATH = "clipper.json"
ENV_PREFIX = "YOUTUBE_CLIPPER_"
DEFAULT_PRICING_CUTOVER = "2025-10-09"
FULL_SOURCE_TIMEOUT = 1800.0
FULL_SOURCE_ATTEMPTS = 2

# Settings that may come from the config file or the environment.
SETTING_KEYS = {
    "max_clips": int,
    "max_clip_seconds": int,
    "max_source_minutes": int,
    "pricing_cutover": str,
    "proxy_template": str,
    "proxy_file": str,
    "probe_url": str,
    "probe_timeout": float,
    "session_attempts": int,
    "session_attempt_delay": float,
    "backoff_base": float,
    "full_source_timeout": float,
    "full_source_attempts": int,
    "ffmpeg_path": str,
    "ffprobe_path": str,
    "checkpoint_dir": str,
    "dataset_path": str,
    "storage_dir": str,
    "storage_base_url": str,
    "ledger_path": str,
    "error_log": str,
    "temp_root": str,
}


def positive_int(value: str) -> int:
    """Return *value* parsed as a positive integer for argparse."""

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError(
            "Expected a positive integer"
        ) from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("Expected a positive integer")

    return parsed


def parse_cutover(value) -> datetime:
    """Parse a pricing cutover date (``YYYY-MM-DD`` or ISO timestamp) as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class ClipperSettings:
    """Operational policy for a run. Request-level options live on ClipJobRequest."""
    max_clips: int = MAX_CLIPS_PER_RUN
    max_clip_seconds: int = DEFAULT_MAX_CLIP_SECONDS
    max_source_minutes: int = DEFAULT_MAX_SOURCE_MINUTES
    pricing_cutover: datetime = parse_cutover(DEFAULT_PRICING_CUTOVER)
    proxy_template: Optional[str] = None
    proxy_file: Optional[str] = None
    probe_url: str = DEFAULT_PROBE_URL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    session_attempts: int = DEFAULT_SESSION_ATTEMPTS
    session_attempt_delay: float = DEFAULT_ATTEMPT_DELAY
    backoff_base: float = BACKOFF_BASE_SECONDS
    full_source_timeout: float = FULL_SOURCE_TIMEOUT
    full_source_attempts: int = FULL_SOURCE_ATTEMPTS
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    checkpoint_dir: str = ".clipper_state"
    dataset_path: Optional[str] = "output/clips.jsonl"
    storage_dir: str = "output/clips"
    storage_base_url: Optional[str] = None
    ledger_path: str = "output/charges.jsonl"
    error_log: Optional[str] = None
    temp_root: Optional[str] = None

    @property
    def proxy_configured(self) -> bool:
        return bool(self.proxy_template or self.proxy_file)


def load_config_file(config_path: str) -> Dict[str, object]:
    """Load configuration from a JSON file.

    Returns a dictionary with configuration values that can be used as defaults
    for command-line arguments. If the file doesn't exist or is invalid, returns
    an empty dictionary.
    """
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        print(f"Warning: Failed to parse config file {config_path}: {exc}. Ignoring.", file=sys.stderr)
        return {}
    except OSError as exc:
        print(f"Warning: Failed to read config file {config_path}: {exc}. Ignoring.", file=sys.stderr)
        return {}

    if not isinstance(config, dict):
        print(f"Warning: Config file {config_path} must contain a JSON object. Ignoring.", file=sys.stderr)
        return {}

    # Validate config keys to prevent typos
    invalid_keys = set(config.keys()) - set(SETTING_KEYS)
    if invalid_keys:
        print(f"Warning: Unknown config keys ignored: {', '.join(sorted(invalid_keys))}", file=sys.stderr)

    return {k: v for k, v in config.items() if k in SETTING_KEYS}


def _config_path_from_argv(argv: Sequence[str]) -> str:
    for index, arg in enumerate(argv):
        if arg == "--config" and index + 1 < len(argv):
            return argv[index + 1]
        if arg.startswith("--config="):
            return arg.split("=", 1)[1]
    return DEFAULT_CONFIG_PATH


def build_parser(config: Optional[Dict[str, object]] = None) -> argparse.ArgumentParser:
    config = config or {}
    parser = argparse.ArgumentParser(
        description="Extract time-bounded clips from a YouTube video using yt-dlp and ffmpeg."
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )

    request = parser.add_argument_group("run request")
    request.add_argument("--input", help="Path to a JSON run request ({videoUrl, clips, quality, ...})")
    request.add_argument("--url", help="YouTube video URL (overrides videoUrl from --input)")
    request.add_argument(
        "--clip",
        action="append",
        default=[],
        metavar="NAME=START-END",
        help="Clip to extract, e.g. 'Intro=00:00:05-00:00:20'. May be passed multiple times.",
    )
    request.add_argument("--quality", choices=QUALITY_CHOICES, help="Requested quality tier (default: 720p)")
    request.add_argument("--max-retries", type=positive_int, help="Attempts per download strategy (default: 3)")
    request.add_argument(
        "--use-proxy",
        dest="use_proxy",
        action="store_true",
        help="Route downloads through a sticky proxy session",
    )
    request.add_argument(
        "--no-proxy",
        dest="use_proxy",
        action="store_false",
        help="Connect directly even when a proxy source is configured",
    )
    parser.set_defaults(use_proxy=None)
    request.add_argument(
        "--proxy-group",
        action="append",
        default=[],
        help="Proxy group substituted into the proxy template (default: RESIDENTIAL)",
    )
    request.add_argument("--cookies-file", help="Netscape-format cookie file from a logged-in browser session")
    request.add_argument(
        "--no-fallbacks",
        action="store_true",
        help="Only try the direct ranged download; skip compatibility and full-source fallbacks",
    )

    settings = parser.add_argument_group("settings")
    settings.add_argument("--max-clips", type=positive_int, default=config.get("max_clips"), help="Maximum clips per run (default: 20)")
    settings.add_argument(
        "--max-clip-seconds",
        type=positive_int,
        default=config.get("max_clip_seconds"),
        help="Maximum duration of a single clip in seconds (default: 600)",
    )
    settings.add_argument(
        "--max-source-minutes",
        type=positive_int,
        default=config.get("max_source_minutes"),
        help="Skip the full-source fallback for sources longer than this (default: 120)",
    )
    settings.add_argument(
        "--pricing-cutover",
        default=config.get("pricing_cutover"),
        help=f"Date from which clips are metered by delivered quality (default: {DEFAULT_PRICING_CUTOVER})",
    )
    settings.add_argument(
        "--proxy-template",
        default=config.get("proxy_template"),
        help="Proxy URL template with {session} and optional {groups} placeholders",
    )
    settings.add_argument(
        "--proxy-file",
        default=config.get("proxy_file"),
        help="Path to a file containing proxy URLs (one per line). A random one is used per session.",
    )
    settings.add_argument("--probe-url", default=config.get("probe_url"), help="URL fetched through the proxy to grade its health")
    settings.add_argument("--probe-timeout", type=float, default=config.get("probe_timeout"), help="Proxy probe timeout in seconds (default: 10)")
    settings.add_argument("--session-attempts", type=positive_int, default=config.get("session_attempts"), help="Proxy sessions tried before accepting a slow one (default: 3)")
    settings.add_argument("--session-attempt-delay", type=float, default=config.get("session_attempt_delay"), help="Seconds between proxy session attempts (default: 2)")
    settings.add_argument("--backoff-base", type=float, default=config.get("backoff_base"), help="Base retry delay in seconds, doubled per attempt (default: 5)")
    settings.add_argument("--full-source-timeout", type=float, default=config.get("full_source_timeout"), help="Timeout for a full source download in seconds (default: 1800)")
    settings.add_argument("--full-source-attempts", type=positive_int, default=config.get("full_source_attempts"), help="Attempts for a full source download (default: 2)")
    settings.add_argument("--ffmpeg", dest="ffmpeg_path", default=config.get("ffmpeg_path"), help="ffmpeg executable (default: ffmpeg)")
    settings.add_argument("--ffprobe", dest="ffprobe_path", default=config.get("ffprobe_path"), help="ffprobe executable (default: ffprobe)")
    settings.add_argument("--checkpoint-dir", default=config.get("checkpoint_dir"), help="Directory for resume checkpoints (default: .clipper_state)")
    settings.add_argument("--dataset", dest="dataset_path", default=config.get("dataset_path"), help="JSON lines file receiving clip records (default: output/clips.jsonl)")
    settings.add_argument("--storage-dir", default=config.get("storage_dir"), help="Directory where clips and thumbnails are stored (default: output/clips)")
    settings.add_argument("--storage-base-url", default=config.get("storage_base_url"), help="Public base URL for stored files (default: file:// URIs)")
    settings.add_argument("--ledger", dest="ledger_path", default=config.get("ledger_path"), help="JSON lines file receiving metering events (default: output/charges.jsonl)")
    settings.add_argument("--error-log", default=config.get("error_log"), help="Append categorized errors to this file")
    settings.add_argument("--temp-root", default=config.get("temp_root"), help="Parent directory for run-scoped temp directories")

    parser.add_argument(
        "--health-check",
        action="store_true",
        help=(
            "Test proxy and YouTube connectivity without downloading anything, "
            "then exit."
        ),
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    # First, check for config file
    config_path = _config_path_from_argv(argv)
    config = load_config_file(config_path)
    if config:
        print(f"Loaded configuration from {config_path}")

    return build_parser(config).parse_args(argv)


def _normalize_env_str(value: Optional[str]) -> Optional[str]:
    """Normalize environment variable string value."""
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def apply_environment_defaults(args, environ: Optional[Dict[str, str]] = None) -> None:
    """Fill settings missing from the CLI and config file with ``YOUTUBE_CLIPPER_*`` variables."""
    if environ is None:
        environ = os.environ

    for key, caster in SETTING_KEYS.items():
        if getattr(args, key, None) is not None:
            continue
        raw = _normalize_env_str(environ.get(ENV_PREFIX + key.upper()))
        if raw is None:
            continue
        try:
            value = caster(raw)
        except ValueError:
            print(f"Warning: Ignoring invalid {ENV_PREFIX + key.upper()}={raw!r}", file=sys.stderr)
            continue
        setattr(args, key, value)


def build_settings(args) -> ClipperSettings:
    """Turn parsed arguments into settings, keeping built-in defaults for unset values."""
    overrides = {}
    for key, caster in SETTING_KEYS.items():
        value = getattr(args, key, None)
        if value is None:
            continue
        try:
            overrides[key] = caster(value)
        except (TypeError, ValueError):
            print(f"Warning: Ignoring invalid setting {key}={value!r}", file=sys.stderr)

    cutover = overrides.pop("pricing_cutover", None)
    settings = ClipperSettings(**overrides)
    if cutover is not None:
        try:
            settings.pricing_cutover = parse_cutover(cutover)
        except ValueError:
            print(
                f"Warning: Invalid pricing cutover {cutover!r}; using {DEFAULT_PRICING_CUTOVER}",
                file=sys.stderr,
            )
    return settings


def parse_clip_flag(value: str) -> Dict[str, str]:
    """Parse ``NAME=START-END`` into a raw clip dict. Malformed flags are left for validation."""
    name, sep, span = value.partition("=")
    if not sep:
        return {"name": value.strip()}
    start, _, end = span.partition("-")
    return {"name": name.strip(), "start": start.strip(), "end": end.strip()}


def _read_cookie_file(path: str) -> str:
    with open(os.path.expanduser(path), "r", encoding="utf-8") as handle:
        return handle.read()


def build_request(args) -> Dict[str, object]:
    """
    Assemble the raw run request from ``--input`` and the request flags.

    Flags override values from the input file. The result is validated by
    ``validation.parse_request``.

    Raises:
        OSError, ValueError: when the input or cookie file cannot be read.
    """
    raw: Dict[str, object] = {}
    if getattr(args, "input", None):
        with open(args.input, "r", encoding="utf-8") as handle:
            loaded = json.load(handle)
        if not isinstance(loaded, dict):
            raise ValueError(f"Run request {args.input} must contain a JSON object")
        raw.update(loaded)

    if getattr(args, "url", None):
        raw["videoUrl"] = args.url
    clip_flags: List[str] = list(getattr(args, "clip", None) or [])
    if clip_flags:
        raw["clips"] = [parse_clip_flag(flag) for flag in clip_flags]
    if getattr(args, "quality", None):
        raw["quality"] = args.quality
    if getattr(args, "max_retries", None) is not None:
        raw["maxRetries"] = args.max_retries
    if getattr(args, "no_fallbacks", False):
        raw["enableFallbacks"] = False

    use_proxy = getattr(args, "use_proxy", None)
    groups = list(getattr(args, "proxy_group", None) or [])
    if use_proxy is not None or groups:
        proxy = dict(raw.get("proxy") or {}) if isinstance(raw.get("proxy"), dict) else {}
        if use_proxy is not None:
            proxy["useProxy"] = use_proxy
        if groups:
            proxy["proxyGroups"] = groups
        raw["proxy"] = proxy

    if getattr(args, "cookies_file", None):
        raw["useCookies"] = True
        raw["cookies"] = _read_cookie_file(args.cookies_file)

    return raw
