"""Exceptions, failure classification and error analysis for the clip extractor."""

import re
import sys
from datetime import datetime
from typing import Dict, List, Optional

from .models import ErrorPattern

# Failures that a fresh proxy session may fix.
NETWORK_ERROR_PATTERNS = (
    re.compile(r"timed? ?out", re.IGNORECASE),
    re.compile(r"etimedout", re.IGNORECASE),
    re.compile(r"connection (?:reset|refused|aborted)", re.IGNORECASE),
    re.compile(r"econn(?:reset|refused|aborted)", re.IGNORECASE),
    re.compile(r"broken pipe", re.IGNORECASE),
    re.compile(r"remote end closed connection", re.IGNORECASE),
    re.compile(r"\b(?:ssl|tls)\b", re.IGNORECASE),
    re.compile(r"certificate verify failed", re.IGNORECASE),
    re.compile(r"tunnel connection failed", re.IGNORECASE),
    re.compile(r"unable to connect to proxy", re.IGNORECASE),
    re.compile(r"proxyerror", re.IGNORECASE),
    re.compile(r"name or service not known|temporary failure in name resolution", re.IGNORECASE),
    re.compile(r"network is unreachable", re.IGNORECASE),
)

AUTH_CHALLENGE_FRAGMENTS = (
    "sign in to confirm",
    "confirm you're not a bot",
    "confirm you are not a bot",
)


def is_network_error(message: str) -> bool:
    """Return True when *message* looks like a transient network failure."""
    return any(pattern.search(message or "") for pattern in NETWORK_ERROR_PATTERNS)


def is_auth_challenge(message: str) -> bool:
    """Return True when the platform demands a signed-in session."""
    lowered = (message or "").lower()
    return any(fragment in lowered for fragment in AUTH_CHALLENGE_FRAGMENTS)


class ClipperError(Exception):
    """Base class for clip extractor errors."""


class ValidationError(ClipperError):
    """Raised when the run request is malformed. Carries every violation found."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Input validation failed:\n" + "\n".join(self.errors))


class ProxyConfigurationError(ClipperError):
    """Raised when proxying is requested but no proxy source is configured."""


class AuthenticationChallengeError(ClipperError):
    """Raised when the platform requires sign-in. Fatal to the whole run."""

    MESSAGE = (
        "A fatal error occurred: YouTube is blocking the download, requiring a sign-in. "
        "Please provide a fresh, valid cookie file from a logged-in browser session to continue."
    )

    def __init__(self, detail: Optional[str] = None) -> None:
        self.detail = detail
        super().__init__(self.MESSAGE)


class ProviderError(ClipperError):
    """Raised when a yt-dlp invocation fails or times out."""

    def __init__(self, message: str, stderr: Optional[str] = None) -> None:
        super().__init__(message)
        self.stderr = stderr


class FinalAttemptError(ClipperError):
    """Raised when every retry attempt of a command has failed."""

    def __init__(self, label: str, attempts: int, last_error: Exception) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"All {attempts} attempts failed for {label}: {last_error}")


class ClipExtractionError(ClipperError):
    """Raised when every enabled cascade tier failed to produce the clip."""


class TranscoderError(ClipperError):
    """Raised when ffmpeg or ffprobe fails."""


class StorageError(ClipperError):
    """Raised when the object store rejects an upload."""


class MeteringError(ClipperError):
    """Raised by a metering sink when a charge cannot be recorded."""


class ErrorAnalyzer:
    """Analyzes failure patterns across a run and suggests remediation."""

    def __init__(self) -> None:
        self.patterns: Dict[str, ErrorPattern] = {
            "auth_challenge": ErrorPattern("auth_challenge"),
            "network": ErrorPattern("network"),
            "rate_limit": ErrorPattern("rate_limit"),
            "geo_restricted": ErrorPattern("geo_restricted"),
            "video_unavailable": ErrorPattern("video_unavailable"),
            "format_unavailable": ErrorPattern("format_unavailable"),
            "unknown": ErrorPattern("unknown"),
        }
        self.total_errors = 0
        self.error_log_path: Optional[str] = None

    def set_error_log_path(self, path: str) -> None:
        """Set the path for the detailed error log file."""
        self.error_log_path = path

    @staticmethod
    def categorize(error_message: str) -> str:
        lowered = (error_message or "").lower()

        # Order matters - more specific first
        if is_auth_challenge(lowered):
            return "auth_challenge"
        if any(x in lowered for x in ["403", "forbidden", "too many requests", "429", "rate limit"]):
            return "rate_limit"
        if any(x in lowered for x in ["not available in your country", "geo", "region"]):
            return "geo_restricted"
        if any(x in lowered for x in ["video unavailable", "private video", "has been removed", "content isn't available"]):
            return "video_unavailable"
        if "requested format is not available" in lowered:
            return "format_unavailable"
        if is_network_error(lowered):
            return "network"
        return "unknown"

    def categorize_and_record(self, clip_name: Optional[str], error_message: str) -> str:
        """Categorize an error and record it. Returns the error category."""
        self.total_errors += 1
        category = self.categorize(error_message)
        self.patterns[category].record(clip_name, error_message)

        if self.error_log_path:
            self._append_to_error_log(clip_name, category, error_message)

        return category

    def _append_to_error_log(self, clip_name: Optional[str], category: str, message: str) -> None:
        """Append error details to the error log file."""
        try:
            timestamp = datetime.now().isoformat()
            log_entry = f"[{timestamp}] [{category}] {clip_name or 'unknown'}: {message}\n"

            with open(self.error_log_path, "a", encoding="utf-8") as f:
                f.write(log_entry)
        except OSError as e:
            # Don't fail the run if error logging fails
            print(f"Warning: Failed to write to error log: {e}", file=sys.stderr)

    def get_recommendations(self) -> List[str]:
        """Generate recommendations based on error patterns."""
        if self.total_errors == 0:
            return ["No errors detected - run completed successfully!"]

        recommendations = []

        if self.patterns["auth_challenge"].count > 0:
            recommendations.append(
                f"🔐 Sign-in challenge ({self.patterns['auth_challenge'].count}): "
                "Export fresh cookies from a logged-in browser session and pass them with useCookies."
            )

        if self.patterns["network"].count > 0:
            recommendations.append(
                f"🌐 Network failures ({self.patterns['network'].count}): "
                "Proxy sessions were rotated automatically. If this persists, try a different proxy group "
                "or raise maxRetries."
            )

        if self.patterns["rate_limit"].count > 0:
            recommendations.append(
                f"⏱️  Rate limiting ({self.patterns['rate_limit'].count}): "
                "YouTube is detecting automated access. Use residential proxies or wait before retrying."
            )

        if self.patterns["geo_restricted"].count > 0:
            recommendations.append(
                f"🌍 Geo-restriction ({self.patterns['geo_restricted'].count}): "
                "Use a proxy group located in a region where the video is available."
            )

        if self.patterns["video_unavailable"].count > 0:
            recommendations.append(
                f"⚠️  Video unavailable ({self.patterns['video_unavailable'].count}): "
                "The source may be private or removed. Check the URL in a browser."
            )

        if self.patterns["format_unavailable"].count > 0:
            recommendations.append(
                f"🎞️  Format unavailable ({self.patterns['format_unavailable'].count}): "
                "Keep enableFallbacks on or request a lower quality tier."
            )

        if self.patterns["unknown"].count > 0:
            recommendations.append(
                f"❓ Unknown errors ({self.patterns['unknown'].count}): "
                "Check the error log for details. May require manual investigation."
            )

        return recommendations

    def print_summary(self) -> None:
        """Print a formatted summary of error patterns."""
        if self.total_errors == 0:
            return

        print("\n" + "=" * 70)
        print("Error Pattern Analysis")
        print("=" * 70)
        print(f"Total errors: {self.total_errors}\n")

        sorted_patterns = sorted(
            self.patterns.items(),
            key=lambda x: x[1].count,
            reverse=True,
        )

        for name, pattern in sorted_patterns:
            if pattern.count > 0:
                print(f"{name.replace('_', ' ').title()}: {pattern.count} occurrences")
                print(f"  Affected clips: {len(pattern.clip_names)}")
                if pattern.sample_messages:
                    print(f"  Sample: {pattern.sample_messages[0][:80]}...")
                print()

        print("=" * 70)
        print("Recommendations")
        print("=" * 70)
        for rec in self.get_recommendations():
            print(f"{rec}\n")
        print("=" * 70)

        if self.error_log_path:
            print(f"\nDetailed error log: {self.error_log_path}")
