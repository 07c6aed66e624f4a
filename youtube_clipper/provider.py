"""yt-dlp invocation: ranged/full downloads as child processes, metadata via the API."""

import subprocess
import sys
from typing import List, Optional

import yt_dlp
from yt_dlp.utils import DownloadError, ExtractorError

from .errors import AuthenticationChallengeError, ErrorAnalyzer, ProviderError, is_auth_challenge
from .logger import DownloadLogger
from .models import ProxySession
from .ytdlp_options import DownloadCommand, build_ydl_options

STDERR_TAIL_LINES = 20


def _tail(text: Optional[str], lines: int = STDERR_TAIL_LINES) -> str:
    if not text:
        return ""
    return "\n".join(text.strip().splitlines()[-lines:])


class YtDlpRunner:
    """
    Runs yt-dlp in a child process so every attempt can be killed on timeout.

    A timed-out attempt is reported exactly like a failed one.
    """

    def __init__(self, base_command: Optional[List[str]] = None, error_analyzer: Optional[ErrorAnalyzer] = None) -> None:
        self.base_command = list(base_command) if base_command else [sys.executable, "-m", "yt_dlp"]
        self.error_analyzer = error_analyzer

    def build_argv(self, command: DownloadCommand) -> List[str]:
        return self.base_command + command.to_args()

    def __call__(self, command: DownloadCommand, timeout: float) -> None:
        self.run(command, timeout)

    def run(self, command: DownloadCommand, timeout: float) -> None:
        argv = self.build_argv(command)
        print(f"Executing yt-dlp ({command.describe()}, timeout={timeout:g}s)")
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProviderError(f"yt-dlp timed out after {timeout:g}s (ETIMEDOUT)") from exc
        except OSError as exc:
            raise ProviderError(f"Failed to start yt-dlp: {exc}") from exc

        if result.returncode != 0:
            logger = DownloadLogger(error_analyzer=self.error_analyzer)
            logger.set_context(command.label, command.session_id)
            logger.feed_stderr(result.stderr)
            message = logger.last_message or f"yt-dlp exited with code {result.returncode}"
            raise ProviderError(message, stderr=_tail(result.stderr))


class YtDlpSourceInspector:
    """Looks up source metadata (runtime) without downloading media."""

    def __init__(self, error_analyzer: Optional[ErrorAnalyzer] = None) -> None:
        self.error_analyzer = error_analyzer

    def duration_seconds(
        self,
        url: str,
        session: Optional[ProxySession] = None,
        cookie_file: Optional[str] = None,
    ) -> Optional[int]:
        """Return the source runtime in seconds, or None when it cannot be determined."""
        logger = DownloadLogger(error_analyzer=self.error_analyzer)
        ydl_opts = build_ydl_options(logger, session, cookie_file)

        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=False)
        except (DownloadError, ExtractorError) as exc:
            message = str(exc)
            if is_auth_challenge(message):
                raise AuthenticationChallengeError(message) from exc
            print(f"Warning: Could not read source metadata: {message}", file=sys.stderr)
            return None

        if not isinstance(info, dict):
            return None
        duration = info.get("duration")
        if duration is None:
            return None
        try:
            return int(duration)
        except (TypeError, ValueError):
            return None
