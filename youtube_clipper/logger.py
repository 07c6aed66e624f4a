"""Console logging helpers and the yt-dlp logger adapter."""

import sys
from datetime import datetime
from typing import Callable, List, Optional

from .errors import ErrorAnalyzer, is_auth_challenge, is_network_error


def log_with_timestamp(message: str, file=sys.stdout) -> None:
    """Print a log message with timestamp."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] {message}", file=file)
    file.flush()  # Force immediate output


class DownloadLogger:
    """Logger handed to yt-dlp that classifies provider messages as they arrive."""

    UNAVAILABLE_FRAGMENTS = (
        "video unavailable",
        "video is unavailable",
        "content isn't available",
        "content is not available",
        "this video is private",
        "http error 410",
    )

    IGNORED_FRAGMENTS = (
        "falling back on generic information extractor",
    )

    def __init__(
        self,
        error_analyzer: Optional[ErrorAnalyzer] = None,
        challenge_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.network_errors = 0
        self.video_unavailable_errors = 0
        self.other_errors = 0
        self.auth_challenges = 0
        self.http_403_count = 0
        self.messages: List[str] = []
        self.current_clip: Optional[str] = None
        self.current_session: Optional[str] = None
        self._error_analyzer = error_analyzer
        self._challenge_callback = challenge_callback

    def set_context(self, clip: Optional[str], session: Optional[str]) -> None:
        self.current_clip = clip
        self.current_session = session

    def _format_with_context(self, message: str) -> str:
        context_parts = []
        if self.current_clip:
            context_parts.append(f"clip={self.current_clip}")
        if self.current_session:
            context_parts.append(f"session={self.current_session}")
        if context_parts:
            return f"[{' '.join(context_parts)}] {message}"
        return message

    def _print(self, message: str, file=sys.stdout) -> None:
        print(self._format_with_context(message), file=file)

    def _handle_message(self, text: str) -> None:
        lowered = text.lower()
        if any(fragment in lowered for fragment in self.IGNORED_FRAGMENTS):
            return

        self.messages.append(text)

        if "http error 403" in lowered or "forbidden" in lowered:
            self.http_403_count += 1

        if is_auth_challenge(text):
            self.auth_challenges += 1
            if self._challenge_callback:
                self._challenge_callback(text)
        elif is_network_error(text):
            self.network_errors += 1
        elif any(fragment in lowered for fragment in self.UNAVAILABLE_FRAGMENTS):
            self.video_unavailable_errors += 1
        else:
            self.other_errors += 1

        if self._error_analyzer:
            self._error_analyzer.categorize_and_record(self.current_clip, text)

    @property
    def last_message(self) -> Optional[str]:
        return self.messages[-1] if self.messages else None

    @staticmethod
    def _ensure_text(message) -> str:
        if isinstance(message, bytes):
            return message.decode("utf-8", "ignore")
        return str(message)

    def debug(self, message) -> None:  # yt-dlp calls this
        pass

    def info(self, message) -> None:
        self._print(self._ensure_text(message))

    def warning(self, message) -> None:
        text = self._ensure_text(message)
        self._print(text, file=sys.stderr)

    def error(self, message) -> None:
        text = self._ensure_text(message)
        self._print(text, file=sys.stderr)
        self._handle_message(text)

    def record_exception(self, exc: Exception) -> None:
        self.error(str(exc))

    def feed_stderr(self, stderr: Optional[str]) -> None:
        """Route the captured stderr of a yt-dlp child process through the logger."""
        if not stderr:
            return
        for raw_line in stderr.splitlines():
            line = raw_line.strip()
            if not line:
                continue
            if line.startswith("ERROR:"):
                self.error(line)
            elif line.startswith("WARNING:"):
                self.warning(line)
