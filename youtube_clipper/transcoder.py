"""ffmpeg / ffprobe wrappers: resolution probing, range extraction, thumbnails."""

import os
import subprocess
import sys
from typing import List, Optional

from .errors import TranscoderError
from .models import Resolution

DEFAULT_EXTRACT_TIMEOUT = 60.0
DEFAULT_PROBE_TIMEOUT = 30.0


def _stderr_tail(stderr: Optional[str], lines: int = 20) -> str:
    if not stderr:
        return ""
    return "\n".join(stderr.strip().splitlines()[-lines:])


def parse_resolution(output: str) -> Optional[Resolution]:
    """Parse ffprobe ``WIDTHxHEIGHT`` output, ignoring blank or partial lines."""
    for line in (output or "").splitlines():
        stripped = line.strip().rstrip("x")
        if "x" not in stripped:
            continue
        width_text, _, height_text = stripped.partition("x")
        try:
            width, height = int(width_text), int(height_text)
        except ValueError:
            continue
        if width > 0 and height > 0:
            return Resolution(width=width, height=height)
    return None


class FFmpegTranscoder:
    """Local media operations on already-downloaded files."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe") -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def _run(self, cmd: List[str], timeout: float, action: str) -> subprocess.CompletedProcess:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise TranscoderError(f"Timeout during {action} after {timeout:g}s") from exc
        except OSError as exc:
            raise TranscoderError(f"Failed to start {cmd[0]} for {action}: {exc}") from exc

        if result.returncode != 0:
            raise TranscoderError(f"{action} failed: {_stderr_tail(result.stderr) or result.returncode}")
        return result

    def probe_resolution(self, path: str) -> Optional[Resolution]:
        """Return the first video stream's resolution, or None when it cannot be read."""
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height",
            "-of", "csv=p=0:s=x",
            path,
        ]
        try:
            result = self._run(cmd, DEFAULT_PROBE_TIMEOUT, "resolution probe")
        except TranscoderError as exc:
            print(f"[WARNING] Could not detect video resolution: {exc}", file=sys.stderr)
            return None
        return parse_resolution(result.stdout)

    def extract_range(
        self,
        source: str,
        start: int,
        duration: int,
        output: str,
        timeout: float = DEFAULT_EXTRACT_TIMEOUT,
    ) -> str:
        """Copy ``[start, start + duration)`` of *source* into *output* without re-encoding."""
        cmd = [
            self.ffmpeg_path,
            "-hide_banner", "-loglevel", "error", "-y",
            "-i", source,
            "-ss", str(start),
            "-t", str(duration),
            "-c", "copy",
            output,
        ]
        self._run(cmd, timeout, "range extraction")
        if not os.path.exists(output) or os.path.getsize(output) == 0:
            raise TranscoderError(f"range extraction produced no output: {output}")
        return output

    def generate_thumbnail(self, clip_path: str, output: str, timeout: float = DEFAULT_EXTRACT_TIMEOUT) -> str:
        """Render a single JPEG frame one second into the clip."""
        cmd = [
            self.ffmpeg_path,
            "-hide_banner", "-loglevel", "error", "-y",
            "-i", clip_path,
            "-ss", "1",
            "-frames:v", "1",
            "-q:v", "2",
            output,
        ]
        self._run(cmd, timeout, "thumbnail generation")
        if not os.path.exists(output):
            raise TranscoderError(f"thumbnail generation produced no output: {output}")
        return output
