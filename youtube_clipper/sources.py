"""Source URL normalization for YouTube video links."""

import re
import urllib.parse
from dataclasses import dataclass, field
from typing import List

VIDEO_ID_PATTERN = re.compile(r"^[0-9A-Za-z_-]{11}$")

# Query parameters that turn a video link into a playlist or seek position.
STRIPPED_PARAMS = ("list", "playlist", "index", "t", "start", "end", "time_continue")


@dataclass(frozen=True)
class CleanedUrl:
    url: str
    video_id: str
    removed_params: List[str] = field(default_factory=list)


def normalize_url(url: str) -> str:
    """Normalize and validate a URL."""
    cleaned = url.strip()
    if not cleaned:
        raise ValueError("missing URL")

    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", cleaned):
        cleaned = "https://" + cleaned.lstrip("/")

    return cleaned


def _is_youtube_host(host: str) -> bool:
    host = host.lower()
    return host == "youtu.be" or host.endswith(".youtu.be") or host == "youtube.com" or host.endswith(".youtube.com")


def extract_video_id(parsed: urllib.parse.SplitResult) -> str:
    host = (parsed.hostname or "").lower()
    if host == "youtu.be" or host.endswith(".youtu.be"):
        return parsed.path.lstrip("/").split("/", 1)[0]
    if parsed.path.rstrip("/") == "/watch":
        values = urllib.parse.parse_qs(parsed.query).get("v")
        return values[0] if values else ""
    return ""


def clean_video_url(url) -> CleanedUrl:
    """
    Validate a YouTube video link and strip playlist and seek parameters.

    The cleaned URL is the run's video identity, so two links to the same
    video that differ only in ``t=`` or ``list=`` resume the same checkpoint.

    Raises:
        ValueError: with a user-facing message when the URL is unusable.
    """
    if not url or not isinstance(url, str):
        raise ValueError("Video URL must be a non-empty string.")

    try:
        parsed = urllib.parse.urlsplit(normalize_url(url))
        host = parsed.hostname or ""
    except ValueError as exc:
        raise ValueError("Invalid URL format.") from exc

    if not host or not _is_youtube_host(host):
        raise ValueError("URL must be a valid YouTube video URL (youtube.com or youtu.be).")

    video_id = extract_video_id(parsed)
    if not VIDEO_ID_PATTERN.match(video_id or ""):
        raise ValueError("URL must contain a valid YouTube video ID (11 characters).")

    query = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    present = {key for key, _ in query}
    removed = [param for param in STRIPPED_PARAMS if param in present]
    kept = [(key, value) for key, value in query if key not in STRIPPED_PARAMS]

    cleaned = urllib.parse.urlunsplit(
        (parsed.scheme, parsed.netloc, parsed.path, urllib.parse.urlencode(kept), "")
    )
    return CleanedUrl(url=cleaned, video_id=video_id, removed_params=removed)
