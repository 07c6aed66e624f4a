"""yt-dlp command construction and format selection logic."""

import os
import random
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .logger import DownloadLogger
from .models import OUTPUT_FORMAT, USER_AGENTS, ProxySession


def select_random_user_agent() -> str:
    """Select a random User-Agent from the pool to rotate through different browsers."""
    return random.choice(USER_AGENTS)


def capped_format(max_height: int) -> str:
    """Format selector for the primary ranged download."""
    return f"best[height<={max_height}]/best[ext=mp4]/best"


def compat_format(max_height: int) -> str:
    """More permissive selector: accept the worst encode when no capped one exists."""
    return f"best[height<={max_height}]/worst"


@dataclass(frozen=True)
class DownloadCommand:
    """Everything needed for one yt-dlp invocation."""
    url: str
    output_template: str
    format_selector: str
    section: Optional[Tuple[int, int]] = None
    proxy: Optional[str] = None
    cookie_file: Optional[str] = None
    remux_format: Optional[str] = None
    extractor_args: Optional[str] = None
    user_agent: Optional[str] = None
    no_playlist: bool = True
    # Log context only; never passed to yt-dlp.
    label: Optional[str] = None
    session_id: Optional[str] = None

    def to_args(self) -> List[str]:
        args: List[str] = []
        if self.extractor_args:
            args += ["--extractor-args", self.extractor_args]
        args += ["--no-check-certificates", "--ignore-errors"]
        if self.no_playlist:
            args.append("--no-playlist")
        args += ["-f", self.format_selector]
        if self.section is not None:
            start, end = self.section
            args += ["--download-sections", f"*{start}-{end}"]
        args += ["--no-part", "--no-mtime"]
        if self.remux_format:
            args += ["--remux-video", self.remux_format]
        if self.user_agent:
            args += ["--user-agent", self.user_agent]
        args += ["-o", self.output_template]
        if self.cookie_file:
            args += ["--cookies", self.cookie_file]
        if self.proxy:
            args += ["--proxy", self.proxy]
        args.append(self.url)
        return args

    def describe(self) -> str:
        parts = [f"format={self.format_selector}"]
        if self.section is not None:
            parts.append(f"section={self.section[0]}-{self.section[1]}")
        if self.remux_format:
            parts.append(f"remux={self.remux_format}")
        parts.append("cookies=yes" if self.cookie_file else "cookies=no")
        parts.append("proxy=yes" if self.proxy else "proxy=no")
        return ", ".join(parts)


def _proxy_url(session: Optional[ProxySession]) -> Optional[str]:
    return session.url if session is not None else None


def _session_id(session: Optional[ProxySession]) -> Optional[str]:
    return session.session_id if session is not None else None


def build_direct_command(
    url: str,
    output_path: str,
    start: int,
    end: int,
    max_height: int,
    session: Optional[ProxySession],
    cookie_file: Optional[str] = None,
    label: Optional[str] = None,
) -> DownloadCommand:
    """Ranged download at the resolution cap, remuxed into the final container."""
    return DownloadCommand(
        url=url,
        output_template=output_path,
        format_selector=capped_format(max_height),
        section=(start, end),
        proxy=_proxy_url(session),
        cookie_file=cookie_file,
        remux_format=OUTPUT_FORMAT,
        extractor_args="youtube:skip=hls",
        user_agent=select_random_user_agent(),
        label=label,
        session_id=_session_id(session),
    )


def build_compat_command(
    url: str,
    output_path: str,
    start: int,
    end: int,
    max_height: int,
    session: Optional[ProxySession],
    cookie_file: Optional[str] = None,
    label: Optional[str] = None,
) -> DownloadCommand:
    """Ranged download with the permissive compatibility selector."""
    return DownloadCommand(
        url=url,
        output_template=output_path,
        format_selector=compat_format(max_height),
        section=(start, end),
        proxy=_proxy_url(session),
        cookie_file=cookie_file,
        remux_format=OUTPUT_FORMAT,
        user_agent=select_random_user_agent(),
        label=label,
        session_id=_session_id(session),
    )


def full_source_prefix(max_height: int) -> str:
    return f"full_source_{max_height}p"


def build_full_source_command(
    url: str,
    directory: str,
    max_height: int,
    session: Optional[ProxySession],
    cookie_file: Optional[str] = None,
    label: Optional[str] = None,
) -> DownloadCommand:
    """Whole-video download, still respecting the resolution cap."""
    return DownloadCommand(
        url=url,
        output_template=os.path.join(directory, full_source_prefix(max_height) + ".%(ext)s"),
        format_selector=capped_format(max_height),
        proxy=_proxy_url(session),
        cookie_file=cookie_file,
        user_agent=select_random_user_agent(),
        label=label,
        session_id=_session_id(session),
    )


def build_ydl_options(
    logger: DownloadLogger,
    session: Optional[ProxySession] = None,
    cookie_file: Optional[str] = None,
    socket_timeout: float = 30.0,
) -> dict:
    """Build yt-dlp API options for metadata-only requests."""
    user_agent = select_random_user_agent()

    ydl_opts = {
        "skip_download": True,
        "noplaylist": True,
        "quiet": True,
        "no_warnings": False,
        "nocheckcertificate": True,
        "socket_timeout": socket_timeout,
        "retries": 3,
        "logger": logger,
        "http_headers": {
            "User-Agent": user_agent,
        },
    }

    if session is not None:
        ydl_opts["proxy"] = session.url
    if cookie_file:
        ydl_opts["cookiefile"] = cookie_file

    debug_parts = [f"socket_timeout={socket_timeout}"]
    user_agent_short = user_agent.split('(')[0].strip() if '(' in user_agent else user_agent[:50]
    debug_parts.append(f"user_agent={user_agent_short}")
    if session is not None:
        debug_parts.append(f"proxy_session={session.session_id}")
    if cookie_file:
        debug_parts.append("cookies=yes")

    print("Constructed yt-dlp options: " + ", ".join(debug_parts))

    return ydl_opts
