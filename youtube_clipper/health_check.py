"""Health check: proxy reachability and YouTube metadata access."""

import time
from typing import Optional

import yt_dlp
from yt_dlp.utils import DownloadError, ExtractorError

from .config import ClipperSettings
from .errors import ProxyConfigurationError
from .logger import DownloadLogger
from .models import ProxySession
from .proxy import ProxySessionManager, build_proxy_issuer, probe_proxy
from .ytdlp_options import build_ydl_options

# Popular, stable video that's unlikely to be removed
TEST_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def _check_proxy(settings: ClipperSettings) -> Optional[ProxySession]:
    issuer = build_proxy_issuer(settings.proxy_template, settings.proxy_file)
    manager = ProxySessionManager(
        issuer,
        probe=lambda url: probe_proxy(url, settings.probe_url, settings.probe_timeout),
        max_attempts=settings.session_attempts,
        attempt_delay=settings.session_attempt_delay,
    )
    session = manager.establish()
    health = session.health
    mark = "✓" if health.acceptable else "⚠"
    print(f"{mark} Proxy session {session.session_id}: {health.quality.value} ({health.latency_ms}ms)")
    return session


def run_health_check(settings: ClipperSettings, test_url: str = TEST_URL) -> int:
    """Run a health check and return a process exit code."""

    print("=" * 80)
    print("YouTube Clipper Health Check".center(80))
    print("=" * 80)
    print()

    session: Optional[ProxySession] = None
    if settings.proxy_configured:
        try:
            session = _check_proxy(settings)
        except ProxyConfigurationError as exc:
            print(f"✗ Proxy configuration error: {exc}")
            return 1
    else:
        print("ℹ No proxy configured; testing a direct connection")

    print(f"Testing connectivity with: {test_url}")
    print()

    logger = DownloadLogger()
    ydl_opts = build_ydl_options(logger, session)
    ydl_opts["no_warnings"] = True

    start_time = time.time()
    success = False
    error_message = None

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(test_url, download=False)
            if info and info.get("id"):
                success = True
                print(f"✓ Successfully retrieved metadata for: {info.get('title', 'Unknown')}")
                print(f"✓ Video duration: {info.get('duration', 0)} seconds")
    except (DownloadError, ExtractorError) as exc:
        error_message = str(exc)
        logger.record_exception(exc)

    elapsed = time.time() - start_time

    print()
    print("=" * 80)
    print("Health Check Results".center(80))
    print("=" * 80)

    if success:
        print("✓ Status: HEALTHY")
        print(f"✓ Response time: {elapsed:.2f}s")
        if session is not None:
            print(f"✓ Routed through proxy session {session.session_id}")
        print()
        print("Your configuration appears healthy. Clips should download without issues.")
        return 0

    print("✗ Status: UNHEALTHY")
    print(f"✗ Response time: {elapsed:.2f}s")

    if logger.auth_challenges > 0:
        print("✗ YouTube is asking to sign in to confirm you're not a bot")
        print()
        print("Recommendations:")
        print("  1. Export fresh cookies from a logged-in browser and pass --cookies-file")
        print("  2. Switch to a residential proxy group")
    elif logger.http_403_count > 0:
        print(f"✗ HTTP 403 errors detected: {logger.http_403_count}")
        print("✗ Likely cause: Rate limiting or IP block")
        print()
        print("Recommendations:")
        print("  1. Wait 10-30 minutes before trying again")
        print("  2. Route requests through a proxy (--proxy-template or --proxy-file)")
    elif logger.network_errors > 0:
        print(f"✗ Network errors detected: {logger.network_errors}")
        print("✗ Check the proxy endpoint and your internet connection")
    else:
        print(f"✗ Error: {error_message or 'Unknown error'}")
        print()
        print("Recommendations:")
        print("  1. Check your internet connection")
        print("  2. Verify YouTube is accessible in your browser")

    return 1
