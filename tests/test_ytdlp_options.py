"""Tests for yt-dlp command construction and the child-process runner."""

import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from youtube_clipper import provider, ytdlp_options
from youtube_clipper.errors import ErrorAnalyzer, ProviderError
from youtube_clipper.logger import DownloadLogger
from youtube_clipper.models import ProxyHealth, ProxyQuality, ProxySession

SESSION = ProxySession("http://user:pw@proxy:8000", "sess1", ProxyHealth(True, 100, ProxyQuality.GOOD))
URL = "https://www.youtube.com/watch?v=abcdefghijk"


def test_direct_command_arguments():
    command = ytdlp_options.build_direct_command(URL, "/tmp/clip.mp4", 10, 40, 720, SESSION, "/tmp/cookies.txt")
    args = command.to_args()

    assert args[:2] == ["--extractor-args", "youtube:skip=hls"]
    assert args[args.index("-f") + 1] == "best[height<=720]/best[ext=mp4]/best"
    assert args[args.index("--download-sections") + 1] == "*10-40"
    assert args[args.index("--remux-video") + 1] == "mp4"
    assert args[args.index("--proxy") + 1] == SESSION.url
    assert args[args.index("--cookies") + 1] == "/tmp/cookies.txt"
    assert "--no-playlist" in args
    assert args[-1] == URL


def test_compat_and_full_source_commands():
    compat = ytdlp_options.build_compat_command(URL, "/tmp/clip.mp4", 0, 5, 480, None)
    full = ytdlp_options.build_full_source_command(URL, "/work", 480, None)

    assert compat.format_selector == "best[height<=480]/worst"
    assert "--proxy" not in compat.to_args()
    assert full.section is None
    assert "--download-sections" not in full.to_args()
    assert full.output_template == "/work/full_source_480p.%(ext)s"


def test_metadata_options_include_proxy_and_cookies(capsys):
    opts = ytdlp_options.build_ydl_options(DownloadLogger(), SESSION, "/tmp/cookies.txt")

    assert opts["skip_download"] is True
    assert opts["proxy"] == SESSION.url
    assert opts["cookiefile"] == "/tmp/cookies.txt"
    assert opts["http_headers"]["User-Agent"] in ytdlp_options.USER_AGENTS
    assert "proxy_session=sess1" in capsys.readouterr().out


def test_runner_reports_last_error_line(monkeypatch):
    def fake_run(argv, capture_output, text, timeout):
        return SimpleNamespace(returncode=1, stdout="", stderr="WARNING: x\nERROR: Connection reset by peer\n")

    monkeypatch.setattr(provider.subprocess, "run", fake_run)
    runner = provider.YtDlpRunner(base_command=["yt-dlp"])

    with pytest.raises(ProviderError) as excinfo:
        runner(ytdlp_options.build_full_source_command(URL, "/work", 720, None), timeout=30)

    assert str(excinfo.value) == "ERROR: Connection reset by peer"
    assert "WARNING: x" in excinfo.value.stderr


def test_runner_failures_are_attributed_to_the_clip(monkeypatch, capsys):
    def fake_run(argv, capture_output, text, timeout):
        return SimpleNamespace(returncode=1, stdout="", stderr="ERROR: HTTP Error 429: Too Many Requests\n")

    monkeypatch.setattr(provider.subprocess, "run", fake_run)
    analyzer = ErrorAnalyzer()
    command = ytdlp_options.build_direct_command(URL, "/tmp/clip.mp4", 0, 5, 720, SESSION, label="Intro")

    with pytest.raises(ProviderError):
        provider.YtDlpRunner(base_command=["yt-dlp"], error_analyzer=analyzer).run(command, timeout=30)

    assert command.session_id == "sess1"
    assert analyzer.patterns["rate_limit"].clip_names == ["Intro"]
    assert "[clip=Intro session=sess1] ERROR: HTTP Error 429" in capsys.readouterr().err


def test_runner_timeout_is_network_classified(monkeypatch):
    def fake_run(argv, capture_output, text, timeout):
        raise subprocess.TimeoutExpired(argv, timeout)

    monkeypatch.setattr(provider.subprocess, "run", fake_run)

    with pytest.raises(ProviderError, match="ETIMEDOUT"):
        provider.YtDlpRunner(base_command=["yt-dlp"]).run(
            ytdlp_options.build_full_source_command(URL, "/work", 720, None), timeout=5
        )


def test_runner_argv_prefixes_base_command():
    command = ytdlp_options.build_full_source_command(URL, "/work", 720, None)
    argv = provider.YtDlpRunner().build_argv(command)

    assert argv[:3] == [sys.executable, "-m", "yt_dlp"]
    assert argv[-1] == URL


def test_inspector_returns_duration(monkeypatch):
    class FakeYDL:
        def __init__(self, opts):
            self.opts = opts

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def extract_info(self, url, download):
            assert download is False
            return {"id": "abcdefghijk", "duration": 754.0}

    monkeypatch.setattr(provider.yt_dlp, "YoutubeDL", FakeYDL)

    assert provider.YtDlpSourceInspector().duration_seconds(URL) == 754
