"""Tests for the extraction cascade and the full-source cache."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from youtube_clipper.cache import FullSourceCache
from youtube_clipper.cascade import ExtractionContext, build_cascade, clip_timeout
from youtube_clipper.errors import (
    AuthenticationChallengeError,
    ClipExtractionError,
    ProviderError,
    TranscoderError,
)
from youtube_clipper.models import ClipRequest, OutcomeStatus, Strategy
from youtube_clipper.quality import resolve
from youtube_clipper.retry import RetryExecutor


def tier_of(command) -> str:
    if command.section is None:
        return "full"
    if command.format_selector.endswith("/worst"):
        return "compat"
    return "direct"


class FakeRunner:
    """Pretends to be yt-dlp: tiers listed in *failing* raise, others write their output."""

    def __init__(self, failing=(), error_message="ERROR: Requested format is not available") -> None:
        self.failing = set(failing)
        self.error_message = error_message
        self.calls = []

    def __call__(self, command, timeout):
        tier = tier_of(command)
        self.calls.append((tier, timeout))
        if tier in self.failing:
            raise ProviderError(self.error_message)
        target = command.output_template.replace("%(ext)s", "mp4")
        Path(target).write_bytes(b"media-" + tier.encode())

    def count(self, tier: str) -> int:
        return sum(1 for called, _ in self.calls if called == tier)


class SkipExistingRunner:
    """Like yt-dlp, treats an existing target as already downloaded; listed tiers time out mid-write first."""

    def __init__(self, truncate=None, failing=()) -> None:
        self.truncate = dict(truncate or {})
        self.failing = set(failing)
        self.calls = []

    def __call__(self, command, timeout):
        tier = tier_of(command)
        self.calls.append(tier)
        if tier in self.failing:
            raise ProviderError("ERROR: Requested format is not available")
        target = Path(command.output_template.replace("%(ext)s", "mp4"))
        if target.exists():
            return
        if self.truncate.get(tier):
            self.truncate[tier] -= 1
            target.write_bytes(b"TRUNC")
            raise ProviderError(f"yt-dlp timed out after {timeout:g}s (ETIMEDOUT)")
        target.write_bytes(b"COMPLETE-" + tier.encode())


class FakeTranscoder:
    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.extractions = []

    def extract_range(self, source, start, duration, output, timeout=60):
        self.extractions.append((source, start, duration))
        if self.fail_times:
            self.fail_times -= 1
            raise TranscoderError("range extraction failed: moov atom not found")
        Path(output).write_bytes(b"cut")
        return output


class FakeMetering:
    def __init__(self) -> None:
        self.events = []

    def charge(self, event_name: str) -> bool:
        self.events.append(event_name)
        return True


def make_cascade(runner, transcoder=None, duration=600, cache=None, metering=None, max_source_minutes=120):
    return build_cascade(
        RetryExecutor(runner, None, sleep=lambda _: None),
        cache if cache is not None else FullSourceCache(),
        transcoder or FakeTranscoder(),
        lambda: duration,
        metering or FakeMetering(),
        max_source_minutes=max_source_minutes,
    )


def make_context(tmp_path, name="Intro", start="00:00:10", end="00:00:20", enable_fallbacks=True, max_retries=1):
    clip = ClipRequest(name=name, start=start, end=end)
    return ExtractionContext(
        clip=clip,
        video_url="https://www.youtube.com/watch?v=abcdefghijk",
        output_path=str(tmp_path / f"{clip.identifier}.mp4"),
        work_dir=str(tmp_path),
        quality=resolve("720p"),
        max_retries=max_retries,
        enable_fallbacks=enable_fallbacks,
    )


@pytest.mark.parametrize("duration, expected", [(10, 180), (60, 180), (100, 260), (330, 720), (600, 720)])
def test_clip_timeout_is_clamped(duration, expected):
    assert clip_timeout(duration) == expected


def test_direct_success_is_not_charged_as_fallback(tmp_path):
    runner = FakeRunner()
    metering = FakeMetering()
    result = make_cascade(runner, metering=metering).extract(make_context(tmp_path))

    assert result.strategy is Strategy.DIRECT
    assert result.fallback_charged is None
    assert metering.events == []
    assert runner.calls == [("direct", 180)]


def test_tiers_escalate_in_order_and_fallback_is_charged(tmp_path):
    runner = FakeRunner(failing={"direct", "compat"})
    metering = FakeMetering()

    result = make_cascade(runner, metering=metering).extract(make_context(tmp_path))

    assert [tier for tier, _ in runner.calls] == ["direct", "compat", "full"]
    assert runner.calls[-1][1] == 1800
    assert result.strategy is Strategy.FULL_EXTRACT
    assert [attempt.outcome for attempt in result.attempts] == [
        OutcomeStatus.FAIL,
        OutcomeStatus.FAIL,
        OutcomeStatus.SUCCESS,
    ]
    assert result.fallback_charged is True
    assert metering.events == ["clip_processed"]
    assert Path(result.path).read_bytes() == b"cut"


def test_compat_success_charges_processing_event(tmp_path):
    metering = FakeMetering()
    result = make_cascade(FakeRunner(failing={"direct"}), metering=metering).extract(make_context(tmp_path))

    assert result.strategy is Strategy.COMPAT
    assert metering.events == ["clip_processed"]


def test_two_clips_share_one_full_download(tmp_path):
    runner = FakeRunner(failing={"direct", "compat"})
    transcoder = FakeTranscoder()
    cache = FullSourceCache()
    cascade = make_cascade(runner, transcoder, cache=cache)

    cascade.extract(make_context(tmp_path, name="A"))
    cascade.extract(make_context(tmp_path, name="B", start="00:01:00", end="00:01:30"))

    assert runner.count("full") == 1
    assert len(transcoder.extractions) == 2
    assert transcoder.extractions[1][1:] == (60, 30)
    assert cache.get(720).endswith("full_source_720p.mp4")


def test_failed_extraction_invalidates_cache(tmp_path):
    runner = FakeRunner(failing={"direct", "compat"})
    cache = FullSourceCache()
    cascade = make_cascade(runner, FakeTranscoder(fail_times=1), cache=cache)

    with pytest.raises(ClipExtractionError):
        cascade.extract(make_context(tmp_path, name="A"))
    assert cache.entry is None
    assert not (tmp_path / "full_source_720p.mp4").exists()

    cascade.extract(make_context(tmp_path, name="B"))
    assert runner.count("full") == 2


def test_long_source_skips_full_extraction(tmp_path, capsys):
    runner = FakeRunner(failing={"direct", "compat"})

    with pytest.raises(ClipExtractionError):
        make_cascade(runner, duration=3 * 3600).extract(make_context(tmp_path))

    assert runner.count("full") == 0
    assert "[SKIP] full_extract" in capsys.readouterr().out


def test_unknown_runtime_still_attempts_full_extraction(tmp_path):
    runner = FakeRunner(failing={"direct", "compat"})
    result = make_cascade(runner, duration=None).extract(make_context(tmp_path))

    assert result.strategy is Strategy.FULL_EXTRACT


def test_fallbacks_disabled_stops_after_direct(tmp_path):
    runner = FakeRunner(failing={"direct"})

    with pytest.raises(ClipExtractionError):
        make_cascade(runner).extract(make_context(tmp_path, enable_fallbacks=False))

    assert [tier for tier, _ in runner.calls] == ["direct"]


def test_sign_in_challenge_escapes_the_cascade(tmp_path):
    runner = FakeRunner(
        failing={"direct"},
        error_message="ERROR: [youtube] abcdefghijk: Sign in to confirm you're not a bot",
    )

    with pytest.raises(AuthenticationChallengeError):
        make_cascade(runner).extract(make_context(tmp_path))

    assert [tier for tier, _ in runner.calls] == ["direct"]


def test_cache_put_replaces_file_for_other_cap(tmp_path):
    cache = FullSourceCache()
    first = tmp_path / "full_source_720p.mp4"
    second = tmp_path / "full_source_480p.mp4"
    first.write_bytes(b"a")
    second.write_bytes(b"b")

    cache.put(720, str(first))
    cache.put(480, str(second))

    assert not first.exists()
    assert cache.get(720) is None
    assert cache.get(480) == str(second)

    cache.clear()
    assert not second.exists()
    assert cache.entry is None


def test_timed_out_attempt_does_not_leave_partial_clip(tmp_path):
    runner = SkipExistingRunner(truncate={"direct": 1})

    result = make_cascade(runner).extract(make_context(tmp_path, max_retries=2))

    assert runner.calls == ["direct", "direct"]
    assert result.strategy is Strategy.DIRECT
    assert Path(result.path).read_bytes() == b"COMPLETE-direct"


def test_failed_full_download_is_not_reused_by_next_clip(tmp_path):
    runner = SkipExistingRunner(truncate={"full": 2}, failing={"direct", "compat"})
    cache = FullSourceCache()
    cascade = make_cascade(runner, cache=cache)

    with pytest.raises(ClipExtractionError):
        cascade.extract(make_context(tmp_path, name="A"))
    assert list(tmp_path.glob("full_source_720p.*")) == []
    assert cache.entry is None

    result = cascade.extract(make_context(tmp_path, name="B"))

    assert result.strategy is Strategy.FULL_EXTRACT
    assert runner.calls.count("full") == 3
    assert Path(cache.get(720)).read_bytes() == b"COMPLETE-full"
