"""Tests for the retry engine: backoff schedule, proxy rotation and sign-in aborts."""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from youtube_clipper.errors import AuthenticationChallengeError, FinalAttemptError, ProviderError
from youtube_clipper.retry import RetryExecutor, backoff_delay


class FakeSessions:
    def __init__(self) -> None:
        self.rotations = 0
        self.current = SimpleNamespace(session_id="s0", url="http://proxy-0")

    def rotate(self):
        self.rotations += 1
        self.current = SimpleNamespace(session_id=f"s{self.rotations}", url=f"http://proxy-{self.rotations}")
        return self.current


class ScriptedRunner:
    """Raises the queued errors in order, then succeeds."""

    def __init__(self, errors) -> None:
        self.errors = list(errors)
        self.calls = []

    def __call__(self, command, timeout):
        self.calls.append((command, timeout))
        if self.errors:
            raise self.errors.pop(0)


def test_backoff_doubles_without_cap():
    assert [backoff_delay(k) for k in (1, 2, 3, 4, 5)] == [5, 10, 20, 40, 80]


def test_network_failures_rotate_and_back_off_until_exhausted():
    sessions = FakeSessions()
    sleeps = []
    runner = ScriptedRunner([ProviderError("Connection reset by peer")] * 3)
    executor = RetryExecutor(runner, sessions, sleep=sleeps.append)

    with pytest.raises(FinalAttemptError) as excinfo:
        executor.run(lambda session: session.url, max_attempts=3, timeout=180, label="Intro")

    assert sleeps == [5, 10]
    assert sessions.rotations == 2
    assert [command for command, _ in runner.calls] == ["http://proxy-0", "http://proxy-1", "http://proxy-2"]
    assert isinstance(excinfo.value.__cause__, ProviderError)


def test_non_network_failure_does_not_rotate():
    sessions = FakeSessions()
    sleeps = []
    runner = ScriptedRunner([ProviderError("ERROR: Requested format is not available")])
    executor = RetryExecutor(runner, sessions, sleep=sleeps.append)

    command = executor.run(lambda session: session.session_id, max_attempts=3, timeout=180)

    assert command == "s0"
    assert sessions.rotations == 0
    assert sleeps == [5]


def test_network_classification_uses_stderr_detail():
    sessions = FakeSessions()
    runner = ScriptedRunner([ProviderError("yt-dlp exited with code 1", stderr="ssl: handshake failed")])
    executor = RetryExecutor(runner, sessions, sleep=lambda _: None)

    executor.run(lambda session: session, max_attempts=2, timeout=10)

    assert sessions.rotations == 1


def test_sign_in_challenge_aborts_immediately():
    sleeps = []
    runner = ScriptedRunner([ProviderError("ERROR: [youtube] abc: Sign in to confirm you're not a bot")])
    executor = RetryExecutor(runner, FakeSessions(), sleep=sleeps.append)

    with pytest.raises(AuthenticationChallengeError):
        executor.run(lambda session: session, max_attempts=3, timeout=10)

    assert len(runner.calls) == 1
    assert sleeps == []


def test_without_sessions_commands_get_no_proxy():
    seen = []
    runner = ScriptedRunner([ProviderError("timed out")])
    executor = RetryExecutor(runner, None, sleep=lambda _: None)

    executor.run(lambda session: seen.append(session) or "cmd", max_attempts=2, timeout=10)

    assert seen == [None, None]


def test_explicit_network_callback_overrides_rotation():
    sessions = FakeSessions()
    calls = []
    runner = ScriptedRunner([ProviderError("Connection refused")])
    executor = RetryExecutor(runner, sessions, sleep=lambda _: None)

    executor.run(lambda session: session, max_attempts=2, timeout=10, on_network_failure=lambda: calls.append(1))

    assert calls == [1]
    assert sessions.rotations == 0
