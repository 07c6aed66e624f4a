"""Bounded retry with exponential backoff and proxy rotation on network failures."""

import sys
import time
from typing import Callable, Optional

from .errors import (
    AuthenticationChallengeError,
    FinalAttemptError,
    ProviderError,
    is_auth_challenge,
    is_network_error,
)

BACKOFF_BASE_SECONDS = 5.0


def backoff_delay(attempt: int, base: float = BACKOFF_BASE_SECONDS) -> float:
    """Seconds to wait after failed attempt *attempt* (1-indexed): 5s, 10s, 20s, ..."""
    return base * (2 ** (attempt - 1))


def failure_text(exc: Exception) -> str:
    stderr = getattr(exc, "stderr", None)
    if stderr:
        return f"{exc}\n{stderr}"
    return str(exc)


class RetryExecutor:
    """
    Runs a provider command until it succeeds or attempts run out.

    ``build_command`` receives the session manager's current session on every
    attempt, so a rotation between attempts changes the next command.
    """

    def __init__(
        self,
        runner: Callable[[object, float], None],
        sessions=None,
        sleep: Callable[[float], None] = time.sleep,
        base_delay: float = BACKOFF_BASE_SECONDS,
    ) -> None:
        self.runner = runner
        self.sessions = sessions
        self.sleep = sleep
        self.base_delay = base_delay

    def _current_session(self):
        return self.sessions.current if self.sessions is not None else None

    def run(
        self,
        build_command: Callable[[object], object],
        max_attempts: int,
        timeout: float,
        on_network_failure: Optional[Callable[[], object]] = None,
        label: str = "",
    ):
        """Return the command that succeeded, or raise FinalAttemptError."""
        max_attempts = max(1, int(max_attempts))
        if on_network_failure is None and self.sessions is not None:
            on_network_failure = self.sessions.rotate

        last_error: Optional[Exception] = None
        for attempt in range(1, max_attempts + 1):
            command = build_command(self._current_session())
            print(f"[ATTEMPT {attempt}/{max_attempts}] Executing command for {label}")
            try:
                self.runner(command, timeout)
            except ProviderError as exc:
                last_error = exc
                text = failure_text(exc)

                if is_auth_challenge(text):
                    raise AuthenticationChallengeError(text) from exc

                if attempt == max_attempts:
                    print(
                        f"[FINAL FAILURE] All {max_attempts} attempts failed for {label}: {exc}",
                        file=sys.stderr,
                    )
                    raise FinalAttemptError(label, max_attempts, exc) from exc

                print(f"[RETRY] Attempt {attempt} failed for {label}: {exc}", file=sys.stderr)
                if is_network_error(text) and on_network_failure is not None:
                    print(f"[RETRY] Network failure detected for {label}; rotating proxy session")
                    on_network_failure()

                delay = backoff_delay(attempt, self.base_delay)
                print(f"[DELAY] Waiting {delay:g} seconds before retry...")
                self.sleep(delay)
            else:
                print(f"[SUCCESS] Command completed successfully for {label}")
                return command

        raise FinalAttemptError(label, max_attempts, last_error)
