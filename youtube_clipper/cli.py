"""Command-line entry point."""

import json
import sys
from typing import Optional, Sequence

from .config import apply_environment_defaults, build_request, build_settings, parse_args
from .errors import AuthenticationChallengeError, ProxyConfigurationError, ValidationError
from .health_check import run_health_check
from .orchestrator import ClipRunner
from .validation import parse_request


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    apply_environment_defaults(args)
    settings = build_settings(args)

    if args.health_check:
        return run_health_check(settings)

    try:
        raw = build_request(args)
    except (OSError, ValueError) as exc:
        print(f"Error: Could not read run request: {exc}", file=sys.stderr)
        return 1

    try:
        request = parse_request(raw, settings.max_clips, settings.max_clip_seconds)
        summary = ClipRunner(settings).run(request)
    except ValidationError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except ProxyConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except AuthenticationChallengeError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted; progress is kept and the next run will resume.", file=sys.stderr)
        return 130

    print(json.dumps(summary.to_record()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
