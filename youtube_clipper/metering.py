"""Usage metering: report billable events to a sink."""

import json
import os
import sys
from datetime import datetime, timezone

from .errors import MeteringError


class EventLedgerSink:
    """Appends one JSON line per charged event to a ledger file."""

    def __init__(self, path: str) -> None:
        self.path = path

    def charge(self, event_name: str) -> None:
        entry = {
            "eventName": event_name,
            "chargedAt": datetime.now(timezone.utc).isoformat(),
        }
        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry) + "\n")
        except OSError as exc:
            raise MeteringError(f"could not write ledger {self.path}: {exc}") from exc


class MeteringClient:
    """Fire-and-report wrapper: a failed charge is logged, never raised."""

    def __init__(self, sink) -> None:
        self.sink = sink

    def charge(self, event_name: str) -> bool:
        try:
            self.sink.charge(event_name)
        except MeteringError as exc:
            print(f"[ERROR] Failed to charge for event {event_name}: {exc}", file=sys.stderr)
            return False
        print(f"[CHARGE] Successfully charged for event: {event_name}")
        return True
