"""Append-only dataset of per-clip results and the run summary."""

import json
import os
import sys
from typing import Dict, List, Optional


class DatasetWriter:
    """Writes records as JSON lines; keeps them in memory too when no path is set."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self.records: List[Dict[str, object]] = []

    def push(self, record: Dict[str, object]) -> None:
        self.records.append(record)
        if not self.path:
            return

        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as exc:
            print(f"Warning: Failed to append record to dataset {self.path}: {exc}", file=sys.stderr)
