"""Durable progress tracking so an interrupted run can resume."""

import contextlib
import json
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .models import RunProgress

PROGRESS_KEY = "processing-progress"


class JsonFileStore:
    """Key-value store keeping one JSON file per key inside *directory*."""

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def _path(self, key: str) -> str:
        safe = re.sub(r"[^0-9A-Za-z_.-]", "_", key)
        return os.path.join(self.directory, f"{safe}.json")

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return json.load(handle)
        except FileNotFoundError:
            return None

    def set(self, key: str, value: Optional[Any]) -> None:
        """Write *value* atomically; ``None`` removes the key."""
        path = self._path(key)
        if value is None:
            with contextlib.suppress(FileNotFoundError):
                os.remove(path)
            return

        os.makedirs(self.directory, exist_ok=True)
        temp_path = f"{path}.tmp"
        try:
            with open(temp_path, "w", encoding="utf-8") as handle:
                json.dump(value, handle, indent=2, sort_keys=True)
            os.replace(temp_path, path)
        except (OSError, TypeError, ValueError):
            with contextlib.suppress(OSError):
                os.remove(temp_path)
            raise


class CheckpointManager:
    """
    Loads, saves and clears the run's ``RunProgress``.

    Store failures are reported as warnings and never interrupt the run.
    """

    def __init__(self, store, key: str = PROGRESS_KEY) -> None:
        self.store = store
        self.key = key

    def load(self, video_identity: str) -> Optional[RunProgress]:
        try:
            data = self.store.get(self.key)
        except (OSError, ValueError) as exc:
            print(f"Warning: Failed to load progress checkpoint: {exc}", file=sys.stderr)
            return None

        if not data:
            return None

        try:
            progress = RunProgress.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            print(f"Warning: Ignoring unreadable progress checkpoint: {exc}", file=sys.stderr)
            return None

        if progress.video_identity != video_identity:
            print(
                f"[CHECKPOINT] Ignoring stale checkpoint for a different video ({progress.video_identity})"
            )
            return None

        print(
            f"[RESUME] Found previous progress: {len(progress.completed_clip_names)} clips already completed"
        )
        return progress

    def save(self, progress: RunProgress) -> bool:
        progress.last_updated_at = datetime.now(timezone.utc).isoformat()
        try:
            self.store.set(self.key, progress.to_dict())
        except (OSError, TypeError, ValueError) as exc:
            print(f"Warning: Failed to save progress checkpoint: {exc}", file=sys.stderr)
            return False
        print(
            f"[CHECKPOINT] Progress saved: {progress.processed_count + progress.failed_count}/"
            f"{progress.total_clips} clips completed"
        )
        return True

    def clear(self) -> bool:
        try:
            self.store.set(self.key, None)
        except OSError as exc:
            print(f"Warning: Failed to clear progress checkpoint: {exc}", file=sys.stderr)
            return False
        print("[CHECKPOINT] Progress cleared - run completed successfully")
        return True
