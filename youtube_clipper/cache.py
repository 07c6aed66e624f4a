"""Single-slot cache for a fully downloaded source video."""

import contextlib
import os
from typing import Optional

from .models import CachedFullSource


class FullSourceCache:
    """
    Holds at most one full source download, keyed by resolution cap.

    Shared across the clips of a run. Any failed extraction from the cached
    file must call ``invalidate`` so later clips download a fresh copy.
    """

    def __init__(self) -> None:
        self._entry: Optional[CachedFullSource] = None

    @property
    def entry(self) -> Optional[CachedFullSource]:
        return self._entry

    def get(self, resolution_cap: int) -> Optional[str]:
        entry = self._entry
        if entry is None or entry.resolution_cap != resolution_cap:
            return None
        if not os.path.exists(entry.file_path):
            self._entry = None
            return None
        return entry.file_path

    def put(self, resolution_cap: int, file_path: str) -> None:
        if self._entry is not None and self._entry.file_path != file_path:
            self._remove(self._entry.file_path)
        self._entry = CachedFullSource(file_path=file_path, resolution_cap=resolution_cap)
        print(f"[CACHE] Stored full source for {resolution_cap}p: {os.path.basename(file_path)}")

    def invalidate(self) -> None:
        if self._entry is None:
            return
        print(f"[CACHE] Invalidating cached full source ({self._entry.resolution_cap}p)")
        self._remove(self._entry.file_path)
        self._entry = None

    def clear(self) -> None:
        """Drop the cached file at run end, on every exit path."""
        if self._entry is not None:
            self._remove(self._entry.file_path)
            self._entry = None

    @staticmethod
    def _remove(path: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)
