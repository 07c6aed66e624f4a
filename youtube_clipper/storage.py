"""Object storage for delivered clips and thumbnails."""

import os
import secrets
import time
from pathlib import Path
from typing import Optional

from .errors import StorageError


def object_key(identifier: str, extension: str) -> str:
    """Unique key for an uploaded artifact, e.g. ``clip_Intro_1700000000000_<hex>.mp4``."""
    millis = int(time.time() * 1000)
    return f"{identifier}_{millis}_{secrets.token_hex(16)}.{extension}"


class LocalObjectStore:
    """Stores objects as files and returns a public URL for each."""

    def __init__(self, directory: str, base_url: Optional[str] = None) -> None:
        self.directory = directory
        self.base_url = base_url.rstrip("/") if base_url else None

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = os.path.join(self.directory, key)
        print(f"Uploading {key} to object store (Content-Type: {content_type})")
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(path, "wb") as handle:
                handle.write(data)
        except OSError as exc:
            raise StorageError(f"Failed to store {key}: {exc}") from exc

        if self.base_url:
            return f"{self.base_url}/{key}"
        return Path(path).resolve().as_uri()

    def put_file(self, key: str, file_path: str, content_type: str) -> str:
        try:
            with open(file_path, "rb") as handle:
                data = handle.read()
        except OSError as exc:
            raise StorageError(f"Failed to read {file_path} for upload: {exc}") from exc
        return self.put(key, data, content_type)
