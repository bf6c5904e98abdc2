"""Durable key-value store (one JSON file per key, fcntl.flock + atomic write)."""

import fcntl
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import structlog

from exam_progression.errors import StorageFailure

logger = structlog.get_logger()

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileStore:
    """Stores JSON-serialisable values under ``root/<key>.json``.

    Args:
        root: Directory holding one file per key.
    """

    def __init__(self, root: Path):
        self.root = root

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
                fcntl.flock(f, fcntl.LOCK_UN)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("kv_read_failed", key=key, error=str(e))
            raise StorageFailure(f"Could not read {key}: {e}") from e
        return data

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            lock_path = self.root / f"{key}.lock"
            with open(lock_path, "w") as lock_file:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
                with tempfile.NamedTemporaryFile(
                    "w", dir=self.root, delete=False, suffix=".json", encoding="utf-8"
                ) as tmp:
                    json.dump(value, tmp, indent=2, default=str)
                os.replace(tmp.name, path)
        except (OSError, TypeError) as e:
            logger.error("kv_write_failed", key=key, error=str(e))
            raise StorageFailure(f"Could not write {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure(f"Could not remove {key}: {e}") from e
