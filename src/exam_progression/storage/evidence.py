"""Evidence image store: compressed JPEGs on disk with a JSON index."""

import asyncio
import io
import uuid
from datetime import datetime
from pathlib import Path

import structlog
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from exam_progression.errors import StorageFailure
from exam_progression.storage.kv_store import JsonFileStore

logger = structlog.get_logger()

INDEX_KEY = "index"


class EvidenceRecord(BaseModel):
    id: str
    session_id: int
    kind: str
    timestamp: datetime
    size: int
    filename: str


class StorageUsage(BaseModel):
    count: int
    total_bytes: int

    @property
    def size_mb(self) -> str:
        return f"{self.total_bytes / (1024 * 1024):.2f}"


class FileEvidenceStore:
    """Blob store for photo and screenshot evidence.

    Images are downscaled so neither side exceeds ``max_dimension`` and
    re-encoded as JPEG at ``quality``.

    Args:
        root: Directory for image files and the index.
        max_dimension: Longest allowed side in pixels.
        quality: JPEG quality (1-95).
    """

    def __init__(self, root: Path, max_dimension: int = 1024, quality: int = 70):
        self.root = root
        self.max_dimension = max_dimension
        self.quality = quality
        self._index = JsonFileStore(root)

    def _records(self) -> list[EvidenceRecord]:
        return [EvidenceRecord(**r) for r in self._index.get(INDEX_KEY, [])]

    def _save_records(self, records: list[EvidenceRecord]) -> None:
        self._index.set(INDEX_KEY, [r.model_dump(mode="json") for r in records])

    def compress(self, data: bytes) -> bytes:
        """Downscale and re-encode an image as JPEG."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                img = img.convert("RGB")
                img.thumbnail((self.max_dimension, self.max_dimension))
                out = io.BytesIO()
                img.save(out, format="JPEG", quality=self.quality)
        except (UnidentifiedImageError, OSError) as e:
            raise StorageFailure(f"Image compression failed: {e}") from e
        return out.getvalue()

    def _put(self, data: bytes, session_id: int, kind: str, now: datetime) -> str:
        compressed = self.compress(data)
        image_id = uuid.uuid4().hex
        filename = f"{image_id}.jpg"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / filename).write_bytes(compressed)
        except OSError as e:
            raise StorageFailure(f"Could not save image: {e}") from e

        record = EvidenceRecord(
            id=image_id,
            session_id=session_id,
            kind=kind,
            timestamp=now,
            size=len(compressed),
            filename=filename,
        )
        try:
            self._save_records([*self._records(), record])
        except StorageFailure:
            (self.root / filename).unlink(missing_ok=True)
            raise
        logger.info("evidence_saved", image_id=image_id, session_id=session_id, size=len(compressed))
        return image_id

    async def put(self, data: bytes, session_id: int, kind: str, now: datetime | None = None) -> str:
        """Compress and store an image. Returns its opaque id."""
        return await asyncio.to_thread(self._put, data, session_id, kind, now or datetime.now())

    async def get(self, image_id: str) -> Path | None:
        """Path of the stored image, or None if unknown."""
        for record in self._records():
            if record.id == image_id:
                path = self.root / record.filename
                return path if path.exists() else None
        return None

    def _delete_older_than(self, cutoff: datetime) -> int:
        keep, deleted = [], 0
        for record in self._records():
            if record.timestamp <= cutoff:
                (self.root / record.filename).unlink(missing_ok=True)
                deleted += 1
            else:
                keep.append(record)
        if deleted:
            self._save_records(keep)
        return deleted

    async def delete_older_than(self, cutoff: datetime) -> int:
        try:
            deleted = await asyncio.to_thread(self._delete_older_than, cutoff)
        except OSError as e:
            raise StorageFailure(f"Evidence cleanup failed: {e}") from e
        logger.info("evidence_cleanup", cutoff=cutoff.isoformat(), deleted=deleted)
        return deleted

    async def usage(self) -> StorageUsage:
        records = self._records()
        return StorageUsage(count=len(records), total_bytes=sum(r.size for r in records))
