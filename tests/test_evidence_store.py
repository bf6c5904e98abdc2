"""Tests for the on-disk evidence image store."""

import io
from datetime import timedelta

import pytest
from PIL import Image

from exam_progression.errors import StorageFailure
from exam_progression.storage.evidence import FileEvidenceStore


def _png(width: int, height: int) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), (20, 120, 200, 255)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def store(tmp_path):
    return FileEvidenceStore(tmp_path / "evidence")


class TestCompression:
    def test_downscales_to_max_dimension(self, store):
        data = store.compress(_png(2048, 1024))
        with Image.open(io.BytesIO(data)) as img:
            assert img.format == "JPEG"
            assert img.size == (1024, 512)

    def test_small_images_keep_their_size(self, store):
        with Image.open(io.BytesIO(store.compress(_png(300, 200)))) as img:
            assert img.size == (300, 200)

    def test_not_an_image(self, store):
        with pytest.raises(StorageFailure):
            store.compress(b"definitely not an image")


class TestStore:
    async def test_put_and_get(self, store, now):
        image_id = await store.put(_png(640, 480), 1234, "photo", now)
        path = await store.get(image_id)
        assert path is not None
        assert path.exists()
        assert await store.get("unknown") is None

    async def test_usage(self, store, now):
        await store.put(_png(100, 100), 1, "photo", now)
        await store.put(_png(100, 100), 2, "screenshot", now)
        usage = await store.usage()
        assert usage.count == 2
        assert usage.total_bytes > 0
        assert usage.size_mb == f"{usage.total_bytes / (1024 * 1024):.2f}"

    async def test_delete_older_than(self, store, now):
        old_id = await store.put(_png(50, 50), 1, "photo", now - timedelta(days=120))
        new_id = await store.put(_png(50, 50), 2, "photo", now)

        deleted = await store.delete_older_than(now - timedelta(days=90))

        assert deleted == 1
        assert await store.get(old_id) is None
        assert await store.get(new_id) is not None
        assert (await store.usage()).count == 1

    async def test_failed_put_stores_nothing(self, store, now):
        with pytest.raises(StorageFailure):
            await store.put(b"garbage", 1, "photo", now)
        assert (await store.usage()).count == 0

    async def test_index_failure_leaves_no_file(self, store, now, monkeypatch):
        def broken_set(key, value):
            raise StorageFailure("disk full")

        monkeypatch.setattr(store._index, "set", broken_set)

        with pytest.raises(StorageFailure):
            await store.put(_png(100, 100), 1, "photo", now)

        assert list(store.root.glob("*.jpg")) == []
