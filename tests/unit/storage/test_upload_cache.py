"""
Tests for UploadCache: merge-on-save, TTL and user invalidation, and
failure tolerance.
"""

import json
from unittest.mock import patch

import pytest

from src.core.models import FileInfo
from src.storage.upload_cache import UploadCache

KEY = "UploadCache/record"


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(mock_settings, clock):
    return UploadCache("user-1", ttl_seconds=3600, settings=mock_settings, clock=clock)


class TestSave:

    def test_save_merges_fields(self, cache, mock_settings):
        cache.save(file=FileInfo("a.jpg", 10, "image/jpeg"), title="Sunset", description="")
        cache.save(image_url="https://blob.test/a.jpg")

        stored = json.loads(mock_settings._data[KEY])
        assert stored["title"] == "Sunset"
        assert stored["file"] == {"name": "a.jpg", "size": 10, "type": "image/jpeg"}
        assert stored["imageUrl"] == "https://blob.test/a.jpg"
        assert stored["thumbnailUrl"] is None
        assert stored["userId"] == "user-1"

    def test_save_stamps_timestamp(self, cache, mock_settings, clock):
        cache.save(title="first")
        clock.now += 5
        cache.save(title="second")

        stored = json.loads(mock_settings._data[KEY])
        assert stored["timestamp"] == int(clock.now * 1000)

    def test_save_never_stores_bytes(self, cache, mock_settings):
        cache.save(file=FileInfo("a.jpg", 10, "image/jpeg"))
        assert "data" not in json.loads(mock_settings._data[KEY])["file"]

    def test_save_without_user_is_noop(self, mock_settings):
        cache = UploadCache(None, settings=mock_settings)
        assert cache.save(title="x") is None
        assert mock_settings._data == {}

    def test_unknown_field_rejected(self, cache):
        with pytest.raises(TypeError):
            cache.save(bogus=1)

    def test_storage_failure_is_logged_not_raised(self, cache, mock_settings):
        def broken(key, value):
            raise RuntimeError("settings backend gone")

        mock_settings.setValue = broken
        with patch('src.storage.upload_cache.log') as mock_log:
            record = cache.save(title="Sunset")

        assert record.title == "Sunset"
        assert mock_log.call_args.kwargs["level"] == "warning"


class TestLoad:

    def test_roundtrip(self, cache, mock_settings, clock):
        cache.save(image_url="https://blob.test/a.jpg", title="Sunset")

        fresh = UploadCache("user-1", settings=mock_settings, clock=clock)
        record = fresh.load()
        assert record.image_url == "https://blob.test/a.jpg"
        assert record.has_remote_progress is True
        assert fresh.record is record

    def test_empty_store(self, cache):
        assert cache.load() is None

    def test_record_just_under_ttl_is_valid(self, cache, clock):
        cache.save(image_url="u")
        clock.now += 3599
        assert cache.load() is not None

    def test_expired_record_is_deleted(self, cache, mock_settings, clock):
        cache.save(image_url="u")
        clock.now += 3600

        assert cache.load() is None
        assert KEY not in mock_settings._data

    def test_other_users_record_is_deleted(self, cache, mock_settings, clock):
        cache.save(image_url="u")

        other = UploadCache("user-2", settings=mock_settings, clock=clock)
        assert other.load() is None
        assert KEY not in mock_settings._data

    def test_corrupt_record_is_deleted(self, cache, mock_settings):
        mock_settings._data[KEY] = "{not json"
        assert cache.load() is None
        assert KEY not in mock_settings._data


class TestClear:

    def test_clear_removes_everything(self, cache, mock_settings):
        cache.save(image_url="u")
        cache.clear()

        assert cache.record is None
        assert mock_settings._data == {}

    def test_forget_urls_keeps_metadata(self, cache):
        cache.save(title="Sunset", image_url="u", thumbnail_url="t")
        cache.forget_urls()

        assert cache.record.title == "Sunset"
        assert cache.record.image_url is None
        assert cache.record.thumbnail_url is None
