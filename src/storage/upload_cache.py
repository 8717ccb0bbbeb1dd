"""
Durable single-slot cache of a partially completed upload.

One record per user session, stored as JSON under ``UploadCache/record`` in
QSettings. A record is only trusted while it is younger than the TTL and
belongs to the current user; anything else is deleted on load.
"""

import json
import time
from dataclasses import replace
from typing import Callable, Optional

from PyQt6.QtCore import QSettings

from src.core.models import UploadCacheRecord
from src.utils.logger import log


CACHE_GROUP = "UploadCache"
CACHE_KEY = "record"
DEFAULT_TTL_SECONDS = 3600

_FIELDS = ('file', 'title', 'description', 'image_url', 'thumbnail_url')


class UploadCache:
    """Upload snapshot scoped to one user.

    Args:
        user_id: Current user; records owned by anyone else are discarded.
        ttl_seconds: Maximum age of a record before it is ignored.
        settings: QSettings-compatible store (defaults to the app's QSettings).
        clock: Returns the current time in seconds.
    """

    def __init__(self, user_id: Optional[str], ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 settings: Optional[QSettings] = None,
                 clock: Callable[[], float] = time.time):
        self.user_id = user_id
        self.ttl_seconds = ttl_seconds
        self._settings = settings if settings is not None else QSettings("wallup", "wallup")
        self._clock = clock
        self._record: Optional[UploadCacheRecord] = None

    @property
    def record(self) -> Optional[UploadCacheRecord]:
        return self._record

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def save(self, **partial) -> Optional[UploadCacheRecord]:
        """Merge fields into the record and persist it.

        Storage failures are logged and swallowed; the in-memory record is
        still updated so the running job can use it.
        """
        unknown = set(partial) - set(_FIELDS)
        if unknown:
            raise TypeError(f"Unknown cache fields: {', '.join(sorted(unknown))}")
        if not self.user_id:
            return None

        base = self._record or UploadCacheRecord(user_id=self.user_id)
        self._record = replace(base, user_id=self.user_id, timestamp=self._now_ms(), **partial)

        try:
            payload = json.dumps(self._record.to_dict())
            self._settings.beginGroup(CACHE_GROUP)
            try:
                self._settings.setValue(CACHE_KEY, payload)
            finally:
                self._settings.endGroup()
            self._settings.sync()
        except (TypeError, ValueError, RuntimeError) as e:
            log(f"Failed to save upload cache: {e}", level="warning", category="cache")
        return self._record

    def load(self) -> Optional[UploadCacheRecord]:
        """Return the stored record if it is fresh and owned by the current user."""
        self._settings.beginGroup(CACHE_GROUP)
        try:
            raw = self._settings.value(CACHE_KEY, None)
        finally:
            self._settings.endGroup()

        if not raw:
            return None

        try:
            record = UploadCacheRecord.from_dict(json.loads(raw))
        except (TypeError, ValueError, KeyError) as e:
            log(f"Discarding unreadable upload cache: {e}", level="warning", category="cache")
            self.clear()
            return None

        if record.is_expired(self.ttl_seconds, self._now_ms()):
            log("Upload cache expired", level="debug", category="cache")
            self.clear()
            return None
        if record.user_id != self.user_id:
            log("Upload cache belongs to another user, discarding", level="debug", category="cache")
            self.clear()
            return None

        self._record = record
        return record

    def clear(self) -> None:
        self._record = None
        try:
            self._settings.beginGroup(CACHE_GROUP)
            try:
                self._settings.remove(CACHE_KEY)
            finally:
                self._settings.endGroup()
            self._settings.sync()
        except RuntimeError as e:
            log(f"Failed to clear upload cache: {e}", level="warning", category="cache")

    def forget_urls(self) -> None:
        """Drop stored URLs, keeping file metadata, title and description."""
        if self._record is not None and self._record.has_remote_progress:
            self.save(image_url=None, thumbnail_url=None)
