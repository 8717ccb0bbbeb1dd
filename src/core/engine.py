"""
Upload orchestrator.

Drives one wallpaper upload through its stages:

    Idle -> Preparing -> UploadingImage -> UploadingThumbnail -> SavingRecord -> Complete

with Failed reachable from any running stage and Cancelled via ``cancel()``.
URLs produced by completed stages are written to the UploadCache so a retried
job can skip them. ``upload_file`` reports every outcome as an UploadResult
instead of raising.
"""

import asyncio
from functools import partial
from typing import Callable, Optional

from src.core.models import (
    ConnectionSpeed, ConnectionState, SourceFile, UploadCacheRecord, UploadJob,
    UploadResult, UploadStage,
)
from src.core.reporter import UploadReporter
from src.core.upload_config import UploadSettings
from src.network.blob_store_client import BlobStoreClient
from src.network.wallpaper_api_client import WallpaperApiClient
from src.processing.thumbnail import compress_main_image, generate_thumbnail
from src.storage.upload_cache import UploadCache
from src.utils.logger import log
from wallup_exceptions import (
    NetworkError, PersistenceError, StorageError, ThumbnailStorageWarning,
    ValidationError, WallupException,
)
from wallup_exceptions import TimeoutError as UploadTimeoutError


Thumbnailer = Callable[..., bytes]

PROGRESS_PREPARING = 5
PROGRESS_PREPARED = 10
PROGRESS_IMAGE_START = 15
PROGRESS_IMAGE_DONE = 40
PROGRESS_THUMBNAIL_DONE = 70
PROGRESS_SAVING = 85
PROGRESS_COMPLETE = 100


class UploadOrchestrator:
    """Runs upload jobs for one signed-in user.

    Args:
        user_id: Current user; None means signed out and every job is rejected
        settings: Endpoints, folders, limits and timeouts
        connection: Anything with a ``state`` ConnectionState (usually a ConnectionMonitor)
        cache: Durable snapshot store
        blob_client: Blob store client
        api_client: Wallpaper persistence client
        reporter: Log/progress sink
    """

    def __init__(self, user_id: Optional[str], settings: Optional[UploadSettings] = None,
                 connection=None, cache: Optional[UploadCache] = None,
                 blob_client: Optional[BlobStoreClient] = None,
                 api_client: Optional[WallpaperApiClient] = None,
                 reporter: Optional[UploadReporter] = None,
                 thumbnailer: Thumbnailer = generate_thumbnail,
                 compressor: Thumbnailer = compress_main_image):
        self.user_id = user_id
        self.settings = settings or UploadSettings()
        self.connection = connection
        self.cache = cache or UploadCache(user_id, ttl_seconds=self.settings.cache_ttl)
        self.blob_client = blob_client or BlobStoreClient(self.settings.blob_endpoint)
        self.api_client = api_client or WallpaperApiClient(self.settings.save_url)
        self.reporter = reporter or UploadReporter()
        self._thumbnailer = thumbnailer
        self._compressor = compressor

        self._task: Optional[asyncio.Task] = None
        self._busy = False
        self._cancel_requested = False
        self._snapshot: Optional[UploadCacheRecord] = None
        self._last_job: Optional[UploadJob] = None

    # ----------------------------------------------------------------- state

    @property
    def is_uploading(self) -> bool:
        return self._busy

    @property
    def cached_data(self) -> Optional[UploadCacheRecord]:
        """Snapshot a retry would resume from, if any."""
        return self._snapshot or self.cache.record

    @property
    def can_resume(self) -> bool:
        return self.reporter.state.can_resume

    def _connection_state(self) -> ConnectionState:
        if self.connection is None:
            return ConnectionState()
        return self.connection.state

    def check_resumable(self) -> Optional[UploadCacheRecord]:
        """Look for a partial upload left by an earlier session."""
        record = self.cache.load()
        if record is None or not record.has_remote_progress:
            return None
        self._snapshot = record
        self.reporter.set_can_resume(True)
        name = record.file.name if record.file else "unknown file"
        self.reporter.append(f"Found resumable upload: {name}", "info")
        return record

    # ------------------------------------------------------------ validation

    def _validate(self, file: SourceFile, title: str, description: str) -> None:
        s = self.settings
        if not self.user_id:
            raise ValidationError("Must be logged in")

        state = self._connection_state()
        if not state.online or state.speed == ConnectionSpeed.OFFLINE:
            raise ValidationError("No internet connection")

        if self._busy:
            raise ValidationError("An upload is already in progress")

        if not title or not title.strip():
            raise ValidationError("Title is required")
        if len(title.strip()) > s.title_max_length:
            raise ValidationError(f"Title must be at most {s.title_max_length} characters")
        if description and len(description.strip()) > s.description_max_length:
            raise ValidationError(
                f"Description must be at most {s.description_max_length} characters")

        if file is None or not file.data:
            raise ValidationError("Select an image to upload")
        if not (file.content_type or "").startswith("image/"):
            raise ValidationError("Invalid image file", details={'type': file.content_type})
        if file.size > s.max_file_mb * 1024 * 1024:
            raise ValidationError(f"Image must be under {s.max_file_mb}MB",
                                  details={'size': file.size})

    # ------------------------------------------------------------- snapshot

    def _resolve_snapshot(self, file: SourceFile, is_retry: bool,
                          snapshot: Optional[UploadCacheRecord]) -> Optional[UploadCacheRecord]:
        if not is_retry:
            self.cache.clear()
            self._snapshot = None
            self._last_job = None
            return None

        candidate = snapshot or self._snapshot or self.cache.load()
        if candidate is None:
            return None
        if candidate.user_id != self.user_id:
            self.reporter.append("Ignoring cached upload from another account", "warning")
            self.cache.clear()
            return None
        if not candidate.matches_file(file.info()):
            self.reporter.append("Cached upload is for a different file, starting over", "warning")
            self.cache.clear()
            return None
        return candidate

    def _build_job(self, file: SourceFile, title: str, description: str,
                   snapshot: Optional[UploadCacheRecord]) -> UploadJob:
        job = UploadJob(file=file, title=title, description=description or "",
                        user_id=self.user_id)
        if snapshot is not None:
            job.image_url = snapshot.image_url
            job.thumbnail_url = snapshot.thumbnail_url
            job.resumed_from_cache = snapshot.image_url is not None

        last = self._last_job
        if last is not None and last.file.info() == file.info():
            job.thumbnail_blob = last.thumbnail_blob
            job.upload_data = last.upload_data
        return job

    def _remember(self, **fields) -> None:
        self.cache.save(**fields)
        self._snapshot = self.cache.record

    # ------------------------------------------------------------------ run

    async def upload_file(self, file: SourceFile, title: str, description: str = "",
                          is_retry: bool = False,
                          snapshot: Optional[UploadCacheRecord] = None) -> UploadResult:
        """Run one upload job.

        Args:
            file: Image to upload
            title: Wallpaper title (required)
            description: Optional description
            is_retry: Keep logs and resume from the job snapshot
            snapshot: Explicit snapshot to resume from; falls back to the
                previous attempt's snapshot, then the durable cache

        Returns:
            UploadResult; failures are reported there, never raised
        """
        if self._cancel_requested and not self._busy:
            return self._cancelled_before_start(file)

        try:
            self._validate(file, title, description)
        except ValidationError as e:
            self.reporter.set_error(e.message)
            self.reporter.append(e.message, "error")
            return UploadResult(success=False, error=e.message, error_type="ValidationError")

        self._busy = True
        self.reporter.begin_attempt(is_retry)

        job = None
        try:
            resolved = self._resolve_snapshot(file, is_retry, snapshot)
            job = self._build_job(file, title, description, resolved)
            self._log_start(job, resolved)

            self._task = asyncio.ensure_future(self._run_job(job))
            record = await asyncio.wait_for(self._task, timeout=self.settings.job_timeout)
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            log(f"Upload of {file.name} cancelled", level="info", category="uploads")
            self._snapshot = self.cache.record
            self._last_job = job
            return UploadResult(success=False, error="Upload cancelled", cancelled=True,
                                snapshot=self._snapshot)
        except asyncio.TimeoutError:
            error = UploadTimeoutError(
                f"Upload timed out after {self.settings.job_timeout:g}s")
            return self._fail(job, error)
        except Exception as e:
            return self._fail(job, e)
        finally:
            self._task = None
            self._busy = False
            self._cancel_requested = False

        return self._complete(job, record)

    def _cancelled_before_start(self, file: SourceFile) -> UploadResult:
        self._cancel_requested = False
        log(f"Upload of {file.name if file else 'file'} cancelled before start",
            level="info", category="uploads")
        return UploadResult(success=False, error="Upload cancelled", cancelled=True,
                            snapshot=self.cached_data)

    def _log_start(self, job: UploadJob, snapshot: Optional[UploadCacheRecord]) -> None:
        r = self.reporter
        size_mb = job.file.size / (1024 * 1024)
        r.append(f"Starting upload: {job.file.name} ({size_mb:.2f} MB)", "info")
        r.append(f"Title: {job.title.strip()}", "log")
        if snapshot is not None and snapshot.has_remote_progress:
            r.append("Resuming from cached progress", "info")
        if self._connection_state().speed == ConnectionSpeed.SLOW:
            r.append("Slow connection detected, upload may take longer", "warning")

    async def _run_job(self, job: UploadJob) -> dict:
        await self._prepare(job)
        await self._upload_image(job)
        await self._upload_thumbnail(job)
        return await self._save_record(job)

    async def _prepare(self, job: UploadJob) -> None:
        r = self.reporter
        s = self.settings
        loop = asyncio.get_running_loop()

        r.set_stage(UploadStage.PREPARING)
        r.set_progress(PROGRESS_PREPARING, "Preparing image...")

        if job.thumbnail_url is None:
            if job.thumbnail_blob is None:
                r.append("Creating thumbnail...", "log")
                job.thumbnail_blob = await loop.run_in_executor(
                    None, partial(self._thumbnailer, job.file.data, s.thumbnail_width,
                                  s.thumbnail_quality, s.thumbnail_max_kb * 1024))
            r.append(f"Thumbnail ready ({len(job.thumbnail_blob) / 1024:.1f} KB)", "success")

        if s.compress_main_image and job.image_url is None and job.upload_data is None:
            r.append("Compressing image...", "log")
            job.upload_data = await loop.run_in_executor(
                None, partial(self._compressor, job.file.data, s.main_max_width,
                              s.main_max_height, s.main_max_kb * 1024))
            r.append(f"Image compressed to {len(job.upload_data) / 1024:.1f} KB", "success")

        self._remember(file=job.file.info(), title=job.title, description=job.description,
                       image_url=job.image_url, thumbnail_url=job.thumbnail_url)
        r.set_progress(PROGRESS_PREPARED)

    async def _upload_image(self, job: UploadJob) -> None:
        r = self.reporter
        if job.image_url:
            r.append("Using cached image URL", "info")
            r.set_progress(PROGRESS_IMAGE_DONE)
            return

        r.set_stage(UploadStage.UPLOADING_IMAGE)
        r.set_progress(PROGRESS_IMAGE_START, "Uploading image...")
        r.append("Uploading full image...", "log")

        if job.upload_data is not None:
            data, content_type = job.upload_data, "image/jpeg"
        else:
            data, content_type = job.file.data, job.file.content_type

        job.image_url = await self.blob_client.upload(
            data, job.file.name, content_type, job.user_id, self.settings.image_folder)
        self._remember(image_url=job.image_url)
        r.append("Image uploaded", "success")
        r.set_progress(PROGRESS_IMAGE_DONE)

    async def _upload_thumbnail(self, job: UploadJob) -> None:
        r = self.reporter
        if job.thumbnail_url:
            r.append("Using cached thumbnail URL", "info")
            r.set_progress(PROGRESS_THUMBNAIL_DONE)
            return

        r.set_stage(UploadStage.UPLOADING_THUMBNAIL)
        r.set_status("Uploading thumbnail...")
        r.append("Uploading thumbnail...", "log")
        try:
            job.thumbnail_url = await self.blob_client.upload(
                job.thumbnail_blob, f"thumb_{job.file.name}", "image/jpeg",
                job.user_id, self.settings.thumbnail_folder)
            r.append("Thumbnail uploaded", "success")
        except StorageError as e:
            warning = ThumbnailStorageWarning(
                f"Thumbnail upload failed ({e.message}), using full image",
                details={'status': e.status})
            r.append(warning.message, "warning")
            job.thumbnail_url = job.image_url

        self._remember(thumbnail_url=job.thumbnail_url)
        r.set_progress(PROGRESS_THUMBNAIL_DONE)

    async def _save_record(self, job: UploadJob) -> dict:
        r = self.reporter
        r.set_stage(UploadStage.SAVING_RECORD)
        r.set_progress(PROGRESS_SAVING, "Saving to database...")
        r.append("Saving wallpaper record...", "log")
        try:
            return await self.api_client.save_wallpaper(
                job.user_id, job.title, job.description, job.image_url, job.thumbnail_url)
        except PersistenceError as e:
            r.append(f"Database error: {e.message}", "error")
            if not job.resumed_from_cache:
                await self._compensate(job)
            raise

    async def _compensate(self, job: UploadJob) -> None:
        """Best-effort removal of the image stored by this attempt."""
        r = self.reporter
        r.append("Removing uploaded image...", "warning")
        try:
            await self.blob_client.delete(job.image_url)
        except (StorageError, NetworkError) as e:
            r.append(f"Could not remove uploaded image: {e.message}", "warning")
            return
        r.append("Uploaded image removed", "info")
        self.cache.forget_urls()
        self._snapshot = self.cache.record

    # -------------------------------------------------------------- outcome

    def _complete(self, job: UploadJob, record: dict) -> UploadResult:
        r = self.reporter
        r.set_stage(UploadStage.COMPLETE)
        r.set_progress(PROGRESS_COMPLETE, "Complete!")
        r.append("Wallpaper uploaded successfully!", "success")
        self.cache.clear()
        self._snapshot = None
        self._last_job = None
        r.set_can_resume(False)
        r.set_uploading(False)
        return UploadResult(success=True, image_url=job.image_url,
                            thumbnail_url=job.thumbnail_url, record=record)

    def _fail(self, job: Optional[UploadJob], error: Exception) -> UploadResult:
        r = self.reporter
        if isinstance(error, WallupException):
            message = error.message
        else:
            message = str(error) or type(error).__name__
            log(f"Unexpected upload failure: {error!r}", level="error", category="uploads")

        retryable = getattr(error, 'retryable', False)
        snapshot = self.cache.record
        resumable = retryable and snapshot is not None and snapshot.has_remote_progress
        self._snapshot = snapshot
        self._last_job = job

        r.set_stage(UploadStage.FAILED)
        r.set_error(message)
        r.set_can_resume(resumable)
        r.set_uploading(False)
        r.append(f"Upload failed: {message}", "error")
        if resumable:
            r.append("Progress saved, retry to resume", "info")

        return UploadResult(
            success=False,
            error=message,
            error_type=type(error).__name__,
            retryable=retryable,
            resumable=resumable,
            image_url=job.image_url if job else None,
            thumbnail_url=job.thumbnail_url if job else None,
            snapshot=snapshot,
        )

    # --------------------------------------------------------------- control

    def cancel(self) -> None:
        """Abort the running job and return to Idle. No compensation runs.

        A cancel that arrives before the job has started is held and
        applied when ``upload_file`` runs.
        """
        self._cancel_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.reporter.clear()

    def reset(self) -> None:
        """Cancel, then forget every trace of the job including the cache."""
        self.cancel()
        if not self._busy:
            self._cancel_requested = False
        self.cache.clear()
        self._snapshot = None
        self._last_job = None
