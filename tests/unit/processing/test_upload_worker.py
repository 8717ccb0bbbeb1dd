"""Tests for the Qt UploadWorker bridge."""

import asyncio
import threading
from unittest.mock import AsyncMock

import pytest

from src.core.engine import UploadOrchestrator
from src.core.models import SourceFile, UploadResult
from src.core.reporter import UploadReporter
from src.network.blob_store_client import BlobStoreClient
from src.network.connection_monitor import ConnectionMonitor, ProbeConfig
from src.network.wallpaper_api_client import WallpaperApiClient
from src.processing.upload_worker import UploadWorker, create_upload_worker
from src.storage.upload_cache import UploadCache

IMAGE_URL = "https://blob.test/wallpapers/sunset.jpg"


def _file():
    return SourceFile(name="sunset.jpg", data=b"\xff" * 1024, content_type="image/jpeg")


def _monitor(online=True):
    mon = ConnectionMonitor(ProbeConfig(probe_url="https://probe.test/favicon.ico",
                                        interval_seconds=3600),
                            platform_check=lambda: online)
    mon._probe = AsyncMock(return_value=0.1)
    return mon


class FakeOrchestrator:
    """Drives the reporter like a real job and returns a canned result."""

    def __init__(self, result):
        self.reporter = UploadReporter()
        self.connection = None
        self.result = result
        self.calls = []

    async def upload_file(self, file, title, description="", is_retry=False):
        self.calls.append((file.name, title, description, is_retry))
        self.reporter.begin_attempt(is_retry)
        self.reporter.append("Starting upload", "info")
        self.reporter.set_progress(40, "Uploading image...")
        return self.result

    def cancel(self):
        pass


@pytest.fixture
def make_worker(qtbot):
    workers = []

    def factory(orchestrator, monitor=None):
        worker = UploadWorker(orchestrator, monitor=monitor or _monitor())
        workers.append(worker)
        return worker

    yield factory
    for worker in workers:
        worker.stop()


@pytest.fixture
def success_result():
    return UploadResult(success=True, image_url="https://cdn.test/a.jpg",
                        thumbnail_url="https://cdn.test/t.jpg")


@pytest.fixture
def blob():
    return AsyncMock(spec=BlobStoreClient)


@pytest.fixture
def api():
    client = AsyncMock(spec=WallpaperApiClient)
    client.save_wallpaper.return_value = {"id": 1}
    return client


@pytest.fixture
def orchestrator(upload_settings, mock_settings, blob, api):
    return UploadOrchestrator(
        "user-1", settings=upload_settings, cache=UploadCache("user-1", settings=mock_settings),
        blob_client=blob, api_client=api, reporter=UploadReporter(),
        thumbnailer=lambda data, width, quality, max_bytes: b"thumb",
    )


class TestSignals:

    def test_success_signals(self, qtbot, make_worker, success_result):
        orch = FakeOrchestrator(success_result)
        worker = make_worker(orch)
        progress, logs = [], []
        worker.progress_updated.connect(lambda p, s: progress.append((p, s)))
        worker.log_added.connect(logs.append)

        with qtbot.waitSignal(worker.upload_completed, timeout=5000) as blocker:
            assert worker.submit(_file(), "Sunset") is True

        assert blocker.args == [success_result.to_dict()]
        assert orch.calls == [("sunset.jpg", "Sunset", "", False)]
        qtbot.waitUntil(lambda: (40, "Uploading image...") in progress, timeout=2000)
        qtbot.waitUntil(lambda: len(logs) > 0, timeout=2000)
        assert logs[0]["message"] == "Starting upload"
        assert logs[0]["icon"] == "ℹ️"
        assert worker.last_result is success_result
        assert worker.is_busy is False

    def test_failure_signal_carries_resumable(self, qtbot, make_worker):
        result = UploadResult(success=False, error="Connection reset", resumable=True)
        worker = make_worker(FakeOrchestrator(result))

        with qtbot.waitSignal(worker.upload_failed, timeout=5000) as blocker:
            worker.submit(_file(), "Sunset", is_retry=True)

        assert blocker.args == ["Connection reset", True]

    def test_cancelled_result_signal(self, qtbot, make_worker):
        worker = make_worker(FakeOrchestrator(
            UploadResult(success=False, error="Upload cancelled", cancelled=True)))

        with qtbot.waitSignal(worker.upload_cancelled, timeout=5000):
            worker.submit(_file(), "Sunset")

    def test_crash_reported_as_failure(self, qtbot, make_worker):
        orch = FakeOrchestrator(None)
        orch.upload_file = AsyncMock(side_effect=RuntimeError("event loop exploded"))
        worker = make_worker(orch)

        with qtbot.waitSignal(worker.upload_failed, timeout=5000) as blocker:
            worker.submit(_file(), "Sunset")

        assert blocker.args == ["event loop exploded", False]

    def test_thread_serves_several_jobs(self, qtbot, make_worker, success_result):
        orch = FakeOrchestrator(success_result)
        worker = make_worker(orch)

        for _ in range(2):
            with qtbot.waitSignal(worker.upload_completed, timeout=5000):
                assert worker.submit(_file(), "Sunset") is True

        assert len(orch.calls) == 2


class TestConnectionWiring:

    def test_offline_monitor_blocks_upload(self, qtbot, make_worker, orchestrator, blob, api):
        worker = make_worker(orchestrator, monitor=_monitor(online=False))
        changes = []
        worker.connection_changed.connect(lambda online, speed: changes.append((online, speed)))

        with qtbot.waitSignal(worker.upload_failed, timeout=5000) as blocker:
            worker.submit(_file(), "Sunset")

        assert blocker.args == ["No internet connection", False]
        assert orchestrator.connection is worker.monitor
        blob.upload.assert_not_called()
        api.save_wallpaper.assert_not_called()
        qtbot.waitUntil(lambda: (False, "offline") in changes, timeout=2000)

    def test_default_monitor_built_from_settings(self, qtbot, orchestrator):
        worker = UploadWorker(orchestrator)
        assert isinstance(worker.monitor, ConnectionMonitor)
        assert orchestrator.connection is worker.monitor
        assert worker.monitor.config.probe_url == orchestrator.settings.probe_url
        assert worker.monitor.config.interval_seconds == orchestrator.settings.probe_interval

    def test_create_upload_worker_reads_ini(self, qtbot, tmp_path):
        ini = tmp_path / "wallup.ini"
        ini.write_text("[UPLOAD]\nprobe_interval = 12\nslow_threshold = 3.5\n")

        worker = create_upload_worker("user-1", ini_path=str(ini))

        assert worker.orchestrator.user_id == "user-1"
        assert worker.orchestrator.connection is worker.monitor
        assert worker.monitor.config.interval_seconds == 12.0
        assert worker.monitor.config.slow_threshold == 3.5


class TestCancel:

    def _blocking_upload(self, blob):
        started = threading.Event()

        async def upload(data, filename, content_type, user_id, folder):
            started.set()
            await asyncio.sleep(10)
            return IMAGE_URL

        blob.upload.side_effect = upload
        return started

    def test_cancel_running_job(self, qtbot, make_worker, orchestrator, blob, api):
        started = self._blocking_upload(blob)
        worker = make_worker(orchestrator)

        with qtbot.waitSignal(worker.upload_cancelled, timeout=5000):
            worker.submit(_file(), "Sunset")
            assert started.wait(5)
            worker.cancel()

        api.save_wallpaper.assert_not_called()
        assert worker.is_busy is False

    def test_cancel_right_after_submit(self, qtbot, make_worker, orchestrator, blob, api):
        self._blocking_upload(blob)
        worker = make_worker(orchestrator)

        with qtbot.waitSignal(worker.upload_cancelled, timeout=5000):
            worker.submit(_file(), "Sunset")
            worker.cancel()

        api.save_wallpaper.assert_not_called()

    def test_cancel_when_idle_does_nothing(self, qtbot, make_worker, success_result):
        orch = FakeOrchestrator(success_result)
        worker = make_worker(orch)
        worker.cancel()

        with qtbot.waitSignal(worker.upload_completed, timeout=5000):
            worker.submit(_file(), "Sunset")

    def test_submit_rejected_while_busy(self, qtbot, make_worker, orchestrator, blob):
        started = self._blocking_upload(blob)
        worker = make_worker(orchestrator)

        assert worker.submit(_file(), "Sunset") is True
        assert started.wait(5)
        assert worker.submit(_file(), "Other") is False

        with qtbot.waitSignal(worker.upload_cancelled, timeout=5000):
            worker.cancel()

    def test_stop_cancels_running_job(self, qtbot, orchestrator, blob, api):
        started = self._blocking_upload(blob)
        worker = UploadWorker(orchestrator, monitor=_monitor())

        worker.submit(_file(), "Sunset")
        assert started.wait(5)
        worker.stop()

        assert worker.isRunning() is False
        assert worker.last_result.cancelled is True
        api.save_wallpaper.assert_not_called()
