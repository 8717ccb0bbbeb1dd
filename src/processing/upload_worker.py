"""
Qt worker thread that runs upload jobs off the GUI thread.

The thread owns one asyncio event loop for the whole session. The
ConnectionMonitor runs its periodic checks on that loop and each
``submit()`` schedules one orchestrator job on it; reporter and monitor
events are relayed as Qt signals.
"""

import asyncio
import threading
from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from src.core.engine import UploadOrchestrator
from src.core.models import ConnectionState, LogEntry, ProgressState, SourceFile, UploadResult
from src.core.upload_config import load_upload_settings
from src.network.connection_monitor import ConnectionMonitor, ProbeConfig
from src.utils.logger import log


class UploadWorker(QThread):
    """Worker thread for a single wallpaper upload at a time"""

    # Signals for communication with GUI
    progress_updated = pyqtSignal(int, str)  # progress%, status
    stage_changed = pyqtSignal(str)  # UploadStage value
    log_added = pyqtSignal(dict)  # message, type, time, icon
    upload_completed = pyqtSignal(dict)  # success, imageUrl, thumbnailUrl
    upload_failed = pyqtSignal(str, bool)  # error_message, resumable
    upload_cancelled = pyqtSignal()
    connection_changed = pyqtSignal(bool, str)  # online, speed

    def __init__(self, orchestrator: UploadOrchestrator, monitor: Optional[ConnectionMonitor] = None,
                 parent=None):
        super().__init__(parent)
        self.orchestrator = orchestrator
        if monitor is None and orchestrator.connection is None:
            monitor = ConnectionMonitor(ProbeConfig.from_settings(orchestrator.settings))
        self.monitor = monitor
        if monitor is not None:
            orchestrator.connection = monitor
            monitor.add_listener(self._on_connection)

        self.last_result: Optional[UploadResult] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._busy = False
        self._monitor_started: Optional[asyncio.Task] = None
        self._job: Optional[asyncio.Task] = None
        self._last_progress = (-1, None)
        self._last_stage = None

        orchestrator.reporter.add_log_listener(self._on_log)
        orchestrator.reporter.add_progress_listener(self._on_progress)

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._busy

    def submit(self, file: SourceFile, title: str, description: str = "",
               is_retry: bool = False) -> bool:
        """Queue a job; returns False while another one is running."""
        with self._lock:
            if self._busy:
                return False
            self._busy = True
        loop = self._ensure_loop()
        loop.call_soon_threadsafe(self._start_job, file, title, description, is_retry)
        return True

    def cancel(self) -> None:
        """Cancel the running job from any thread"""
        with self._lock:
            loop = self._loop if self._busy else None
        if loop is not None:
            loop.call_soon_threadsafe(self.orchestrator.cancel)

    def stop(self) -> None:
        """Cancel any running job, stop the monitor and end the thread"""
        with self._lock:
            loop = self._loop
        if loop is not None:
            loop.call_soon_threadsafe(self._begin_shutdown)
        self.wait()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if not self.isRunning():
            self._ready.clear()
            self.start()
        self._ready.wait()
        return self._loop

    # ------------------------------------------------------------ loop side

    def _start_job(self, file: SourceFile, title: str, description: str, is_retry: bool) -> None:
        self._job = asyncio.get_running_loop().create_task(
            self._process(file, title, description, is_retry))

    async def _process(self, file: SourceFile, title: str, description: str,
                       is_retry: bool) -> None:
        try:
            if self._monitor_started is not None:
                await self._monitor_started
            result = await self.orchestrator.upload_file(file, title, description,
                                                         is_retry=is_retry)
        except Exception as e:
            log(f"CRITICAL: Upload worker crashed: {e!r}", level="critical", category="uploads")
            self._release()
            self.upload_failed.emit(str(e) or type(e).__name__, False)
            return

        self.last_result = result
        self._release()
        if result.success:
            self.upload_completed.emit(result.to_dict())
        elif result.cancelled:
            self.upload_cancelled.emit()
        else:
            self.upload_failed.emit(result.error or "Upload failed", result.resumable)

    def _release(self) -> None:
        self._job = None
        with self._lock:
            self._busy = False

    def _begin_shutdown(self) -> None:
        asyncio.get_running_loop().create_task(self._shutdown())

    async def _shutdown(self) -> None:
        job = self._job
        if job is not None and not job.done():
            self.orchestrator.cancel()
            await asyncio.gather(job, return_exceptions=True)
        asyncio.get_running_loop().stop()

    def run(self):
        """Serve submitted jobs until stop() is called"""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        if self.monitor is not None:
            self._monitor_started = loop.create_task(self.monitor.start())
        with self._lock:
            self._loop = loop
        self._ready.set()

        try:
            loop.run_forever()
        finally:
            with self._lock:
                self._loop = None
                self._busy = False
            if self._monitor_started is not None and not self._monitor_started.done():
                self._monitor_started.cancel()
                loop.run_until_complete(
                    asyncio.gather(self._monitor_started, return_exceptions=True))
            if self.monitor is not None:
                loop.run_until_complete(self.monitor.stop())
            self._monitor_started = None
            loop.close()

    # -------------------------------------------------------------- relays

    async def _on_connection(self, state: ConnectionState) -> None:
        self.connection_changed.emit(state.online, state.speed.value)

    def _on_log(self, entry: LogEntry) -> None:
        self.log_added.emit({
            'message': entry.message,
            'type': entry.type.value,
            'time': entry.time,
            'icon': entry.icon,
        })

    def _on_progress(self, state: ProgressState) -> None:
        current = (state.progress, state.status)
        if current != self._last_progress:
            self._last_progress = current
            self.progress_updated.emit(state.progress, state.status)
        if state.stage != self._last_stage:
            self._last_stage = state.stage
            self.stage_changed.emit(state.stage.value)


def create_upload_worker(user_id: Optional[str], ini_path: Optional[str] = None,
                         parent=None) -> UploadWorker:
    """Wire settings, connection monitor, orchestrator and worker for one user."""
    settings = load_upload_settings(ini_path)
    monitor = ConnectionMonitor(ProbeConfig.from_settings(settings))
    orchestrator = UploadOrchestrator(user_id, settings, connection=monitor)
    return UploadWorker(orchestrator, monitor=monitor, parent=parent)
