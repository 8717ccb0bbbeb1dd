"""
Upload log and progress sink.

The orchestrator writes log lines and coarse progress here; listeners (the Qt
worker bridge, tests) observe both. Every log line is also mirrored to the
application log under the ``uploads`` category.
"""

from typing import Callable, List, Optional

from src.core.models import LogEntry, LogType, ProgressState, UploadStage
from src.utils.logger import log, timestamp


LogListener = Callable[[LogEntry], None]
ProgressListener = Callable[[ProgressState], None]

_CONSOLE_LEVELS = {
    LogType.LOG: "info",
    LogType.INFO: "info",
    LogType.SUCCESS: "info",
    LogType.WARNING: "warning",
    LogType.ERROR: "error",
}


class UploadReporter:
    def __init__(self):
        self.logs: List[LogEntry] = []
        self.state = ProgressState()
        self._log_listeners: List[LogListener] = []
        self._progress_listeners: List[ProgressListener] = []

    def add_log_listener(self, callback: LogListener) -> None:
        if callback not in self._log_listeners:
            self._log_listeners.append(callback)

    def remove_log_listener(self, callback: LogListener) -> None:
        if callback in self._log_listeners:
            self._log_listeners.remove(callback)

    def add_progress_listener(self, callback: ProgressListener) -> None:
        if callback not in self._progress_listeners:
            self._progress_listeners.append(callback)

    def remove_progress_listener(self, callback: ProgressListener) -> None:
        if callback in self._progress_listeners:
            self._progress_listeners.remove(callback)

    def append(self, message: str, type: str = "log") -> LogEntry:
        """Record a log line with its local time and icon."""
        entry = LogEntry(message=message, type=LogType(type), time=timestamp())
        self.logs.append(entry)
        log(f"[uploads] {entry.icon} {message}", level=_CONSOLE_LEVELS[entry.type])
        for listener in list(self._log_listeners):
            listener(entry)
        return entry

    def reset_logs(self) -> None:
        self.logs = []

    def _notify_progress(self) -> None:
        for listener in list(self._progress_listeners):
            listener(self.state)

    def set_progress(self, value: int, status: Optional[str] = None) -> None:
        self.state.progress = max(0, min(100, int(value)))
        if status is not None:
            self.state.status = status
        self._notify_progress()

    def set_status(self, status: str) -> None:
        self.state.status = status
        self._notify_progress()

    def set_stage(self, stage: UploadStage) -> None:
        self.state.stage = stage
        self._notify_progress()

    def set_uploading(self, uploading: bool) -> None:
        self.state.uploading = uploading
        self._notify_progress()

    def set_error(self, message: Optional[str]) -> None:
        self.state.error = message
        self._notify_progress()

    def set_can_resume(self, can_resume: bool) -> None:
        self.state.can_resume = can_resume
        self._notify_progress()

    def set_display_progress(self, value: float) -> None:
        # Written by the UI smoother; not re-broadcast
        self.state.display_progress = value

    def begin_attempt(self, is_retry: bool) -> None:
        """Reset progress for a new attempt; logs survive retries."""
        if not is_retry:
            self.reset_logs()
        self.state = ProgressState(uploading=True, stage=UploadStage.IDLE)
        self._notify_progress()

    def clear(self) -> None:
        """Drop progress, logs and error (cancel/reset)."""
        self.reset_logs()
        self.state = ProgressState()
        self._notify_progress()
