"""Display-side progress smoothing for the upload progress bar.

The orchestrator reports coarse jumps (5, 10, 15, 40, 70, 85, 100). This
module animates a displayed value toward the latest target so the bar moves
continuously. It only observes progress and never feeds back into the
upload.

Classes:
    ProgressSmoother: QTimer-driven animator emitting the displayed value.
"""

from typing import Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal, pyqtSlot


TICK_INTERVAL_MS = 33

# (upper bound of range, minimum step, gap divisor)
_RANGES = (
    (15.0, 0.5, 20.0),
    (70.0, 1.0, 12.0),
    (100.0, 2.0, 6.0),
)


def next_display_value(current: float, target: float) -> float:
    """Advance the displayed value one tick toward the target.

    The step is a fraction of the remaining gap with a floor that depends on
    where the bar currently is: slow below 15, medium up to 70, fast above.
    The result never overshoots the target. A target below the current value
    (a new attempt) snaps straight down.

    Args:
        current: Value currently shown.
        target: Latest coarse progress.

    Returns:
        The value to show on the next tick.
    """
    if target <= current:
        return target

    gap = target - current
    for upper, min_step, divisor in _RANGES:
        if current < upper:
            break
    step = max(min_step, gap / divisor)
    return min(target, current + step)


class ProgressSmoother(QObject):
    """Animates a displayed progress value toward the raw upload progress.

    Signals:
        value_changed(float): Emitted on every tick that changes the value.
    """

    value_changed = pyqtSignal(float)

    def __init__(self, parent: Optional[QObject] = None, interval_ms: int = TICK_INTERVAL_MS,
                 reporter=None):
        super().__init__(parent)
        self._reporter = reporter
        self._target = 0.0
        self._value = 0.0
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._tick)

    @property
    def value(self) -> float:
        return self._value

    @property
    def target(self) -> float:
        return self._target

    @pyqtSlot(int)
    def set_target(self, progress: int) -> None:
        self._target = float(max(0, min(100, progress)))
        if self._target < self._value:
            self._value = self._target
            self.value_changed.emit(self._value)
        if self._value < self._target and not self._timer.isActive():
            self._timer.start()

    def reset(self) -> None:
        self._timer.stop()
        self._target = 0.0
        self._value = 0.0
        self.value_changed.emit(0.0)

    def _tick(self) -> None:
        new_value = next_display_value(self._value, self._target)
        if new_value != self._value:
            self._value = new_value
            if self._reporter is not None:
                self._reporter.set_display_progress(new_value)
            self.value_changed.emit(new_value)
        if self._value >= self._target:
            self._timer.stop()
