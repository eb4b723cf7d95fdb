"""
Progress reporting and cooperative cancellation for long-running
simulation and training jobs.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import threading

from .errors import TrainingCancelled


@dataclass
class ProgressUpdate:
    """One progress report: phase name, fraction in [0, 1], message"""
    phase: str
    progress: float
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase': self.phase,
            'progress': self.progress,
            'message': self.message,
        }


ProgressCallback = Callable[[ProgressUpdate], None]


class CancellationToken:
    """Thread-safe cancel flag checked by simulators and trainers"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise TrainingCancelled()


def check_cancelled(token: Optional[CancellationToken]):
    if token is not None:
        token.raise_if_cancelled()


SIMULATION_PROGRESS_STEPS = 100


def progress_interval(total: int, steps: int) -> int:
    """Report every N items so a run emits roughly `steps` updates"""
    return max(1, max(1, total) // max(1, steps))


def report(callback: Optional[ProgressCallback], phase: str,
           progress: float, message: str = ""):
    if callback is not None:
        callback(ProgressUpdate(phase=phase, progress=min(1.0, max(0.0, progress)),
                                message=message))
