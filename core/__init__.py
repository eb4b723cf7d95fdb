"""
Core Components shared by the chess and Runenkrieg trainers

- Statistics: Wilson intervals, evidence scores, entropy, resampling waves
- Accelerator: optional numpy batch path with a CPU closed-form fallback
- Progress: phase/fraction reports and cooperative cancellation
- Persistence: JSON model store addressed by fixed keys
- Tasks: request -> progress* -> result|error message protocol
"""

from .errors import (RunenkriegError, InvalidFenError, InvalidSquareError,
                     WrongSideToMoveError, EmptyHandError, ModelFormatError,
                     TrainingCancelled)
from .stats import wilson_interval, evidence_score, entropy, ResamplingPriority
from .accelerator import BatchAccelerator
from .progress import ProgressUpdate, CancellationToken
from .config import AppConfig
from .persistence import ModelStore
from .tasks import TaskAction, TaskRequest, TaskRunner, create_default_runner

__all__ = [
    'RunenkriegError',
    'InvalidFenError',
    'InvalidSquareError',
    'WrongSideToMoveError',
    'EmptyHandError',
    'ModelFormatError',
    'TrainingCancelled',
    'wilson_interval',
    'evidence_score',
    'entropy',
    'ResamplingPriority',
    'BatchAccelerator',
    'ProgressUpdate',
    'CancellationToken',
    'AppConfig',
    'ModelStore',
    'TaskAction',
    'TaskRequest',
    'TaskRunner',
    'create_default_runner',
]
