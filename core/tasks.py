"""
Task Protocol - request / progress / result messages for background jobs

A request {id, action, payload} produces zero or more progress messages
followed by exactly one terminal message, either a result or an error.
Handlers are plain callables registered per (action, game); the runner
can execute them inline or on a background thread.
"""

import threading
import traceback
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple
import logging

from .errors import TrainingCancelled
from .progress import CancellationToken, ProgressUpdate

logger = logging.getLogger(__name__)


class TaskAction(Enum):
    """Actions a task request can ask for"""
    SIMULATE = "simulate"
    TRAIN = "train"


class MessageType(Enum):
    PROGRESS = "progress"
    RESULT = "result"
    ERROR = "error"


@dataclass
class TaskRequest:
    """A job submitted to the runner"""
    id: str
    action: TaskAction
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, action, payload: Dict[str, Any] = None) -> 'TaskRequest':
        return cls(
            id=str(uuid.uuid4())[:12],
            action=TaskAction(action),
            payload=payload or {}
        )

    @property
    def game(self) -> str:
        return self.payload.get('game', 'runenkrieg')


Handler = Callable[[Dict[str, Any], Callable[[ProgressUpdate], None], CancellationToken], Any]
Emit = Callable[[Dict[str, Any]], None]


class TaskRunner:
    """
    Dispatches task requests to registered handlers.

    Every run ends with exactly one terminal message. Cancellation is
    cooperative: the handler raises TrainingCancelled at a chunk boundary
    and the runner reports it as an error flagged `cancelled`.
    """

    def __init__(self):
        self.handlers: Dict[Tuple[TaskAction, str], Handler] = {}
        self.tokens: Dict[str, CancellationToken] = {}
        self.threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def register(self, action, game: str, handler: Handler):
        self.handlers[(TaskAction(action), game)] = handler

    def run(self, request: TaskRequest, emit: Emit,
            token: Optional[CancellationToken] = None) -> Optional[Any]:
        token = token or CancellationToken()
        base = {'id': request.id, 'action': request.action.value}

        def on_progress(update: ProgressUpdate):
            emit({**base, 'type': MessageType.PROGRESS.value, 'progress': update.to_dict()})

        handler = self.handlers.get((request.action, request.game))
        if handler is None:
            emit({**base, 'type': MessageType.ERROR.value, 'error': {
                'message': f"Unknown action {request.action.value} for game {request.game}"
            }})
            return None

        try:
            result = handler(request.payload, on_progress, token)
        except TrainingCancelled as e:
            logger.info(f"Task {request.id} cancelled")
            emit({**base, 'type': MessageType.ERROR.value, 'cancelled': True,
                  'error': {'message': str(e)}})
            return None
        except Exception as e:
            logger.error(f"Task {request.id} failed: {e}")
            emit({**base, 'type': MessageType.ERROR.value, 'error': {
                'message': str(e),
                'stack': traceback.format_exc()
            }})
            return None

        emit({**base, 'type': MessageType.RESULT.value, 'result': result})
        return result

    def submit(self, request: TaskRequest, emit: Emit) -> threading.Thread:
        """Run a request on a background thread"""
        token = CancellationToken()
        with self._lock:
            self.tokens[request.id] = token

        def target():
            try:
                self.run(request, emit, token)
            finally:
                with self._lock:
                    self.tokens.pop(request.id, None)
                    self.threads.pop(request.id, None)

        thread = threading.Thread(target=target, name=f"task-{request.id}", daemon=True)
        with self._lock:
            self.threads[request.id] = thread
        thread.start()
        return thread

    def cancel(self, request_id: str) -> bool:
        with self._lock:
            token = self.tokens.get(request_id)
        if token is None:
            return False
        token.cancel()
        return True


def create_default_runner(config=None) -> TaskRunner:
    """Runner wired to the chess and Runenkrieg simulate/train handlers"""
    from chess_ai.tasks import register_chess_tasks
    from runenkrieg.tasks import register_runenkrieg_tasks

    runner = TaskRunner()
    register_chess_tasks(runner, config)
    register_runenkrieg_tasks(runner, config)
    return runner
