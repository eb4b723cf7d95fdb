"""
Model Store - JSON persistence for trained models and bandit state

A directory of `<key>.json` files addressed by fixed keys. Reads are
forgiving (a missing or corrupt entry yields None with a warning);
writes are plain synchronous side effects done after training completes.
"""

from typing import Any, Optional
import json
import logging
import os

import numpy as np

logger = logging.getLogger(__name__)

CARD_MODEL_KEY = "runenkrieg-trained-model-v1"
CHESS_MODEL_KEY = "runenkrieg-chess-trained-model-v1"
BANDIT_STATE_KEY = "fusion-bandit-state-v1"


def to_native(obj):
    """Convert numpy scalars/arrays (recursively) to JSON-friendly types"""
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, dict):
        return {k: to_native(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_native(v) for v in obj]
    return obj


def export_json(data: Any, filepath: str):
    """Write a serialized model to an arbitrary file"""
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(to_native(data), f, indent=2, ensure_ascii=False)


def import_json(filepath: str) -> Any:
    """Read a serialized model from a file; errors propagate to the caller"""
    with open(filepath, 'r', encoding='utf-8') as f:
        return json.load(f)


class ModelStore:
    """Key/value store of JSON documents backed by one directory"""

    def __init__(self, path: str = "models"):
        self.path = path

    def _file(self, key: str) -> str:
        return os.path.join(self.path, f"{key}.json")

    def exists(self, key: str) -> bool:
        return os.path.exists(self._file(key))

    def get(self, key: str) -> Optional[Any]:
        filepath = self._file(key)
        if not os.path.exists(filepath):
            return None
        try:
            return import_json(filepath)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read stored entry {key}: {e}")
            return None

    def set(self, key: str, value: Any):
        os.makedirs(self.path, exist_ok=True)
        export_json(value, self._file(key))
        logger.info(f"Stored {key} in {self.path}")

    def delete(self, key: str) -> bool:
        filepath = self._file(key)
        if os.path.exists(filepath):
            os.remove(filepath)
            return True
        return False
