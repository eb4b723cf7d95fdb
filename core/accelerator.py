"""
Batch Accelerator - vectorised Wilson / chess statistics

Optional fast path for bulk interval computation. Output layout is a flat
float array with a fixed stride per element:

    wilson_batch  -> [winRate, lower, upper, width, evidence]   (stride 5)
    chess_batch   -> [expectedScore, confidence]                (stride 2)

Any failure here must never change results, only speed: callers keep the
scalar closed forms in core.stats as the fallback path.
"""

from typing import Optional, Sequence
import logging

import numpy as np

from .stats import WILSON_Z

logger = logging.getLogger(__name__)

WILSON_STRIDE = 5
CHESS_STRIDE = 2
MIN_BATCH = 4


class BatchAccelerator:
    """
    numpy backend for the bulk statistic contract.

    Once a batch raises, the accelerator disables itself so the rest of the
    run stays on the CPU path.
    """

    def __init__(self, enabled: bool = True, z: float = WILSON_Z):
        self.enabled = enabled
        self.z = z
        self.failures = 0

    def disable(self, reason: str = ""):
        if self.enabled:
            logger.warning(f"Batch accelerator disabled, using CPU fallback: {reason}")
        self.enabled = False

    def wilson_batch(self, wins: Sequence[float], totals: Sequence[float]) -> Optional[np.ndarray]:
        if not self.enabled:
            return None
        w = np.asarray(wins, dtype=np.float64)
        n = np.asarray(totals, dtype=np.float64)
        if w.shape != n.shape:
            raise ValueError(f"wins/totals length mismatch: {w.shape} vs {n.shape}")

        out = np.zeros((len(n), WILSON_STRIDE), dtype=np.float64)
        out[:, 2] = 1.0
        out[:, 3] = 1.0
        out[:, 4] = 0.15  # evidence_score(0, 1)

        valid = n > 0
        if np.any(valid):
            nv = n[valid]
            p = w[valid] / nv
            z2 = self.z * self.z
            denominator = 1 + z2 / nv
            center = p + z2 / (2 * nv)
            margin = self.z * np.sqrt(np.maximum(0.0, p * (1 - p) / nv + z2 / (4 * nv * nv)))
            lower = np.maximum(0.0, np.minimum(p, (center - margin) / denominator))
            upper = np.minimum(1.0, np.maximum(p, (center + margin) / denominator))
            width = upper - lower
            out[valid, 0] = p
            out[valid, 1] = lower
            out[valid, 2] = upper
            out[valid, 3] = width
            out[valid, 4] = 0.7 * lower + 0.3 * (1 - np.minimum(0.5, width))
        return out.reshape(-1)

    def chess_batch(self, wins: Sequence[float], losses: Sequence[float],
                    draws: Sequence[float]) -> Optional[np.ndarray]:
        if not self.enabled:
            return None
        w = np.asarray(wins, dtype=np.float64)
        l = np.asarray(losses, dtype=np.float64)
        d = np.asarray(draws, dtype=np.float64)
        if not (w.shape == l.shape == d.shape):
            raise ValueError("wins/losses/draws length mismatch")

        total = w + l + d
        out = np.zeros((len(total), CHESS_STRIDE), dtype=np.float64)
        valid = total > 0
        if np.any(valid):
            tv = total[valid]
            out[valid, 0] = (w[valid] + 0.5 * d[valid]) / tv
            out[valid, 1] = np.minimum(1.0, np.log10(tv + 1) / 2)
        return out.reshape(-1)


def try_wilson_batch(accelerator: Optional[BatchAccelerator], wins, totals) -> Optional[np.ndarray]:
    """Run a Wilson batch, or return None so the caller uses the CPU path"""
    if accelerator is None or not accelerator.enabled or len(totals) < MIN_BATCH:
        return None
    try:
        return accelerator.wilson_batch(wins, totals)
    except Exception as e:
        accelerator.failures += 1
        accelerator.disable(f"wilson batch failed: {e}")
        return None


def try_chess_batch(accelerator: Optional[BatchAccelerator], wins, losses, draws) -> Optional[np.ndarray]:
    if accelerator is None or not accelerator.enabled or len(wins) < MIN_BATCH:
        return None
    try:
        return accelerator.chess_batch(wins, losses, draws)
    except Exception as e:
        accelerator.failures += 1
        accelerator.disable(f"chess batch failed: {e}")
        return None
