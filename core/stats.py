"""
Statistics Primitives - closed forms shared by both trainers

Wilson score intervals, evidence scores, Shannon entropy and the
resampling helpers (wave targets and priorities) used by the
context-keyed aggregator. The chess trainer uses expected_score and
confidence_score for its move statistics.
"""

from enum import IntEnum
from typing import Iterable, Tuple
import math

WILSON_Z = 1.96
TOKEN_DELTA_LIMIT = 5


class ResamplingPriority(IntEnum):
    """Lower value = resample sooner"""
    MAX = 0
    HIGH = 1
    MED = 2
    NORMAL = 3

    @property
    def label(self) -> str:
        return self.name.lower()


def wilson_interval(wins: float, trials: float, z: float = WILSON_Z) -> Tuple[float, float, float]:
    """
    Wilson score interval for a binomial proportion.

    Returns (lower, upper, width). With no trials the interval is the
    whole unit range.
    """
    if trials <= 0:
        return 0.0, 1.0, 1.0

    p = wins / trials
    z2 = z * z
    denominator = 1 + z2 / trials
    center = p + z2 / (2 * trials)
    margin = z * math.sqrt(max(0.0, p * (1 - p) / trials + z2 / (4 * trials * trials)))
    lower = max(0.0, min(p, (center - margin) / denominator))
    upper = min(1.0, max(p, (center + margin) / denominator))
    return lower, upper, upper - lower


def evidence_score(lower: float, upper: float) -> float:
    """Blend of confidence (lower bound) and precision (narrow interval)"""
    width = upper - lower
    return 0.7 * lower + 0.3 * (1 - min(0.5, width))


def entropy(probabilities: Iterable[float]) -> float:
    """Shannon entropy in bits; non-positive shares are ignored"""
    total = 0.0
    for p in probabilities:
        if p > 0:
            total -= p * math.log2(p)
    return total


def expected_score(wins: float, losses: float, draws: float) -> float:
    total = wins + losses + draws
    if total <= 0:
        return 0.5
    return (wins + 0.5 * draws) / total


def confidence_score(samples: float) -> float:
    if samples <= 0:
        return 0.0
    return min(1.0, math.log10(samples + 1) / 2)


def clamp_token_delta(delta: float) -> int:
    return int(max(-TOKEN_DELTA_LIMIT, min(TOKEN_DELTA_LIMIT, delta)))


def determine_wave(trials: int, win_rate: float, width: float) -> Tuple[int, int]:
    """
    Next resampling wave and its target sample count.

    Waves step 25 -> 50 -> 100. A context that is still poor (low win rate
    or wide interval) after 100 trials is pushed on to 200.
    """
    poor = win_rate < 0.25 or width > 0.3
    if trials < 25:
        return 1, 25
    if trials < 50:
        return 2, 50
    if trials < 100:
        if poor:
            return 3, 100
        return 3, trials
    if poor and trials < 200:
        return 3, 200
    return 3, trials


def assign_priority(trials: int, lower: float, win_rate: float, token_delta: int) -> ResamplingPriority:
    if trials == 0:
        return ResamplingPriority.MAX
    if trials < 10 and lower < 0.5:
        return ResamplingPriority.HIGH
    if win_rate < 0.25 and token_delta >= 3:
        return ResamplingPriority.HIGH
    if trials < 25 and lower < 0.6:
        return ResamplingPriority.MED
    return ResamplingPriority.NORMAL
