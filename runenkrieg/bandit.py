"""
Fusion Bandit - epsilon-greedy policy for the fuse/skip decision

Each tactical situation (actor, hero matchup, weather, fused card, clamped
token delta) owns two arms, "fuse" and "skip", holding the running mean of
the rewards observed after taking that action there.

Decision:
    explore (probability epsilon): fuse with probability sigmoid(projected gain)
    exploit: fuse mean (projected gain while unseen) vs skip mean (baseline
             while unseen); ties go to fuse

One instance is shared by every simulated game, so updates to the arm
table are serialized with a lock.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple
import logging
import math
import random
import threading

from core.persistence import BANDIT_STATE_KEY
from core.stats import clamp_token_delta

logger = logging.getLogger(__name__)

FUSE = 'fuse'
SKIP = 'skip'
ACTIONS = (FUSE, SKIP)

DEFAULT_EPSILON = 0.12
DEFAULT_SKIP_BASELINE = 0.05

OUTCOME_SELF = 'self'
OUTCOME_OPPONENT = 'opponent'
OUTCOME_DRAW = 'draw'


def sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


def _finite(value: Any, fallback: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


# ── Decision context ─────────────────────────────────────────────────────

@dataclass
class HandSummary:
    size: int = 0
    fusion_ready: int = 0
    average_ability: float = 0.0
    max_ability: int = 0
    min_ability: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'size': self.size,
            'fusionReady': self.fusion_ready,
            'averageAbilityIdx': self.average_ability,
            'maxAbilityIdx': self.max_ability,
            'minAbilityIdx': self.min_ability,
        }


@dataclass
class BoardSummary:
    round: int = 1
    own_tokens: int = 0
    opponent_tokens: int = 0
    token_diff: int = 0
    own_morale: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'round': self.round,
            'ownTokens': self.own_tokens,
            'opponentTokens': self.opponent_tokens,
            'tokenDiff': self.token_diff,
            'ownMorale': self.own_morale,
        }


@dataclass
class FusionCandidate:
    """A concrete fusion option: which two hand cards and what they become"""
    indices: Tuple[int, int]
    fused_card: Any
    projected_gain: float
    base_gain: float = 0.0
    element_synergy: float = 0.0
    synergy_score: float = 0.0
    weather_score: float = 0.0
    hero_bonus: float = 0.0
    token_pressure: float = 0.0
    history_pressure: float = 0.0

    @property
    def signature(self) -> str:
        card = self.fused_card
        return f"{card.element}-{card.ability}" if card is not None else "none"


@dataclass
class FusionContext:
    actor: str
    hero: str
    opponent_hero: str
    weather: str
    round_number: int
    hand_signature: str
    hand_summary: HandSummary
    board_summary: BoardSummary
    candidate: FusionCandidate


@dataclass
class FusionDecision:
    action: str
    arm_id: str
    context: FusionContext
    explored: bool = False


@dataclass
class FusionOutcome:
    """Round result from the deciding side's perspective"""
    round_winner: str
    token_change: float = 0.0


def compute_reward(outcome: FusionOutcome) -> float:
    if outcome.round_winner == OUTCOME_SELF:
        win = 1.0
    elif outcome.round_winner == OUTCOME_OPPONENT:
        win = -1.0
    else:
        win = 0.2
    return win + 0.6 * math.tanh(_finite(outcome.token_change) / 5)


# ── Policy ───────────────────────────────────────────────────────────────

@dataclass
class ArmStats:
    mean: float = 0.0
    n: int = 0

    def update(self, reward: float):
        self.n += 1
        self.mean += (reward - self.mean) / self.n

    def to_dict(self) -> Dict[str, Any]:
        return {'mean': self.mean, 'n': self.n}

    @classmethod
    def from_dict(cls, data: Any) -> 'ArmStats':
        if not isinstance(data, dict):
            return cls()
        n = _finite(data.get('n'))
        return cls(mean=_finite(data.get('mean')), n=max(0, int(n)))


@dataclass
class ArmPair:
    fuse: ArmStats = field(default_factory=ArmStats)
    skip: ArmStats = field(default_factory=ArmStats)

    def arm(self, action: str) -> ArmStats:
        return self.fuse if action == FUSE else self.skip


class FusionBandit:
    """Epsilon-greedy fuse/skip policy keyed by tactical situation"""

    def __init__(self, epsilon: float = DEFAULT_EPSILON,
                 skip_baseline: float = DEFAULT_SKIP_BASELINE,
                 rng: random.Random = None):
        self.epsilon = epsilon
        self.skip_baseline = skip_baseline
        self.rng = rng or random.Random()
        self.table: Dict[str, ArmPair] = {}
        self._lock = threading.Lock()

    @staticmethod
    def arm_key(context: FusionContext) -> str:
        delta = clamp_token_delta(context.board_summary.token_diff)
        return '|'.join([context.actor, context.hero, context.opponent_hero,
                         context.weather, context.candidate.signature, str(delta)])

    def _estimates(self, key: str, projected_gain: float) -> Tuple[float, float]:
        pair = self.table.get(key)
        fuse = pair.fuse.mean if pair and pair.fuse.n > 0 else projected_gain
        skip = pair.skip.mean if pair and pair.skip.n > 0 else self.skip_baseline
        return fuse, skip

    def exploit_action(self, context: FusionContext) -> str:
        """Greedy choice for a context, ignoring exploration"""
        gain = _finite(context.candidate.projected_gain)
        with self._lock:
            fuse, skip = self._estimates(self.arm_key(context), gain)
        return FUSE if fuse >= skip else SKIP

    def fuse_probability(self, context: FusionContext) -> float:
        """Overall probability that select_action returns 'fuse'"""
        explore = sigmoid(_finite(context.candidate.projected_gain))
        exploit = 1.0 if self.exploit_action(context) == FUSE else 0.0
        return self.epsilon * explore + (1 - self.epsilon) * exploit

    def select_action(self, context: FusionContext) -> FusionDecision:
        key = self.arm_key(context)
        gain = _finite(context.candidate.projected_gain)

        with self._lock:
            if self.rng.random() < self.epsilon:
                action = FUSE if self.rng.random() < sigmoid(gain) else SKIP
                return FusionDecision(action, key, context, explored=True)
            fuse, skip = self._estimates(key, gain)

        return FusionDecision(FUSE if fuse >= skip else SKIP, key, context)

    def record_reward(self, arm_id: str, action: str, reward: float):
        with self._lock:
            pair = self.table.setdefault(arm_id, ArmPair())
            pair.arm(action).update(_finite(reward))

    def learn(self, decision: FusionDecision, outcome: FusionOutcome) -> float:
        reward = compute_reward(outcome)
        self.record_reward(decision.arm_id, decision.action, reward)
        return reward

    def arm_stats(self, arm_id: str, action: str) -> ArmStats:
        with self._lock:
            pair = self.table.get(arm_id)
            if pair is None:
                return ArmStats()
            arm = pair.arm(action)
            return ArmStats(arm.mean, arm.n)

    # ── Persistence ──

    def serialize(self) -> List[List[Any]]:
        with self._lock:
            return [[key, {'fuse': pair.fuse.to_dict(), 'skip': pair.skip.to_dict()}]
                    for key, pair in self.table.items()]

    @classmethod
    def deserialize(cls, data: Any, **kwargs) -> 'FusionBandit':
        """Tolerant restore: malformed entries are skipped, bad numbers zeroed"""
        bandit = cls(**kwargs)
        if not isinstance(data, list):
            return bandit
        for entry in data:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                continue
            key, stats = entry
            if not isinstance(key, str) or not isinstance(stats, dict):
                continue
            bandit.table[key] = ArmPair(ArmStats.from_dict(stats.get('fuse')),
                                        ArmStats.from_dict(stats.get('skip')))
        return bandit

    def summary(self) -> Dict[str, int]:
        with self._lock:
            fuse = sum(pair.fuse.n for pair in self.table.values())
            skip = sum(pair.skip.n for pair in self.table.values())
            return {
                'contextCount': len(self.table),
                'totalDecisions': fuse + skip,
                'fuseDecisions': fuse,
                'skipDecisions': skip,
            }

    def save(self, store):
        store.set(BANDIT_STATE_KEY, self.serialize())

    @classmethod
    def load(cls, store, **kwargs) -> 'FusionBandit':
        data = store.get(BANDIT_STATE_KEY)
        if data is None:
            return cls(**kwargs)
        bandit = cls.deserialize(data, **kwargs)
        logger.info(f"Loaded fusion bandit with {len(bandit.table)} contexts")
        return bandit

    @classmethod
    def from_config(cls, config, rng: random.Random = None) -> 'FusionBandit':
        return cls(epsilon=config.epsilon, skip_baseline=config.skip_baseline, rng=rng)
