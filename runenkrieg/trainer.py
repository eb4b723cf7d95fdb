"""
Context-Keyed Training Aggregator

Turns simulated rounds into a response model: for each context
(player card, weather, hero matchup, clamped token delta) it counts how
often every AI response card won, then scores each response with a Wilson
interval and picks the best one.

Known weak contexts are seeded with prior beliefs before aggregation. A
prior is applied only on a fresh model, or for a response the continued
base model has never seen, so incremental retrains never double-count it.

Usage:
    rounds = simulate_games(500)
    model = train_model(rounds)
    card = model.predict(player_card, ai_hand, GameState(5, 3, 'Regen', 'Drache', 'Zauberer'))
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
import logging
import math
import random

from core.accelerator import BatchAccelerator, WILSON_STRIDE, try_wilson_batch
from core.errors import EmptyHandError, ModelFormatError
from core.progress import (CancellationToken, ProgressCallback, check_cancelled,
                           progress_interval, report)
from core.stats import WILSON_Z, entropy, evidence_score, wilson_interval
from runenkrieg.analysis import (LOW_ENTROPY, AnalysisBuilder, ContextInsight,
                                 empty_analysis)
from runenkrieg.cards import Card
from runenkrieg.constants import AI_WINS
from runenkrieg.context import FOCUS_CONTEXT_INDEX, build_context_key, parse_context_key

logger = logging.getLogger(__name__)

MODEL_VERSION = 1

INIT_SHARE = 0.05
AGGREGATION_SHARE = 0.45
ROUND_PROGRESS_STEPS = 40
CONTEXT_PROGRESS_STEPS = 30

STAGE_STABLE = 'stable'
STAGE_PROVISIONAL = 'provisional'
STAGE_NONE = 'none'

DEFAULT_BASELINE = 0.45
PREFERRED_BONUS = 0.08
STABLE_MIX_CHANCE = 0.15


@dataclass
class CardStats:
    wins: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {'wins': self.wins, 'total': self.total}


@dataclass
class ContextMetadata:
    """Per-context summary that steers prediction"""
    best_card_key: str
    observations: int
    wilson_lower: float
    wilson_upper: float
    entropy: float
    baseline_win_rate: float
    best_win_rate: float
    consolidation_stage: str = STAGE_NONE
    weakness_penalty: float = 0.0
    preferred_responses: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'bestCardKey': self.best_card_key,
            'observations': self.observations,
            'wilsonLower': self.wilson_lower,
            'wilsonUpper': self.wilson_upper,
            'entropy': self.entropy,
            'baselineWinRate': self.baseline_win_rate,
            'bestWinRate': self.best_win_rate,
            'consolidationStage': self.consolidation_stage,
            'weaknessPenalty': self.weakness_penalty,
        }
        if self.preferred_responses is not None:
            data['preferredResponses'] = list(self.preferred_responses)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContextMetadata':
        preferred = data.get('preferredResponses')
        return cls(
            best_card_key=data.get('bestCardKey', ''),
            observations=int(data.get('observations', 0)),
            wilson_lower=float(data.get('wilsonLower', 0.0)),
            wilson_upper=float(data.get('wilsonUpper', 1.0)),
            entropy=float(data.get('entropy', 0.0)),
            baseline_win_rate=float(data.get('baselineWinRate', DEFAULT_BASELINE)),
            best_win_rate=float(data.get('bestWinRate', 0.0)),
            consolidation_stage=data.get('consolidationStage', STAGE_NONE),
            weakness_penalty=float(data.get('weaknessPenalty', 0.0)),
            preferred_responses=list(preferred) if preferred is not None else None,
        )


@dataclass
class GameState:
    """What predict() needs to know about the table"""
    player_tokens: int
    ai_tokens: int
    weather: str
    player_hero: str
    ai_hero: str


@dataclass
class CandidateEstimate:
    card: Card
    key: str
    win_rate: float
    wilson_lower: float
    wilson_upper: float
    interval_width: float
    observations: int
    adjusted_lower: float
    is_preferred: bool = False


def consolidation_stage(lower: float, observations: int) -> str:
    if lower >= 0.6 and observations >= 50:
        return STAGE_STABLE
    if lower >= 0.6 and observations >= 25:
        return STAGE_PROVISIONAL
    return STAGE_NONE


def weakness_penalty(is_focus: bool, token_delta: int, best_win_rate: float,
                     baseline: float) -> float:
    """Extra caution for contexts where the AI is known or observed to struggle"""
    penalty = 0.0
    if is_focus:
        penalty = 0.1
        if best_win_rate < 0.5:
            penalty += 0.05
    elif token_delta >= 4 and best_win_rate < 0.55:
        penalty = min(0.15, (0.55 - best_win_rate) * 0.6)
    if best_win_rate < baseline:
        penalty += 0.03
    return min(0.3, max(0.0, penalty))


def _strongest(hand: Sequence[Card]) -> Card:
    return max(hand, key=lambda card: card.ability_index)


class RunenkriegTrainedModel:
    """
    Response model: context key -> AI card label -> win counts.

    predict() picks an AI card for the current duel. Confident contexts
    answer deterministically; uncertain ones sample from a softmax over the
    adjusted Wilson lower bounds.
    """

    def __init__(self, contexts: Dict[str, Dict[str, CardStats]] = None,
                 metadata: Dict[str, ContextMetadata] = None,
                 analysis: Dict[str, Any] = None,
                 generated_at: str = None,
                 z: float = WILSON_Z):
        self.contexts: Dict[str, Dict[str, CardStats]] = contexts or {}
        self.metadata: Dict[str, ContextMetadata] = metadata or {}
        self.analysis = analysis if analysis is not None else empty_analysis()
        self.generated_at = generated_at or datetime.now(timezone.utc).isoformat()
        self.z = z

    def estimate(self, ai_hand: Sequence[Card], plays: Dict[str, CardStats],
                 metadata: Optional[ContextMetadata]) -> List[CandidateEstimate]:
        """Score every hand card for one context, best first"""
        baseline = metadata.baseline_win_rate if metadata else DEFAULT_BASELINE
        default_lower = max(0.0, baseline - 0.25)
        default_upper = min(1.0, baseline + 0.15)
        penalty = metadata.weakness_penalty if metadata else 0.0
        preferred = (metadata.preferred_responses or []) if metadata else []

        estimates = []
        for card in ai_hand:
            key = card.label
            stats = plays.get(key)
            is_preferred = key in preferred
            bonus = PREFERRED_BONUS if is_preferred else 0.0
            upper_bonus = 0.05 if is_preferred else 0.0

            if stats is None or stats.total == 0:
                estimates.append(CandidateEstimate(
                    card=card, key=key, win_rate=baseline,
                    wilson_lower=default_lower,
                    wilson_upper=min(1.0, default_upper + upper_bonus),
                    interval_width=default_upper - default_lower,
                    observations=0,
                    adjusted_lower=min(1.0, max(0.0, default_lower - penalty + bonus)),
                    is_preferred=is_preferred,
                ))
                continue

            lower, upper, width = wilson_interval(stats.wins, stats.total, self.z)
            estimates.append(CandidateEstimate(
                card=card, key=key, win_rate=stats.wins / stats.total,
                wilson_lower=lower,
                wilson_upper=min(1.0, upper + upper_bonus),
                interval_width=width,
                observations=stats.total,
                adjusted_lower=min(1.0, max(0.0, lower - penalty + bonus)),
                is_preferred=is_preferred,
            ))

        estimates.sort(key=lambda e: (e.adjusted_lower, e.is_preferred, e.wilson_lower),
                       reverse=True)
        return estimates

    def predict(self, player_card: Card, ai_hand: Sequence[Card], state: GameState,
                rng: random.Random = None) -> Card:
        if not ai_hand:
            raise EmptyHandError("Cannot choose an AI card from an empty hand")
        rng = rng or random

        key = build_context_key(player_card.label, state.weather, state.player_hero,
                                state.ai_hero, state.player_tokens - state.ai_tokens)
        plays = self.contexts.get(key)
        if plays is None:
            return _strongest(ai_hand)

        metadata = self.metadata.get(key)
        ranked = self.estimate(ai_hand, plays, metadata)
        top = ranked[0]

        entropy_low = (metadata.entropy if metadata else 1.0) < LOW_ENTROPY
        stage = metadata.consolidation_stage if metadata else STAGE_NONE
        if stage == STAGE_STABLE:
            if entropy_low and len(ranked) > 1 and rng.random() < STABLE_MIX_CHANCE:
                return ranked[1].card
            return top.card

        temperature = 1.0 if stage == STAGE_PROVISIONAL else 1.4
        if entropy_low:
            temperature += 0.4
        penalty = metadata.weakness_penalty if metadata else 0.0
        if penalty > 0:
            temperature += penalty * 2.5

        best_score = max(e.adjusted_lower for e in ranked)
        weights = [math.exp((e.adjusted_lower - best_score) / max(0.4, temperature))
                   for e in ranked]
        threshold = rng.random() * sum(weights)
        for estimate, weight in zip(ranked, weights):
            threshold -= weight
            if threshold <= 0:
                return estimate.card
        return top.card

    def serialize(self) -> Dict[str, Any]:
        contexts = {}
        for key, plays in self.contexts.items():
            entry: Dict[str, Any] = {'aiCards': {card: s.to_dict() for card, s in plays.items()}}
            if key in self.metadata:
                entry['metadata'] = self.metadata[key].to_dict()
            contexts[key] = entry
        return {
            'version': MODEL_VERSION,
            'generatedAt': self.generated_at,
            'contexts': contexts,
            'analysis': self.analysis,
        }

    @staticmethod
    def inflate(data: Dict[str, Any]):
        """Serialized contexts -> (counts, metadata)"""
        contexts: Dict[str, Dict[str, CardStats]] = {}
        metadata: Dict[str, ContextMetadata] = {}
        for key, value in (data.get('contexts') or {}).items():
            value = value or {}
            contexts[key] = {
                card: CardStats(int(stats.get('wins', 0)), int(stats.get('total', 0)))
                for card, stats in (value.get('aiCards') or {}).items()
            }
            if value.get('metadata'):
                metadata[key] = ContextMetadata.from_dict(value['metadata'])
        return contexts, metadata

    @classmethod
    def hydrate(cls, data: Dict[str, Any], z: float = WILSON_Z) -> 'RunenkriegTrainedModel':
        if not isinstance(data, dict):
            raise ModelFormatError("Serialized Runenkrieg model must be a mapping")
        if data.get('version') != MODEL_VERSION:
            logger.warning(f"Runenkrieg model version {data.get('version')} differs from "
                           f"{MODEL_VERSION}, loading anyway")
        contexts, metadata = cls.inflate(data)
        return cls(contexts, metadata, data.get('analysis'), data.get('generatedAt'), z)


# ── Training ─────────────────────────────────────────────────────────────

def seed_focus_priors(contexts: Dict[str, Dict[str, CardStats]], has_base_model: bool):
    for key, focus_entries in FOCUS_CONTEXT_INDEX.items():
        plays = contexts.setdefault(key, {})
        for focus in focus_entries:
            is_new = focus.ai_card not in plays
            stats = plays.setdefault(focus.ai_card, CardStats())
            if not has_base_model or is_new:
                stats.total += focus.prior_weight
                stats.wins += int(focus.prior_weight * focus.target_ai_win_rate + 0.5)


def train_model(simulation_data: Sequence[Any],
                on_progress: Optional[ProgressCallback] = None,
                prefer_accelerator: bool = False,
                accelerator: Optional[BatchAccelerator] = None,
                base_model: Optional[Dict[str, Any]] = None,
                token: Optional[CancellationToken] = None,
                z: float = WILSON_Z) -> RunenkriegTrainedModel:
    """
    Aggregate rounds into a RunenkriegTrainedModel.

    Args:
        simulation_data: RoundResult objects
        base_model: serialized model to continue from
        prefer_accelerator: use the numpy batch path for contexts with
            at least four responses
        token: cooperative cancellation, checked at every progress report
    """
    contexts: Dict[str, Dict[str, CardStats]] = {}
    metadata: Dict[str, ContextMetadata] = {}
    fusion_samples: List[Any] = []

    if base_model is not None:
        try:
            contexts, metadata = RunenkriegTrainedModel.inflate(base_model)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Could not continue from base model, starting fresh: {e}")
            contexts, metadata = {}, {}

    seed_focus_priors(contexts, base_model is not None)
    report(on_progress, 'initializing', INIT_SHARE, "Context priors initialised.")

    total_rounds = len(simulation_data)
    safe_rounds = max(1, total_rounds)
    round_interval = progress_interval(total_rounds, ROUND_PROGRESS_STEPS)
    aggregation_share = AGGREGATION_SHARE if total_rounds > 0 else 0.0
    analysis_share = max(0.0, 1 - INIT_SHARE - aggregation_share)

    for index, round_ in enumerate(simulation_data):
        fusion_samples.extend(round_.fusion_decisions or [])
        key = build_context_key(round_.player_card, round_.weather, round_.player_hero,
                                round_.ai_hero, round_.token_delta)
        stats = contexts.setdefault(key, {}).setdefault(round_.ai_card, CardStats())
        stats.total += 1
        if round_.winner == AI_WINS:
            stats.wins += 1

        if (index + 1) % round_interval == 0 or index == total_rounds - 1:
            check_cancelled(token)
            report(on_progress, 'aggregating',
                   INIT_SHARE + aggregation_share * (index + 1) / safe_rounds,
                   f"Processing round {index + 1} of {safe_rounds}")

    if total_rounds == 0:
        report(on_progress, 'aggregating', INIT_SHARE,
               "No simulation data, using focus priors only.")
    else:
        report(on_progress, 'aggregating', INIT_SHARE + aggregation_share,
               "Rounds aggregated, analysing contexts...")

    if prefer_accelerator and accelerator is None:
        accelerator = BatchAccelerator(z=z)
    use_accelerator = accelerator if prefer_accelerator else None
    accelerated = False

    builder = AnalysisBuilder()
    entries = list(contexts.items())
    safe_contexts = max(1, len(entries))
    context_interval = progress_interval(len(entries), CONTEXT_PROGRESS_STEPS)

    for index, (key, plays) in enumerate(entries):
        parsed = parse_context_key(key)
        listed = list(plays.items())
        batch = try_wilson_batch(use_accelerator, [s.wins for _, s in listed],
                                 [s.total for _, s in listed])
        if batch is not None:
            accelerated = True

        candidates = []
        total_wins = total_trials = 0
        for card_index, (card_key, stats) in enumerate(listed):
            if stats.total == 0:
                continue
            total_wins += stats.wins
            total_trials += stats.total
            if batch is not None and len(batch) >= (card_index + 1) * WILSON_STRIDE:
                row = [float(v) for v in batch[card_index * WILSON_STRIDE:(card_index + 1) * WILSON_STRIDE]]
                win_rate, lower, upper, width, evidence = row
            else:
                lower, upper, width = wilson_interval(stats.wins, stats.total, z)
                win_rate = stats.wins / stats.total
                evidence = evidence_score(lower, upper)
            candidates.append((card_key, stats, win_rate, lower, upper, width, evidence))

        if total_trials > 0:
            best = candidates[0]
            for candidate in candidates[1:]:
                if candidate[3] > best[3] or (candidate[3] == best[3] and candidate[6] > best[6]):
                    best = candidate
            card_key, stats, win_rate, lower, upper, width, evidence = best

            spread = entropy(c[1].total / total_trials for c in candidates)
            baseline = total_wins / total_trials
            focus_entries = FOCUS_CONTEXT_INDEX.get(key)

            insight = ContextInsight(
                player_card=parsed.player_card, weather=parsed.weather,
                player_hero=parsed.player_hero, ai_hero=parsed.ai_hero,
                token_delta=parsed.token_delta, ai_card=card_key, win_rate=win_rate,
                baseline_win_rate=baseline, observations=stats.total,
                wilson_lower=lower, wilson_upper=upper, interval_width=width,
                evidence_score=evidence, entropy=spread,
            )
            builder.add_context(insight, {c[0]: [c[1].wins, c[1].total] for c in candidates},
                                total_wins, total_trials)

            metadata[key] = ContextMetadata(
                best_card_key=card_key,
                observations=stats.total,
                wilson_lower=lower,
                wilson_upper=upper,
                entropy=spread,
                baseline_win_rate=baseline,
                best_win_rate=win_rate,
                consolidation_stage=consolidation_stage(lower, stats.total),
                weakness_penalty=weakness_penalty(bool(focus_entries), parsed.token_delta,
                                                  win_rate, baseline),
                preferred_responses=[f.ai_card for f in focus_entries] if focus_entries else None,
            )

        if (index + 1) % context_interval == 0 or index == len(entries) - 1:
            check_cancelled(token)
            progress = INIT_SHARE + aggregation_share + analysis_share * (index + 1) / safe_contexts
            label = "Analysing contexts"
            if prefer_accelerator:
                label += " (accelerator active)" if accelerated else " (accelerator preferred)"
            report(on_progress, 'analyzing', min(0.999, progress),
                   f"{label} {index + 1}/{safe_contexts}")

    analysis = builder.finish(fusion_samples)

    if prefer_accelerator:
        message = ("Training finished, accelerator active." if accelerated
                   else "Training finished, accelerator unavailable, CPU used.")
    else:
        message = "Training finished."
    report(on_progress, 'finalizing', 1.0, message)
    logger.info(f"Runenkrieg training analysed {len(entries)} contexts from {total_rounds} rounds")

    return RunenkriegTrainedModel(contexts, metadata, analysis, z=z)
