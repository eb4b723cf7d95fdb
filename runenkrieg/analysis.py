"""
Training analysis for the context aggregator.

The trainer feeds every analysed context into an AnalysisBuilder, which
keeps the running tallies (token-delta coverage, hero matchups, element
counters, mechanic lift) and turns them into the analysis report stored
with the model.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from collections import Counter, defaultdict

from core.stats import ResamplingPriority, assign_priority, determine_wave
from runenkrieg.constants import ABILITY_MECHANICS, AI_WINS, PLAYER_WINS
from runenkrieg.cards import parse_card_label

MIN_CONTEXT_OBSERVATIONS = 10
MIN_COUNTER_OBSERVATIONS = 3
TOP_CONTEXTS = 5
TOP_HERO_MATCHUPS = 6
TOP_COUNTERS = 3
MAX_RESAMPLING = 12
MAX_ENTROPY_ALERTS = 10
TOP_FUSED_CARDS = 5

SOLID_OBSERVATIONS = 50
NEEDS_DATA_OBSERVATIONS = 25
LOW_ENTROPY = 0.3


@dataclass
class ContextInsight:
    """Best AI response found for one context"""
    player_card: str
    weather: str
    player_hero: str
    ai_hero: str
    token_delta: int
    ai_card: str
    win_rate: float
    baseline_win_rate: float
    observations: int
    wilson_lower: float
    wilson_upper: float
    interval_width: float
    evidence_score: float
    entropy: float

    @property
    def lift(self) -> float:
        return self.win_rate - self.baseline_win_rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            'playerCard': self.player_card,
            'weather': self.weather,
            'playerHero': self.player_hero,
            'aiHero': self.ai_hero,
            'tokenDelta': self.token_delta,
            'aiCard': self.ai_card,
            'winRate': self.win_rate,
            'baselineWinRate': self.baseline_win_rate,
            'lift': self.lift,
            'observations': self.observations,
            'wilsonLower': self.wilson_lower,
            'wilsonUpper': self.wilson_upper,
            'intervalWidth': self.interval_width,
            'evidenceScore': self.evidence_score,
            'entropy': self.entropy,
        }


@dataclass
class _DeltaTally:
    contexts: int = 0
    solid: int = 0
    win_rate_sum: float = 0.0
    baseline_sum: float = 0.0
    lift_sum: float = 0.0
    observation_sum: int = 0


@dataclass
class _HeroTally:
    contexts: int = 0
    observations: int = 0
    win_rate_sum: float = 0.0
    token_delta_sum: float = 0.0
    top_context: Optional[ContextInsight] = None


@dataclass
class _MechanicTally:
    wins: int = 0
    total: int = 0
    contexts: int = 0
    lift_sum: float = 0.0
    token_delta_weighted: float = 0.0
    weather_counts: Counter = field(default_factory=Counter)


def _mean(total: float, count: int) -> float:
    return total / count if count > 0 else 0.0


def resampling_rationale(context: ContextInsight) -> str:
    reasons = []
    if context.observations == 0:
        reasons.append("no observations")
    if context.wilson_lower < 0.5:
        reasons.append("uncertain lower bound")
    if context.win_rate < 0.25 and context.token_delta >= 3:
        reasons.append("weak despite token lead")
    if context.interval_width > 0.35:
        reasons.append("wide confidence interval")
    return ', '.join(reasons) or "routine refresh"


def build_resampling_plan(contexts: Iterable[ContextInsight]) -> List[Dict[str, Any]]:
    plan = []
    for context in contexts:
        priority = assign_priority(context.observations, context.wilson_lower,
                                   context.win_rate, context.token_delta)
        wave, target = determine_wave(context.observations, context.win_rate,
                                      context.interval_width)
        if priority is ResamplingPriority.NORMAL and context.observations >= target:
            continue
        plan.append((priority, context, {
            'context': context.to_dict(),
            'priority': priority.name,
            'wave': wave,
            'currentObservations': context.observations,
            'targetObservations': target,
            'rationale': resampling_rationale(context),
        }))
    plan.sort(key=lambda entry: (entry[0], entry[1].wilson_lower))
    return [entry[2] for entry in plan[:MAX_RESAMPLING]]


def build_fusion_insights(samples: Iterable[Any]) -> Dict[str, Any]:
    """Fuse rate and projected gain of recorded fusion decisions, overall and per side"""
    samples = list(samples)
    fused = [s for s in samples if s.decision == 'fuse']
    by_actor = {}
    for actor in (PLAYER_WINS, AI_WINS):
        own = [s for s in samples if s.actor == actor]
        own_fused = sum(1 for s in own if s.decision == 'fuse')
        by_actor[actor] = {
            'decisions': len(own),
            'fuseDecisions': own_fused,
            'fuseRate': _mean(own_fused, len(own)),
            'averageGain': _mean(sum(s.gain for s in own), len(own)),
        }

    cards = Counter(s.fused_card for s in fused if s.fused_card)
    return {
        'totalDecisions': len(samples),
        'fuseDecisions': len(fused),
        'skipDecisions': len(samples) - len(fused),
        'fuseRate': _mean(len(fused), len(samples)),
        'averageGain': _mean(sum(s.gain for s in samples), len(samples)),
        'averageFusedGain': _mean(sum(s.gain for s in fused), len(fused)),
        'byActor': by_actor,
        'topFusedCards': [{'card': card, 'count': count}
                          for card, count in cards.most_common(TOP_FUSED_CARDS)],
    }


def empty_analysis() -> Dict[str, Any]:
    return AnalysisBuilder().finish([])


class AnalysisBuilder:
    """Accumulates per-context results into the training analysis report"""

    def __init__(self):
        self.contexts: List[ContextInsight] = []
        self.solid = 0
        self.needing_data = 0
        self.best_context: Optional[ContextInsight] = None
        self._delta = defaultdict(_DeltaTally)
        self._heroes = defaultdict(_HeroTally)
        self._counters: Dict[str, Dict[str, List[int]]] = defaultdict(lambda: defaultdict(lambda: [0, 0]))
        self._mechanics = defaultdict(_MechanicTally)

    def add_context(self, insight: ContextInsight, candidates: Dict[str, List[int]],
                    total_wins: int, total_trials: int):
        """
        Args:
            insight: best candidate of the context
            candidates: ai card label -> [wins, total] for every observed response
            total_wins / total_trials: sums over all candidates
        """
        self.contexts.append(insight)
        if insight.observations >= SOLID_OBSERVATIONS:
            self.solid += 1
        elif insight.observations < NEEDS_DATA_OBSERVATIONS:
            self.needing_data += 1
        if self.best_context is None or insight.wilson_lower > self.best_context.wilson_lower:
            self.best_context = insight

        delta = self._delta[insight.token_delta]
        delta.contexts += 1
        if insight.observations >= SOLID_OBSERVATIONS:
            delta.solid += 1
        delta.win_rate_sum += insight.win_rate
        delta.baseline_sum += insight.baseline_win_rate
        delta.lift_sum += insight.lift
        delta.observation_sum += insight.observations

        hero = self._heroes[(insight.player_hero, insight.ai_hero)]
        hero.contexts += 1
        hero.observations += insight.observations
        hero.win_rate_sum += insight.win_rate
        hero.token_delta_sum += insight.observations * insight.token_delta
        if hero.top_context is None or insight.observations > hero.top_context.observations:
            hero.top_context = insight

        player_element, _ = parse_card_label(insight.player_card)
        usage: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
        for card_key, (wins, total) in candidates.items():
            counter = self._counters[player_element][card_key]
            counter[0] += wins
            counter[1] += total
            _, ability = parse_card_label(card_key)
            for mechanic in ABILITY_MECHANICS.get(ability, []):
                usage[mechanic][0] += wins
                usage[mechanic][1] += total

        for mechanic, (wins, total) in usage.items():
            tally = self._mechanics[mechanic]
            without_total = total_trials - total
            if total > 0 and without_total > 0:
                tally.lift_sum += wins / total - (total_wins - wins) / without_total
                tally.contexts += 1
            tally.wins += wins
            tally.total += total
            tally.token_delta_weighted += total * insight.token_delta
            tally.weather_counts[insight.weather] += total

    def _coverage(self) -> List[Dict[str, Any]]:
        return [
            {
                'tokenDelta': delta,
                'contextCount': t.contexts,
                'solidDataContexts': t.solid,
                'averageWinRate': _mean(t.win_rate_sum, t.contexts),
                'averageBaseline': _mean(t.baseline_sum, t.contexts),
                'averageLift': _mean(t.lift_sum, t.contexts),
                'averageObservations': _mean(t.observation_sum, t.contexts),
            }
            for delta, t in sorted(self._delta.items())
        ]

    def _hero_matchups(self) -> List[Dict[str, Any]]:
        rows = [
            {
                'playerHero': player_hero,
                'aiHero': ai_hero,
                'contexts': t.contexts,
                'observations': t.observations,
                'averageBestWinRate': _mean(t.win_rate_sum, t.contexts),
                'averageTokenDelta': _mean(t.token_delta_sum, t.observations),
                'topCounter': t.top_context.to_dict() if t.top_context else None,
            }
            for (player_hero, ai_hero), t in self._heroes.items()
        ]
        rows.sort(key=lambda r: r['observations'], reverse=True)
        return rows[:TOP_HERO_MATCHUPS]

    def _element_counters(self) -> List[Dict[str, Any]]:
        rows = []
        for element in sorted(self._counters):
            counters = [
                {'aiCard': card, 'winRate': _mean(wins, total), 'observations': total}
                for card, (wins, total) in self._counters[element].items()
                if total >= MIN_COUNTER_OBSERVATIONS
            ]
            counters.sort(key=lambda c: c['winRate'], reverse=True)
            if counters:
                rows.append({'playerElement': element, 'counters': counters[:TOP_COUNTERS]})
        return rows

    def _mechanic_effectiveness(self) -> List[Dict[str, Any]]:
        rows = []
        for mechanic, t in self._mechanics.items():
            weather_total = sum(t.weather_counts.values())
            distribution = [{'weather': w, 'share': _mean(count, weather_total)}
                            for w, count in t.weather_counts.most_common()]
            rows.append({
                'mechanic': mechanic,
                'winRate': _mean(t.wins, t.total),
                'observations': t.total,
                'normalizedLift': _mean(t.lift_sum, t.contexts),
                'contexts': t.contexts,
                'averageTokenDelta': _mean(t.token_delta_weighted, t.total),
                'weatherDistribution': distribution,
            })
        rows.sort(key=lambda r: r['observations'], reverse=True)
        return rows

    def finish(self, fusion_samples: Iterable[Any]) -> Dict[str, Any]:
        contexts = self.contexts
        observed = [c for c in contexts if c.observations >= MIN_CONTEXT_OBSERVATIONS]
        sparse = [c for c in contexts if c.observations < MIN_CONTEXT_OBSERVATIONS]
        alerts = [c for c in contexts if c.entropy < LOW_ENTROPY]

        return {
            'totalContexts': len(contexts),
            'contextsWithSolidData': self.solid,
            'contextsNeedingData': self.needing_data,
            'averageBestWinRate': _mean(sum(c.win_rate for c in contexts), len(contexts)),
            'bestContext': self.best_context.to_dict() if self.best_context else None,
            'topContexts': [c.to_dict() for c in sorted(
                observed, key=lambda c: c.wilson_lower, reverse=True)[:TOP_CONTEXTS]],
            'strugglingContexts': [c.to_dict() for c in sorted(
                observed, key=lambda c: c.wilson_lower)[:TOP_CONTEXTS]],
            'dataGaps': [c.to_dict() for c in sorted(
                sparse, key=lambda c: c.observations)[:TOP_CONTEXTS]],
            'coverageByTokenDelta': self._coverage(),
            'heroMatchupInsights': self._hero_matchups(),
            'elementCounterInsights': self._element_counters(),
            'mechanicEffectiveness': self._mechanic_effectiveness(),
            'resamplingPlan': build_resampling_plan(contexts),
            'decisionEntropyAlerts': [c.to_dict() for c in alerts[:MAX_ENTROPY_ALERTS]],
            'fusionInsights': build_fusion_insights(fusion_samples),
        }
