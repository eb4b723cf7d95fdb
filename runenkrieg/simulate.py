"""
Card-Game Simulator - self-play that produces training rounds

Each game deals two four-card hands from a shuffled catalog deck, picks
random heroes and a random weather per round, lets both sides consider a
fusion through one shared bandit, then plays a weighted-random card each.
Every resolved round becomes one RoundResult for the aggregator.

After the regular games, rounds for the known weak focus contexts are
appended so that those contexts always have data.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging
import math
import random

from core.progress import (SIMULATION_PROGRESS_STEPS, CancellationToken, check_cancelled,
                           progress_interval)
from runenkrieg.bandit import FusionBandit
from runenkrieg.cards import Card, CardCatalog, card_from_label, hand_signature
from runenkrieg.constants import (AI_WINS, ELEMENTARRESONANZ, FUSION, HAND_SIZE, HERO_NAMES,
                                  KETTENEFFEKTE, MAX_ROUNDS, PLAYER_WINS, START_TOKENS,
                                  WEATHER_TYPES, hero_bonus)
from runenkrieg.context import WEAK_CONTEXT_FOCUS, FocusContext
from runenkrieg.fusion import FusionEngine, FusionResult, outcome_for
from runenkrieg.mechanics import (AI, PLAYER, HistoryEntry, evaluate_element_synergy,
                                  evaluate_risk_and_weather, resolve_round)

logger = logging.getLogger(__name__)

PROGRESS_CHUNKS = 25


@dataclass
class FusionDecisionSample:
    """A fusion decision as recorded alongside its round"""
    actor: str
    hero: str
    opponent_hero: str
    weather: str
    token_delta: int
    hand_signature: str
    fused_card: Optional[str]
    gain: float
    decision: str
    synergy_score: float = 0.0
    weather_score: float = 0.0
    history_pressure: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'actor': self.actor,
            'hero': self.hero,
            'opponentHero': self.opponent_hero,
            'weather': self.weather,
            'tokenDelta': self.token_delta,
            'handSignature': self.hand_signature,
            'fusedCard': self.fused_card,
            'gain': self.gain,
            'decision': self.decision,
            'synergyScore': self.synergy_score,
            'weatherScore': self.weather_score,
            'historyPressure': self.history_pressure,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FusionDecisionSample':
        return cls(
            actor=data['actor'],
            hero=data.get('hero', ''),
            opponent_hero=data.get('opponentHero', ''),
            weather=data.get('weather', ''),
            token_delta=int(data.get('tokenDelta', 0)),
            hand_signature=data.get('handSignature', ''),
            fused_card=data.get('fusedCard'),
            gain=float(data.get('gain', 0.0)),
            decision=data.get('decision', 'skip'),
            synergy_score=float(data.get('synergyScore', 0.0)),
            weather_score=float(data.get('weatherScore', 0.0)),
            history_pressure=float(data.get('historyPressure', 0.0)),
        )


@dataclass
class RoundResult:
    """
    One resolved duel.

    Serialized with the game's German field names (spieler_karte,
    gegner_karte, ...), which is the format stored training data uses.
    """
    player_card: str
    ai_card: str
    player_tokens_before: int
    ai_tokens_before: int
    player_tokens: int
    ai_tokens: int
    weather: str
    player_hero: str
    ai_hero: str
    winner: str
    fusion_decisions: List[FusionDecisionSample] = field(default_factory=list)

    @property
    def token_delta(self) -> int:
        return self.player_tokens_before - self.ai_tokens_before

    def to_dict(self) -> Dict[str, Any]:
        return {
            'spieler_karte': self.player_card,
            'gegner_karte': self.ai_card,
            'spieler_token_vorher': self.player_tokens_before,
            'gegner_token_vorher': self.ai_tokens_before,
            'spieler_token': self.player_tokens,
            'gegner_token': self.ai_tokens,
            'wetter': self.weather,
            'spieler_held': self.player_hero,
            'gegner_held': self.ai_hero,
            'gewinner': self.winner,
            'fusionDecisions': [d.to_dict() for d in self.fusion_decisions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoundResult':
        return cls(
            player_card=data['spieler_karte'],
            ai_card=data['gegner_karte'],
            player_tokens_before=int(data.get('spieler_token_vorher', START_TOKENS)),
            ai_tokens_before=int(data.get('gegner_token_vorher', START_TOKENS)),
            player_tokens=int(data.get('spieler_token', START_TOKENS)),
            ai_tokens=int(data.get('gegner_token', START_TOKENS)),
            weather=data['wetter'],
            player_hero=data['spieler_held'],
            ai_hero=data['gegner_held'],
            winner=data['gewinner'],
            fusion_decisions=[FusionDecisionSample.from_dict(d)
                              for d in data.get('fusionDecisions') or []],
        )


# ── Card selection ───────────────────────────────────────────────────────

def score_card_for_selection(card: Card, hero: str, own_tokens: int, opponent_tokens: int,
                             weather: str, hand: Sequence[Card],
                             history: Sequence[HistoryEntry], owner: str) -> float:
    remaining = [c for c in hand if c.id != card.id]
    mechanic_bonus = ((2 if card.has(FUSION) else 0)
                      + (0.8 if card.has(KETTENEFFEKTE) else 0)
                      + (0.5 if card.has(ELEMENTARRESONANZ) else 0))
    return (card.ability_index
            + evaluate_risk_and_weather(card, own_tokens, opponent_tokens, weather)
            + hero_bonus(hero, card.element)
            + evaluate_element_synergy(card, remaining, history, owner)
            + mechanic_bonus)


def select_card(hand: Sequence[Card], hero: str, own_tokens: int, opponent_tokens: int,
                weather: str, history: Sequence[HistoryEntry], owner: str,
                rng: random.Random) -> int:
    """Roulette-wheel pick over max(0.1, score); returns the hand index"""
    if len(hand) == 1:
        return 0

    scores = [max(0.1, score_card_for_selection(card, hero, own_tokens, opponent_tokens,
                                                weather, hand, history, owner))
              for card in hand]
    roll = rng.random() * sum(scores)
    for index, score in enumerate(scores):
        roll -= score
        if roll <= 0:
            return index
    return len(hand) - 1


# ── Game loop ────────────────────────────────────────────────────────────

class GameSimulator:
    """
    Plays complete self-play games.

    All games share one FusionEngine (and so one bandit); its arm table
    keeps learning across games.
    """

    def __init__(self, catalog: CardCatalog = None, bandit: FusionBandit = None,
                 rng: random.Random = None, max_rounds: int = MAX_ROUNDS):
        self.rng = rng or random.Random()
        self.catalog = catalog or CardCatalog(rng=self.rng)
        self.fusion = FusionEngine(bandit or FusionBandit(rng=self.rng))
        self.max_rounds = max_rounds

    @property
    def bandit(self) -> FusionBandit:
        return self.fusion.bandit

    def _refill(self, hand: List[Card], talon: List[Card]):
        while len(hand) < HAND_SIZE:
            hand.append(talon.pop() if talon else self.catalog.replacement_card())

    def _fusion_step(self, actor: str, hand: List[Card], hero: str, opponent_hero: str,
                     own_tokens: int, opponent_tokens: int, weather: str, round_number: int,
                     history: List[HistoryEntry], talon: List[Card],
                     samples: List[FusionDecisionSample], decisions: list) -> List[Card]:
        result: FusionResult = self.fusion.decide_and_execute(
            hand, hero, opponent_hero, own_tokens, opponent_tokens, weather,
            round_number, history, actor)
        updated = result.updated_hand

        if result.decision is not None:
            context = result.decision.context
            decisions.append((actor, result.decision))
            samples.append(FusionDecisionSample(
                actor=actor,
                hero=hero,
                opponent_hero=opponent_hero,
                weather=weather,
                token_delta=context.board_summary.token_diff,
                hand_signature=hand_signature(updated),
                fused_card=result.fused_card.label if result.fused_card else None,
                gain=context.candidate.projected_gain,
                decision=result.decision.action,
                synergy_score=context.candidate.synergy_score,
                weather_score=context.candidate.weather_score,
                history_pressure=context.board_summary.own_morale,
            ))
        if result.is_fused:
            self._refill(updated, talon)
        return updated

    def play_game(self, token: Optional[CancellationToken] = None) -> List[RoundResult]:
        deck = self.catalog.shuffled_deck()
        player_hand, ai_hand, talon = deck[0:HAND_SIZE], deck[HAND_SIZE:2 * HAND_SIZE], deck[2 * HAND_SIZE:]
        player_tokens = ai_tokens = START_TOKENS
        player_hero = self.rng.choice(HERO_NAMES)
        ai_hero = self.rng.choice(HERO_NAMES)
        history: List[HistoryEntry] = []
        rounds: List[RoundResult] = []

        self._refill(player_hand, talon)
        self._refill(ai_hand, talon)

        while (player_tokens > 0 and ai_tokens > 0 and player_hand and ai_hand
               and len(history) < self.max_rounds):
            weather = self.rng.choice(WEATHER_TYPES)
            round_number = len(history) + 1
            samples: List[FusionDecisionSample] = []
            decisions: list = []

            player_hand = self._fusion_step(PLAYER_WINS, player_hand, player_hero, ai_hero,
                                            player_tokens, ai_tokens, weather, round_number,
                                            history, talon, samples, decisions)
            ai_hand = self._fusion_step(AI_WINS, ai_hand, ai_hero, player_hero,
                                        ai_tokens, player_tokens, weather, round_number,
                                        history, talon, samples, decisions)
            self._refill(player_hand, talon)
            self._refill(ai_hand, talon)

            player_card = player_hand.pop(select_card(player_hand, player_hero, player_tokens,
                                                      ai_tokens, weather, history, PLAYER,
                                                      self.rng))
            ai_card = ai_hand.pop(select_card(ai_hand, ai_hero, ai_tokens, player_tokens,
                                              weather, history, AI, self.rng))

            before = (player_tokens, ai_tokens)
            resolution = resolve_round(player_card, ai_card, player_hero, ai_hero,
                                       player_tokens, ai_tokens, weather,
                                       player_hand, ai_hand, history)
            player_tokens, ai_tokens = resolution.player_tokens, resolution.ai_tokens

            token_diff = player_tokens - ai_tokens
            for actor, decision in decisions:
                change = token_diff if actor == PLAYER_WINS else -token_diff
                self.fusion.learn(decision, outcome_for(actor, resolution.winner, change))

            rounds.append(RoundResult(
                player_card=player_card.label,
                ai_card=ai_card.label,
                player_tokens_before=before[0],
                ai_tokens_before=before[1],
                player_tokens=player_tokens,
                ai_tokens=ai_tokens,
                weather=weather,
                player_hero=player_hero,
                ai_hero=ai_hero,
                winner=resolution.winner,
                fusion_decisions=samples,
            ))
            history.append(HistoryEntry(round_number, player_card, ai_card, weather,
                                        resolution.winner, player_tokens, ai_tokens))

            self._refill(player_hand, talon)
            self._refill(ai_hand, talon)
            check_cancelled(token)

        return rounds


def simulate_focused_round(focus: FocusContext, seed: int) -> RoundResult:
    """A single scripted duel for one weak focus context"""
    player_card = card_from_label(focus.player_card, f"{focus.player_card.replace(' ', '-')}-focus-player-{seed}")
    ai_card = card_from_label(focus.ai_card, f"{focus.ai_card.replace(' ', '-')}-focus-ai-{seed}")
    player_tokens = START_TOKENS + focus.token_delta
    ai_tokens = START_TOKENS

    resolution = resolve_round(player_card, ai_card, focus.player_hero, focus.ai_hero,
                               player_tokens, ai_tokens, focus.weather,
                               [player_card], [ai_card], [])

    return RoundResult(
        player_card=focus.player_card,
        ai_card=focus.ai_card,
        player_tokens_before=player_tokens,
        ai_tokens_before=ai_tokens,
        player_tokens=resolution.player_tokens,
        ai_tokens=resolution.ai_tokens,
        weather=focus.weather,
        player_hero=focus.player_hero,
        ai_hero=focus.ai_hero,
        winner=resolution.winner,
    )


def focus_sample_count(num_games: int, focus: FocusContext) -> int:
    return max(3, int(math.floor(max(1, num_games) * focus.sample_rate + 0.5)))


def augment_with_focus_rounds(num_games: int, data: List[RoundResult], chunk_size: int,
                              token: Optional[CancellationToken] = None) -> int:
    produced = 0
    for index, focus in enumerate(WEAK_CONTEXT_FOCUS):
        for i in range(focus_sample_count(num_games, focus)):
            check_cancelled(token)
            data.append(simulate_focused_round(focus, index * 1000 + i))
            produced += 1
            if produced % chunk_size == 0:
                check_cancelled(token)
    check_cancelled(token)
    return produced


def simulate_games(num_games: int, catalog: CardCatalog = None, bandit: FusionBandit = None,
                   on_progress: Callable[[int, int], None] = None,
                   token: Optional[CancellationToken] = None,
                   chunk_size: Optional[int] = None, max_rounds: int = MAX_ROUNDS,
                   focus_augmentation: bool = True,
                   rng: random.Random = None) -> List[RoundResult]:
    """
    Simulate `num_games` self-play games and return every round played.

    Args:
        on_progress: called as (completed_games, total_games) about every 1%
            of the run and after the last game; with zero games it is called
            once as (0, 0)
        token: cooperative cancellation, checked per game, per round and at
            chunk boundaries; raises TrainingCancelled
        chunk_size: games per cancellation checkpoint, default ceil(n / 25)
        focus_augmentation: append the scripted weak-context rounds
    """
    computed = math.ceil(max(1, num_games) / PROGRESS_CHUNKS)
    chunk = max(1, chunk_size if chunk_size is not None else computed)

    report_every = progress_interval(num_games, SIMULATION_PROGRESS_STEPS)

    simulator = GameSimulator(catalog, bandit, rng, max_rounds)
    data: List[RoundResult] = []

    for i in range(num_games):
        check_cancelled(token)
        data.extend(simulator.play_game(token))
        done = i + 1
        if on_progress is not None and (done % report_every == 0 or done == num_games):
            on_progress(done, num_games)
        if done % chunk == 0:
            check_cancelled(token)

    if num_games == 0 and on_progress is not None:
        on_progress(0, 0)

    focus_rounds = 0
    if focus_augmentation:
        focus_rounds = augment_with_focus_rounds(num_games, data, chunk, token)

    logger.info(f"Simulated {num_games} games: {len(data)} rounds "
                f"({focus_rounds} focus rounds)")
    return data
