"""
Card Agent - AI card choice for live Runenkrieg duels.

With a trained model the agent defers to model.predict(). Without one it
scores each hand card with a hand-tuned evaluator (ability, weather,
mechanics, synergy, counterplay against the player's favourite elements,
hero affinity) and picks randomly among the cards within 0.5 of the best.

Usage:
    agent = CardAgent.load('models')
    card = agent.choose_card(player_card, ai_hand, TableState(...))
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import random

from core.errors import EmptyHandError
from core.persistence import CARD_MODEL_KEY, ModelStore, export_json, import_json
from core.progress import ProgressUpdate
from runenkrieg.bandit import FusionBandit
from runenkrieg.cards import Card
from runenkrieg.constants import (ARTEFAKT, BESCHWOERUNG, ELEMENT_SYNERGIES,
                                  ELEMENTARRESONANZ, FUSION, KETTENEFFEKTE, MECHANIC_WEIGHTS,
                                  RUNENSTEIN, SEGEN_FLUCH_TYPE, UEBERLADUNG,
                                  VERBUENDETER_TYPE, WETTERBINDUNG, element_advantage,
                                  hero_bonus, weather_modifier)
from runenkrieg.mechanics import HistoryEntry
from runenkrieg.simulate import simulate_games
from runenkrieg.trainer import GameState, RunenkriegTrainedModel, train_model

logger = logging.getLogger(__name__)

TIE_MARGIN = 0.5


@dataclass
class TableState(GameState):
    """GameState plus what the heuristic evaluator looks at"""
    history: List[HistoryEntry] = field(default_factory=list)
    round: int = 1
    ai_hand_preview: Optional[List[Card]] = None


def strategy_profile(history: Sequence[HistoryEntry]) -> Tuple[Optional[str], Optional[str]]:
    """The player's two most played elements, each only if played at least twice"""
    counts = Counter(entry.player_card.element for entry in history if entry.player_card)
    ranked = counts.most_common(2)
    dominant = ranked[0][0] if ranked and ranked[0][1] >= 2 else None
    secondary = ranked[1][0] if len(ranked) > 1 and ranked[1][1] >= 2 else None
    return dominant, secondary


def evaluate_mechanics(card: Card, state: TableState) -> float:
    score = 0.0
    preview = state.ai_hand_preview

    for mechanic in card.mechanics:
        weight = MECHANIC_WEIGHTS.get(mechanic)
        if weight is None:
            continue
        score += weight

        if mechanic == UEBERLADUNG:
            score += 1 if state.ai_tokens > state.player_tokens else -1.5
        elif mechanic == KETTENEFFEKTE:
            if state.history and state.history[-1].ai_card is not None \
                    and state.history[-1].ai_card.has(KETTENEFFEKTE):
                score += 1.2
        elif mechanic == ELEMENTARRESONANZ and preview:
            score += 0.75 * sum(1 for c in preview if c.element == card.element and c.id != card.id)
        elif mechanic == FUSION and preview:
            partners = sum(1 for c in preview if c.element != card.element and c.has(FUSION))
            if partners > 0:
                score += 1 + partners * 0.25
        elif mechanic == WETTERBINDUNG:
            modifier = weather_modifier(state.weather, card.element)
            score += modifier + 0.5 if modifier >= 0 else modifier - 0.5

    if card.card_type == ARTEFAKT and preview:
        artifacts = sum(1 for c in preview if c.card_type == ARTEFAKT)
        score += 1 if artifacts > 1 else 0.3
    if card.card_type == SEGEN_FLUCH_TYPE:
        score += 1.4 if state.ai_tokens < state.player_tokens else 0.2
    if card.card_type == BESCHWOERUNG and card.lifespan:
        score += max(0, 4 - card.lifespan) * 0.3
    if card.card_type == RUNENSTEIN:
        score += 1

    return score


def evaluate_synergy_potential(card: Card, state: TableState) -> float:
    score = 0.0
    preview = state.ai_hand_preview or []

    allies = sum(1 for c in preview if c.element == card.element)
    if allies > 1:
        score += allies * 0.5

    for elements, _label, modifier in ELEMENT_SYNERGIES:
        if card.element not in elements:
            continue
        partner = elements[1] if elements[0] == card.element else elements[0]
        in_hand = any(c.element == partner and c.id != card.id for c in preview)
        in_history = any(e.ai_card is not None and e.ai_card.element == partner
                         for e in state.history)
        if in_hand or in_history:
            score += modifier
    return score


def evaluate_counterplay(card: Card, player_card: Card, profile) -> float:
    dominant, secondary = profile
    score = element_advantage(card.element, player_card.element) * 1.2
    if dominant:
        score += element_advantage(card.element, dominant) * 1.1
    if secondary:
        score += element_advantage(card.element, secondary) * 0.8
    if player_card.card_type == SEGEN_FLUCH_TYPE and card.card_type == ARTEFAKT:
        score += 1
    return score


def evaluate_card(player_card: Card, candidate: Card, state: TableState) -> float:
    """Heuristic value of answering `player_card` with `candidate`"""
    profile = strategy_profile(state.history)
    pressure = state.player_tokens - state.ai_tokens
    risk_mitigation = 1 if pressure > 1 and candidate.card_type == VERBUENDETER_TYPE else 0
    overload_drag = pressure * 0.5 if candidate.has(UEBERLADUNG) else 0
    adaptive = 1 if profile[0] == "Chaos" else 0

    return (candidate.ability_index * 1.1
            + weather_modifier(state.weather, candidate.element) * 1.2
            + evaluate_mechanics(candidate, state) * 1.15
            + evaluate_synergy_potential(candidate, state) * 1.05
            + evaluate_counterplay(candidate, player_card, profile)
            + hero_bonus(state.ai_hero, candidate.element) * 1.25
            + risk_mitigation
            - overload_drag
            + adaptive)


class CardAgent:
    """
    Chooses the AI's answer card.

    Holds an optional RunenkriegTrainedModel and a fusion bandit that is
    kept across training runs.
    """

    def __init__(self, model: Optional[RunenkriegTrainedModel] = None,
                 bandit: Optional[FusionBandit] = None,
                 rng: random.Random = None):
        self.model = model
        self.rng = rng or random.Random()
        self.bandit = bandit or FusionBandit(rng=self.rng)

    @property
    def is_trained(self) -> bool:
        return self.model is not None

    def set_model(self, model: Optional[RunenkriegTrainedModel]):
        self.model = model

    def choose_card(self, player_card: Card, ai_hand: Sequence[Card], state: TableState) -> Card:
        if not ai_hand:
            raise EmptyHandError("The AI hand is empty, there is no card to play")
        if self.model is not None:
            return self.model.predict(player_card, ai_hand, state, self.rng)

        if state.ai_hand_preview is None:
            state = replace(state, ai_hand_preview=list(ai_hand))

        scored = sorted(((evaluate_card(player_card, card, state), card) for card in ai_hand),
                        key=lambda entry: entry[0], reverse=True)
        top = scored[0][0]
        best = [card for score, card in scored if abs(score - top) < TIE_MARGIN]
        return self.rng.choice(best)

    def train(self, games: int = 500, base_model: bool = False,
              prefer_accelerator: bool = False, save_dir: str = None,
              verbose: bool = True) -> Dict[str, Any]:
        """
        Simulate games, aggregate them and adopt the resulting model.

        Args:
            base_model: continue from the current model instead of starting fresh
        """
        if verbose:
            print("=" * 60)
            print("RUNENKRIEG TRAINING")
            print("=" * 60)
            print(f"Games: {games}")

        def on_game(completed, total):
            if verbose and total and (completed == total or completed % max(1, total // 10) == 0):
                print(f"  Simulated {completed}/{total} games")

        def on_progress(update: ProgressUpdate):
            if verbose and update.phase == 'finalizing':
                print(f"  {update.message}")

        rounds = simulate_games(games, bandit=self.bandit, on_progress=on_game, rng=self.rng)
        base = self.model.serialize() if base_model and self.model is not None else None
        model = train_model(rounds, on_progress=on_progress,
                            prefer_accelerator=prefer_accelerator, base_model=base)
        self.model = model

        analysis = model.analysis
        if verbose:
            print(f"\nRounds: {len(rounds)}")
            print(f"Contexts: {analysis['totalContexts']} "
                  f"(solid {analysis['contextsWithSolidData']}, "
                  f"needing data {analysis['contextsNeedingData']})")
            print(f"Average best win rate: {analysis['averageBestWinRate']:.1%}")
            fusion = analysis['fusionInsights']
            print(f"Fusion decisions: {fusion['totalDecisions']} "
                  f"(fuse rate {fusion['fuseRate']:.1%})")

        if save_dir:
            self.save(save_dir)

        return {
            'rounds': len(rounds),
            'contexts': analysis['totalContexts'],
            'analysis': analysis,
            'bandit': self.bandit.summary(),
        }

    def save(self, path: str):
        store = ModelStore(path)
        if self.model is not None:
            store.set(CARD_MODEL_KEY, self.model.serialize())
        self.bandit.save(store)

    @classmethod
    def load(cls, path: str, rng: random.Random = None) -> 'CardAgent':
        store = ModelStore(path)
        data = store.get(CARD_MODEL_KEY)
        model = RunenkriegTrainedModel.hydrate(data) if data is not None else None
        bandit = FusionBandit.load(store, rng=rng)
        if model is not None:
            logger.info(f"Loaded Runenkrieg model with {len(model.contexts)} contexts from {path}")
        return cls(model, bandit, rng)

    def export_model(self, filepath: str):
        if self.model is None:
            raise ValueError("No trained model to export")
        export_json(self.model.serialize(), filepath)

    def import_model(self, filepath: str) -> RunenkriegTrainedModel:
        self.model = RunenkriegTrainedModel.hydrate(import_json(filepath))
        return self.model
