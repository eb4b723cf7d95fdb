"""
Fusion Engine - evaluates fusing two Fusion-tagged hand cards into one

Only the best-scoring pair is offered to the bandit. If the bandit says
"fuse", both source cards leave the hand and the fused card is appended.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence
import itertools

from runenkrieg.bandit import (FUSE, OUTCOME_DRAW, OUTCOME_OPPONENT, OUTCOME_SELF,
                               BoardSummary, FusionBandit, FusionCandidate,
                               FusionContext, FusionDecision, FusionOutcome,
                               HandSummary)
from runenkrieg.cards import Card, hand_signature
from runenkrieg.constants import (ABILITIES, BESCHWOERUNG, ELEMENT_SYNERGIES,
                                  FUSION, MAX_ABILITY_INDEX, PLAYER_WINS, ROUND_DRAW,
                                  hero_bonus)
from runenkrieg.mechanics import (AI, PLAYER, HistoryEntry, evaluate_element_synergy,
                                  evaluate_risk_and_weather)

_fusion_ids = itertools.count()


def fusion_element(first: Card, second: Card) -> str:
    for elements, _label, _modifier in ELEMENT_SYNERGIES:
        if first.element in elements and second.element in elements:
            return first.element if first.element == elements[0] else second.element
    return first.element if first.ability_index >= second.ability_index else second.element


def create_fusion_card(primary: Card, secondary: Card) -> Card:
    index = min(primary.ability_index + secondary.ability_index, MAX_ABILITY_INDEX)

    mechanics: List[str] = []
    for mechanic in list(primary.mechanics) + list(secondary.mechanics) + [FUSION]:
        if mechanic not in mechanics:
            mechanics.append(mechanic)

    card_type = primary.card_type if primary.card_type == secondary.card_type else BESCHWOERUNG
    max_lifespan = max(primary.lifespan or 0, secondary.lifespan or 0)
    charges = (primary.charges or 0) + (secondary.charges or 0)

    return Card(
        element=fusion_element(primary, secondary),
        ability=ABILITIES[index],
        id=f"fusion-{next(_fusion_ids)}",
        card_type=card_type,
        mechanics=mechanics,
        lifespan=max_lifespan + 1 if max_lifespan > 0 else None,
        charges=charges if charges > 0 else None,
        origin="fusion",
    )


def history_pressure(history: Sequence[HistoryEntry], actor: str) -> float:
    """Last three rounds: -0.2 per own win, +0.3 per loss"""
    pressure = 0.0
    for entry in history[-3:]:
        if entry.winner == ROUND_DRAW:
            continue
        pressure += -0.2 if entry.winner == actor else 0.3
    return pressure


def _owner(actor: str) -> str:
    return PLAYER if actor == PLAYER_WINS else AI


def best_fusion_candidate(hand: Sequence[Card], hero: str, own_tokens: int,
                          opponent_tokens: int, weather: str,
                          history: Sequence[HistoryEntry],
                          actor: str) -> Optional[FusionCandidate]:
    ready = [(i, card) for i, card in enumerate(hand) if card.has(FUSION)]
    if len(ready) < 2:
        return None

    pressure = history_pressure(history, actor)
    token_pressure = (opponent_tokens - own_tokens) * 0.12
    best = None

    for (i, first), (j, second) in itertools.combinations(ready, 2):
        fused = create_fusion_card(first, second)
        base_gain = fused.ability_index - max(first.ability_index, second.ability_index)
        same_element = 0.5 if first.element == second.element else 0.0
        remaining = [c for k, c in enumerate(hand) if k not in (i, j)]
        synergy = evaluate_element_synergy(fused, remaining, history, _owner(actor))
        weather_score = evaluate_risk_and_weather(fused, own_tokens, opponent_tokens, weather)
        hero_score = hero_bonus(hero, fused.element)

        total = (base_gain + same_element + synergy * 0.5 + weather_score * 0.35
                 + hero_score * 0.25 + pressure + token_pressure)

        if best is None or total > best.projected_gain:
            best = FusionCandidate(
                indices=(i, j),
                fused_card=fused,
                projected_gain=total,
                base_gain=base_gain,
                element_synergy=same_element,
                synergy_score=synergy,
                weather_score=weather_score,
                hero_bonus=hero_score,
                token_pressure=token_pressure,
                history_pressure=pressure,
            )
    return best


def build_fusion_context(actor: str, hero: str, opponent_hero: str, weather: str,
                         round_number: int, hand: Sequence[Card],
                         candidate: FusionCandidate, own_tokens: int,
                         opponent_tokens: int,
                         history: Sequence[HistoryEntry]) -> FusionContext:
    abilities = [card.ability_index for card in hand]
    morale = history_pressure(history, actor)
    return FusionContext(
        actor=actor,
        hero=hero,
        opponent_hero=opponent_hero,
        weather=weather,
        round_number=round_number,
        hand_signature=hand_signature(hand),
        hand_summary=HandSummary(
            size=len(hand),
            fusion_ready=sum(1 for card in hand if card.has(FUSION)),
            average_ability=sum(abilities) / len(abilities) if abilities else 0.0,
            max_ability=max(abilities) if abilities else 0,
            min_ability=min(abilities) if abilities else 0,
        ),
        board_summary=BoardSummary(
            round=round_number,
            own_tokens=own_tokens,
            opponent_tokens=opponent_tokens,
            token_diff=own_tokens - opponent_tokens,
            own_morale=morale,
        ),
        candidate=candidate,
    )


@dataclass
class FusionResult:
    updated_hand: List[Card]
    fused_card: Optional[Card]
    is_fused: bool
    decision: Optional[FusionDecision] = None


class FusionEngine:
    """Offers the best fusion candidate to the bandit and applies its choice"""

    def __init__(self, bandit: FusionBandit = None):
        self.bandit = bandit or FusionBandit()

    def decide_and_execute(self, hand: Sequence[Card], hero: str, opponent_hero: str,
                           own_tokens: int, opponent_tokens: int, weather: str,
                           round_number: int, history: Sequence[HistoryEntry],
                           actor: str) -> FusionResult:
        candidate = best_fusion_candidate(hand, hero, own_tokens, opponent_tokens,
                                          weather, history, actor)
        if candidate is None:
            return FusionResult(list(hand), None, False)

        context = build_fusion_context(actor, hero, opponent_hero, weather, round_number,
                                       hand, candidate, own_tokens, opponent_tokens, history)
        decision = self.bandit.select_action(context)

        if decision.action != FUSE:
            return FusionResult(list(hand), None, False, decision)

        updated = [card for k, card in enumerate(hand) if k not in candidate.indices]
        updated.append(candidate.fused_card)
        return FusionResult(updated, candidate.fused_card, True, decision)

    def learn(self, decision: FusionDecision, outcome: FusionOutcome) -> float:
        return self.bandit.learn(decision, outcome)


def outcome_for(actor: str, winner: str, token_change: float) -> FusionOutcome:
    """Translate a round winner into the deciding side's outcome"""
    if winner == actor:
        return FusionOutcome(OUTCOME_SELF, token_change)
    if winner == ROUND_DRAW:
        return FusionOutcome(OUTCOME_DRAW, token_change)
    return FusionOutcome(OUTCOME_OPPONENT, token_change)
