"""
Card-Game Mechanics Evaluator

Pure scoring and token-resolution functions shared by live play, the
simulator and the trainer. A round is resolved in three steps:

    1. score both cards (calculate_total_value) and pick the winner
    2. apply the winning element's token rule
    3. apply card-mechanic effects for the player, then for the AI

Token counts never go below zero after any adjustment.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from runenkrieg.cards import Card
from runenkrieg.constants import (AI_WINS, ARTEFAKT, BESCHWOERUNG, ELEMENTARRESONANZ,
                                  ELEMENT_SYNERGIES, FUSION, KETTENEFFEKTE, PLAYER_WINS,
                                  ROUND_DRAW, SEGEN_FLUCH, SEGEN_FLUCH_TYPE, UEBERLADUNG,
                                  VERBUENDETER, WETTERBINDUNG, element_advantage,
                                  hero_bonus, weather_modifier)

PLAYER = 'player'
AI = 'ai'


@dataclass
class HistoryEntry:
    """One resolved round as seen by later rounds of the same game"""
    round: int
    player_card: Card
    ai_card: Card
    weather: str
    winner: str
    player_tokens: int
    ai_tokens: int

    def card_for(self, owner: str) -> Card:
        return self.player_card if owner == PLAYER else self.ai_card


@dataclass
class MechanicOutcome:
    player_tokens: int
    ai_tokens: int
    messages: List[str] = field(default_factory=list)


@dataclass
class RoundResolution:
    winner: str
    player_total: float
    ai_total: float
    player_tokens: int
    ai_tokens: int
    messages: List[str] = field(default_factory=list)


def owner_winner(owner: str) -> str:
    return PLAYER_WINS if owner == PLAYER else AI_WINS


# ── Scoring ──────────────────────────────────────────────────────────────

def evaluate_element_synergy(card: Card, hand: Sequence[Card],
                             history: Sequence[HistoryEntry], owner: str) -> float:
    bonus = 0.0
    own_history = [entry.card_for(owner) for entry in history]

    if card.has(ELEMENTARRESONANZ):
        stacks = sum(1 for c in own_history if c is not None and c.element == card.element)
        stacks += sum(1 for c in hand if c.element == card.element)
        if stacks >= 2:
            bonus += 2 + 0.5 * (stacks - 2)

    for elements, _label, modifier in ELEMENT_SYNERGIES:
        if card.element not in elements:
            continue
        partner = elements[1] if elements[0] == card.element else elements[0]
        if any(c is not None and c.element == partner for c in own_history) \
                or any(c.element == partner for c in hand):
            bonus += modifier

    if card.has(FUSION):
        partners = sum(1 for c in hand if c.element != card.element and c.has(FUSION))
        if partners > 0:
            bonus += 1 + 0.5 * partners

    if card.has(KETTENEFFEKTE) and history:
        previous = history[-1].card_for(owner)
        if previous is not None and previous.has(KETTENEFFEKTE):
            bonus += 1.5

    return bonus


def evaluate_risk_and_weather(card: Card, own_tokens: int, opponent_tokens: int,
                              weather: str) -> float:
    modifier = weather_modifier(weather, card.element)
    adjustment = modifier

    if card.has(UEBERLADUNG):
        pressure = max(0, opponent_tokens - own_tokens)
        adjustment += 2 if pressure >= 2 else -1

    if card.has(WETTERBINDUNG):
        adjustment += modifier + 1 if modifier >= 0 else modifier - 1

    if card.card_type == SEGEN_FLUCH_TYPE:
        adjustment += 1.5 if own_tokens < opponent_tokens else -0.5

    if card.card_type == ARTEFAKT:
        adjustment += 0.5

    if card.card_type == BESCHWOERUNG and card.lifespan:
        adjustment += max(0, 4 - card.lifespan) * 0.25

    return adjustment


def morale_bonus(own_tokens: int, opponent_tokens: int) -> int:
    return min(4, max(0, own_tokens - opponent_tokens) // 2)


def calculate_total_value(card: Card, opponent_card: Card, hero: str,
                          own_tokens: int, opponent_tokens: int, weather: str,
                          hand: Sequence[Card], history: Sequence[HistoryEntry],
                          owner: str) -> float:
    return (card.ability_index
            + evaluate_risk_and_weather(card, own_tokens, opponent_tokens, weather)
            + element_advantage(card.element, opponent_card.element)
            + hero_bonus(hero, card.element)
            + morale_bonus(own_tokens, opponent_tokens)
            + evaluate_element_synergy(card, hand, history, owner))


def determine_winner(player_total: float, ai_total: float) -> str:
    """Strictly higher total wins; equal totals draw"""
    if player_total > ai_total:
        return PLAYER_WINS
    if ai_total > player_total:
        return AI_WINS
    return ROUND_DRAW


# ── Token resolution ─────────────────────────────────────────────────────

def apply_element_effect(winner: str, winner_card: Optional[Card], player_tokens: int,
                         ai_tokens: int, history_length: int) -> Tuple[int, int]:
    """Winning element's token rule, floored at zero after every step"""
    if winner == ROUND_DRAW or winner_card is None:
        return player_tokens, ai_tokens

    own, opp = (player_tokens, ai_tokens) if winner == PLAYER_WINS else (ai_tokens, player_tokens)
    element = winner_card.element

    if element in ("Feuer", "Eis"):
        opp = max(0, opp - 1)
    elif element == "Wasser":
        own += 1
        opp = max(0, opp - 1)
    elif element in ("Erde", "Blitz"):
        own += 1
    elif element in ("Luft", "Licht"):
        own += 2
    elif element == "Schatten":
        if opp > 0:
            opp -= 1
            own += 1
    elif element == "Chaos":
        if (history_length + 1) % 2 == 0:
            own += 1
            opp = max(0, opp - 1)
        else:
            own = max(0, own - 1)
            opp += 1

    if winner == PLAYER_WINS:
        return own, opp
    return opp, own


def resolve_mechanic_effects(winner: str, player_card: Optional[Card], ai_card: Optional[Card],
                             weather: str, remaining_player_hand: Sequence[Card],
                             remaining_ai_hand: Sequence[Card], player_tokens: int,
                             ai_tokens: int, history: Sequence[HistoryEntry]) -> MechanicOutcome:
    tokens = {PLAYER: player_tokens, AI: ai_tokens}
    messages: List[str] = []

    def apply(card: Optional[Card], owner: str, remaining: Sequence[Card]):
        if card is None:
            return
        other = AI if owner == PLAYER else PLAYER
        who = "You" if owner == PLAYER else "The AI"
        won = winner == owner_winner(owner)

        if card.has(KETTENEFFEKTE) and won and history:
            last = history[-1]
            previous = last.card_for(owner)
            if previous is not None and previous.has(KETTENEFFEKTE) \
                    and last.winner == owner_winner(owner):
                tokens[other] = max(0, tokens[other] - 1)
                messages.append(f"Ketteneffekte: {who} chained a combo, opponent loses 1 token.")

        if card.has(ELEMENTARRESONANZ) and won:
            count = sum(1 for entry in history
                        if entry.card_for(owner) is not None
                        and entry.card_for(owner).element == card.element) + 1
            if count >= 3:
                tokens[owner] += 1
                messages.append(f"Elementarresonanz: {who} resonates with {card.element}, +1 token.")

        if card.has(UEBERLADUNG):
            tokens[owner] = max(0, tokens[owner] - 1)
            messages.append(f"Überladung: {who} pays 1 token for the overload.")

        if card.has(WETTERBINDUNG):
            modifier = weather_modifier(weather, card.element)
            if modifier > 0:
                tokens[owner] += modifier
                messages.append(f"Wetterbindung: {weather} strengthens {who.lower()} (+{modifier}).")
            elif modifier < 0:
                loss = min(tokens[owner], abs(modifier))
                tokens[owner] -= loss
                if loss > 0:
                    messages.append(f"Wetterbindung: {weather} weakens {who.lower()} (-{loss}).")

        if card.has(VERBUENDETER):
            if any(c.element == card.element for c in remaining):
                tokens[owner] += 1
                messages.append(f"Verbündeter: allies rally around {who.lower()}, +1 token.")

        if card.has(SEGEN_FLUCH):
            if tokens[owner] < tokens[other]:
                tokens[owner] += 1
                messages.append(f"Segen: {who} recovers 1 token.")
            else:
                tokens[other] = max(0, tokens[other] - 1)
                messages.append("Fluch: the opponent loses 1 token.")

    apply(player_card, PLAYER, remaining_player_hand)
    apply(ai_card, AI, remaining_ai_hand)

    return MechanicOutcome(max(0, tokens[PLAYER]), max(0, tokens[AI]), messages)


def resolve_round(player_card: Card, ai_card: Card, player_hero: str, ai_hero: str,
                  player_tokens: int, ai_tokens: int, weather: str,
                  player_hand: Sequence[Card], ai_hand: Sequence[Card],
                  history: Sequence[HistoryEntry]) -> RoundResolution:
    """
    Full resolution of one duel.

    `player_hand` / `ai_hand` are the hands left after the cards were
    played; they feed synergy scoring and the ally mechanic.
    """
    player_total = calculate_total_value(player_card, ai_card, player_hero, player_tokens,
                                         ai_tokens, weather, player_hand, history, PLAYER)
    ai_total = calculate_total_value(ai_card, player_card, ai_hero, ai_tokens,
                                     player_tokens, weather, ai_hand, history, AI)
    winner = determine_winner(player_total, ai_total)

    winner_card = player_card if winner == PLAYER_WINS else ai_card
    p_tokens, a_tokens = apply_element_effect(winner, winner_card, player_tokens,
                                              ai_tokens, len(history))
    outcome = resolve_mechanic_effects(winner, player_card, ai_card, weather,
                                       player_hand, ai_hand, p_tokens, a_tokens, history)

    return RoundResolution(winner, player_total, ai_total,
                           outcome.player_tokens, outcome.ai_tokens, outcome.messages)
