"""
Battle narratives.

Turns a finished game's history into a prompt for an external text
generator. The generator is any callable taking the prompt and returning
prose; without one, or when it fails, the fixed fallback text is returned.
"""

from typing import Callable, Optional, Sequence
import logging

from runenkrieg.constants import AI_WINS, PLAYER_WINS
from runenkrieg.mechanics import HistoryEntry

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "Narrative generation is disabled or not configured."

TextGenerator = Callable[[str], str]


def describe_round(entry: HistoryEntry) -> str:
    return (f"Round {entry.round}: player ({entry.player_card.label}) vs AI "
            f"({entry.ai_card.label}). Weather: {entry.weather}. Winner: {entry.winner}. "
            f"Tokens: player {entry.player_tokens}, AI {entry.ai_tokens}.")


def describe_winner(winner: str) -> str:
    if winner == PLAYER_WINS:
        return "the brave player"
    if winner == AI_WINS:
        return "the cunning AI"
    return "nobody, it was a draw"


def build_prompt(history: Sequence[HistoryEntry], final_winner: str,
                 player_hero: str, ai_hero: str) -> str:
    flow = '\n'.join(describe_round(entry) for entry in history)
    return (
        "You are an epic bard in the world of Runenkrieg. Write a short, "
        "gripping story about the battle that just ended.\n\n"
        f"- Player hero: {player_hero}\n"
        f"- AI hero: {ai_hero}\n"
        f"- Final victor: {describe_winner(final_winner)}.\n\n"
        f"Round by round:\n{flow}\n\n"
        "Open dramatically, describe a turning point and close with the "
        "victory or defeat. Address the player directly as \"you\"."
    )


class NarrativeService:
    """Story generation with a guaranteed fallback"""

    def __init__(self, generator: Optional[TextGenerator] = None):
        self.generator = generator

    @property
    def enabled(self) -> bool:
        return self.generator is not None

    def generate_story(self, history: Sequence[HistoryEntry], final_winner: str,
                       player_hero: str, ai_hero: str) -> str:
        if self.generator is None:
            return FALLBACK_TEXT
        prompt = build_prompt(history, final_winner, player_hero, ai_hero)
        try:
            text = self.generator(prompt)
        except Exception as e:
            logger.warning(f"Narrative generation failed: {e}")
            return FALLBACK_TEXT
        return text or FALLBACK_TEXT
