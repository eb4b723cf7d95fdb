"""
Training contexts: the aggregator's unit of learning.

A context is (player card, weather, hero matchup, clamped token delta).
The focus table lists known weak spots; each entry seeds a prior belief
about one AI response and drives extra focused simulation.
"""

from dataclasses import dataclass
from typing import Dict, List, NamedTuple

from core.stats import clamp_token_delta


def build_context_key(player_card: str, weather: str, player_hero: str,
                      ai_hero: str, token_delta: float) -> str:
    delta = clamp_token_delta(token_delta)
    return f"{player_card}|{weather}|{player_hero}vs{ai_hero}|delta:{delta}"


class ParsedContext(NamedTuple):
    player_card: str
    weather: str
    player_hero: str
    ai_hero: str
    token_delta: int


def parse_context_key(key: str) -> ParsedContext:
    player_card, weather, matchup, delta = key.split('|')
    player_hero, _, ai_hero = matchup.partition('vs')
    return ParsedContext(player_card, weather, player_hero, ai_hero,
                         int(delta.split(':', 1)[1]))


@dataclass(frozen=True)
class FocusContext:
    player_card: str
    ai_card: str
    weather: str
    player_hero: str
    ai_hero: str
    token_delta: int
    sample_rate: float
    target_ai_win_rate: float
    prior_weight: int

    @property
    def context_key(self) -> str:
        return build_context_key(self.player_card, self.weather, self.player_hero,
                                 self.ai_hero, self.token_delta)

    @property
    def clamped_delta(self) -> int:
        return clamp_token_delta(self.token_delta)


WEAK_CONTEXT_FOCUS = (
    FocusContext('Licht Avatar', 'Chaos Avatar', 'Erdbeben', 'Zauberer', 'Drache', 5, 0.03, 0.68, 6),
    FocusContext('Licht Elementar', 'Chaos Avatar', 'Erdbeben', 'Drache', 'Drache', 5, 0.025, 0.62, 5),
    FocusContext('Luft Elementar', 'Schatten Avatar', 'Windsturm', 'Zauberer', 'Zauberer', 5, 0.025, 0.6, 5),
    FocusContext('Licht Elementar', 'Licht Avatar', 'Regen', 'Drache', 'Zauberer', 5, 0.025, 0.65, 5),
    FocusContext('Schatten Avatar', 'Magie Elementar', 'Windsturm', 'Drache', 'Drache', 5, 0.02, 0.58, 4),
    FocusContext('Luft Avatar', 'Luft Flamme', 'Windsturm', 'Zauberer', 'Drache', 3, 0.02, 0.6, 4),
    FocusContext('Licht Avatar', 'Luft Akolyth', 'Erdbeben', 'Drache', 'Zauberer', 4, 0.02, 0.6, 4),
    FocusContext('Luft Avatar', 'Feuer Flamme', 'Windsturm', 'Zauberer', 'Zauberer', 4, 0.02, 0.58, 4),
    FocusContext('Licht Avatar', 'Magie Supernova', 'Windsturm', 'Zauberer', 'Drache', 4, 0.02, 0.62, 4),
    FocusContext('Licht Avatar', 'Chaos Avatar', 'Windsturm', 'Zauberer', 'Drache', 5, 0.025, 0.66, 6),
    FocusContext('Licht Avatar', 'Wasser Avatar', 'Regen', 'Drache', 'Zauberer', 5, 0.02, 0.6, 4),
    FocusContext('Licht Avatar', 'Luft Elementar', 'Windsturm', 'Zauberer', 'Drache', 5, 0.02, 0.58, 4),
    FocusContext('Luft Avatar', 'Magie Avatar', 'Windsturm', 'Drache', 'Drache', 5, 0.02, 0.6, 4),
    FocusContext('Licht Avatar', 'Erde Avatar', 'Regen', 'Drache', 'Zauberer', 5, 0.02, 0.6, 4),
)


def _index_focus() -> Dict[str, List[FocusContext]]:
    index: Dict[str, List[FocusContext]] = {}
    for focus in WEAK_CONTEXT_FOCUS:
        index.setdefault(focus.context_key, []).append(focus)
    return index


FOCUS_CONTEXT_INDEX = _index_focus()
