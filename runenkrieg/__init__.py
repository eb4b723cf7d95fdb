"""
Runenkrieg - card duel mechanics, self-play simulation and the
context-keyed response trainer.

Pipeline:
    simulate_games()  -> RoundResult list (fusion decisions learned by FusionBandit)
    train_model()     -> RunenkriegTrainedModel (Wilson-scored responses per context)
    CardAgent         -> live card choice, trained model or heuristic fallback
"""

from runenkrieg.cards import Card, CardCatalog, card_from_label
from runenkrieg.context import build_context_key, parse_context_key, WEAK_CONTEXT_FOCUS
from runenkrieg.mechanics import HistoryEntry, calculate_total_value, resolve_round
from runenkrieg.bandit import FusionBandit, FusionOutcome
from runenkrieg.fusion import FusionEngine
from runenkrieg.simulate import RoundResult, simulate_games
from runenkrieg.trainer import GameState, RunenkriegTrainedModel, train_model
from runenkrieg.agent import CardAgent, TableState
from runenkrieg.narrative import NarrativeService

__all__ = [
    "Card",
    "CardCatalog",
    "card_from_label",
    "build_context_key",
    "parse_context_key",
    "WEAK_CONTEXT_FOCUS",
    "HistoryEntry",
    "calculate_total_value",
    "resolve_round",
    "FusionBandit",
    "FusionOutcome",
    "FusionEngine",
    "RoundResult",
    "simulate_games",
    "GameState",
    "RunenkriegTrainedModel",
    "train_model",
    "CardAgent",
    "TableState",
    "NarrativeService",
]
