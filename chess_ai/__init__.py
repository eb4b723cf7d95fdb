"""
Chess AI - rules engine, heuristic self-play and a statistical move model.

No search tree. Move knowledge comes from outcome statistics:
- Simulation: heuristic self-play (captures, development, checks, material)
- Aggregation: win/loss/draw counts per (position, move) at a strict and a
  relaxed position signature
- Recommendation: highest expected score, tie-broken by confidence, with
  the heuristic evaluator as fallback for unseen positions
"""

from chess_ai.engine import ChessGame, Move, Piece, START_FEN
from chess_ai.heuristics import choose_heuristic_move, evaluate_move
from chess_ai.trainer import (ChessSimulationResult, ChessTrainedModel,
                              simulate_chess_games, train_chess_model)
from chess_ai.chess_agent import ChessAgent

__all__ = [
    "ChessGame",
    "Move",
    "Piece",
    "START_FEN",
    "choose_heuristic_move",
    "evaluate_move",
    "ChessSimulationResult",
    "ChessTrainedModel",
    "simulate_chess_games",
    "train_chess_model",
    "ChessAgent",
]
