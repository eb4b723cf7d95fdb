"""
Heuristic move evaluation used to drive self-play and as the fallback
when a trained model has no data for a position.
"""

import random
from typing import List, Tuple

from chess_ai.engine import ChessGame, Move, PIECE_VALUES, WHITE, opposite, to_chess_move

CENTER_SQUARES = frozenset(('d4', 'd5', 'e4', 'e5'))
CENTER_BONUS = 0.4
DEVELOP_BONUS = 0.2
CASTLE_BONUS = 0.6
CHECK_BONUS = 0.7
PROMOTION_BONUS = 8
CAPTURE_BONUS = 0.5
MATERIAL_WEIGHT = 0.05


def evaluate_move(game: ChessGame, move: Move, randomness: float = 1.0,
                  rng: random.Random = None) -> float:
    """
    Score a legal move from the mover's perspective.

    The position is left unchanged: the move is pushed to read check
    and material, then popped.
    """
    rng = rng or random
    score = rng.random() * randomness

    if move.is_capture and move.captured:
        score += PIECE_VALUES[move.captured] + CAPTURE_BONUS
    if move.is_promotion:
        score += PROMOTION_BONUS
    if move.is_castle:
        score += CASTLE_BONUS
    if move.to_square in CENTER_SQUARES:
        score += CENTER_BONUS

    home_rank = '1' if move.color == WHITE else '8'
    if move.piece in ('n', 'b') and move.from_square[1] == home_rank:
        score += DEVELOP_BONUS

    game.board.push(to_chess_move(move))
    try:
        if game.is_in_check(opposite(move.color)):
            score += CHECK_BONUS
        score += game.material_balance(move.color) * MATERIAL_WEIGHT
    finally:
        game.board.pop()

    return score


def rank_moves(game: ChessGame, moves: List[Move], randomness: float = 1.0,
               rng: random.Random = None) -> List[Tuple[Move, float]]:
    scored = [(move, evaluate_move(game, move, randomness, rng)) for move in moves]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def choose_heuristic_move(game: ChessGame, randomness: float = 1.0,
                          rng: random.Random = None) -> Move:
    legal = game.generate_legal_moves()
    if not legal:
        raise ValueError("No legal moves available")

    best_move = legal[0]
    best_score = float('-inf')
    for move in legal:
        score = evaluate_move(game, move, randomness, rng)
        if score > best_score:
            best_score = score
            best_move = move
    return best_move
