"""
PGN export of simulated games via python-chess.
"""

from typing import Iterable, Optional
import logging

import chess
import chess.pgn

from chess_ai.engine import BLACK, WHITE

logger = logging.getLogger(__name__)

RESULT_TAGS = {WHITE: "1-0", BLACK: "0-1"}


def simulation_to_pgn(simulation, event: str = "Runenkrieg self-play",
                      round_number: Optional[int] = None) -> chess.pgn.Game:
    """Convert a ChessSimulationResult into a python-chess PGN game"""
    game = chess.pgn.Game()
    game.headers["Event"] = event
    game.headers["White"] = "Heuristic"
    game.headers["Black"] = "Heuristic"
    game.headers["Result"] = RESULT_TAGS.get(simulation.winner, "1/2-1/2")
    game.headers["Termination"] = simulation.reason
    if round_number is not None:
        game.headers["Round"] = str(round_number)

    node = game
    for record in simulation.moves:
        node = node.add_variation(chess.Move.from_uci(record.move))
    return game


def export_pgn(simulations: Iterable, filepath: str) -> int:
    """Write all games to one PGN file; returns the number of games"""
    count = 0
    with open(filepath, 'w', encoding='utf-8') as f:
        for index, simulation in enumerate(simulations, start=1):
            print(simulation_to_pgn(simulation, round_number=index), file=f, end="\n\n")
            count += 1
    logger.info(f"Exported {count} games to {filepath}")
    return count

