"""
Chess Agent - move-choice service backed by a trained model.

Holds the current ChessTrainedModel (if any), answers move queries for
live play, and coordinates simulate -> train -> save runs.

Usage:
    agent = ChessAgent()
    agent.train(games=200, max_plies=120, save_dir='models')
    suggestion = agent.choose_move(fen, 'white')
"""

import random
import time
from typing import Any, Dict, List, Optional
import logging

from core.errors import WrongSideToMoveError
from core.persistence import CHESS_MODEL_KEY, ModelStore
from core.progress import ProgressUpdate
from chess_ai.engine import ChessGame, Move
from chess_ai.trainer import (ChessMoveSuggestion, ChessTrainedModel,
                              simulate_chess_games, train_chess_model)

logger = logging.getLogger(__name__)


class ChessAgent:
    """
    Answers "which move?" for a FEN.

    Without a trained model the agent plays a uniformly random legal move.
    """

    def __init__(self, model: Optional[ChessTrainedModel] = None,
                 rng: random.Random = None):
        self.model = model
        self.rng = rng or random.Random()

    @property
    def is_trained(self) -> bool:
        return self.model is not None

    def set_model(self, model: Optional[ChessTrainedModel]):
        self.model = model

    def choose_move(self, fen: str, color: str) -> ChessMoveSuggestion:
        game = ChessGame(fen)
        if game.turn != color:
            raise WrongSideToMoveError(
                f"Side to move in FEN is {game.turn}, not {color}")

        legal = game.generate_legal_moves()
        if not legal:
            return ChessMoveSuggestion(
                move=Move('a1', 'a1', 'k', color),
                expected_score=0.0,
                confidence=0.0,
                sample_size=0,
                rationale="No moves available",
            )

        if self.model is None:
            return ChessMoveSuggestion(
                move=self.rng.choice(legal),
                expected_score=0.5,
                confidence=0.0,
                sample_size=0,
                rationale="Random move, no training data",
            )

        return self.model.choose_move(fen, legal, color, self.rng)

    def insights(self) -> List[Dict[str, Any]]:
        if self.model is None:
            return []
        return [i.to_dict() for i in self.model.insights]

    def summary(self) -> Optional[Dict[str, Any]]:
        return self.model.summary if self.model else None

    def train(self, games: int = 100, max_plies: int = 200, randomness: float = 1.0,
              prefer_accelerator: bool = False, log_interval: int = 10,
              save_dir: Optional[str] = None) -> Dict[str, Any]:
        """Simulate, train and (optionally) persist a new model"""
        start_time = time.time()
        print(f"Starting chess self-play: {games} games, max {max_plies} plies")

        def on_game(completed, total):
            if completed % log_interval == 0 or completed == total:
                print(f"Game {completed}/{total}")

        def on_progress(update: ProgressUpdate):
            logger.debug(f"{update.phase} {update.progress:.0%} {update.message}")

        simulations = simulate_chess_games(games, max_plies, randomness,
                                           on_progress=on_game, rng=self.rng)
        self.model = train_chess_model(simulations, on_progress=on_progress,
                                       prefer_accelerator=prefer_accelerator)
        if save_dir:
            self.save(save_dir)

        summary = self.model.summary
        elapsed = time.time() - start_time
        print(f"\n{'=' * 60}")
        print("CHESS TRAINING COMPLETE")
        print(f"{'=' * 60}")
        print(f"  Games:          {summary['totalGames']}")
        print(f"  White wins:     {summary['whiteWins']}")
        print(f"  Black wins:     {summary['blackWins']}")
        print(f"  Draws:          {summary['draws']}")
        print(f"  Average plies:  {summary['averagePlies']:.1f}")
        print(f"  Insights:       {len(self.model.insights)}")
        print(f"  Elapsed time:   {elapsed:.1f}s")

        return {
            'games': summary['totalGames'],
            'decisive_rate': summary['decisiveRate'],
            'insights': len(self.model.insights),
            'elapsed_time': elapsed,
            'simulations': simulations,
        }

    def save(self, path: str):
        """Save the trained model"""
        if self.model is None:
            raise ValueError("No trained chess model to save")
        ModelStore(path).set(CHESS_MODEL_KEY, self.model.serialize())

    def load(self, path: str) -> bool:
        """Load a trained model; returns False if none is stored"""
        data = ModelStore(path).get(CHESS_MODEL_KEY)
        if data is None:
            return False
        self.model = ChessTrainedModel.hydrate(data)
        logger.info(f"Loaded chess model with {len(self.model.positions)} positions")
        return True
