"""Task handlers for chess simulate/train requests."""

from core.config import AppConfig
from core.tasks import TaskAction
from chess_ai.trainer import (ChessSimulationResult, simulate_chess_games,
                              train_chess_model)
from core.progress import ProgressUpdate


def register_chess_tasks(runner, config: AppConfig = None):
    config = config or AppConfig()

    def simulate(payload, on_progress, token):
        count = int(payload.get('count', 1))

        def on_game(completed, total):
            on_progress(ProgressUpdate('simulating', completed / max(1, total),
                                       f"Chess game {completed} of {total}"))

        games = simulate_chess_games(
            count,
            max_plies=int(payload.get('maxPlies', config.chess.max_plies)),
            randomness=float(payload.get('randomness', config.chess.randomness)),
            on_progress=on_game,
            token=token,
        )
        return [g.to_dict() for g in games]

    def train(payload, on_progress, token):
        simulations = [ChessSimulationResult.from_dict(s)
                       for s in payload.get('simulations', [])]
        model = train_chess_model(
            simulations,
            on_progress=on_progress,
            prefer_accelerator=bool(payload.get('preferAccelerator',
                                                config.chess.prefer_accelerator)),
            token=token,
            min_samples=config.chess.min_insight_samples,
            max_insights=config.chess.max_insights,
        )
        return model.serialize()

    runner.register(TaskAction.SIMULATE, 'chess', simulate)
    runner.register(TaskAction.TRAIN, 'chess', train)
