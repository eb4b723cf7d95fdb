"""Task handlers for Runenkrieg simulate/train requests."""

import random

from core.config import AppConfig
from core.progress import ProgressUpdate
from core.tasks import TaskAction
from runenkrieg.bandit import FusionBandit
from runenkrieg.simulate import RoundResult, simulate_games
from runenkrieg.trainer import train_model


def register_runenkrieg_tasks(runner, config: AppConfig = None):
    config = config or AppConfig()
    bandit = FusionBandit.from_config(config.bandit, random.Random())

    def simulate(payload, on_progress, token):
        count = int(payload.get('count', 1))

        def on_game(completed, total):
            on_progress(ProgressUpdate('simulating', completed / max(1, total),
                                       f"Game {completed} of {total}"))

        rounds = simulate_games(
            count,
            bandit=bandit,
            on_progress=on_game,
            token=token,
            chunk_size=payload.get('chunkSize', config.simulation.chunk_size),
            max_rounds=int(payload.get('maxRounds', config.simulation.max_rounds)),
            focus_augmentation=bool(payload.get('focusAugmentation',
                                                config.simulation.focus_augmentation)),
        )
        return [r.to_dict() for r in rounds]

    def train(payload, on_progress, token):
        rounds = [RoundResult.from_dict(r) for r in payload.get('simulations', [])]
        model = train_model(
            rounds,
            on_progress=on_progress,
            prefer_accelerator=bool(payload.get('preferAccelerator',
                                                config.training.prefer_accelerator)),
            base_model=payload.get('baseModel'),
            token=token,
            z=config.training.wilson_z,
        )
        return model.serialize()

    runner.register(TaskAction.SIMULATE, 'runenkrieg', simulate)
    runner.register(TaskAction.TRAIN, 'runenkrieg', train)
    return bandit
