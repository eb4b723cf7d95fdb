"""
Configuration - settings for simulation, training and model storage

Every section can be built from environment variables (RUNENKRIEG_*) and
the aggregate AppConfig can be saved to / loaded from a JSON file.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
import json
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


@dataclass
class ChessConfig:
    """Chess simulation / training settings"""
    max_plies: int = 200
    randomness: float = 1.0
    min_insight_samples: int = 5
    max_insights: int = 25
    prefer_accelerator: bool = False

    @classmethod
    def from_env(cls) -> 'ChessConfig':
        """Load from environment variables"""
        return cls(
            max_plies=int(os.getenv('RUNENKRIEG_CHESS_MAX_PLIES', 200)),
            randomness=float(os.getenv('RUNENKRIEG_CHESS_RANDOMNESS', 1.0)),
            prefer_accelerator=_env_bool('RUNENKRIEG_PREFER_ACCELERATOR', False)
        )


@dataclass
class SimulationConfig:
    """Card-game simulator settings"""
    max_rounds: int = 200
    chunk_size: Optional[int] = None  # None = ceil(games / 25)
    focus_augmentation: bool = True

    @classmethod
    def from_env(cls) -> 'SimulationConfig':
        return cls(
            max_rounds=int(os.getenv('RUNENKRIEG_MAX_ROUNDS', 200)),
            chunk_size=_env_int('RUNENKRIEG_CHUNK_SIZE'),
            focus_augmentation=_env_bool('RUNENKRIEG_FOCUS_AUGMENTATION', True)
        )


@dataclass
class BanditConfig:
    """Fusion bandit settings"""
    epsilon: float = 0.12
    skip_baseline: float = 0.05

    @classmethod
    def from_env(cls) -> 'BanditConfig':
        return cls(
            epsilon=float(os.getenv('RUNENKRIEG_BANDIT_EPSILON', 0.12)),
        )


@dataclass
class TrainingConfig:
    """Context aggregator settings"""
    prefer_accelerator: bool = False
    wilson_z: float = 1.96

    @classmethod
    def from_env(cls) -> 'TrainingConfig':
        return cls(
            prefer_accelerator=_env_bool('RUNENKRIEG_PREFER_ACCELERATOR', False)
        )


@dataclass
class StorageConfig:
    """Where trained models and bandit state are kept"""
    model_dir: str = "models"

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        return cls(model_dir=os.getenv('RUNENKRIEG_MODEL_DIR', 'models'))


@dataclass
class AppConfig:
    """Master configuration"""
    chess: ChessConfig = field(default_factory=ChessConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    bandit: BanditConfig = field(default_factory=BanditConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls) -> 'AppConfig':
        return cls(
            chess=ChessConfig.from_env(),
            simulation=SimulationConfig.from_env(),
            bandit=BanditConfig.from_env(),
            training=TrainingConfig.from_env(),
            storage=StorageConfig.from_env()
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize configuration"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        return cls(
            chess=ChessConfig(**data.get('chess', {})),
            simulation=SimulationConfig(**data.get('simulation', {})),
            bandit=BanditConfig(**data.get('bandit', {})),
            training=TrainingConfig(**data.get('training', {})),
            storage=StorageConfig(**data.get('storage', {}))
        )

    def save(self, filepath: str):
        """Save configuration to file"""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'AppConfig':
        """Load configuration from file"""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)
