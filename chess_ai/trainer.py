"""
Chess Statistical Trainer

Self-play simulation driven by the heuristic evaluator, then aggregation of
(position, move) outcomes into a move-recommendation model. Positions are
keyed at two granularities:

    strict  = board + side + castling + en passant   (first 4 FEN fields)
    relaxed = board + side                           (first 2 FEN fields)

The relaxed key trades precision for sample density when castling or en
passant state differs between games reaching the same placement.

Usage:
    games = simulate_chess_games(200, max_plies=120)
    model = train_chess_model(games)
    suggestion = model.choose_move(fen, legal_moves, 'white')
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging
import random

from core.accelerator import BatchAccelerator, CHESS_STRIDE, try_chess_batch
from core.errors import ModelFormatError
from core.progress import (SIMULATION_PROGRESS_STEPS, CancellationToken, ProgressCallback,
                           check_cancelled, progress_interval, report)
from core.stats import confidence_score, expected_score
from chess_ai.engine import DRAW, ChessGame, Move
from chess_ai.heuristics import choose_heuristic_move, rank_moves
from chess_ai.summary import empty_summary, summarize_chess_simulations

logger = logging.getLogger(__name__)

MODEL_VERSION = 1
MAX_PLIES_DEFAULT = 200
MIN_INSIGHT_SAMPLES = 5
MAX_INSIGHTS = 25
TIE_WINDOW = 0.01

INIT_SHARE = 0.05
AGGREGATION_SHARE = 0.45
GAME_PROGRESS_STEPS = 40
POSITION_PROGRESS_STEPS = 30


def fen_key(fen: str, strict: bool) -> str:
    parts = fen.split(' ')
    return ' '.join(parts[:4] if strict else parts[:2])


# ── Records ──────────────────────────────────────────────────────────────

@dataclass
class ChessMoveRecord:
    fen: str      # position before the move
    move: str     # UCI
    color: str

    def to_dict(self) -> Dict[str, Any]:
        return {'fen': self.fen, 'move': self.move, 'color': self.color}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChessMoveRecord':
        return cls(fen=data['fen'], move=data['move'], color=data['color'])


@dataclass
class ChessSimulationResult:
    """One self-play game"""
    moves: List[ChessMoveRecord]
    winner: str
    reason: str
    plies: int
    opening_sequence: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'moves': [m.to_dict() for m in self.moves],
            'winner': self.winner,
            'reason': self.reason,
            'plies': self.plies,
            'openingSequence': self.opening_sequence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChessSimulationResult':
        return cls(
            moves=[ChessMoveRecord.from_dict(m) for m in data.get('moves', [])],
            winner=data['winner'],
            reason=data['reason'],
            plies=data.get('plies', 0),
            opening_sequence=data.get('openingSequence', ''),
        )


@dataclass
class MoveStats:
    total: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0

    def record(self, outcome: str, mover: str):
        self.total += 1
        if outcome == DRAW:
            self.draws += 1
        elif outcome == mover:
            self.wins += 1
        else:
            self.losses += 1

    @property
    def expected_score(self) -> float:
        return expected_score(self.wins, self.losses, self.draws)

    @property
    def confidence(self) -> float:
        return confidence_score(self.total)

    def to_dict(self) -> Dict[str, int]:
        return {'total': self.total, 'wins': self.wins,
                'losses': self.losses, 'draws': self.draws}


@dataclass
class PositionStats:
    totals: MoveStats = field(default_factory=MoveStats)
    moves: Dict[str, MoveStats] = field(default_factory=dict)

    def record(self, move: str, outcome: str, mover: str):
        self.totals.record(outcome, mover)
        self.moves.setdefault(move, MoveStats()).record(outcome, mover)


@dataclass
class ChessInsight:
    fen: str
    recommended_move: str
    confidence: float
    expected_score: float
    sample_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fen': self.fen,
            'recommendedMove': self.recommended_move,
            'confidence': self.confidence,
            'expectedScore': self.expected_score,
            'sampleSize': self.sample_size,
        }


@dataclass
class ChessMoveSuggestion:
    move: Move
    expected_score: float
    confidence: float
    sample_size: int
    rationale: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'move': self.move.uci,
            'expectedScore': self.expected_score,
            'confidence': self.confidence,
            'sampleSize': self.sample_size,
            'rationale': self.rationale,
        }


# ── Simulation ───────────────────────────────────────────────────────────

def simulate_chess_game(max_plies: int = MAX_PLIES_DEFAULT, randomness: float = 1.0,
                        rng: random.Random = None) -> ChessSimulationResult:
    game = ChessGame()
    records: List[ChessMoveRecord] = []
    plies = 0

    while not game.is_game_over() and plies < max_plies:
        fen_before = game.get_fen()
        move = choose_heuristic_move(game, randomness, rng)
        records.append(ChessMoveRecord(fen_before, move.uci, move.color))
        game.make_move(move)
        plies += 1

    if game.outcome_reason:
        reason = game.outcome_reason
    else:
        reason = 'maxPlies' if plies >= max_plies else 'stalemate'

    return ChessSimulationResult(
        moves=records,
        winner=game.outcome or DRAW,
        reason=reason,
        plies=plies,
        opening_sequence=' '.join(r.move for r in records[:4]),
    )


def simulate_chess_games(count: int, max_plies: int = MAX_PLIES_DEFAULT,
                         randomness: float = 1.0,
                         on_progress: Callable[[int, int], None] = None,
                         token: Optional[CancellationToken] = None,
                         rng: random.Random = None) -> List[ChessSimulationResult]:
    """Play `count` self-play games; progress is reported about every 1% and at the end"""
    report_every = progress_interval(count, SIMULATION_PROGRESS_STEPS)
    results = []
    for i in range(count):
        check_cancelled(token)
        results.append(simulate_chess_game(max_plies, randomness, rng))
        done = i + 1
        if on_progress and (done % report_every == 0 or done == count):
            on_progress(done, count)
    logger.info(f"Simulated {count} chess games")
    return results


# ── Trained model ────────────────────────────────────────────────────────

class ChessTrainedModel:
    """
    Move-recommendation model keyed by position signature.

    choose_move() never leaves a legal position without a move: with no
    data at either key it falls back to the heuristic evaluator.
    """

    def __init__(self, positions: Dict[str, PositionStats] = None,
                 summary: Dict[str, Any] = None,
                 insights: List[ChessInsight] = None,
                 generated_at: str = None):
        self.positions: Dict[str, PositionStats] = positions or {}
        self.summary = summary or empty_summary()
        self.insights: List[ChessInsight] = insights or []
        self.generated_at = generated_at or datetime.now(timezone.utc).isoformat()

    def choose_move(self, fen: str, legal_moves: List[Move], color: str,
                    rng: random.Random = None) -> ChessMoveSuggestion:
        if not legal_moves:
            raise ValueError("choose_move needs at least one legal move")

        best: Optional[ChessMoveSuggestion] = None
        for key in (fen_key(fen, True), fen_key(fen, False)):
            stats = self.positions.get(key)
            if stats is None:
                continue
            for legal in legal_moves:
                move_stats = stats.moves.get(legal.uci)
                if move_stats is None:
                    continue
                expected = move_stats.expected_score
                confidence = move_stats.confidence
                if best is None or expected > best.expected_score or (
                        abs(expected - best.expected_score) < TIE_WINDOW
                        and confidence > best.confidence):
                    best = ChessMoveSuggestion(
                        move=legal,
                        expected_score=expected,
                        confidence=confidence,
                        sample_size=move_stats.total,
                        rationale=f"Expected score {expected:.2f} over {move_stats.total} games.",
                    )

        if best is not None:
            return best

        ranked = rank_moves(ChessGame(fen), legal_moves, 1.0, rng)
        return ChessMoveSuggestion(
            move=ranked[0][0],
            expected_score=0.5,
            confidence=0.0,
            sample_size=0,
            rationale="Heuristic move, no training data for this position",
        )

    def serialize(self) -> Dict[str, Any]:
        return {
            'version': MODEL_VERSION,
            'generatedAt': self.generated_at,
            'contexts': {
                key: {move: stats.to_dict() for move, stats in position.moves.items()}
                for key, position in self.positions.items()
            },
            'summary': self.summary,
            'insights': [i.to_dict() for i in self.insights],
        }

    @classmethod
    def hydrate(cls, data: Dict[str, Any]) -> 'ChessTrainedModel':
        if not isinstance(data, dict):
            raise ModelFormatError("Serialized chess model must be a mapping")
        if data.get('version') != MODEL_VERSION:
            logger.warning(f"Chess model version {data.get('version')} differs from "
                           f"{MODEL_VERSION}, loading anyway")

        positions: Dict[str, PositionStats] = {}
        for key, moves in (data.get('contexts') or {}).items():
            position = PositionStats()
            for move, raw in (moves or {}).items():
                stats = MoveStats(
                    total=int(raw.get('total', 0)),
                    wins=int(raw.get('wins', 0)),
                    losses=int(raw.get('losses', 0)),
                    draws=int(raw.get('draws', 0)),
                )
                position.moves[move] = stats
                position.totals.total += stats.total
                position.totals.wins += stats.wins
                position.totals.losses += stats.losses
                position.totals.draws += stats.draws
            positions[key] = position

        insights = [
            ChessInsight(
                fen=i['fen'],
                recommended_move=i['recommendedMove'],
                confidence=i['confidence'],
                expected_score=i['expectedScore'],
                sample_size=i['sampleSize'],
            )
            for i in data.get('insights', [])
        ]
        return cls(positions, data.get('summary'), insights, data.get('generatedAt'))


# ── Training ─────────────────────────────────────────────────────────────

def train_chess_model(simulations: List[ChessSimulationResult],
                      on_progress: Optional[ProgressCallback] = None,
                      prefer_accelerator: bool = False,
                      accelerator: Optional[BatchAccelerator] = None,
                      token: Optional[CancellationToken] = None,
                      min_samples: int = MIN_INSIGHT_SAMPLES,
                      max_insights: int = MAX_INSIGHTS) -> ChessTrainedModel:
    positions: Dict[str, PositionStats] = {}

    report(on_progress, 'initializing', INIT_SHARE, "Preparing chess training data.")

    total_games = len(simulations)
    safe_total = max(1, total_games)
    game_interval = progress_interval(total_games, GAME_PROGRESS_STEPS)
    aggregation_share = AGGREGATION_SHARE if total_games > 0 else 0.0
    analysis_share = max(0.0, 1 - INIT_SHARE - aggregation_share)

    for index, game in enumerate(simulations):
        for record in game.moves:
            for strict in (True, False):
                key = fen_key(record.fen, strict)
                positions.setdefault(key, PositionStats()).record(
                    record.move, game.winner, record.color)

        if (index + 1) % game_interval == 0 or index == total_games - 1:
            check_cancelled(token)
            report(on_progress, 'aggregating',
                   INIT_SHARE + aggregation_share * (index + 1) / safe_total,
                   f"Processing chess game {index + 1} of {safe_total}")

    if total_games == 0:
        report(on_progress, 'aggregating', INIT_SHARE,
               "No chess simulations, keeping priors.")

    summary = summarize_chess_simulations(simulations)

    if prefer_accelerator and accelerator is None:
        accelerator = BatchAccelerator()
    use_accelerator = accelerator if prefer_accelerator else None

    insights: List[ChessInsight] = []
    entries = list(positions.items())
    safe_positions = max(1, len(entries))
    position_interval = progress_interval(len(entries), POSITION_PROGRESS_STEPS)
    accelerated = False

    for index, (key, position) in enumerate(entries):
        move_entries = list(position.moves.items())
        batch = try_chess_batch(
            use_accelerator,
            [s.wins for _, s in move_entries],
            [s.losses for _, s in move_entries],
            [s.draws for _, s in move_entries],
        )
        if batch is not None:
            accelerated = True

        for move_index, (move, stats) in enumerate(move_entries):
            if stats.total < min_samples:
                continue
            if batch is not None and len(batch) >= (move_index + 1) * CHESS_STRIDE:
                expected = float(batch[move_index * CHESS_STRIDE])
                confidence = float(batch[move_index * CHESS_STRIDE + 1])
            else:
                expected = stats.expected_score
                confidence = stats.confidence
            insights.append(ChessInsight(key, move, confidence, expected, stats.total))

        if (index + 1) % position_interval == 0 or index == len(entries) - 1:
            check_cancelled(token)
            progress = INIT_SHARE + aggregation_share + analysis_share * (index + 1) / safe_positions
            label = "Evaluating positions"
            if prefer_accelerator:
                label += " (accelerator active)" if accelerated else " (accelerator preferred)"
            report(on_progress, 'analyzing', min(0.999, progress),
                   f"{label} {index + 1}/{safe_positions}")

    insights.sort(key=lambda i: (i.expected_score, i.confidence), reverse=True)

    if prefer_accelerator:
        message = ("Chess training finished, accelerator active." if accelerated
                   else "Chess training finished, accelerator unavailable, CPU used.")
    else:
        message = "Chess training finished."
    report(on_progress, 'finalizing', 1.0, message)
    logger.info(f"Chess training analysed {len(entries)} positions, {len(insights)} insights")

    return ChessTrainedModel(positions, summary, insights[:max_insights])
