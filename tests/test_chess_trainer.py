"""Tests for chess self-play, the statistical move model and PGN export."""

import os
import random
import tempfile

import chess
import chess.pgn
import pytest

from core.errors import ModelFormatError, TrainingCancelled, WrongSideToMoveError
from core.progress import CancellationToken
from chess_ai.chess_agent import ChessAgent
from chess_ai.engine import DRAW, START_FEN, WHITE, BLACK, ChessGame
from chess_ai.export import export_pgn, simulation_to_pgn
from chess_ai.heuristics import choose_heuristic_move, evaluate_move
from chess_ai.summary import empty_summary, summarize_chess_simulations
from chess_ai.trainer import (ChessMoveRecord, ChessSimulationResult, ChessTrainedModel,
                              fen_key, simulate_chess_game, simulate_chess_games,
                              train_chess_model)


AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"


def make_game(moves, winner, reason='checkmate'):
    """Build a simulation result by replaying UCI moves from the start"""
    game = ChessGame()
    records = []
    for uci in moves:
        records.append(ChessMoveRecord(game.get_fen(), uci, game.turn))
        game.make_move(uci)
    return ChessSimulationResult(records, winner, reason, len(records),
                                 ' '.join(moves[:4]))


# ── Heuristic Tests ───────────────────────────────────────────────────────

class TestHeuristics:
    def test_prefers_queen_capture(self):
        """A free queen outweighs every positional bonus."""
        game = ChessGame("4k3/8/8/3q4/8/8/8/3RK3 w - - 0 1")
        move = choose_heuristic_move(game, randomness=0.0)
        assert move.uci == 'd1d5'

    def test_evaluate_leaves_position_unchanged(self):
        game = ChessGame()
        fen = game.get_fen()
        for move in game.generate_legal_moves():
            evaluate_move(game, move, rng=random.Random(1))
        assert game.get_fen() == fen

    def test_no_moves_raises(self):
        game = ChessGame("7k/5Q2/6K1/8/8/8/8/8 b - - 0 1")
        with pytest.raises(ValueError):
            choose_heuristic_move(game)


# ── Simulation Tests ──────────────────────────────────────────────────────

class TestSimulation:
    def test_single_ply_cap(self):
        """maxPlies = 1 stops after one move as a draw."""
        result = simulate_chess_game(max_plies=1, rng=random.Random(3))
        assert result.plies == 1
        assert len(result.moves) == 1
        assert result.reason == 'maxPlies'
        assert result.winner == DRAW
        assert result.moves[0].fen == START_FEN
        assert result.moves[0].color == WHITE

    def test_records_replay_on_board(self):
        results = simulate_chess_games(3, max_plies=60, rng=random.Random(11))
        assert len(results) == 3
        for result in results:
            board = chess.Board()
            for record in result.moves:
                assert record.fen == board.fen(en_passant='fen')
                move = chess.Move.from_uci(record.move)
                assert move in board.legal_moves
                board.push(move)

    def test_progress_per_game(self):
        calls = []
        simulate_chess_games(3, max_plies=4, on_progress=lambda c, t: calls.append((c, t)),
                             rng=random.Random(2))
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_progress_is_throttled_for_long_runs(self):
        calls = []
        simulate_chess_games(200, max_plies=1, on_progress=lambda c, t: calls.append(c),
                             rng=random.Random(2))
        assert calls == list(range(2, 201, 2))

    def test_cancellation(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(TrainingCancelled):
            simulate_chess_games(5, max_plies=4, token=token)

    def test_result_dict_round_trip(self):
        result = simulate_chess_game(max_plies=6, rng=random.Random(5))
        restored = ChessSimulationResult.from_dict(result.to_dict())
        assert restored.to_dict() == result.to_dict()


# ── Training Tests ────────────────────────────────────────────────────────

class TestTraining:
    def setup_method(self):
        self.games = [
            make_game(['e2e4', 'e7e5'], WHITE),
            make_game(['e2e4', 'e7e5'], WHITE),
            make_game(['d2d4', 'd7d5'], BLACK),
            make_game(['g1f3', 'g8f6'], DRAW, 'maxPlies'),
        ]

    def test_fen_key_granularity(self):
        assert fen_key(AFTER_E4, True) == "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3"
        assert fen_key(AFTER_E4, False) == "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b"

    def test_move_statistics(self):
        model = train_chess_model(self.games)
        stats = model.positions[fen_key(START_FEN, True)]
        assert stats.moves['e2e4'].wins == 2
        assert stats.moves['d2d4'].losses == 1
        assert stats.moves['g1f3'].draws == 1
        assert stats.totals.total == 4

    def test_recommends_best_scoring_move(self):
        model = train_chess_model(self.games)
        legal = ChessGame().generate_legal_moves()
        suggestion = model.choose_move(START_FEN, legal, WHITE)
        assert suggestion.move.uci == 'e2e4'
        assert suggestion.expected_score == 1.0
        assert suggestion.sample_size == 2

    def test_black_perspective(self):
        """Outcomes are scored from the mover's side."""
        model = train_chess_model(self.games)
        fen = self.games[2].moves[1].fen
        game = ChessGame(fen)
        suggestion = model.choose_move(fen, game.generate_legal_moves(), BLACK)
        assert suggestion.move.uci == 'd7d5'
        assert suggestion.expected_score == 1.0

    def test_relaxed_key_fallback(self):
        """A position with different castling rights still finds the data."""
        model = train_chess_model(self.games)
        fen = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w - - 0 1"
        suggestion = model.choose_move(fen, ChessGame(fen).generate_legal_moves(), WHITE)
        assert suggestion.move.uci == 'e2e4'

    def test_unseen_position_uses_heuristic(self):
        model = train_chess_model(self.games)
        fen = "4k3/8/8/3q4/8/8/8/3RK3 w - - 0 1"
        suggestion = model.choose_move(fen, ChessGame(fen).generate_legal_moves(), WHITE)
        assert suggestion.sample_size == 0
        assert suggestion.confidence == 0.0

    def test_empty_training_keeps_priors(self):
        phases = []
        model = train_chess_model([], on_progress=lambda u: phases.append(u.phase))
        assert model.positions == {}
        assert model.summary == empty_summary()
        assert phases[0] == 'initializing'
        assert phases[-1] == 'finalizing'

    def test_progress_is_monotonic(self):
        updates = []
        train_chess_model(self.games, on_progress=updates.append)
        values = [u.progress for u in updates]
        assert values == sorted(values)
        assert values[-1] == 1.0

    def test_insights_respect_sample_floor(self):
        model = train_chess_model(self.games * 3, min_samples=5)
        assert all(i.sample_size >= 5 for i in model.insights)
        assert any(i.recommended_move == 'e2e4' for i in model.insights)

    def test_accelerator_matches_cpu(self):
        cpu = train_chess_model(self.games * 3, min_samples=1)
        fast = train_chess_model(self.games * 3, min_samples=1, prefer_accelerator=True)
        cpu_scores = sorted((i.fen, i.recommended_move, round(i.expected_score, 9))
                            for i in cpu.insights)
        fast_scores = sorted((i.fen, i.recommended_move, round(i.expected_score, 9))
                             for i in fast.insights)
        assert cpu_scores == fast_scores

    def test_serialize_hydrate(self):
        model = train_chess_model(self.games)
        data = model.serialize()
        assert data['version'] == 1
        assert 'contexts' in data
        restored = ChessTrainedModel.hydrate(data)
        assert restored.serialize()['contexts'] == data['contexts']
        assert restored.positions[fen_key(START_FEN, True)].totals.total == 4

    def test_hydrate_rejects_non_mapping(self):
        with pytest.raises(ModelFormatError):
            ChessTrainedModel.hydrate(['not', 'a', 'model'])


# ── Summary Tests ─────────────────────────────────────────────────────────

class TestSummary:
    def test_counts(self):
        games = [make_game(['e2e4', 'e7e5'], WHITE), make_game(['d2d4'], DRAW, 'maxPlies')]
        summary = summarize_chess_simulations(games)
        assert summary['totalGames'] == 2
        assert summary['whiteWins'] == 1
        assert summary['draws'] == 1
        assert summary['averagePlies'] == 1.5

    def test_empty(self):
        assert summarize_chess_simulations([]) == empty_summary()


# ── Agent Tests ───────────────────────────────────────────────────────────

class TestChessAgent:
    def test_untrained_plays_legal_move(self):
        agent = ChessAgent(rng=random.Random(1))
        suggestion = agent.choose_move(START_FEN, WHITE)
        legal = {m.uci for m in ChessGame().generate_legal_moves()}
        assert suggestion.move.uci in legal

    def test_wrong_side_raises(self):
        agent = ChessAgent()
        with pytest.raises(WrongSideToMoveError):
            agent.choose_move(START_FEN, BLACK)

    def test_train_save_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            agent = ChessAgent(rng=random.Random(4))
            result = agent.train(games=2, max_plies=6, save_dir=tmpdir)
            assert result['games'] == 2
            assert agent.is_trained

            loaded = ChessAgent()
            assert loaded.load(tmpdir)
            assert loaded.model.serialize()['contexts'] == agent.model.serialize()['contexts']

    def test_load_missing_model(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            assert not ChessAgent().load(tmpdir)


# ── Export Tests ──────────────────────────────────────────────────────────

class TestPgnExport:
    def test_pgn_headers_and_moves(self):
        game = simulation_to_pgn(make_game(['e2e4', 'e7e5'], WHITE))
        assert game.headers['Result'] == '1-0'
        assert [m.uci() for m in game.mainline_moves()] == ['e2e4', 'e7e5']

    def test_export_file(self):
        games = [make_game(['e2e4'], DRAW, 'maxPlies'), make_game(['d2d4'], BLACK)]
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'games.pgn')
            assert export_pgn(games, path) == 2
            with open(path) as f:
                first = chess.pgn.read_game(f)
                second = chess.pgn.read_game(f)
            assert first.headers['Result'] == '1/2-1/2'
            assert second.headers['Result'] == '0-1'
