"""Tests for the shared core: statistics, accelerator, progress, config, storage."""

import json
import math
import os
import tempfile

import numpy as np
import pytest

from core.accelerator import (MIN_BATCH, WILSON_STRIDE, BatchAccelerator,
                              try_chess_batch, try_wilson_batch)
from core.config import AppConfig, BanditConfig
from core.errors import TrainingCancelled
from core.persistence import CARD_MODEL_KEY, ModelStore, export_json, import_json, to_native
from core.progress import (CancellationToken, ProgressUpdate, check_cancelled,
                           progress_interval, report)
from core.stats import (ResamplingPriority, assign_priority, clamp_token_delta,
                        confidence_score, determine_wave, entropy, evidence_score,
                        expected_score, wilson_interval)


SWEEP_TOTALS = (0, 1, 2, 5, 10, 37, 100)


# ── Statistics Tests ──────────────────────────────────────────────────────

class TestWilsonInterval:
    def test_no_trials_is_full_range(self):
        assert wilson_interval(0, 0) == (0.0, 1.0, 1.0)

    def test_known_value(self):
        """8 of 10 at z=1.96 gives roughly [0.490, 0.943]."""
        lower, upper, width = wilson_interval(8, 10)
        assert lower == pytest.approx(0.4902, abs=1e-3)
        assert upper == pytest.approx(0.9433, abs=1e-3)
        assert width == pytest.approx(upper - lower)

    def test_bounds_stay_in_unit_range(self):
        for wins, trials in ((0, 5), (5, 5), (1, 1), (0, 1)):
            lower, upper, _ = wilson_interval(wins, trials)
            assert 0.0 <= lower <= upper <= 1.0

    def test_narrows_with_more_trials(self):
        _, _, small = wilson_interval(5, 10)
        _, _, large = wilson_interval(500, 1000)
        assert large < small

    def test_interval_contains_rate_for_every_count(self):
        for total in SWEEP_TOTALS:
            for wins in range(total + 1):
                rate = wins / total if total else 0.0
                lower, upper, width = wilson_interval(wins, total)
                assert 0.0 <= lower <= rate <= upper <= 1.0, (wins, total)
                assert width == pytest.approx(upper - lower)

    @pytest.mark.parametrize("rate", [0.5, 0.2, 0.9])
    def test_width_shrinks_at_fixed_rate(self, rate):
        widths = [wilson_interval(rate * total, total)[2] for total in (10, 20, 40, 80, 160, 320)]
        assert all(later < earlier for earlier, later in zip(widths, widths[1:]))

    def test_evidence_score(self):
        assert evidence_score(0.5, 0.7) == pytest.approx(0.7 * 0.5 + 0.3 * 0.8)
        # Width is capped at 0.5
        assert evidence_score(0.0, 1.0) == pytest.approx(0.15)


class TestScores:
    def test_entropy(self):
        assert entropy([0.5, 0.5]) == pytest.approx(1.0)
        assert entropy([1.0, 0.0]) == 0.0
        assert entropy([0.25] * 4) == pytest.approx(2.0)

    def test_expected_score(self):
        assert expected_score(0, 0, 0) == 0.5
        assert expected_score(2, 1, 2) == pytest.approx(0.6)

    def test_confidence_score(self):
        assert confidence_score(0) == 0.0
        assert confidence_score(9) == pytest.approx(0.5)
        assert confidence_score(10 ** 6) == 1.0

    def test_clamp_token_delta(self):
        assert clamp_token_delta(7) == 5
        assert clamp_token_delta(-9) == -5
        assert clamp_token_delta(3) == 3


class TestResampling:
    def test_waves(self):
        assert determine_wave(10, 0.5, 0.2) == (1, 25)
        assert determine_wave(30, 0.5, 0.2) == (2, 50)
        assert determine_wave(60, 0.1, 0.2) == (3, 100)
        assert determine_wave(60, 0.6, 0.1) == (3, 60)
        assert determine_wave(120, 0.1, 0.1) == (3, 200)
        assert determine_wave(250, 0.1, 0.1) == (3, 250)

    def test_priorities(self):
        assert assign_priority(0, 0.0, 0.0, 0) == ResamplingPriority.MAX
        assert assign_priority(5, 0.3, 0.5, 0) == ResamplingPriority.HIGH
        assert assign_priority(40, 0.1, 0.2, 4) == ResamplingPriority.HIGH
        assert assign_priority(20, 0.4, 0.6, 0) == ResamplingPriority.MED
        assert assign_priority(80, 0.7, 0.8, 0) == ResamplingPriority.NORMAL

    def test_priority_order_and_label(self):
        assert ResamplingPriority.MAX < ResamplingPriority.NORMAL
        assert ResamplingPriority.HIGH.label == 'high'


# ── Accelerator Tests ─────────────────────────────────────────────────────

class TestAccelerator:
    def setup_method(self):
        self.accelerator = BatchAccelerator()

    def test_wilson_batch_matches_cpu(self):
        wins = [0, 3, 8, 40, 1]
        totals = [0, 5, 10, 50, 1]
        batch = self.accelerator.wilson_batch(wins, totals)
        assert len(batch) == len(totals) * WILSON_STRIDE
        for i, (w, n) in enumerate(zip(wins, totals)):
            lower, upper, width = wilson_interval(w, n)
            row = batch[i * WILSON_STRIDE:(i + 1) * WILSON_STRIDE]
            assert row[0] == pytest.approx(w / n if n else 0.0)
            assert row[1] == pytest.approx(lower)
            assert row[2] == pytest.approx(upper)
            assert row[3] == pytest.approx(width)
            assert row[4] == pytest.approx(evidence_score(lower, upper))

    def test_wilson_batch_sweep(self):
        wins = [w for total in SWEEP_TOTALS for w in range(total + 1)]
        totals = [total for total in SWEEP_TOTALS for _ in range(total + 1)]
        rows = self.accelerator.wilson_batch(wins, totals).reshape(-1, WILSON_STRIDE)
        assert rows.shape == (len(totals), WILSON_STRIDE)
        for (rate, lower, upper, width, _), w, n in zip(rows, wins, totals):
            assert 0.0 <= lower <= rate <= upper <= 1.0, (w, n)
            assert width == pytest.approx(upper - lower)
            assert (lower, upper) == pytest.approx(wilson_interval(w, n)[:2])
        assert list(rows[0]) == pytest.approx([0.0, 0.0, 1.0, 1.0, 0.15])

    def test_wilson_batch_width_shrinks(self):
        sizes = np.array([10, 20, 40, 80, 160, 320], dtype=np.float64)
        for rate in (0.5, 0.2):
            rows = self.accelerator.wilson_batch(sizes * rate, sizes).reshape(-1, WILSON_STRIDE)
            assert np.all(np.diff(rows[:, 3]) < 0)

    def test_small_batches_use_cpu(self):
        """Fewer than MIN_BATCH entries return None."""
        wins = [1] * (MIN_BATCH - 1)
        assert try_wilson_batch(self.accelerator, wins, wins) is None
        assert try_wilson_batch(None, [1] * 10, [2] * 10) is None

    def test_failure_disables_accelerator(self):
        result = try_wilson_batch(self.accelerator, [1, 2, 3, 4, 5], [1, 2, 3, 4])
        assert result is None
        assert not self.accelerator.enabled
        assert self.accelerator.failures == 1
        assert try_wilson_batch(self.accelerator, [1] * 5, [2] * 5) is None

    def test_chess_batch(self):
        batch = try_chess_batch(self.accelerator, [1, 0, 2, 0], [0, 1, 0, 0],
                                [1, 1, 0, 0])
        assert batch[0] == pytest.approx(0.75)
        assert batch[1] == pytest.approx(math.log10(3) / 2)
        assert batch[6] == 0.0


# ── Progress Tests ────────────────────────────────────────────────────────

class TestProgress:
    def test_report_clamps(self):
        updates = []
        report(updates.append, 'training', 1.7, "done")
        report(updates.append, 'training', -0.2)
        assert updates[0].progress == 1.0
        assert updates[1].progress == 0.0
        report(None, 'ignored', 0.5)

    def test_cancellation_token(self):
        token = CancellationToken()
        check_cancelled(token)
        check_cancelled(None)
        token.cancel()
        assert token.cancelled
        with pytest.raises(TrainingCancelled):
            check_cancelled(token)

    def test_progress_interval(self):
        assert progress_interval(0, 40) == 1
        assert progress_interval(400, 40) == 10

    def test_update_dict(self):
        update = ProgressUpdate('simulating', 0.5, "half")
        assert update.to_dict() == {'phase': 'simulating', 'progress': 0.5, 'message': 'half'}


# ── Config Tests ──────────────────────────────────────────────────────────

class TestConfig:
    def test_defaults(self):
        config = AppConfig()
        assert config.bandit.epsilon == pytest.approx(0.12)
        assert config.training.wilson_z == pytest.approx(1.96)
        assert config.simulation.focus_augmentation

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('RUNENKRIEG_BANDIT_EPSILON', '0.3')
        monkeypatch.setenv('RUNENKRIEG_PREFER_ACCELERATOR', 'yes')
        monkeypatch.setenv('RUNENKRIEG_CHUNK_SIZE', '7')
        monkeypatch.setenv('RUNENKRIEG_MODEL_DIR', '/tmp/models')
        config = AppConfig.from_env()
        assert config.bandit.epsilon == pytest.approx(0.3)
        assert config.training.prefer_accelerator
        assert config.chess.prefer_accelerator
        assert config.simulation.chunk_size == 7
        assert config.storage.model_dir == '/tmp/models'

    def test_save_load(self):
        config = AppConfig(bandit=BanditConfig(epsilon=0.2))
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'config.json')
            config.save(path)
            loaded = AppConfig.load(path)
        assert loaded.to_dict() == config.to_dict()
        assert loaded.bandit.epsilon == pytest.approx(0.2)


# ── Persistence Tests ─────────────────────────────────────────────────────

class TestModelStore:
    def test_set_get_delete(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = ModelStore(tmpdir)
            assert store.get(CARD_MODEL_KEY) is None
            store.set(CARD_MODEL_KEY, {'version': 1, 'contexts': {}})
            assert store.exists(CARD_MODEL_KEY)
            assert store.get(CARD_MODEL_KEY) == {'version': 1, 'contexts': {}}
            assert store.delete(CARD_MODEL_KEY)
            assert not store.delete(CARD_MODEL_KEY)

    def test_corrupt_entry_reads_as_none(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = ModelStore(tmpdir)
            with open(os.path.join(tmpdir, f"{CARD_MODEL_KEY}.json"), 'w') as f:
                f.write("{not json")
            assert store.get(CARD_MODEL_KEY) is None

    def test_numpy_values_are_exported(self):
        data = {'count': np.int64(3), 'rate': np.float32(0.5), 'rows': np.arange(3)}
        assert to_native(data) == {'count': 3, 'rate': 0.5, 'rows': [0, 1, 2]}
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'nested', 'model.json')
            export_json(data, path)
            assert import_json(path) == {'count': 3, 'rate': 0.5, 'rows': [0, 1, 2]}

    def test_import_errors_propagate(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'bad.json')
            with open(path, 'w') as f:
                f.write("[1, 2")
            with pytest.raises(json.JSONDecodeError):
                import_json(path)
