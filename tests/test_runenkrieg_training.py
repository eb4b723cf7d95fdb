"""Tests for the Runenkrieg simulator, context aggregator and training analysis."""

import random

import pytest

from core.errors import EmptyHandError, ModelFormatError, TrainingCancelled
from core.progress import CancellationToken
from runenkrieg.analysis import (MAX_RESAMPLING, AnalysisBuilder, ContextInsight,
                                 build_fusion_insights, build_resampling_plan,
                                 empty_analysis)
from runenkrieg.bandit import FusionBandit
from runenkrieg.cards import card_from_label
from runenkrieg.constants import AI_WINS, PLAYER_WINS, ROUND_DRAW
from runenkrieg.context import WEAK_CONTEXT_FOCUS, build_context_key
from runenkrieg.simulate import (FusionDecisionSample, GameSimulator, RoundResult,
                                 focus_sample_count, select_card, simulate_focused_round,
                                 simulate_games)
from runenkrieg.trainer import (STAGE_NONE, STAGE_PROVISIONAL, STAGE_STABLE, CardStats,
                                GameState, RunenkriegTrainedModel, consolidation_stage,
                                train_model, weakness_penalty)


CONTEXT_KEY = 'Feuer Funke|Regen|DrachevsZauberer|delta:0'
FOCUS_KEY = 'Licht Avatar|Erdbeben|ZauberervsDrache|delta:5'
DISTINCT_FOCUS_KEYS = len({f.context_key for f in WEAK_CONTEXT_FOCUS})


def card(label, card_id=None):
    return card_from_label(label, card_id=card_id)


def make_round(ai_card, winner, player_card='Feuer Funke', weather='Regen',
               player_hero='Drache', ai_hero='Zauberer', player_before=5, ai_before=5,
               fusion_decisions=None):
    return RoundResult(player_card, ai_card, player_before, ai_before, player_before,
                       ai_before, weather, player_hero, ai_hero, winner,
                       fusion_decisions or [])


def rounds_for(ai_card, wins, total, **kwargs):
    return ([make_round(ai_card, AI_WINS, **kwargs) for _ in range(wins)]
            + [make_round(ai_card, PLAYER_WINS, **kwargs) for _ in range(total - wins)])


def sample(actor, decision, gain, fused_card=None):
    return FusionDecisionSample(actor, 'Drache', 'Zauberer', 'Regen', 0, '', fused_card,
                                gain, decision)


# ── Simulator Tests ───────────────────────────────────────────────────────

class TestSimulator:
    def test_round_dict_uses_game_field_names(self):
        data = make_round('Wasser Funke', AI_WINS, ai_before=3).to_dict()
        assert data['spieler_karte'] == 'Feuer Funke'
        assert data['gegner_karte'] == 'Wasser Funke'
        assert data['gegner_token_vorher'] == 3
        assert data['gewinner'] == AI_WINS
        assert RoundResult.from_dict(data).to_dict() == data

    def test_token_delta_from_tokens_before(self):
        assert make_round('Wasser Funke', AI_WINS, player_before=7, ai_before=2).token_delta == 5

    def test_select_card_single_card(self):
        assert select_card([card('Feuer Funke')], 'Drache', 5, 5, 'Regen', [], 'player',
                           random.Random(1)) == 0

    def test_select_card_prefers_strong_cards(self):
        hand = [card('Feuer Funke', 'weak'), card('Feuer Avatar', 'strong')]
        rng = random.Random(5)
        picks = [select_card(hand, 'Drache', 5, 5, 'Regen', [], 'player', rng)
                 for _ in range(200)]
        assert picks.count(1) > picks.count(0)

    def test_game_ends_on_tokens_or_round_cap(self):
        simulator = GameSimulator(rng=random.Random(9), max_rounds=30)
        rounds = simulator.play_game()
        assert 0 < len(rounds) <= 30
        last = rounds[-1]
        assert len(rounds) == 30 or last.player_tokens == 0 or last.ai_tokens == 0
        for r in rounds:
            assert r.player_tokens >= 0 and r.ai_tokens >= 0
            assert r.winner in (PLAYER_WINS, AI_WINS, ROUND_DRAW)

    def test_tokens_chain_between_rounds(self):
        rounds = GameSimulator(rng=random.Random(4), max_rounds=20).play_game()
        for previous, current in zip(rounds, rounds[1:]):
            assert current.player_tokens_before == previous.player_tokens
            assert current.ai_tokens_before == previous.ai_tokens

    def test_focused_round(self):
        focus = WEAK_CONTEXT_FOCUS[0]
        result = simulate_focused_round(focus, 0)
        assert result.player_card == focus.player_card
        assert result.ai_card == focus.ai_card
        assert result.token_delta == focus.token_delta
        key = build_context_key(result.player_card, result.weather, result.player_hero,
                                result.ai_hero, result.token_delta)
        assert key == focus.context_key

    def test_focus_sample_count(self):
        focus = WEAK_CONTEXT_FOCUS[0]
        assert focus_sample_count(0, focus) == 3
        assert focus_sample_count(1000, focus) == 30

    def test_zero_games_still_reports_and_augments(self):
        calls = []
        rounds = simulate_games(0, on_progress=lambda c, t: calls.append((c, t)),
                                rng=random.Random(1))
        assert calls == [(0, 0)]
        assert len(rounds) == 3 * len(WEAK_CONTEXT_FOCUS)

    def test_without_focus_augmentation(self):
        rounds = simulate_games(0, focus_augmentation=False, rng=random.Random(1))
        assert rounds == []

    def test_progress_and_bandit_learning(self):
        bandit = FusionBandit(rng=random.Random(2))
        calls = []
        rounds = simulate_games(3, bandit=bandit, max_rounds=40, focus_augmentation=False,
                                on_progress=lambda c, t: calls.append(c), rng=random.Random(2))
        assert calls == [1, 2, 3]
        decisions = sum(len(r.fusion_decisions) for r in rounds)
        assert bandit.summary()['totalDecisions'] == decisions

    def test_progress_is_throttled_for_long_runs(self):
        calls = []
        simulate_games(300, max_rounds=1, focus_augmentation=False,
                       on_progress=lambda c, t: calls.append((c, t)), rng=random.Random(4))
        assert len(calls) == 100
        assert calls[0] == (3, 300)
        assert calls[-1] == (300, 300)

    def test_last_game_always_reported(self):
        calls = []
        simulate_games(205, max_rounds=1, focus_augmentation=False,
                       on_progress=lambda c, t: calls.append(c), rng=random.Random(4))
        assert calls[-1] == 205
        assert calls[-2] == 204
        assert len(calls) == 103

    def test_cancellation(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(TrainingCancelled):
            simulate_games(5, token=token, rng=random.Random(1))


# ── Aggregator Tests ──────────────────────────────────────────────────────

class TestTraining:
    def setup_method(self):
        self.rounds = (rounds_for('Wasser Funke', 55, 60)
                       + rounds_for('Erde Funke', 10, 60)
                       + [make_round('Luft Funke', ROUND_DRAW)])

    def test_counts_ai_wins_only(self):
        model = train_model(self.rounds)
        plays = model.contexts[CONTEXT_KEY]
        assert plays['Wasser Funke'] == CardStats(55, 60)
        assert plays['Erde Funke'] == CardStats(10, 60)
        assert plays['Luft Funke'] == CardStats(0, 1)

    def test_context_metadata(self):
        model = train_model(self.rounds)
        meta = model.metadata[CONTEXT_KEY]
        assert meta.best_card_key == 'Wasser Funke'
        assert meta.observations == 60
        assert meta.consolidation_stage == STAGE_STABLE
        assert meta.baseline_win_rate == pytest.approx(65 / 121)
        assert meta.preferred_responses is None

    def test_focus_priors_on_fresh_model(self):
        model = train_model([])
        assert len(model.contexts) == DISTINCT_FOCUS_KEYS
        # weight 6 at a 0.68 target rounds to 4 wins
        assert model.contexts[FOCUS_KEY]['Chaos Avatar'] == CardStats(4, 6)
        assert model.metadata[FOCUS_KEY].preferred_responses == ['Chaos Avatar']

    def test_priors_not_double_counted_when_continuing(self):
        first = train_model([])
        second = train_model([], base_model=first.serialize())
        assert second.contexts[FOCUS_KEY]['Chaos Avatar'] == CardStats(4, 6)

    def test_continue_adds_new_rounds(self):
        first = train_model(self.rounds)
        second = train_model(rounds_for('Wasser Funke', 5, 5), base_model=first.serialize())
        assert second.contexts[CONTEXT_KEY]['Wasser Funke'] == CardStats(60, 65)

    def test_bad_base_model_starts_fresh(self):
        model = train_model(self.rounds, base_model={'contexts': {'k': {'aiCards': 'junk'}}})
        assert model.contexts[CONTEXT_KEY]['Wasser Funke'] == CardStats(55, 60)

    def test_progress_phases(self):
        updates = []
        train_model(self.rounds, on_progress=updates.append)
        phases = [u.phase for u in updates]
        assert phases[0] == 'initializing'
        assert phases[-1] == 'finalizing'
        assert 'aggregating' in phases and 'analyzing' in phases
        values = [u.progress for u in updates]
        assert values == sorted(values)

    def test_cancellation(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(TrainingCancelled):
            train_model(self.rounds, token=token)

    def test_accelerator_matches_cpu(self):
        rounds = (self.rounds + rounds_for('Blitz Funke', 20, 40)
                  + rounds_for('Eis Funke', 3, 12))
        cpu = train_model(rounds)
        messages = []
        fast = train_model(rounds, prefer_accelerator=True,
                           on_progress=lambda u: messages.append(u.message))
        assert 'accelerator active' in messages[-1]
        a = cpu.metadata[CONTEXT_KEY]
        b = fast.metadata[CONTEXT_KEY]
        assert a.best_card_key == b.best_card_key
        assert a.wilson_lower == pytest.approx(b.wilson_lower)
        assert a.wilson_upper == pytest.approx(b.wilson_upper)
        assert a.entropy == pytest.approx(b.entropy)

    def test_stages(self):
        assert consolidation_stage(0.65, 60) == STAGE_STABLE
        assert consolidation_stage(0.65, 30) == STAGE_PROVISIONAL
        assert consolidation_stage(0.65, 10) == STAGE_NONE
        assert consolidation_stage(0.4, 100) == STAGE_NONE

    def test_weakness_penalty(self):
        assert weakness_penalty(True, 5, 0.4, 0.5) == pytest.approx(0.18)
        assert weakness_penalty(False, 4, 0.45, 0.4) == pytest.approx(0.06)
        assert weakness_penalty(False, 0, 0.9, 0.5) == 0.0


# ── Prediction Tests ──────────────────────────────────────────────────────

class TestPrediction:
    def setup_method(self):
        rounds = rounds_for('Wasser Funke', 55, 60) + rounds_for('Erde Funke', 10, 60)
        self.model = train_model(rounds)
        self.state = GameState(5, 5, 'Regen', 'Drache', 'Zauberer')

    def test_stable_context_is_deterministic(self):
        hand = [card('Erde Funke'), card('Wasser Funke')]
        rng = random.Random(0)
        picks = {self.model.predict(card('Feuer Funke'), hand, self.state, rng).label
                 for _ in range(30)}
        assert picks == {'Wasser Funke'}

    def test_unknown_context_plays_strongest(self):
        hand = [card('Erde Funke'), card('Erde Avatar'), card('Wasser Glut')]
        chosen = self.model.predict(card('Magie Nova'), hand, self.state, random.Random(1))
        assert chosen.label == 'Erde Avatar'

    def test_empty_hand(self):
        with pytest.raises(EmptyHandError):
            self.model.predict(card('Feuer Funke'), [], self.state)

    def test_unseen_card_uses_baseline(self):
        plays = self.model.contexts[CONTEXT_KEY]
        meta = self.model.metadata[CONTEXT_KEY]
        ranked = self.model.estimate([card('Licht Nova'), card('Wasser Funke')], plays, meta)
        assert ranked[0].key == 'Wasser Funke'
        unseen = ranked[1]
        assert unseen.observations == 0
        assert unseen.win_rate == pytest.approx(meta.baseline_win_rate)

    def test_uncertain_context_samples_valid_cards(self):
        rounds = rounds_for('Wasser Funke', 3, 5) + rounds_for('Erde Funke', 2, 5)
        model = train_model(rounds)
        hand = [card('Erde Funke'), card('Wasser Funke')]
        rng = random.Random(3)
        picks = {model.predict(card('Feuer Funke'), hand, self.state, rng).label
                 for _ in range(60)}
        assert picks <= {'Erde Funke', 'Wasser Funke'}
        assert len(picks) == 2

    def test_serialize_hydrate(self):
        data = self.model.serialize()
        assert data['version'] == 1
        entry = data['contexts'][CONTEXT_KEY]
        assert entry['aiCards']['Wasser Funke'] == {'wins': 55, 'total': 60}
        assert entry['metadata']['bestCardKey'] == 'Wasser Funke'
        restored = RunenkriegTrainedModel.hydrate(data)
        assert restored.serialize() == data

    def test_hydrate_rejects_non_mapping(self):
        with pytest.raises(ModelFormatError):
            RunenkriegTrainedModel.hydrate("model")


# ── Analysis Tests ────────────────────────────────────────────────────────

def insight(observations, lower, win_rate=0.5, width=0.2, delta=0, entropy=1.0,
            player_card='Feuer Funke', ai_card='Wasser Funke'):
    return ContextInsight(player_card, 'Regen', 'Drache', 'Zauberer', delta, ai_card,
                          win_rate, 0.5, observations, lower, lower + width, width,
                          0.5, entropy)


class TestAnalysis:
    def test_empty_report_shape(self):
        report = empty_analysis()
        assert report['totalContexts'] == 0
        assert report['bestContext'] is None
        assert report['resamplingPlan'] == []
        assert report['fusionInsights']['totalDecisions'] == 0

    def test_report_from_training(self):
        rounds = rounds_for('Wasser Funke', 55, 60) + rounds_for('Erde Funke', 10, 60)
        report = train_model(rounds).analysis
        assert report['totalContexts'] == DISTINCT_FOCUS_KEYS + 1
        assert report['contextsWithSolidData'] == 1
        assert report['bestContext']['aiCard'] == 'Wasser Funke'
        assert report['topContexts'][0]['playerCard'] == 'Feuer Funke'
        counters = {row['playerElement']: row for row in report['elementCounterInsights']}
        assert counters['Feuer']['counters'][0]['aiCard'] == 'Wasser Funke'

    def test_resampling_plan_order_and_skip(self):
        plan = build_resampling_plan([
            insight(80, 0.7, win_rate=0.8, width=0.1),
            insight(20, 0.45),
            insight(5, 0.2),
            insight(0, 0.0, width=1.0),
        ])
        assert [p['priority'] for p in plan] == ['MAX', 'HIGH', 'MED']
        assert plan[0]['targetObservations'] == 25
        assert 'no observations' in plan[0]['rationale']

    def test_resampling_plan_is_capped(self):
        plan = build_resampling_plan([insight(0, 0.0) for _ in range(20)])
        assert len(plan) == MAX_RESAMPLING

    def test_entropy_alerts(self):
        builder = AnalysisBuilder()
        builder.add_context(insight(30, 0.6, entropy=0.1), {'Wasser Funke': [20, 30]}, 20, 30)
        builder.add_context(insight(30, 0.6, entropy=0.9, player_card='Erde Funke'),
                            {'Wasser Funke': [20, 30]}, 20, 30)
        report = builder.finish([])
        assert len(report['decisionEntropyAlerts']) == 1
        assert report['decisionEntropyAlerts'][0]['entropy'] == 0.1

    def test_fusion_insights(self):
        samples = [
            sample(PLAYER_WINS, 'fuse', 2.0, 'Feuer Elementar'),
            sample(PLAYER_WINS, 'skip', -1.0),
            sample(AI_WINS, 'fuse', 4.0, 'Feuer Elementar'),
            sample(AI_WINS, 'fuse', 1.0, 'Erde Avatar'),
        ]
        report = build_fusion_insights(samples)
        assert report['totalDecisions'] == 4
        assert report['fuseDecisions'] == 3
        assert report['fuseRate'] == pytest.approx(0.75)
        assert report['averageFusedGain'] == pytest.approx(7 / 3)
        assert report['byActor'][PLAYER_WINS]['fuseRate'] == pytest.approx(0.5)
        assert report['byActor'][AI_WINS]['averageGain'] == pytest.approx(2.5)
        assert report['topFusedCards'][0] == {'card': 'Feuer Elementar', 'count': 2}

    def test_training_carries_fusion_samples(self):
        rounds = [make_round('Wasser Funke', AI_WINS,
                             fusion_decisions=[sample(AI_WINS, 'fuse', 1.5, 'Wasser Nova')])]
        report = train_model(rounds).analysis
        assert report['fusionInsights']['fuseDecisions'] == 1
