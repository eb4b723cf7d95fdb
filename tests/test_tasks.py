"""Tests for the task protocol and the command line interface."""

import json
import os
import tempfile

import pytest

from cli import create_parser, main
from core.progress import CancellationToken
from core.tasks import (MessageType, TaskAction, TaskRequest, TaskRunner,
                        create_default_runner)


def run(runner, action, payload, token=None):
    messages = []
    result = runner.run(TaskRequest.create(action, payload), messages.append, token)
    return result, messages


# ── Task Runner Tests ─────────────────────────────────────────────────────

class TestTaskRunner:
    def setup_method(self):
        self.runner = create_default_runner()

    def test_request_defaults(self):
        request = TaskRequest.create('train')
        assert request.action is TaskAction.TRAIN
        assert request.game == 'runenkrieg'
        with pytest.raises(ValueError):
            TaskRequest.create('explode')

    def test_chess_simulate(self):
        result, messages = run(self.runner, 'simulate',
                               {'game': 'chess', 'count': 1, 'maxPlies': 2})
        assert len(result) == 1
        assert result[0]['plies'] <= 2
        assert messages[-1]['type'] == MessageType.RESULT.value
        assert all(m['type'] == 'progress' for m in messages[:-1])
        assert messages[0]['progress']['phase'] == 'simulating'

    def test_chess_simulate_then_train(self):
        games, _ = run(self.runner, 'simulate', {'game': 'chess', 'count': 2, 'maxPlies': 6})
        model, messages = run(self.runner, 'train', {'game': 'chess', 'simulations': games})
        assert model['version'] == 1
        assert 'contexts' in model
        assert messages[-1]['type'] == 'result'

    def test_runenkrieg_simulate_then_train(self):
        rounds, _ = run(self.runner, 'simulate',
                        {'count': 1, 'maxRounds': 3, 'focusAugmentation': False})
        assert 0 < len(rounds) <= 3
        assert 'gewinner' in rounds[0]

        model, messages = run(self.runner, 'train', {'simulations': rounds})
        assert model['version'] == 1
        assert model['analysis']['totalContexts'] == len(model['contexts'])
        phases = [m['progress']['phase'] for m in messages if m['type'] == 'progress']
        assert phases[0] == 'initializing'
        assert phases[-1] == 'finalizing'

    def test_unknown_game(self):
        result, messages = run(self.runner, 'simulate', {'game': 'go'})
        assert result is None
        assert len(messages) == 1
        assert messages[0]['type'] == 'error'
        assert 'go' in messages[0]['error']['message']

    def test_cancelled_token(self):
        token = CancellationToken()
        token.cancel()
        result, messages = run(self.runner, 'simulate', {'count': 2}, token)
        assert result is None
        assert messages[-1]['type'] == 'error'
        assert messages[-1]['cancelled'] is True

    def test_handler_failure_reports_stack(self):
        result, messages = run(self.runner, 'train', {'simulations': [{'bad': 1}]})
        assert result is None
        error = messages[-1]
        assert error['type'] == 'error'
        assert 'cancelled' not in error
        assert 'Traceback' in error['error']['stack']

    def test_submit_runs_in_background(self):
        messages = []
        request = TaskRequest.create('simulate', {'game': 'chess', 'count': 1, 'maxPlies': 2})
        thread = self.runner.submit(request, messages.append)
        thread.join(timeout=30)
        assert not thread.is_alive()
        assert messages[-1]['type'] == 'result'
        assert messages[-1]['id'] == request.id
        assert not self.runner.cancel(request.id)

    def test_custom_handler(self):
        runner = TaskRunner()
        runner.register('simulate', 'dummy', lambda payload, progress, token: payload['x'] * 2)
        result, messages = run(runner, 'simulate', {'game': 'dummy', 'x': 21})
        assert result == 42
        assert messages == [{'id': messages[0]['id'], 'action': 'simulate',
                             'type': 'result', 'result': 42}]


# ── CLI Tests ─────────────────────────────────────────────────────────────

class TestCli:
    def test_parser(self):
        args = create_parser().parse_args(['rk-train', '--games', '5', '--continue'])
        assert args.command == 'rk-train'
        assert args.games == 5
        assert args.continue_training

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert 'usage' in capsys.readouterr().out

    def test_config_show_and_save(self, capsys):
        main(['config'])
        shown = json.loads(capsys.readouterr().out)
        assert 'bandit' in shown
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, 'config.json')
            main(['config', '--save', path])
            with open(path) as f:
                assert json.load(f) == shown
            capsys.readouterr()
            main(['--config', path, 'config'])
            assert json.loads(capsys.readouterr().out) == shown

    def test_rk_predict_heuristic(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            main(['rk-predict', 'Feuer Funke', '--hand', 'Wasser Funke', 'Erde Avatar',
                  '--model-dir', tmpdir])
        output = json.loads(capsys.readouterr().out)
        assert output == {'card': 'Erde Avatar', 'source': 'heuristic'}

    def test_rk_predict_bad_label(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            code = main(['rk-predict', 'Holz Funke', '--hand', 'Wasser Funke',
                         '--model-dir', tmpdir])
        assert code == 1
        assert capsys.readouterr().out.startswith('Error:')

    def test_task_command(self, capsys):
        code = main(['task', 'simulate', '--game', 'chess',
                     '--payload', '{"count": 1, "maxPlies": 2}'])
        assert code == 0
        lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert lines[-1]['type'] == 'result'

    def test_task_error_exit_code(self, capsys):
        code = main(['task', 'train', '--payload', '{"simulations": [{"bad": 1}]}'])
        assert code == 1
