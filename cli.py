#!/usr/bin/env python3
"""
Runenkrieg - Command Line Interface

Train and query the chess and Runenkrieg models.

Usage:
    python cli.py chess-train --games 200 --save-dir models
    python cli.py chess-move "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"
    python cli.py rk-train --games 500 --save-dir models
    python cli.py rk-predict "Feuer Funke" --hand "Wasser Funke" "Erde Flamme"
    python cli.py task simulate --game chess --payload '{"count": 3}'
"""

import argparse
import json
import logging
import sys

from core.config import AppConfig
from core.errors import RunenkriegError
from core.tasks import TaskRequest, create_default_runner


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='runenkrieg',
        description='Runenkrieg chess and card-duel trainers'
    )
    parser.add_argument('--verbose', '-v', action='store_true',
                       help='Verbose output')
    parser.add_argument('--config', '-c', type=str, default=None,
                       help='Configuration file (JSON); defaults to environment settings')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Chess training
    chess_train = subparsers.add_parser('chess-train', help='Self-play and train the chess model')
    chess_train.add_argument('--games', '-g', type=int, default=100,
                             help='Number of self-play games')
    chess_train.add_argument('--max-plies', type=int, default=None,
                             help='Ply cap per game')
    chess_train.add_argument('--randomness', type=float, default=None,
                             help='Jitter added to heuristic move scores')
    chess_train.add_argument('--accelerator', action='store_true',
                             help='Use the numpy batch path for aggregation')
    chess_train.add_argument('--save-dir', type=str, default=None,
                             help='Model directory (default: config storage dir)')
    chess_train.add_argument('--pgn', type=str, default=None,
                             help='Also write the simulated games to this PGN file')

    # Chess move query
    chess_move = subparsers.add_parser('chess-move', help='Recommend a move for a FEN')
    chess_move.add_argument('fen', type=str, help='Position in FEN')
    chess_move.add_argument('--color', choices=['white', 'black'], default=None,
                            help='Side to move (default: taken from the FEN)')
    chess_move.add_argument('--model-dir', type=str, default=None,
                            help='Model directory')

    # Runenkrieg training
    rk_train = subparsers.add_parser('rk-train', help='Simulate duels and train the card model')
    rk_train.add_argument('--games', '-g', type=int, default=500,
                          help='Number of simulated games')
    rk_train.add_argument('--continue', dest='continue_training', action='store_true',
                          help='Continue from the stored model')
    rk_train.add_argument('--accelerator', action='store_true',
                          help='Use the numpy batch path for Wilson intervals')
    rk_train.add_argument('--save-dir', type=str, default=None,
                          help='Model directory')
    rk_train.add_argument('--export', type=str, default=None,
                          help='Also export the trained model to this JSON file')

    # Runenkrieg prediction
    rk_predict = subparsers.add_parser('rk-predict', help='Pick the AI answer to a player card')
    rk_predict.add_argument('player_card', type=str, help='Player card label, e.g. "Feuer Funke"')
    rk_predict.add_argument('--hand', type=str, nargs='+', required=True,
                            help='AI hand as card labels')
    rk_predict.add_argument('--weather', type=str, default='Regen')
    rk_predict.add_argument('--player-hero', type=str, default='Drache')
    rk_predict.add_argument('--ai-hero', type=str, default='Zauberer')
    rk_predict.add_argument('--player-tokens', type=int, default=5)
    rk_predict.add_argument('--ai-tokens', type=int, default=5)
    rk_predict.add_argument('--model-dir', type=str, default=None,
                            help='Model directory')

    # Background task protocol
    task = subparsers.add_parser('task', help='Run a simulate/train task and print its messages')
    task.add_argument('action', choices=['simulate', 'train'])
    task.add_argument('--game', choices=['chess', 'runenkrieg'], default='runenkrieg')
    task.add_argument('--payload', type=str, default='{}',
                      help='Payload as inline JSON or a .json file')

    # Config
    config = subparsers.add_parser('config', help='Show or save the effective configuration')
    config.add_argument('--save', type=str, default=None,
                        help='Write the configuration to this file')

    return parser


def load_config(args) -> AppConfig:
    if args.config:
        return AppConfig.load(args.config)
    return AppConfig.from_env()


def cmd_chess_train(args, config: AppConfig):
    """Self-play, train and save the chess model"""
    from chess_ai.chess_agent import ChessAgent
    from chess_ai.export import export_pgn

    agent = ChessAgent()
    result = agent.train(
        games=args.games,
        max_plies=args.max_plies or config.chess.max_plies,
        randomness=args.randomness if args.randomness is not None else config.chess.randomness,
        prefer_accelerator=args.accelerator or config.chess.prefer_accelerator,
        save_dir=args.save_dir or config.storage.model_dir,
    )
    if args.pgn:
        written = export_pgn(result['simulations'], args.pgn)
        print(f"  PGN games:      {written} -> {args.pgn}")


def cmd_chess_move(args, config: AppConfig):
    """Recommend a move for a position"""
    from chess_ai.chess_agent import ChessAgent
    from chess_ai.engine import ChessGame

    agent = ChessAgent()
    if not agent.load(args.model_dir or config.storage.model_dir):
        print("No trained chess model found, falling back to a random legal move")

    color = args.color or ChessGame(args.fen).turn
    suggestion = agent.choose_move(args.fen, color)
    print(json.dumps(suggestion.to_dict(), indent=2))


def cmd_rk_train(args, config: AppConfig):
    """Simulate duels, aggregate them and save the card model"""
    from runenkrieg.agent import CardAgent

    save_dir = args.save_dir or config.storage.model_dir
    agent = CardAgent.load(save_dir)
    agent.bandit.epsilon = config.bandit.epsilon
    agent.train(
        games=args.games,
        base_model=args.continue_training,
        prefer_accelerator=args.accelerator or config.training.prefer_accelerator,
        save_dir=save_dir,
    )
    if args.export:
        agent.export_model(args.export)
        print(f"Exported model to {args.export}")


def cmd_rk_predict(args, config: AppConfig):
    """Choose the AI card against a player card"""
    from runenkrieg.agent import CardAgent, TableState
    from runenkrieg.cards import card_from_label

    agent = CardAgent.load(args.model_dir or config.storage.model_dir)
    player_card = card_from_label(args.player_card)
    hand = [card_from_label(label, card_id=f"hand-{i}") for i, label in enumerate(args.hand)]
    state = TableState(
        player_tokens=args.player_tokens,
        ai_tokens=args.ai_tokens,
        weather=args.weather,
        player_hero=args.player_hero,
        ai_hero=args.ai_hero,
    )
    card = agent.choose_card(player_card, hand, state)
    source = 'model' if agent.is_trained else 'heuristic'
    print(json.dumps({'card': card.label, 'source': source}, indent=2, ensure_ascii=False))


def cmd_task(args, config: AppConfig):
    """Run one task request inline, printing every message as a JSON line"""
    if args.payload.endswith('.json'):
        with open(args.payload, 'r') as f:
            payload = json.load(f)
    else:
        payload = json.loads(args.payload)
    payload['game'] = args.game

    runner = create_default_runner(config)
    request = TaskRequest.create(args.action, payload)
    messages = []

    def emit(message):
        messages.append(message)
        print(json.dumps(message, ensure_ascii=False))

    runner.run(request, emit)
    return 1 if messages and messages[-1]['type'] == 'error' else 0


def cmd_config(args, config: AppConfig):
    """Show or save configuration"""
    if args.save:
        config.save(args.save)
        print(f"Configuration saved to {args.save}")
    else:
        print(json.dumps(config.to_dict(), indent=2))


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    if not args.command:
        parser.print_help()
        return 0

    # Map commands to functions
    commands = {
        'chess-train': cmd_chess_train,
        'chess-move': cmd_chess_move,
        'rk-train': cmd_rk_train,
        'rk-predict': cmd_rk_predict,
        'task': cmd_task,
        'config': cmd_config,
    }

    if args.command not in commands:
        parser.print_help()
        return 1

    try:
        return commands[args.command](args, load_config(args))
    except (RunenkriegError, ValueError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main() or 0)
