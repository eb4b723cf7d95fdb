"""
Simulation Summary - aggregate statistics over self-play chess games.

Besides win/draw counts and popular openings, each game is replayed to
profile playing style per color and map it onto the card game's rune
mechanics:

    Überladung    <-> sacrifices
    Resonanz      <-> piece coordination (opponent mobility taken away)
    Wetterbindung <-> pawn structure
"""

from collections import OrderedDict
from typing import Any, Dict, List

from core.stats import entropy
from chess_ai.engine import BLACK, WHITE, ChessGame, opposite

SACRIFICE_SCALE = 0.12
SYNERGY_SCALE = 3.5
STRUCTURE_SCALE = 1.6

# (rune mechanic, chess concept, summary key)
RESONANCE_LINKS = (
    ('Überladung', 'Sacrifice combinations', 'sacrifices'),
    ('Resonanz', 'Piece coordination', 'synergy'),
    ('Wetterbindung', 'Pawn structure (open/closed)', 'structure'),
)

COMMENTARY = {
    'sacrifices': {
        'balanced': 'Both sides sacrifice at a similar rate; risk is spread evenly.',
        WHITE: 'White starts sacrifice combinations more often and forces overload.',
        BLACK: 'Black uses sacrifice combinations more proactively and forces overload.',
    },
    'synergy': {
        'balanced': 'Piece coordination is even on both sides.',
        WHITE: 'White bundles pieces into pressure waves more often.',
        BLACK: 'Black coordinates pieces more tightly and builds resonance pressure.',
    },
    'structure': {
        'balanced': 'Both sides shape the pawn structure equally.',
        WHITE: 'White dictates the structural climate and binds the board more often.',
        BLACK: 'Black locks the board more often and controls the structure.',
    },
}


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def dominant_color(white: float, black: float, epsilon: float = 0.01) -> str:
    if white + black <= epsilon:
        return 'balanced'
    if white > black + epsilon:
        return WHITE
    if black > white + epsilon:
        return BLACK
    return 'balanced'


def describe_balance(balance: float, rune: str, concept: str, total: float) -> str:
    if total <= 0.001:
        return f"No {concept.lower()} patterns visible yet."
    if abs(balance) < 0.15:
        return f"{rune} <-> {concept} is balanced."
    if balance > 0:
        return f"White drives {concept.lower()} ({rune}) harder."
    return f"Black dominates {concept.lower()} ({rune})."


def default_resonance_mapping() -> List[Dict[str, Any]]:
    return [{
        'rune': rune,
        'chessPattern': concept,
        'intensity': 0.0,
        'dominantColor': 'balanced',
        'commentary': f"No {concept.lower()} analysed yet.",
    } for rune, concept, _ in RESONANCE_LINKS]


def default_learning_balance() -> List[Dict[str, Any]]:
    return [{
        'runeMechanic': rune,
        'chessConcept': concept,
        'whiteScore': 0.0,
        'blackScore': 0.0,
        'balance': 0.0,
        'description': f"No {concept.lower()} observed in simulations yet.",
    } for rune, concept, _ in RESONANCE_LINKS]


def empty_summary() -> Dict[str, Any]:
    return {
        'totalGames': 0,
        'whiteWins': 0,
        'blackWins': 0,
        'draws': 0,
        'averagePlies': 0.0,
        'decisiveRate': 0.0,
        'topOpenings': [],
        'entropyWhite': 0.0,
        'entropyBlack': 0.0,
        'entropyDelta': 0.0,
        'resonanceMapping': default_resonance_mapping(),
        'learningBalance': default_learning_balance(),
    }


def _mobility(fen: str, color: str) -> int:
    """Legal move count for `color` with the side to move forced to it"""
    parts = fen.split(' ')
    parts[1] = 'w' if color == WHITE else 'b'
    return len(ChessGame(' '.join(parts)).generate_legal_moves())


def _profile_move(record, aggregates: Dict[str, Dict[str, float]]):
    mover = record.color
    opponent = opposite(mover)
    aggregate = aggregates[mover]
    aggregate['moves'] += 1

    before = ChessGame(record.fen)
    material_before = before.material_balance(mover)
    opponent_material_before = before.material_balance(opponent)
    opponent_mobility_before = _mobility(record.fen, opponent)
    moving = before.piece_at(record.move[:2])
    is_pawn_move = moving is not None and moving.type == 'p'

    if not before.make_move(record.move):
        return

    material_swing = before.material_balance(mover) - material_before
    opponent_swing = before.material_balance(opponent) - opponent_material_before
    opponent_mobility_after = len(before.generate_legal_moves())
    gave_check = before.is_in_check(opponent)

    is_capture = opponent_swing < -0.1
    synergy_gain = max(0, opponent_mobility_before - opponent_mobility_after)

    structure_gain = 0.0
    if is_pawn_move and not is_capture:
        structure_gain += 1 + (0.4 if synergy_gain > 0 else 0)
    elif not is_pawn_move and not is_capture and synergy_gain <= 0 and abs(material_swing) < 0.5:
        structure_gain += 0.2

    if material_swing <= -3 and (gave_check or synergy_gain >= 2):
        aggregate['sacrifices'] += 1

    aggregate['synergy'] += synergy_gain
    aggregate['structure'] += structure_gain
    aggregate['aggression'] += (1 if is_capture else 0) + (0.7 if gave_check else 0)


def summarize_chess_simulations(simulations) -> Dict[str, Any]:
    """Summarize a list of ChessSimulationResult"""
    if not simulations:
        return empty_summary()

    white_wins = black_wins = draws = 0
    total_plies = 0
    openings: Dict[str, Dict[str, int]] = OrderedDict()
    aggregates = {
        color: {'moves': 0, 'sacrifices': 0, 'synergy': 0.0, 'structure': 0.0, 'aggression': 0.0}
        for color in (WHITE, BLACK)
    }

    for game in simulations:
        total_plies += game.plies
        if game.winner == WHITE:
            white_wins += 1
        elif game.winner == BLACK:
            black_wins += 1
        else:
            draws += 1

        entry = openings.setdefault(game.opening_sequence,
                                    {'count': 0, 'whiteWins': 0, 'blackWins': 0})
        entry['count'] += 1
        if game.winner == WHITE:
            entry['whiteWins'] += 1
        elif game.winner == BLACK:
            entry['blackWins'] += 1

        for record in game.moves:
            _profile_move(record, aggregates)

    top_openings = []
    for sequence, data in openings.items():
        if not sequence:
            continue
        opening_draws = data['count'] - data['whiteWins'] - data['blackWins']
        top_openings.append({
            'sequence': sequence,
            'count': data['count'],
            'winRate': (data['whiteWins'] + 0.5 * opening_draws) / data['count'],
        })
    top_openings.sort(key=lambda o: o['count'], reverse=True)

    total = len(simulations)
    white_rate = white_wins / total
    draw_rate = draws / total
    black_rate = black_wins / total
    entropy_white = entropy([white_rate, draw_rate, black_rate])
    entropy_black = entropy([black_rate, draw_rate, white_rate])

    def rate(color, key):
        moves = aggregates[color]['moves']
        return aggregates[color][key] / moves if moves > 0 else 0.0

    scales = {'sacrifices': SACRIFICE_SCALE, 'synergy': SYNERGY_SCALE, 'structure': STRUCTURE_SCALE}
    resonance_mapping = []
    learning_balance = []
    for rune, concept, key in RESONANCE_LINKS:
        white_score = rate(WHITE, key)
        black_score = rate(BLACK, key)
        combined = white_score + black_score
        dominant = dominant_color(white_score, black_score)
        balance = (white_score - black_score) / combined if combined > 0 else 0.0

        resonance_mapping.append({
            'rune': rune,
            'chessPattern': concept,
            'intensity': clamp01(combined / 2 / scales[key]),
            'dominantColor': dominant,
            'commentary': COMMENTARY[key][dominant],
        })
        learning_balance.append({
            'runeMechanic': rune,
            'chessConcept': concept,
            'whiteScore': white_score,
            'blackScore': black_score,
            'balance': balance,
            'description': describe_balance(balance, rune, concept, combined),
        })

    return {
        'totalGames': total,
        'whiteWins': white_wins,
        'blackWins': black_wins,
        'draws': draws,
        'averagePlies': total_plies / total,
        'decisiveRate': (white_wins + black_wins) / total,
        'topOpenings': top_openings[:5],
        'entropyWhite': entropy_white,
        'entropyBlack': entropy_black,
        'entropyDelta': entropy_white - entropy_black,
        'resonanceMapping': resonance_mapping,
        'learningBalance': learning_balance,
    }
