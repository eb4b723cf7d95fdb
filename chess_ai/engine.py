"""
Chess Rules Engine - a game-state wrapper around chess.Board.

python-chess owns the rules (move generation, attacks, castling, en
passant, promotions, repetition-free outcome checks). ChessGame adapts it
to the trainer's vocabulary:

- colors are the strings 'white' / 'black', outcomes 'white', 'black'
  or 'draw' with a reason ('checkmate', 'stalemate', 'fiftyMove')
- moves are Move value objects carrying the flags the heuristics read
- make_move() returns False for illegal or malformed input
- FEN loading fails fast with InvalidFenError / InvalidSquareError but is
  lenient about missing or unparsable clock fields
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union
import math
import re

import chess

from core.errors import InvalidFenError, InvalidSquareError

WHITE = 'white'
BLACK = 'black'
DRAW = 'draw'

FILES = 'abcdefgh'
PIECE_VALUES = {'p': 1, 'n': 3, 'b': 3, 'r': 5, 'q': 9, 'k': 0}

START_FEN = chess.STARTING_FEN
UCI_PATTERN = re.compile(r'^[a-h][1-8][a-h][1-8][qrbn]?$')
FIFTY_MOVE_PLIES = 100


def opposite(color: str) -> str:
    return BLACK if color == WHITE else WHITE


def to_color(color: chess.Color) -> str:
    return WHITE if color == chess.WHITE else BLACK


def from_color(color: str) -> chess.Color:
    return chess.WHITE if color == WHITE else chess.BLACK


def square_to_coords(square: str) -> Tuple[int, int]:
    """'e4' -> (row, col) with row 0 = rank 8. Raises InvalidSquareError on bad notation."""
    if not isinstance(square, str) or len(square) != 2 \
            or square[0] not in FILES or square[1] not in '12345678':
        raise InvalidSquareError(f"Invalid square: {square!r}")
    return 8 - int(square[1]), FILES.index(square[0])


def coords_to_square(row: int, col: int) -> str:
    if not (0 <= row < 8 and 0 <= col < 8):
        raise InvalidSquareError(f"Invalid coordinates: ({row}, {col})")
    return f"{FILES[col]}{8 - row}"


def _parse_clock(text: Optional[str], default: int, minimum: int) -> int:
    if text is None:
        return default
    try:
        value = float(text)
    except ValueError:
        return default
    if math.isnan(value) or math.isinf(value) or value < minimum:
        return default
    return int(value)


# ── Value types ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Piece:
    type: str
    color: str

    @classmethod
    def from_chess(cls, piece: chess.Piece) -> 'Piece':
        return cls(chess.piece_symbol(piece.piece_type), to_color(piece.color))


@dataclass(frozen=True)
class Move:
    """A chess move. Legality is relative to a position, never stored."""
    from_square: str
    to_square: str
    piece: str
    color: str
    captured: Optional[str] = None
    is_capture: bool = False
    is_promotion: bool = False
    promotion: Optional[str] = None
    is_en_passant: bool = False
    is_castle_king_side: bool = False
    is_castle_queen_side: bool = False
    results_in_check: bool = False

    @property
    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"

    @property
    def is_castle(self) -> bool:
        return self.is_castle_king_side or self.is_castle_queen_side


def to_chess_move(move: Move) -> chess.Move:
    promotion = chess.PIECE_SYMBOLS.index(move.promotion) if move.promotion else None
    return chess.Move(chess.parse_square(move.from_square),
                      chess.parse_square(move.to_square), promotion=promotion)


@dataclass
class CastlingRights:
    white_king_side: bool = True
    white_queen_side: bool = True
    black_king_side: bool = True
    black_queen_side: bool = True

    def to_fen(self) -> str:
        rights = ''
        if self.white_king_side:
            rights += 'K'
        if self.white_queen_side:
            rights += 'Q'
        if self.black_king_side:
            rights += 'k'
        if self.black_queen_side:
            rights += 'q'
        return rights or '-'

    @classmethod
    def from_board(cls, board: chess.Board) -> 'CastlingRights':
        return cls(board.has_kingside_castling_rights(chess.WHITE),
                   board.has_queenside_castling_rights(chess.WHITE),
                   board.has_kingside_castling_rights(chess.BLACK),
                   board.has_queenside_castling_rights(chess.BLACK))


# ── Engine ───────────────────────────────────────────────────────────────

class ChessGame:
    """
    Mutable chess position.

    Public contract:
        generate_legal_moves() -> List[Move]
        make_move(move | uci) -> bool   (False for illegal input)
        undo() -> bool
        get_fen() / load_fen(fen)
        is_game_over(), outcome, outcome_reason
    """

    def __init__(self, fen: Optional[str] = None):
        self.board = chess.Board()
        self.outcome: Optional[str] = None
        self.outcome_reason: Optional[str] = None
        self.load_fen(fen or START_FEN)

    @classmethod
    def from_fen(cls, fen: str) -> 'ChessGame':
        return cls(fen)

    def reset(self):
        self.load_fen(START_FEN)

    def copy_board(self) -> chess.Board:
        return self.board.copy()

    @property
    def turn(self) -> str:
        return to_color(self.board.turn)

    @property
    def castling(self) -> CastlingRights:
        return CastlingRights.from_board(self.board)

    @property
    def en_passant(self) -> Optional[str]:
        if self.board.ep_square is None:
            return None
        return chess.square_name(self.board.ep_square)

    @property
    def halfmove_clock(self) -> int:
        return self.board.halfmove_clock

    @property
    def fullmove_number(self) -> int:
        return self.board.fullmove_number

    def result(self) -> Dict[str, Optional[str]]:
        return {'outcome': self.outcome, 'reason': self.outcome_reason}

    def is_game_over(self) -> bool:
        return self.outcome is not None

    def piece_at(self, square: str) -> Optional[Piece]:
        square_to_coords(square)
        piece = self.board.piece_at(chess.parse_square(square))
        return Piece.from_chess(piece) if piece else None

    def is_in_check(self, color: str) -> bool:
        king = self.board.king(from_color(color))
        if king is None:
            return False
        return self.board.is_attacked_by(not from_color(color), king)

    # ── Moves ────────────────────────────────────────────────────────────

    def _to_move(self, move: chess.Move) -> Move:
        board = self.board
        piece = board.piece_at(move.from_square)
        en_passant = board.is_en_passant(move)
        if en_passant:
            captured = 'p'
        else:
            target = board.piece_at(move.to_square)
            captured = chess.piece_symbol(target.piece_type) if target else None
        promotion = chess.piece_symbol(move.promotion) if move.promotion else None
        return Move(
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            piece=chess.piece_symbol(piece.piece_type),
            color=to_color(piece.color),
            captured=captured,
            is_capture=captured is not None,
            is_promotion=promotion is not None,
            promotion=promotion,
            is_en_passant=en_passant,
            is_castle_king_side=board.is_kingside_castling(move),
            is_castle_queen_side=board.is_queenside_castling(move),
            results_in_check=board.gives_check(move),
        )

    def generate_legal_moves(self) -> List[Move]:
        return [self._to_move(move) for move in self.board.legal_moves]

    def parse_uci(self, uci: str) -> Optional[chess.Move]:
        """UCI text -> chess.Move; None if it can't be one"""
        if not isinstance(uci, str) or not UCI_PATTERN.match(uci):
            return None
        try:
            return chess.Move.from_uci(uci)
        except ValueError:
            return None

    def find_legal_move(self, candidate: Union[Move, str]) -> Optional[chess.Move]:
        move = self.parse_uci(candidate) if isinstance(candidate, str) else to_chess_move(candidate)
        if move is None:
            return None
        # Bare promotion input defaults to a queen
        if move.promotion is None and self.board.piece_type_at(move.from_square) == chess.PAWN \
                and chess.square_rank(move.to_square) in (0, 7):
            move = chess.Move(move.from_square, move.to_square, promotion=chess.QUEEN)
        return move if self.board.is_legal(move) else None

    def make_move(self, candidate: Union[Move, str]) -> bool:
        move = self.find_legal_move(candidate)
        if move is None:
            return False
        self.board.push(move)
        self._update_game_state()
        return True

    def undo(self) -> bool:
        if not self.board.move_stack:
            return False
        self.board.pop()
        self._update_game_state()
        return True

    def _update_game_state(self):
        board = self.board
        if board.is_checkmate():
            self.outcome = to_color(not board.turn)
            self.outcome_reason = 'checkmate'
        elif board.is_stalemate():
            self.outcome = DRAW
            self.outcome_reason = 'stalemate'
        elif board.halfmove_clock >= FIFTY_MOVE_PLIES:
            self.outcome = DRAW
            self.outcome_reason = 'fiftyMove'
        else:
            self.outcome = None
            self.outcome_reason = None

    @staticmethod
    def to_uci(move: Move) -> str:
        return move.uci

    def material_balance(self, color: str) -> int:
        own = from_color(color)
        total = 0
        for piece in self.board.piece_map().values():
            value = PIECE_VALUES[chess.piece_symbol(piece.piece_type)]
            total += value if piece.color == own else -value
        return total

    # ── FEN ──────────────────────────────────────────────────────────────

    def get_fen(self) -> str:
        """FEN with the en passant square written after every double push"""
        return self.board.fen(en_passant='fen')

    def load_fen(self, fen: str):
        if not isinstance(fen, str):
            raise InvalidFenError(f"FEN must be a string, got {type(fen).__name__}")
        parts = fen.strip().split()
        if len(parts) < 4:
            raise InvalidFenError(f"FEN needs at least 4 fields: {fen!r}")
        if parts[3] != '-':
            square_to_coords(parts[3])

        halfmove = _parse_clock(parts[4] if len(parts) > 4 else None, 0, 0)
        fullmove = _parse_clock(parts[5] if len(parts) > 5 else None, 1, 1)
        normalized = ' '.join(parts[:4] + [str(halfmove), str(fullmove)])

        try:
            board = chess.Board(normalized)
        except ValueError as e:
            raise InvalidFenError(f"Invalid FEN {fen!r}: {e}") from e

        self.board = board
        self._update_game_state()
