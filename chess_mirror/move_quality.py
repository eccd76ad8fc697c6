"""
Move parsing and the one-ply move quality heuristic.

A move is a "blunder" when the piece that just moved can be captured on its
destination square by any legal reply. This is a hanging-piece check, not a
tactical evaluation: it looks exactly one ply ahead, which keeps it cheap and
deterministic.
"""

from typing import Optional

import chess
from chess import BISHOP, KING, KNIGHT, PAWN, QUEEN, ROOK

from .errors import InvalidMoveError
from .profile_stats import MoveQuality


# Material values (king excluded from material counting)
PIECE_VALUES = {
    PAWN: 1,
    KNIGHT: 3,
    BISHOP: 3,
    ROOK: 5,
    QUEEN: 9,
    KING: 0,
}


def parse_move(
    board: chess.Board,
    move_from: str,
    move_to: str,
    promotion: Optional[str] = None,
) -> chess.Move:
    """
    Build a legal move from its squares.

    A pawn reaching the last rank without an explicit promotion piece is
    promoted to a queen.

    Args:
        board: Position before the move.
        move_from: Origin square, e.g. "e2".
        move_to: Destination square, e.g. "e4".
        promotion: Optional promotion piece symbol ("q", "r", "b", "n").

    Raises:
        InvalidMoveError: If the squares don't parse or the move is illegal.
    """
    uci = f"{move_from}{move_to}{promotion or ''}".lower()
    try:
        from_square = chess.parse_square(move_from.lower())
        to_square = chess.parse_square(move_to.lower())
        promotion_piece = chess.Piece.from_symbol(promotion).piece_type if promotion else None
    except ValueError:
        raise InvalidMoveError(board.fen(), uci, "unparsable move")

    piece = board.piece_at(from_square)
    if (
        promotion_piece is None
        and piece is not None
        and piece.piece_type == PAWN
        and chess.square_rank(to_square) in (0, 7)
    ):
        promotion_piece = QUEEN

    move = chess.Move(from_square, to_square, promotion=promotion_piece)
    if not board.is_legal(move):
        raise InvalidMoveError(board.fen(), move.uci())
    return move


def label_move_quality(board_before: chess.Board, move: chess.Move) -> MoveQuality:
    """
    Label a move by whether the moved piece is left hanging.

    Args:
        board_before: Position before the move (not modified).
        move: The legal move that was played.

    Returns:
        MoveQuality.BLUNDER if any legal reply captures on move.to_square,
        MoveQuality.GOOD otherwise.
    """
    board_after = board_before.copy(stack=False)
    board_after.push(move)

    for reply in board_after.legal_moves:
        if reply.to_square == move.to_square and board_after.is_capture(reply):
            return MoveQuality.BLUNDER
    return MoveQuality.GOOD


def material_eval(board: chess.Board, color: Optional[chess.Color] = None) -> int:
    """
    Material balance from one side's perspective.

    Args:
        board: Position to evaluate.
        color: Perspective; defaults to the side to move.

    Returns:
        Sum of own piece values minus the opponent's.
    """
    if color is None:
        color = board.turn

    balance = 0
    for piece_type, value in PIECE_VALUES.items():
        if value == 0:
            continue
        balance += value * len(board.pieces(piece_type, color))
        balance -= value * len(board.pieces(piece_type, not color))
    return balance
