"""Game replay over python-chess.

ChessRules is the only place that knows chess rules; everything else
passes Positions around. GameReplayer walks a recorded move list and stops
at the first move the rules reject instead of guessing a correction.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

import chess

from reviewer.engine import Position

logger = logging.getLogger(__name__)


class IllegalReplayMove(ValueError):
    """A recorded move that is not legal in the replayed position."""

    def __init__(self, index: int, move: str, fen: str):
        super().__init__(f"Illegal move {move!r} at ply {index} in {fen}")
        self.index = index
        self.move = move
        self.fen = fen


class Termination(enum.Enum):
    ONGOING = "ongoing"
    CHECKMATE = "checkmate"
    DRAW = "draw"


@dataclass(frozen=True)
class GameStatus:
    termination: Termination
    winner: chess.Color | None = None

    @property
    def is_over(self) -> bool:
        return self.termination != Termination.ONGOING


@dataclass(frozen=True)
class AppliedMove:
    position: Position
    mover: chess.Color
    san: str
    uci: str
    move_number: int    # fullmove number of the position the move was played in


class ChessRules:
    """Rules oracle: move application, terminal state and notation."""

    def initial_position(self) -> Position:
        return Position(fen=chess.STARTING_FEN, turn=chess.WHITE)

    def _board(self, position: Position) -> chess.Board:
        return chess.Board(position.fen)

    def _parse(self, board: chess.Board, notation: str) -> chess.Move | None:
        # Accept SAN or UCI
        try:
            move = board.parse_san(notation)
            # parse_san turns "--" into a null move
            return move if move else None
        except (chess.InvalidMoveError, chess.IllegalMoveError, chess.AmbiguousMoveError):
            pass
        try:
            move = chess.Move.from_uci(notation)
        except (chess.InvalidMoveError, ValueError):
            return None
        return move if move in board.legal_moves else None

    def apply_move(self, position: Position, notation: str, index: int = 0) -> AppliedMove:
        board = self._board(position)
        move = self._parse(board, notation.strip())
        if move is None:
            raise IllegalReplayMove(index, notation, position.fen)
        mover = board.turn
        move_number = board.fullmove_number
        san = board.san(move)
        board.push(move)
        return AppliedMove(
            position=Position(fen=board.fen(), turn=board.turn),
            mover=mover,
            san=san,
            uci=move.uci(),
            move_number=move_number,
        )

    def _status(self, board: chess.Board, claim_draw: bool) -> GameStatus:
        if board.is_checkmate():
            return GameStatus(Termination.CHECKMATE, winner=not board.turn)
        if board.is_stalemate() or board.is_insufficient_material():
            return GameStatus(Termination.DRAW)
        if claim_draw and board.can_claim_draw():
            return GameStatus(Termination.DRAW)
        return GameStatus(Termination.ONGOING)

    def status(self, position: Position) -> GameStatus:
        """Terminal state of a single position (no repetition history)."""
        return self._status(self._board(position), claim_draw=False)

    def game_status(self, initial: Position, ucis: list[str]) -> GameStatus:
        """Terminal state after playing *ucis*, including repetition and
        fifty-move draws."""
        board = self._board(initial)
        for uci in ucis:
            board.push_uci(uci)
        return self._status(board, claim_draw=True)

    def in_check(self, position: Position) -> bool:
        return self._board(position).is_check()

    def to_san(self, position: Position, uci: str) -> str:
        """Render an engine move in SAN, returning the UCI string on failure."""
        try:
            board = self._board(position)
            move = chess.Move.from_uci(uci)
            if move not in board.legal_moves:
                return uci
            return board.san(move)
        except (ValueError, AssertionError):
            return uci


@dataclass(frozen=True)
class PlyStep:
    index: int
    before: Position
    after: Position
    san: str
    uci: str
    mover: chess.Color
    move_number: int


@dataclass
class Replay:
    steps: list[PlyStep] = field(default_factory=list)
    final_position: Position | None = None
    truncated: bool = False
    error: str | None = None


class GameReplayer:
    def __init__(self, rules: ChessRules | None = None):
        self._rules = rules or ChessRules()

    def replay(self, moves: list[str], initial: Position | None = None) -> Replay:
        """Apply *moves* in order. Stops at the first illegal move."""
        position = initial or self._rules.initial_position()
        result = Replay(final_position=position)
        for i, notation in enumerate(moves):
            try:
                applied = self._rules.apply_move(position, notation, index=i)
            except IllegalReplayMove as e:
                logger.warning("Replay stopped: %s", e)
                result.truncated = True
                result.error = str(e)
                break
            result.steps.append(PlyStep(
                index=i,
                before=position,
                after=applied.position,
                san=applied.san,
                uci=applied.uci,
                mover=applied.mover,
                move_number=applied.move_number,
            ))
            position = applied.position
        result.final_position = position
        return result
