"""Evaluation data model and the oracle contract shared by both backends.

Scores are always White-absolute: positive favors White. Backends that
receive side-to-move relative numbers (UCI engines) normalize before
building any of these objects.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field

import chess


# Stand-in magnitude for forced mate; dominates every finite threshold.
MATE_SCORE = 100_000


@dataclass(frozen=True)
class Centipawns:
    cp: int


@dataclass(frozen=True)
class MateIn:
    """Forced mate in *moves* for *winner*. moves == 0 means already mated."""
    moves: int
    winner: chess.Color


Score = Centipawns | MateIn


def to_centipawns(score: Score) -> int:
    """Collapse a score into a single comparable centipawn integer.

    Mates map to +/-(MATE_SCORE - moves), so a closer mate has a strictly
    larger magnitude than a farther one.
    """
    if isinstance(score, MateIn):
        sign = 1 if score.winner == chess.WHITE else -1
        return sign * (MATE_SCORE - score.moves)
    return score.cp


def format_score(score: Score) -> str:
    """Human-readable score: pawns with two decimals, or #N / #-N for mates."""
    if isinstance(score, MateIn):
        sign = "" if score.winner == chess.WHITE else "-"
        return f"#{sign}{score.moves}"
    return f"{score.cp / 100:.2f}"


@dataclass(frozen=True)
class Position:
    """Serialized board state (FEN) plus the side to move."""
    fen: str
    turn: chess.Color

    @classmethod
    def from_fen(cls, fen: str) -> Position:
        """Raises ValueError for unparseable FENs and illegal positions."""
        try:
            board = chess.Board(fen)
        except ValueError as e:
            raise ValueError(f"Invalid FEN: {fen}") from e
        if not board.is_valid():
            raise ValueError(f"Illegal position: {fen}")
        return cls(fen=board.fen(), turn=board.turn)


@dataclass(frozen=True)
class EngineLine:
    """One ranked principal variation."""
    rank: int                   # 1 = best
    moves: list[str]            # UCI, truncated to a short prefix
    score: Score


@dataclass(frozen=True)
class EvaluationResult:
    score: Score
    best_move: str | None       # UCI
    ok: bool = True
    lines: list[EngineLine] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return not self.ok

    @property
    def centipawns(self) -> int:
        return to_centipawns(self.score)


def degraded_result() -> EvaluationResult:
    """Placeholder used whenever a backend cannot produce a real evaluation."""
    return EvaluationResult(score=Centipawns(0), best_move=None, ok=False)


def result_from_lines(lines: list[EngineLine]) -> EvaluationResult:
    """Build an EvaluationResult from ranked lines; empty input is degraded."""
    if not lines:
        return degraded_result()
    top = lines[0]
    return EvaluationResult(
        score=top.score,
        best_move=top.moves[0] if top.moves else None,
        ok=True,
        lines=list(lines),
    )


class EvaluationOracle(abc.ABC):
    """Position evaluator. Implementations never raise on backend failure;
    they return a degraded result (or an empty line list) instead."""

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    @abc.abstractmethod
    async def evaluate(self, position: Position) -> EvaluationResult:
        ...

    @abc.abstractmethod
    async def evaluate_top(self, position: Position, n: int = 3) -> list[EngineLine]:
        ...
