"""Test doubles shared across test modules."""

import chess

from reviewer.engine import (
    Centipawns,
    EngineLine,
    EvaluationOracle,
    EvaluationResult,
    Position,
    degraded_result,
)


def positions_for(moves: list[str], fen: str = chess.STARTING_FEN) -> list[Position]:
    """Positions before the first move and after each move."""
    board = chess.Board(fen)
    out = [Position(fen=board.fen(), turn=board.turn)]
    for san in moves:
        board.push_san(san)
        out.append(Position(fen=board.fen(), turn=board.turn))
    return out


def cp_result(cp: int, best: str | None = None) -> EvaluationResult:
    line = EngineLine(rank=1, moves=[best] if best else [], score=Centipawns(cp))
    return EvaluationResult(score=Centipawns(cp), best_move=best, lines=[line])


class ScriptedOracle(EvaluationOracle):
    """Answers from a FEN-keyed table; unknown positions are degraded."""

    def __init__(self, table: dict[str, EvaluationResult] | None = None):
        self.table = table or {}
        self.calls: list[str] = []
        self.started = 0
        self.stopped = 0

    async def start(self) -> None:
        self.started += 1

    async def stop(self) -> None:
        self.stopped += 1

    async def evaluate(self, position: Position) -> EvaluationResult:
        self.calls.append(position.fen)
        return self.table.get(position.fen, degraded_result())

    async def evaluate_top(self, position: Position, n: int = 3) -> list[EngineLine]:
        self.calls.append(position.fen)
        result = self.table.get(position.fen)
        return result.lines[:n] if result else []


class FailingOracle(EvaluationOracle):
    """Backend that blows up on every request."""

    def __init__(self):
        self.calls = 0

    async def evaluate(self, position: Position) -> EvaluationResult:
        self.calls += 1
        raise RuntimeError("backend unavailable")

    async def evaluate_top(self, position: Position, n: int = 3) -> list[EngineLine]:
        raise RuntimeError("backend unavailable")
