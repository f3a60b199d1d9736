"""Post-game analysis loop.

For every ply: evaluate the position before, evaluate the position after,
grade the move, append a MoveRecord. Requests are strictly sequential;
pacing is the oracle's job. A failed evaluation degrades its ply only,
an illegal recorded move truncates the run, and cancellation is honored
between plies.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import chess

from reviewer.classify import DEFAULT_THRESHOLDS, MoveQuality, Thresholds, grade_move
from reviewer.engine import (
    Centipawns,
    EvaluationOracle,
    EvaluationResult,
    MateIn,
    Position,
    degraded_result,
)
from reviewer.replay import ChessRules, GameReplayer, PlyStep, Termination

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
BookMoveCheck = Callable[[Position, str], bool]


@dataclass(frozen=True)
class MoveRecord:
    index: int                      # 0-based ply
    move: str                       # SAN as played
    uci: str
    mover: chess.Color
    move_number: int                # fullmove number, from the position before
    position_after: Position
    evaluation_after: int           # White-absolute centipawns, mates collapsed
    quality: MoveQuality
    annotation: str | None = None
    best_move: str | None = None    # engine best (UCI) in the position before
    delta: int = 0                  # change in the mover's favor
    degraded: bool = False


@dataclass
class AnalysisRun:
    records: list[MoveRecord]
    total: int
    initial_position: Position
    final_position: Position
    truncated: bool = False
    cancelled: bool = False
    error: str | None = None


class AnalysisOrchestrator:
    """Runs one post-game analysis. Create a new instance per run."""

    def __init__(
        self,
        oracle: EvaluationOracle,
        rules: ChessRules | None = None,
        thresholds: Thresholds = DEFAULT_THRESHOLDS,
        retries: int = 1,
        on_progress: ProgressCallback | None = None,
        is_book_move: BookMoveCheck | None = None,
    ):
        self._oracle = oracle
        self._rules = rules or ChessRules()
        self._replayer = GameReplayer(self._rules)
        self._thresholds = thresholds
        self._retries = max(0, retries)
        self._on_progress = on_progress
        self._is_book_move = is_book_move
        self._cancel = asyncio.Event()

    def cancel(self) -> None:
        """Stop after the ply currently being processed."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    async def _evaluate(self, position: Position) -> EvaluationResult:
        status = self._rules.status(position)
        if status.termination == Termination.CHECKMATE:
            return EvaluationResult(score=MateIn(moves=0, winner=status.winner), best_move=None)
        if status.termination == Termination.DRAW:
            return EvaluationResult(score=Centipawns(0), best_move=None)

        result = degraded_result()
        for attempt in range(self._retries + 1):
            try:
                result = await self._oracle.evaluate(position)
            except Exception as e:
                logger.warning("Evaluation backend raised for %s: %s", position.fen, e)
                result = degraded_result()
            if result.ok:
                return result
            logger.info(
                "Degraded evaluation for %s (attempt %d/%d)",
                position.fen, attempt + 1, self._retries + 1,
            )
        return result

    def _grade(
        self, step: PlyStep, before: EvaluationResult, after: EvaluationResult,
    ) -> MoveRecord:
        degraded = before.degraded or after.degraded
        common = dict(
            index=step.index,
            move=step.san,
            uci=step.uci,
            mover=step.mover,
            move_number=step.move_number,
            position_after=step.after,
            evaluation_after=after.centipawns,
            best_move=before.best_move,
            degraded=degraded,
        )
        if self._is_book_move is not None and self._is_book_move(step.before, step.uci):
            return MoveRecord(quality=MoveQuality.BOOK, **common)
        if degraded:
            return MoveRecord(quality=MoveQuality.GOOD, **common)
        grade = grade_move(
            before.score, after.score, step.mover,
            before.best_move, step.uci, self._thresholds,
        )
        return MoveRecord(
            quality=grade.quality, annotation=grade.annotation, delta=grade.delta, **common,
        )

    def _report_progress(self, processed: int, total: int) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(processed, total)
        except Exception as e:
            logger.warning("Progress callback failed: %s", e)

    async def analyze(self, moves: list[str], initial: Position | None = None) -> AnalysisRun:
        initial = initial or self._rules.initial_position()
        replay = self._replayer.replay(moves, initial)
        run = AnalysisRun(
            records=[],
            total=len(moves),
            initial_position=initial,
            final_position=initial,
            truncated=replay.truncated,
            error=replay.error,
        )

        # The position after ply i is the position before ply i+1
        carried: EvaluationResult | None = None
        for step in replay.steps:
            if self.cancelled:
                logger.info("Analysis cancelled after %d plies", len(run.records))
                run.cancelled = True
                break
            before = carried if carried is not None else await self._evaluate(step.before)
            after = await self._evaluate(step.after)
            carried = after if after.ok else None

            run.records.append(self._grade(step, before, after))
            run.final_position = step.after
            self._report_progress(len(run.records), run.total)

        if replay.truncated and not run.cancelled:
            run.final_position = replay.final_position
        return run
