"""Move quality classification.

Grades a move by how much it changed the evaluation in the mover's favor.
Everything here is a pure function of its inputs so the thresholds can be
tested in isolation from any engine.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

import chess

from reviewer.engine import Score, to_centipawns


# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------


class MoveQuality(enum.Enum):
    BRILLIANT = "brilliant"
    GREAT = "great"
    GOOD = "good"
    INACCURACY = "inaccuracy"
    MISTAKE = "mistake"
    BLUNDER = "blunder"
    BOOK = "book"  # assigned upstream from an opening reference, never here

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]


_SYMBOLS = {
    MoveQuality.BRILLIANT: "!!",
    MoveQuality.GREAT: "!",
    MoveQuality.GOOD: "",
    MoveQuality.INACCURACY: "?!",
    MoveQuality.MISTAKE: "?",
    MoveQuality.BLUNDER: "??",
    MoveQuality.BOOK: "",
}

KEY_MOMENT_QUALITIES = frozenset({
    MoveQuality.MISTAKE, MoveQuality.BLUNDER, MoveQuality.BRILLIANT,
})


@dataclass(frozen=True)
class Thresholds:
    """Inclusive lower bounds on the signed centipawn change, best tier first."""
    great: int = -10
    good: int = -40
    inaccuracy: int = -100
    mistake: int = -200
    annotate_below: int = -100


DEFAULT_THRESHOLDS = Thresholds()


@dataclass(frozen=True)
class Grade:
    quality: MoveQuality
    delta: int
    annotation: str | None = None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _cp(value: Score | int) -> int:
    if isinstance(value, int):
        return value
    return to_centipawns(value)


def signed_delta(eval_before: Score | int, eval_after: Score | int, mover: chess.Color) -> int:
    """Evaluation change in the mover's own favor.

    Evaluations are White-absolute, so the raw difference is flipped for
    Black. Mate scores are collapsed to centipawns first.
    """
    perspective = 1 if mover == chess.WHITE else -1
    return (_cp(eval_after) - _cp(eval_before)) * perspective


def classify_delta(delta: int, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> MoveQuality:
    if delta >= thresholds.great:
        return MoveQuality.GREAT
    if delta >= thresholds.good:
        return MoveQuality.GOOD
    if delta >= thresholds.inaccuracy:
        return MoveQuality.INACCURACY
    if delta >= thresholds.mistake:
        return MoveQuality.MISTAKE
    return MoveQuality.BLUNDER


def classify_move(
    eval_before: Score | int,
    eval_after: Score | int,
    mover: chess.Color,
    best_move: str | None,
    actual_move: str,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> MoveQuality:
    """Tier a move. Playing the engine's best move is always brilliant."""
    if best_move is not None and actual_move == best_move:
        return MoveQuality.BRILLIANT
    return classify_delta(signed_delta(eval_before, eval_after, mover), thresholds)


def pawns_lost(delta: int) -> int:
    """Whole pawns in |delta|, rounding halves up (250cp -> 3)."""
    return (abs(delta) + 50) // 100


def annotate(delta: int, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> str | None:
    if delta >= thresholds.annotate_below:
        return None
    return f"Lost {pawns_lost(delta)} pawns of advantage"


def grade_move(
    eval_before: Score | int,
    eval_after: Score | int,
    mover: chess.Color,
    best_move: str | None,
    actual_move: str,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> Grade:
    delta = signed_delta(eval_before, eval_after, mover)
    quality = classify_move(eval_before, eval_after, mover, best_move, actual_move, thresholds)
    return Grade(quality=quality, delta=delta, annotation=annotate(delta, thresholds))
