"""Tests for move quality classification."""

import chess
import pytest

from reviewer.classify import (
    MoveQuality,
    Thresholds,
    annotate,
    classify_delta,
    classify_move,
    grade_move,
    pawns_lost,
    signed_delta,
)
from reviewer.engine import Centipawns, MateIn


# ---------------------------------------------------------------------------
# Perspective
# ---------------------------------------------------------------------------


class TestSignedDelta:
    def test_white_losing_eval_is_negative(self):
        assert signed_delta(50, -20, chess.WHITE) == -70

    def test_black_gaining_when_eval_drops(self):
        # Eval moving toward Black is good for Black
        assert signed_delta(0, -50, chess.BLACK) == 50

    def test_black_losing_when_eval_rises(self):
        assert signed_delta(-30, 120, chess.BLACK) == -150

    def test_accepts_scores(self):
        assert signed_delta(Centipawns(10), Centipawns(40), chess.WHITE) == 30

    def test_mate_collapsed_before_delta(self):
        # White had mate in 3, played a move that only keeps +5
        delta = signed_delta(MateIn(3, chess.WHITE), Centipawns(500), chess.WHITE)
        assert delta == 500 - (100_000 - 3)


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------


class TestClassifyDelta:
    @pytest.mark.parametrize("delta, expected", [
        (150, MoveQuality.GREAT),
        (0, MoveQuality.GREAT),
        (-10, MoveQuality.GREAT),
        (-11, MoveQuality.GOOD),
        (-40, MoveQuality.GOOD),
        (-41, MoveQuality.INACCURACY),
        (-100, MoveQuality.INACCURACY),
        (-101, MoveQuality.MISTAKE),
        (-200, MoveQuality.MISTAKE),
        (-201, MoveQuality.BLUNDER),
        (-5000, MoveQuality.BLUNDER),
    ])
    def test_boundaries(self, delta, expected):
        assert classify_delta(delta) == expected

    def test_non_negative_delta_never_below_good(self):
        for delta in range(0, 1000, 37):
            assert classify_delta(delta) in (MoveQuality.GREAT, MoveQuality.GOOD)

    def test_custom_thresholds(self):
        strict = Thresholds(great=0, good=-20, inaccuracy=-50, mistake=-120)
        assert classify_delta(-5, strict) == MoveQuality.GOOD
        assert classify_delta(-130, strict) == MoveQuality.BLUNDER


class TestClassifyMove:
    def test_best_move_is_brilliant(self):
        q = classify_move(30, 30, chess.WHITE, "e2e4", "e2e4")
        assert q == MoveQuality.BRILLIANT

    def test_best_move_overrides_large_loss(self):
        q = classify_move(100, -400, chess.WHITE, "e2e4", "e2e4")
        assert q == MoveQuality.BRILLIANT

    def test_no_best_move_falls_back_to_delta(self):
        q = classify_move(30, 30, chess.WHITE, None, "e2e4")
        assert q == MoveQuality.GREAT

    def test_black_blunder(self):
        q = classify_move(-50, 200, chess.BLACK, "e7e5", "f7f6")
        assert q == MoveQuality.BLUNDER

    def test_missing_mate_is_blunder(self):
        q = classify_move(MateIn(2, chess.WHITE), Centipawns(300), chess.WHITE, "d1h5", "g1f3")
        assert q == MoveQuality.BLUNDER

    def test_shorter_mate_against_counts_by_distance(self):
        # Black was getting mated in 5, now mated in 2: only 3cp apart
        delta = signed_delta(MateIn(5, chess.WHITE), MateIn(2, chess.WHITE), chess.BLACK)
        assert delta == -3
        q = classify_move(MateIn(5, chess.WHITE), MateIn(2, chess.WHITE), chess.BLACK, None, "a7a6")
        assert q == MoveQuality.GREAT


# ---------------------------------------------------------------------------
# Annotation
# ---------------------------------------------------------------------------


class TestAnnotation:
    def test_no_note_at_threshold(self):
        assert annotate(-100) is None

    def test_no_note_for_gain(self):
        assert annotate(40) is None

    def test_fixed_wording_for_one_pawn(self):
        assert annotate(-101) == "Lost 1 pawns of advantage"

    def test_half_rounds_up(self):
        assert pawns_lost(-250) == 3
        assert annotate(-250) == "Lost 3 pawns of advantage"

    def test_below_half_rounds_down(self):
        assert pawns_lost(-149) == 1
        assert pawns_lost(-150) == 2


def test_grade_move_combines_tier_and_note():
    grade = grade_move(35, -215, chess.WHITE, "g1f3", "d1h5")
    assert grade.quality == MoveQuality.BLUNDER
    assert grade.delta == -250
    assert grade.annotation == "Lost 3 pawns of advantage"


def test_symbols():
    assert MoveQuality.BRILLIANT.symbol == "!!"
    assert MoveQuality.INACCURACY.symbol == "?!"
    assert MoveQuality.BLUNDER.symbol == "??"
    assert MoveQuality.GOOD.symbol == ""
