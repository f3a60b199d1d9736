"""UCI analysis-output parser.

Reduces the free-text stream a UCI engine prints during one ``go`` into
ranked EngineLines. Only two line shapes matter:

    info ... multipv 2 ... score cp 35 ... pv e2e4 e7e5 g1f3
    bestmove e2e4 ponder e7e5

Lines for the same multipv rank overwrite each other (deeper iterations
arrive later). Anything else is ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import chess

from reviewer.engine import Centipawns, EngineLine, MateIn, Score

logger = logging.getLogger(__name__)

DEFAULT_PV_PREFIX = 4


@dataclass(frozen=True)
class InfoLine:
    """A parsed ``info`` line, score still relative to the side to move."""
    rank: int
    moves: list[str]
    kind: str       # "cp" or "mate"
    value: int


def parse_info(line: str) -> InfoLine | None:
    """Parse a single ``info`` line carrying a score and a pv.

    Returns None for lines without both (currmove updates, ``info string``,
    hashfull reports) and for malformed score or rank fields.
    """
    tokens = line.split()
    if not tokens or tokens[0] != "info" or tokens[1:2] == ["string"]:
        return None

    rank = 1
    kind: str | None = None
    value: int | None = None
    moves: list[str] | None = None

    i = 1
    while i < len(tokens):
        tok = tokens[i]
        if tok == "multipv" and i + 1 < len(tokens):
            try:
                rank = int(tokens[i + 1])
            except ValueError:
                logger.debug("Dropping info line with bad multipv: %r", line)
                return None
            i += 2
        elif tok == "score" and i + 2 < len(tokens):
            if kind is not None or tokens[i + 1] not in ("cp", "mate"):
                logger.debug("Dropping info line with bad score: %r", line)
                return None
            kind = tokens[i + 1]
            try:
                value = int(tokens[i + 2])
            except ValueError:
                logger.warning("Dropping info line with non-numeric score: %r", line)
                return None
            i += 3
        elif tok == "pv":
            moves = tokens[i + 1:]
            break
        else:
            i += 1

    if kind is None or value is None or not moves:
        return None
    return InfoLine(rank=rank, moves=moves, kind=kind, value=value)


def parse_bestmove(line: str) -> tuple[bool, str | None]:
    """Return (is_completion, best_move). ``bestmove (none)`` yields None."""
    tokens = line.split()
    if not tokens or tokens[0] != "bestmove":
        return False, None
    if len(tokens) < 2 or tokens[1] in ("(none)", "0000"):
        return True, None
    return True, tokens[1]


def absolute_score(kind: str, value: int, turn: chess.Color) -> Score:
    """Convert a side-to-move relative UCI score into a White-absolute one."""
    if kind == "mate":
        # mate 0 / mate -N: the side to move is the one getting mated
        winner = turn if value > 0 else not turn
        return MateIn(moves=abs(value), winner=winner)
    return Centipawns(value if turn == chess.WHITE else -value)


class UciParser:
    """Per-search reducer over engine output.

    Create one per search. ``feed`` returns the ranked lines once the
    completion line arrives, and None before that. A duplicated completion
    line (no info lines in between) returns the same result again.
    """

    def __init__(self, turn: chess.Color = chess.WHITE, pv_prefix: int = DEFAULT_PV_PREFIX):
        self._turn = turn
        self._pv_prefix = pv_prefix
        self._by_rank: dict[int, InfoLine] = {}
        self._last_completion: str | None = None
        self._last_result: list[EngineLine] = []
        self.best_move: str | None = None

    def feed(self, line: str) -> list[EngineLine] | None:
        line = line.strip()
        if not line:
            return None

        info = parse_info(line)
        if info is not None:
            self._by_rank[info.rank] = info
            self._last_completion = None
            return None

        done, best = parse_bestmove(line)
        if not done:
            return None

        if not self._by_rank and line == self._last_completion:
            return list(self._last_result)

        result = self._render()
        self._by_rank = {}
        self._last_completion = line
        self._last_result = result
        self.best_move = best
        return list(result)

    def _render(self) -> list[EngineLine]:
        return [
            EngineLine(
                rank=rank,
                moves=info.moves[:self._pv_prefix],
                score=absolute_score(info.kind, info.value, self._turn),
            )
            for rank, info in sorted(self._by_rank.items())
        ]


def parse_analysis(
    lines: list[str], turn: chess.Color = chess.WHITE, pv_prefix: int = DEFAULT_PV_PREFIX,
) -> list[EngineLine]:
    """Parse a complete captured search. Returns [] if it never completed."""
    parser = UciParser(turn=turn, pv_prefix=pv_prefix)
    result: list[EngineLine] = []
    for line in lines:
        out = parser.feed(line)
        if out is not None:
            result = out
    return result
