"""Position hints: the engine's top candidate moves, rendered for a tutor prompt."""

from __future__ import annotations

from dataclasses import dataclass

import chess

from reviewer.engine import EvaluationOracle, Position, Score, format_score
from reviewer.replay import ChessRules


@dataclass(frozen=True)
class Hint:
    rank: int
    uci: str
    san: str
    score: Score
    line: list[str]     # SAN continuation starting with this move


def _line_san(position: Position, ucis: list[str]) -> list[str]:
    board = chess.Board(position.fen)
    out = []
    for uci in ucis:
        try:
            move = chess.Move.from_uci(uci)
        except ValueError:
            break
        if move not in board.legal_moves:
            break
        out.append(board.san(move))
        board.push(move)
    return out


async def suggest_moves(
    oracle: EvaluationOracle,
    position: Position,
    n: int = 3,
    rules: ChessRules | None = None,
) -> list[Hint]:
    """Top *n* engine moves in SAN. Empty when no analysis is available."""
    rules = rules or ChessRules()
    lines = await oracle.evaluate_top(position, n)
    hints = []
    for line in lines:
        if not line.moves:
            continue
        first = line.moves[0]
        hints.append(Hint(
            rank=line.rank,
            uci=first,
            san=rules.to_san(position, first),
            score=line.score,
            line=_line_san(position, line.moves),
        ))
    return hints


def format_hint_prompt(position: Position, hints: list[Hint], in_check: bool = False) -> str:
    turn = "White" if position.turn == chess.WHITE else "Black"
    if hints:
        moves = "\n".join(
            f"{i + 1}. {h.san} (evaluation: {format_score(h.score)})"
            for i, h in enumerate(hints)
        )
    else:
        moves = "No analysis available for this position."
    lines = [
        "You are a chess tutor helping a beginner understand their position.",
        "",
        f"Current Position (FEN): {position.fen}",
        f"Turn to move: {turn}",
    ]
    if in_check:
        lines.append("The king is in check!")
    lines += [
        "",
        "Top moves according to analysis:",
        moves,
        "",
        "Please explain:",
        "1. A brief overview of the current position (1-2 sentences).",
        "2. The top 2-3 candidate moves and WHY each is strong "
        "(compare offensive vs defensive, tactical vs positional).",
        "3. The main threat or opportunity the player should be thinking about.",
        "",
        "Keep it educational but concise (under 200 words).",
    ]
    return "\n".join(lines)
