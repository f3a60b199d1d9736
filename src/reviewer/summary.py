"""Game summary aggregation.

Reduces the ordered MoveRecords of a run into per-tier counts, a short
list of key moments and the game outcome, and renders the structured
payload and prompt handed to the narrative generator.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

import chess

from reviewer.classify import KEY_MOMENT_QUALITIES, MoveQuality
from reviewer.engine import Position
from reviewer.orchestrator import AnalysisRun, MoveRecord
from reviewer.replay import ChessRules, GameStatus, Termination

KEY_MOMENT_LIMIT = 5

SUMMARY_SYSTEM_PROMPT = (
    "You are a supportive chess coach providing constructive game analysis to beginners."
)


@dataclass(frozen=True)
class AnalysisReport:
    records: tuple[MoveRecord, ...]
    tier_counts: Mapping[MoveQuality, int]     # read-only view
    key_moments: tuple[MoveRecord, ...]
    outcome: str
    total_moves: int
    truncated: bool = False
    cancelled: bool = False
    error: str | None = None

    @property
    def complete(self) -> bool:
        return not (self.truncated or self.cancelled)


def outcome_label(status: GameStatus) -> str:
    if status.termination == Termination.CHECKMATE:
        winner = "White" if status.winner == chess.WHITE else "Black"
        return f"Checkmate - {winner} wins"
    if status.termination == Termination.DRAW:
        return "Draw"
    return "Unresolved"


def count_tiers(records: list[MoveRecord] | tuple[MoveRecord, ...]) -> dict[MoveQuality, int]:
    counts = Counter(r.quality for r in records)
    return {q: counts.get(q, 0) for q in MoveQuality}


def find_key_moments(
    records: list[MoveRecord] | tuple[MoveRecord, ...], limit: int = KEY_MOMENT_LIMIT,
) -> tuple[MoveRecord, ...]:
    """First *limit* mistakes, blunders and brilliancies in ply order."""
    return tuple(r for r in records if r.quality in KEY_MOMENT_QUALITIES)[:limit]


def build_report(
    run: AnalysisRun, rules: ChessRules | None = None, key_moment_limit: int = KEY_MOMENT_LIMIT,
) -> AnalysisReport:
    rules = rules or ChessRules()
    records = tuple(run.records)
    status = rules.game_status(run.initial_position, [r.uci for r in records])
    return AnalysisReport(
        records=records,
        tier_counts=MappingProxyType(count_tiers(records)),
        key_moments=find_key_moments(records, key_moment_limit),
        outcome=outcome_label(status),
        total_moves=run.total,
        truncated=run.truncated,
        cancelled=run.cancelled,
        error=run.error,
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


def _position_dict(position: Position) -> dict:
    return {"fen": position.fen, "turn": _color_name(position.turn)}


def record_to_dict(record: MoveRecord) -> dict:
    return {
        "ply": record.index,
        "move_number": record.move_number,
        "move": record.move,
        "uci": record.uci,
        "mover": _color_name(record.mover),
        "position_after": _position_dict(record.position_after),
        "evaluation": record.evaluation_after,
        "tier": record.quality.value,
        "symbol": record.quality.symbol,
        "annotation": record.annotation,
        "best_move": record.best_move,
        "delta": record.delta,
        "degraded": record.degraded,
    }


def grouped_stats(report: AnalysisReport) -> dict[str, int]:
    """Headline numbers: great moves, inaccuracies, mistakes (incl. blunders)."""
    c = report.tier_counts
    return {
        "great_moves": c[MoveQuality.BRILLIANT] + c[MoveQuality.GREAT],
        "inaccuracies": c[MoveQuality.INACCURACY],
        "mistakes": c[MoveQuality.MISTAKE] + c[MoveQuality.BLUNDER],
    }


def report_to_dict(report: AnalysisReport) -> dict:
    return {
        "outcome": report.outcome,
        "total_moves": report.total_moves,
        "analyzed_moves": len(report.records),
        "truncated": report.truncated,
        "cancelled": report.cancelled,
        "error": report.error,
        "tier_counts": {q.value: n for q, n in report.tier_counts.items()},
        "stats": grouped_stats(report),
        "key_moments": [r.index for r in report.key_moments],
        "records": [record_to_dict(r) for r in report.records],
    }


# ---------------------------------------------------------------------------
# Narrative payload
# ---------------------------------------------------------------------------


def narrative_payload(report: AnalysisReport) -> dict:
    """Structured input for the narrative generator."""
    return {
        "outcome": report.outcome,
        "total_moves": len(report.records),
        "tier_counts": {q.value: n for q, n in report.tier_counts.items()},
        "key_moments": [
            {
                "ply": r.index,
                "move_number": r.move_number,
                "move": r.move,
                "tier": r.quality.value,
                "annotation": r.annotation,
            }
            for r in report.key_moments
        ],
    }


def format_summary_prompt(payload: dict) -> str:
    counts = payload["tier_counts"]
    lines = [
        "Analyze this chess game summary:",
        "",
        f"Result: {payload['outcome']}",
        f"Total Moves: {payload['total_moves']}",
        f"Inaccuracies: {counts.get('inaccuracy', 0)}",
        f"Mistakes: {counts.get('mistake', 0)}",
        f"Blunders: {counts.get('blunder', 0)}",
        "",
        "Key moments:",
    ]
    for km in payload["key_moments"]:
        note = f" - {km['annotation']}" if km.get("annotation") else ""
        lines.append(f"Move {km['move_number']}: {km['move']} ({km['tier']}){note}")
    lines.append("")
    lines.append(
        "Provide a brief 3-4 sentence summary of the player's performance and "
        "2-3 key areas to improve. Be encouraging but honest."
    )
    return "\n".join(lines)


def format_report_text(report: AnalysisReport) -> str:
    """Plain-text move list for terminals."""
    lines = [f"Result: {report.outcome}"]
    stats = grouped_stats(report)
    lines.append(
        f"Great moves: {stats['great_moves']}  "
        f"Inaccuracies: {stats['inaccuracies']}  Mistakes: {stats['mistakes']}"
    )
    lines.append("")
    for r in report.records:
        prefix = f"{r.move_number}." if r.mover == chess.WHITE else f"{r.move_number}..."
        line = f"{prefix:<6}{r.move}{r.quality.symbol:<4}{r.quality.value}"
        if r.annotation:
            line += f"  ({r.annotation})"
        if r.degraded:
            line += "  [no evaluation]"
        lines.append(line)
    if report.truncated:
        lines.append(f"Analysis stopped early: {report.error}")
    elif report.cancelled:
        lines.append("Analysis cancelled.")
    return "\n".join(lines)
