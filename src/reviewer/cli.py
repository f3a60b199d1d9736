"""CLI utility for reviewing a finished game.

Usage:
    python -m reviewer.cli e4 e5 Qh5 ... [--pgn FILE] [--fen FEN]
        [--backend cloud|local] [--stockfish PATH] [--depth N]
        [--no-llm] [--text] [--verbose]

Prints the analysis report as JSON (or a plain move list with --text).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import chess.pgn

from reviewer.config import Settings
from reviewer.engine import Position
from reviewer.game import ReviewSession
from reviewer.summary import format_report_text, report_to_dict


def read_pgn_moves(path: str) -> tuple[list[str], str | None]:
    """Mainline SAN moves of the first game in *path*, plus its start FEN."""
    with open(path) as f:
        game = chess.pgn.read_game(f)
    if game is None:
        raise ValueError(f"No game found in {path}")
    board = game.board()
    start_fen = board.fen() if board.fen() != chess.STARTING_FEN else None
    moves = []
    for move in game.mainline_moves():
        moves.append(board.san(move))
        board.push(move)
    return moves, start_fen


def _progress(processed: int, total: int) -> None:
    print(f"\ranalyzing {processed}/{total}", end="", file=sys.stderr, flush=True)
    if processed == total:
        print(file=sys.stderr)


async def _run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.backend:
        overrides["engine_backend"] = args.backend
    if args.stockfish:
        overrides["stockfish_path"] = args.stockfish
    if args.depth:
        overrides["search_depth"] = args.depth
    settings = Settings(**overrides)

    if args.pgn:
        moves, start_fen = read_pgn_moves(args.pgn)
    else:
        moves, start_fen = args.moves, None
    fen = args.fen or start_fen
    initial = Position.from_fen(fen) if fen else None

    if not moves:
        print("error: no moves given", file=sys.stderr)
        return 1

    async with ReviewSession(settings) as session:
        result = await session.review(
            moves,
            narrate_summary=not args.no_llm,
            on_progress=None if args.quiet else _progress,
            initial=initial,
        )

    if args.text:
        print(format_report_text(result.report))
        if result.narrative:
            print()
            print(result.narrative)
    else:
        body = report_to_dict(result.report)
        body["narrative"] = result.narrative
        body["narrative_error"] = result.narrative_error
        json.dump(body, sys.stdout, indent=2)
        print()
    return 2 if result.report.truncated else 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Post-game move quality review",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("moves", nargs="*", help="Moves in SAN or UCI, in game order")
    parser.add_argument("--pgn", metavar="FILE", help="Read moves from a PGN file")
    parser.add_argument("--fen", help="Starting position (default: standard start)")
    parser.add_argument(
        "--backend", choices=["cloud", "local"],
        help="Evaluation backend (default from ENGINE_BACKEND, else cloud)",
    )
    parser.add_argument("--stockfish", help="Path to a UCI engine binary (local backend)")
    parser.add_argument("--depth", type=int, help="Search depth (local backend)")
    parser.add_argument(
        "--no-llm", action="store_true",
        help="Skip the narrative summary",
    )
    parser.add_argument("--text", action="store_true", help="Print a plain move list")
    parser.add_argument("--quiet", action="store_true", help="No progress output")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(_run(args))
    except (ValueError, OSError, RuntimeError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
