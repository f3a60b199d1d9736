from __future__ import annotations

import logging
from dataclasses import dataclass

from reviewer.cloud_engine import CloudEvalOracle
from reviewer.config import Settings
from reviewer.engine import EvaluationOracle, Position
from reviewer.hints import Hint, format_hint_prompt, suggest_moves
from reviewer.llm import GameNarrator
from reviewer.local_engine import LocalEngineOracle, SubprocessWorker
from reviewer.orchestrator import AnalysisOrchestrator, ProgressCallback
from reviewer.replay import ChessRules
from reviewer.summary import AnalysisReport, build_report, narrative_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameReview:
    """A finished report plus its prose summary.

    The report is valid on its own; a narrative failure only leaves
    ``narrative`` empty and explains why in ``narrative_error``.
    """
    report: AnalysisReport
    narrative: str = ""
    narrative_error: str | None = None


@dataclass(frozen=True)
class PositionHint:
    position: Position
    hints: list[Hint]
    prompt: str
    explanation: str | None = None


def build_oracle(settings: Settings) -> EvaluationOracle:
    if settings.engine_backend == "local":
        return LocalEngineOracle(
            worker=SubprocessWorker(settings.stockfish_path),
            depth=settings.search_depth,
            timeout=settings.search_timeout,
            pv_prefix=settings.pv_prefix,
        )
    return CloudEvalOracle(
        url=settings.cloud_eval_url,
        api_token=settings.lichess_api_token,
        pacing_interval=settings.pacing_interval,
        timeout=settings.request_timeout,
        pv_prefix=settings.pv_prefix,
    )


def build_narrator(settings: Settings) -> GameNarrator | None:
    if not settings.narration_enabled:
        return None
    return GameNarrator(
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        timeout=settings.llm_timeout,
    )


async def narrate(report: AnalysisReport, narrator: GameNarrator | None) -> GameReview:
    if narrator is None:
        return GameReview(report=report, narrative_error="Narrative generation is not configured")
    try:
        text = await narrator.summarize_game(narrative_payload(report))
    except Exception as e:
        logger.warning("Narrative generator raised: %s", e)
        text = None
    if text is None:
        return GameReview(report=report, narrative_error="Narrative generation failed")
    return GameReview(report=report, narrative=text)


class ReviewSession:
    """One tutoring session: owns the evaluation backend for its lifetime.

    The backend is started once on entry and stopped once on exit. Reviews
    and hint requests share it; the backend serializes their requests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        oracle: EvaluationOracle | None = None,
        narrator: GameNarrator | None = None,
        rules: ChessRules | None = None,
    ):
        self._settings = settings or Settings()
        self._oracle = oracle or build_oracle(self._settings)
        self._narrator = narrator if narrator is not None else build_narrator(self._settings)
        self._rules = rules or ChessRules()
        self._active: AnalysisOrchestrator | None = None

    async def __aenter__(self) -> ReviewSession:
        await self._oracle.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self._oracle.stop()

    def cancel(self) -> None:
        """Cancel the review in progress, if any."""
        if self._active is not None:
            self._active.cancel()

    async def analyze(
        self,
        moves: list[str],
        on_progress: ProgressCallback | None = None,
        initial: Position | None = None,
    ) -> AnalysisReport:
        s = self._settings
        orchestrator = AnalysisOrchestrator(
            self._oracle,
            rules=self._rules,
            thresholds=s.thresholds,
            retries=s.evaluation_retries,
            on_progress=on_progress,
        )
        self._active = orchestrator
        try:
            run = await orchestrator.analyze(moves, initial)
        finally:
            self._active = None
        return build_report(run, self._rules, key_moment_limit=s.key_moment_limit)

    async def review(
        self,
        moves: list[str],
        narrate_summary: bool = True,
        on_progress: ProgressCallback | None = None,
        initial: Position | None = None,
    ) -> GameReview:
        report = await self.analyze(moves, on_progress=on_progress, initial=initial)
        if not narrate_summary:
            return GameReview(report=report)
        return await narrate(report, self._narrator)

    async def hint(self, fen: str, n: int = 3, explain: bool = False) -> PositionHint:
        """Top engine moves for *fen*. Raises ValueError on an invalid FEN."""
        position = Position.from_fen(fen)
        hints = await suggest_moves(self._oracle, position, n, rules=self._rules)
        prompt = format_hint_prompt(position, hints, in_check=self._rules.in_check(position))
        explanation = None
        if explain and self._narrator is not None:
            explanation = await self._narrator.explain_position(prompt)
        return PositionHint(position=position, hints=hints, prompt=prompt, explanation=explanation)
