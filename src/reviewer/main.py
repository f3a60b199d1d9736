from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from reviewer.config import Settings
from reviewer.engine import Position, format_score
from reviewer.game import ReviewSession
from reviewer.summary import report_to_dict


# --- Request/Response models ---

class ReviewRequest(BaseModel):
    moves: list[str]
    fen: str | None = None
    narrate: bool = True


class HintRequest(BaseModel):
    fen: str
    n: int = Field(default=3, ge=1, le=5)
    explain: bool = False


def create_app(session: ReviewSession | None = None) -> FastAPI:
    session = session or ReviewSession(Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with session:
            yield

    app = FastAPI(title="Game Reviewer", lifespan=lifespan)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/review")
    async def review(req: ReviewRequest):
        initial = None
        if req.fen is not None:
            try:
                initial = Position.from_fen(req.fen)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
        result = await session.review(req.moves, narrate_summary=req.narrate, initial=initial)
        body = report_to_dict(result.report)
        body["narrative"] = result.narrative
        body["narrative_error"] = result.narrative_error
        return body

    @app.post("/api/hint")
    async def hint(req: HintRequest):
        try:
            result = await session.hint(req.fen, n=req.n, explain=req.explain)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {
            "fen": result.position.fen,
            "hints": [
                {**asdict(h), "score": format_score(h.score)}
                for h in result.hints
            ],
            "explanation": result.explanation,
        }

    return app


app = create_app()
