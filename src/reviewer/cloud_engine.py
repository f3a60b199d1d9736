"""Lichess cloud-eval backend.

One GET per evaluation against the cloud evaluation cache. Requests are
serialized and spaced by ``pacing_interval`` seconds, measured from the
end of the previous response, to stay inside the service's rate limit.
Any failure (transport error, non-200, missing ``pvs``) becomes a
degraded result rather than an exception.
"""

from __future__ import annotations

import asyncio
import logging
import time

import chess
import httpx

from reviewer.engine import (
    Centipawns,
    EngineLine,
    EvaluationOracle,
    EvaluationResult,
    MateIn,
    Position,
    Score,
    degraded_result,
    result_from_lines,
)

logger = logging.getLogger(__name__)

LICHESS_CLOUD_EVAL_URL = "https://lichess.org/api/cloud-eval"
MAX_MULTIPV = 5


def _pv_score(pv: dict) -> Score:
    """Cloud-eval scores are already White-absolute."""
    if pv.get("mate") is not None:
        mate = int(pv["mate"])
        return MateIn(moves=abs(mate), winner=chess.WHITE if mate > 0 else chess.BLACK)
    return Centipawns(int(pv["cp"]))


def parse_cloud_eval(data: dict, pv_prefix: int = 4) -> list[EngineLine]:
    """Turn a cloud-eval JSON payload into ranked lines.

    Raises KeyError/ValueError/TypeError on a malformed payload.
    """
    pvs = data["pvs"]
    if not isinstance(pvs, list):
        raise TypeError("pvs is not a list")
    lines = []
    for i, pv in enumerate(pvs):
        moves = pv["moves"].split()
        lines.append(EngineLine(rank=i + 1, moves=moves[:pv_prefix], score=_pv_score(pv)))
    return lines


class CloudEvalOracle(EvaluationOracle):
    """Evaluation backed by the Lichess cloud evaluation API."""

    def __init__(
        self,
        url: str = LICHESS_CLOUD_EVAL_URL,
        api_token: str | None = None,
        pacing_interval: float = 0.3,
        timeout: float = 10.0,
        pv_prefix: int = 4,
    ):
        self._url = url
        self._api_token = api_token
        self._pacing_interval = pacing_interval
        self._timeout = timeout
        self._pv_prefix = pv_prefix
        self._lock = asyncio.Lock()
        self._last_response: float | None = None

    async def evaluate(self, position: Position) -> EvaluationResult:
        lines = await self._fetch(position, 1)
        if lines is None:
            return degraded_result()
        return result_from_lines(lines)

    async def evaluate_top(self, position: Position, n: int = 3) -> list[EngineLine]:
        n = max(1, min(n, MAX_MULTIPV))
        lines = await self._fetch(position, n)
        return lines[:n] if lines else []

    async def _pace(self) -> None:
        if self._last_response is None:
            return
        wait = self._last_response + self._pacing_interval - time.monotonic()
        if wait > 0:
            await asyncio.sleep(wait)

    async def _fetch(self, position: Position, multipv: int) -> list[EngineLine] | None:
        """GET one evaluation. Returns None on any failure."""
        headers = {}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        params = {"fen": position.fen, "multiPv": multipv}

        async with self._lock:
            await self._pace()
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.get(self._url, params=params, headers=headers)
                if resp.status_code != 200:
                    logger.warning(
                        "Cloud eval returned %s for %s", resp.status_code, position.fen,
                    )
                    return None
                lines = parse_cloud_eval(resp.json(), self._pv_prefix)
            except httpx.HTTPError as e:
                logger.warning("Cloud eval request failed: %s", e)
                return None
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Malformed cloud eval payload for %s: %s", position.fen, e)
                return None
            finally:
                self._last_response = time.monotonic()

        if not lines:
            logger.warning("Cloud eval returned no variations for %s", position.fen)
            return None
        return lines
