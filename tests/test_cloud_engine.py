"""Tests for the Lichess cloud-eval backend."""

import asyncio
import time

import chess
import httpx
import pytest

from reviewer.cloud_engine import CloudEvalOracle, parse_cloud_eval
from reviewer.engine import Centipawns, MateIn, Position

START = Position(fen=chess.STARTING_FEN, turn=chess.WHITE)

_SAMPLE = {
    "fen": chess.STARTING_FEN,
    "knodes": 100000,
    "depth": 40,
    "pvs": [
        {"moves": "e2e4 e7e5 g1f3 b8c6 f1b5 a7a6", "cp": 18},
        {"moves": "d2d4 d7d5 c2c4", "cp": 15},
        {"moves": "g1f3 g8f6", "cp": 12},
    ],
}


def _mock_get(status=200, json=None, content=None, calls=None):
    async def mock_get(self, url, **kwargs):
        if calls is not None:
            calls.append({"url": url, **kwargs})
        if json is not None:
            return httpx.Response(status, json=json, request=httpx.Request("GET", url))
        return httpx.Response(status, content=content or b"", request=httpx.Request("GET", url))
    return mock_get


@pytest.fixture
def oracle():
    return CloudEvalOracle(url="http://fake/api/cloud-eval", pacing_interval=0.0)


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


class TestParseCloudEval:
    def test_ranks_and_prefix(self):
        lines = parse_cloud_eval(_SAMPLE, pv_prefix=4)
        assert [l.rank for l in lines] == [1, 2, 3]
        assert lines[0].moves == ["e2e4", "e7e5", "g1f3", "b8c6"]
        assert lines[0].score == Centipawns(18)

    def test_mate_scores_are_white_absolute(self):
        lines = parse_cloud_eval({"pvs": [
            {"moves": "d8h4", "mate": -1},
            {"moves": "d1h5", "mate": 2},
        ]})
        assert lines[0].score == MateIn(1, chess.BLACK)
        assert lines[1].score == MateIn(2, chess.WHITE)

    def test_missing_pvs_raises(self):
        with pytest.raises(KeyError):
            parse_cloud_eval({"error": "Not found"})


# ---------------------------------------------------------------------------
# evaluate / evaluate_top
# ---------------------------------------------------------------------------


async def test_evaluate_success(oracle, monkeypatch):
    calls = []
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(json=_SAMPLE, calls=calls))
    result = await oracle.evaluate(START)
    assert result.ok
    assert result.score == Centipawns(18)
    assert result.best_move == "e2e4"
    assert calls[0]["params"] == {"fen": chess.STARTING_FEN, "multiPv": 1}
    assert "Authorization" not in calls[0]["headers"]


async def test_api_token_sent(monkeypatch):
    calls = []
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(json=_SAMPLE, calls=calls))
    oracle = CloudEvalOracle(url="http://fake", api_token="lip_abc", pacing_interval=0.0)
    await oracle.evaluate(START)
    assert calls[0]["headers"]["Authorization"] == "Bearer lip_abc"


async def test_evaluate_top_clamps_and_ranks(oracle, monkeypatch):
    calls = []
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(json=_SAMPLE, calls=calls))
    lines = await oracle.evaluate_top(START, n=9)
    assert calls[0]["params"]["multiPv"] == 5
    assert [l.moves[0] for l in lines] == ["e2e4", "d2d4", "g1f3"]


async def test_evaluate_top_failure_is_empty(oracle, monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(status=404, json={"error": "Not found"}))
    assert await oracle.evaluate_top(START, n=3) == []


# ---------------------------------------------------------------------------
# Degraded results
# ---------------------------------------------------------------------------


async def test_non_200_is_degraded(oracle, monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(status=429, json={}))
    result = await oracle.evaluate(START)
    assert result.degraded
    assert result.centipawns == 0


async def test_missing_pvs_is_degraded(oracle, monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(json={"fen": chess.STARTING_FEN}))
    assert (await oracle.evaluate(START)).degraded


async def test_empty_pvs_is_degraded(oracle, monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(json={"pvs": []}))
    assert (await oracle.evaluate(START)).degraded


async def test_non_json_is_degraded(oracle, monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(content=b"<html>oops</html>"))
    assert (await oracle.evaluate(START)).degraded


async def test_connection_error_is_degraded(oracle, monkeypatch):
    async def mock_get(self, url, **kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx.AsyncClient, "get", mock_get)
    assert (await oracle.evaluate(START)).degraded


# ---------------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------------


async def test_requests_are_spaced(monkeypatch):
    stamps = []

    async def mock_get(self, url, **kwargs):
        stamps.append(time.monotonic())
        return httpx.Response(200, json=_SAMPLE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", mock_get)
    oracle = CloudEvalOracle(url="http://fake", pacing_interval=0.05)
    for _ in range(3):
        await oracle.evaluate(START)
    gaps = [b - a for a, b in zip(stamps, stamps[1:])]
    assert all(g >= 0.045 for g in gaps)


async def test_first_request_not_delayed(monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(json=_SAMPLE))
    oracle = CloudEvalOracle(url="http://fake", pacing_interval=5.0)
    started = time.monotonic()
    await oracle.evaluate(START)
    assert time.monotonic() - started < 1.0


async def test_concurrent_callers_are_serialized(monkeypatch):
    in_flight = 0
    peak = 0

    async def mock_get(self, url, **kwargs):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, json=_SAMPLE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", mock_get)
    oracle = CloudEvalOracle(url="http://fake", pacing_interval=0.0)
    results = await asyncio.gather(*(oracle.evaluate(START) for _ in range(4)))
    assert peak == 1
    assert all(r.ok for r in results)
