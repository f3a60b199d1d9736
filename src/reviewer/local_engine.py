"""Local UCI worker backend.

Drives a single long-running engine process over its text protocol. A
search is ``setoption name MultiPV`` + ``position fen`` + ``go depth``; the
output lines are reduced by a fresh UciParser until ``bestmove`` arrives.

Only one search runs at a time per worker. Callers queue on an
asyncio.Lock (FIFO) and an in-flight search is never cancelled by a
later request. Stopping the oracle while a search is outstanding resolves
that search as degraded.
"""

from __future__ import annotations

import asyncio
import logging

from reviewer.engine import (
    EngineLine,
    EvaluationOracle,
    EvaluationResult,
    Position,
    degraded_result,
    result_from_lines,
)
from reviewer.uci import DEFAULT_PV_PREFIX, UciParser

logger = logging.getLogger(__name__)

MAX_MULTIPV = 5


class SubprocessWorker:
    """Line-oriented transport to an engine subprocess.

    Any object with the same four coroutines (start, send, readline,
    terminate) can stand in for it.
    """

    def __init__(self, path: str = "stockfish"):
        self._path = path
        self._proc: asyncio.subprocess.Process | None = None

    async def start(self) -> None:
        self._proc = await asyncio.create_subprocess_exec(
            self._path,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )

    async def send(self, command: str) -> None:
        if self._proc is None or self._proc.stdin is None:
            raise RuntimeError("Engine worker not started")
        self._proc.stdin.write(f"{command}\n".encode())
        await self._proc.stdin.drain()

    async def readline(self) -> str | None:
        """Next output line, or None at end of stream."""
        if self._proc is None or self._proc.stdout is None:
            return None
        raw = await self._proc.stdout.readline()
        if not raw:
            return None
        return raw.decode(errors="replace").rstrip("\r\n")

    async def terminate(self) -> None:
        if self._proc is None:
            return
        proc, self._proc = self._proc, None
        if proc.returncode is None:
            try:
                proc.stdin.write(b"quit\n")
                await proc.stdin.drain()
                await asyncio.wait_for(proc.wait(), timeout=2.0)
            except (asyncio.TimeoutError, ConnectionError, OSError):
                # Pipe already closed or engine ignored quit
                proc.kill()
                await proc.wait()


class _Search:
    def __init__(self, parser: UciParser):
        self.parser = parser
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()


class LocalEngineOracle(EvaluationOracle):
    """Evaluation backed by a local UCI engine worker."""

    def __init__(
        self,
        worker=None,
        depth: int = 15,
        timeout: float = 30.0,
        pv_prefix: int = DEFAULT_PV_PREFIX,
    ):
        self._worker = worker if worker is not None else SubprocessWorker()
        self._depth = depth
        self._timeout = timeout
        self._pv_prefix = pv_prefix
        self._lock = asyncio.Lock()
        self._search: _Search | None = None
        self._reader_task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        await self._worker.start()
        try:
            await self._handshake()
        except BaseException:
            logger.error("Engine handshake failed, terminating worker")
            await self._worker.terminate()
            raise
        self._running = True
        self._reader_task = asyncio.create_task(self._read_loop())

    async def _handshake(self) -> None:
        await self._worker.send("uci")
        await self._wait_for("uciok")
        await self._worker.send("isready")
        await self._wait_for("readyok")

    async def _wait_for(self, token: str) -> None:
        async def _read_until():
            while True:
                line = await self._worker.readline()
                if line is None:
                    raise RuntimeError(f"Engine exited before {token}")
                if line.strip() == token:
                    return

        try:
            await asyncio.wait_for(_read_until(), timeout=self._timeout)
        except asyncio.TimeoutError:
            raise RuntimeError(f"Engine did not answer {token}")

    async def stop(self) -> None:
        """Tear the worker down. An outstanding search resolves as degraded."""
        self._running = False
        if self._reader_task and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        self._reader_task = None
        self._resolve_pending(None)
        await self._worker.terminate()

    def _resolve_pending(self, lines: list[EngineLine] | None) -> None:
        search, self._search = self._search, None
        if search is not None and not search.future.done():
            search.future.set_result(lines)

    async def _read_loop(self) -> None:
        """Route engine output to the search in flight."""
        try:
            while True:
                line = await self._worker.readline()
                if line is None:
                    logger.warning("Engine worker closed its output")
                    break
                search = self._search
                if search is None:
                    logger.debug("Discarding engine output with no search: %r", line)
                    continue
                result = search.parser.feed(line)
                if result is not None:
                    self._resolve_pending(result)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Engine worker read failed: %s", e)
        self._running = False
        self._resolve_pending(None)

    async def _run_search(self, position: Position, multipv: int) -> list[EngineLine] | None:
        async with self._lock:
            if not self._running:
                logger.warning("Search requested while engine worker is not running")
                return None
            search = _Search(UciParser(turn=position.turn, pv_prefix=self._pv_prefix))
            self._search = search
            try:
                await self._worker.send(f"setoption name MultiPV value {multipv}")
                await self._worker.send(f"position fen {position.fen}")
                await self._worker.send(f"go depth {self._depth}")
            except (RuntimeError, ConnectionError, OSError) as e:
                logger.warning("Failed to send search to engine worker: %s", e)
                self._resolve_pending(None)
                return None

            try:
                return await asyncio.wait_for(asyncio.shield(search.future), self._timeout)
            except asyncio.TimeoutError:
                logger.warning("Engine search timed out for %s", position.fen)
                await self._abort(search)
                return None

    async def _abort(self, search: _Search) -> None:
        """Stop a timed-out search and drain its bestmove before releasing the worker."""
        try:
            await self._worker.send("stop")
            await asyncio.wait_for(asyncio.shield(search.future), timeout=2.0)
        except (asyncio.TimeoutError, RuntimeError, ConnectionError, OSError) as e:
            logger.warning("Engine did not finish aborted search: %s", e or "timeout")
        if self._search is search:
            self._resolve_pending(None)

    async def evaluate(self, position: Position) -> EvaluationResult:
        lines = await self._run_search(position, 1)
        if not lines:
            return degraded_result()
        return result_from_lines(lines)

    async def evaluate_top(self, position: Position, n: int = 3) -> list[EngineLine]:
        n = max(1, min(n, MAX_MULTIPV))
        lines = await self._run_search(position, n)
        return (lines or [])[:n]
