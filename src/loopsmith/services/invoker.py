"""Evaluation engine subprocess runner.

关键设计：
- prompt 通过 stdin 一次性写入后关闭，引擎以非交互方式运行
- stdout 增量读取，超过 max_buffer 后丢弃剩余输出（只记录一次 warning）
- 超时后先向进程组发送 SIGTERM，宽限期后仍存活则 SIGKILL；
  被杀掉的调用只会以 ProcessTimeout 结束，迟到的输出被忽略
"""

import asyncio
import contextlib
import logging
import os
import signal
import time
from dataclasses import dataclass

from loopsmith.config import Settings
from loopsmith.exceptions import (
    EngineNotFound,
    NonZeroExit,
    ProcessSpawnError,
    ProcessTimeout,
)

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024
_IS_POSIX = os.name == "posix"


@dataclass(frozen=True)
class ProcessResult:
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: float
    truncated: bool = False


class _BoundedBuffer:
    """Byte accumulator that drops data past ``limit`` instead of growing."""

    def __init__(self, limit: int, name: str) -> None:
        self._limit = limit
        self._name = name
        self._parts: list[bytes] = []
        self._size = 0
        self.truncated = False

    def append(self, chunk: bytes) -> None:
        if self.truncated:
            return
        if self._size + len(chunk) > self._limit:
            self.truncated = True
            logger.warning(
                "Engine %s exceeded %d bytes, discarding further output",
                self._name,
                self._limit,
            )
            return
        self._parts.append(chunk)
        self._size += len(chunk)

    def text(self) -> str:
        return b"".join(self._parts).decode("utf-8", errors="replace")


class ProcessInvoker:
    def __init__(self, settings: Settings) -> None:
        self._command = settings.engine_command
        self._args = list(settings.engine_args)
        self._timeout_ms = settings.engine_timeout_ms
        self._max_buffer = settings.engine_max_buffer
        self._kill_grace = settings.engine_kill_grace_seconds

    @property
    def command(self) -> list[str]:
        return [self._command, *self._args]

    async def run(
        self,
        prompt: str,
        working_directory: str | None = None,
        *,
        timeout_ms: int | None = None,
        max_buffer_bytes: int | None = None,
    ) -> ProcessResult:
        """Run the engine once with ``prompt`` on stdin.

        Raises:
            EngineNotFound: the engine binary does not exist.
            ProcessSpawnError: the process could not be started.
            ProcessTimeout: the process exceeded ``timeout_ms`` and was killed.
            NonZeroExit: the process exited with a non-zero status.
        """
        timeout_ms = timeout_ms if timeout_ms is not None else self._timeout_ms
        max_buffer = max_buffer_bytes if max_buffer_bytes is not None else self._max_buffer
        cwd = working_directory or os.getcwd()

        logger.info(
            "Starting engine %s (cwd=%s, timeout=%d ms)", self._command, cwd, timeout_ms
        )
        start = time.perf_counter()

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env={**os.environ, "CODEX_WORKSPACE_PATH": cwd},
                # 独立进程组，超时后可以连同子进程一起终止
                start_new_session=_IS_POSIX,
            )
        except FileNotFoundError as e:
            if not os.path.isdir(cwd):
                raise ProcessSpawnError(f"Working directory not found: {cwd}") from e
            raise EngineNotFound(
                f"Engine binary '{self._command}' not found. "
                "Install it and make sure it is on PATH."
            ) from e
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start engine: {e}") from e

        stdout = _BoundedBuffer(max_buffer, "stdout")
        stderr = _BoundedBuffer(max_buffer, "stderr")

        try:
            exit_code = await asyncio.wait_for(
                self._communicate(proc, prompt, stdout, stderr),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.error("Engine timed out after %d ms, terminating", timeout_ms)
            await self._terminate(proc)
            raise ProcessTimeout(timeout_ms) from None

        duration_ms = (time.perf_counter() - start) * 1000
        if exit_code != 0:
            raise NonZeroExit(exit_code, stderr.text())

        logger.info("Engine finished in %.0f ms", duration_ms)
        return ProcessResult(
            stdout=stdout.text(),
            stderr=stderr.text(),
            exit_code=exit_code,
            duration_ms=duration_ms,
            truncated=stdout.truncated,
        )

    @staticmethod
    async def _communicate(
        proc: asyncio.subprocess.Process,
        prompt: str,
        stdout: _BoundedBuffer,
        stderr: _BoundedBuffer,
    ) -> int:
        async def feed() -> None:
            assert proc.stdin is not None
            try:
                proc.stdin.write(prompt.encode("utf-8"))
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                logger.warning("Engine closed stdin before the prompt was fully written")
            finally:
                proc.stdin.close()

        async def drain(stream: asyncio.StreamReader, buffer: _BoundedBuffer) -> None:
            while chunk := await stream.read(_READ_CHUNK):
                buffer.append(chunk)

        assert proc.stdout is not None and proc.stderr is not None
        await asyncio.gather(
            feed(),
            drain(proc.stdout, stdout),
            drain(proc.stderr, stderr),
        )
        return await proc.wait()

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after the grace window."""
        self._signal(proc, force=False)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._kill_grace)
            return
        except asyncio.TimeoutError:
            logger.warning(
                "Engine still alive %.1fs after SIGTERM, sending SIGKILL", self._kill_grace
            )
        self._signal(proc, force=True)
        await proc.wait()

    @staticmethod
    def _signal(proc: asyncio.subprocess.Process, *, force: bool) -> None:
        with contextlib.suppress(ProcessLookupError):
            if _IS_POSIX:
                os.killpg(proc.pid, signal.SIGKILL if force else signal.SIGTERM)
            elif force:
                proc.kill()
            else:
                proc.terminate()
