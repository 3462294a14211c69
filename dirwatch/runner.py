"""Runs the user's shell command, one invocation at a time."""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Optional

from .events import RunResult

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[RunResult], Awaitable[None]]

# how much captured output ends up in a failure log line
_LOG_TAIL = 2000


class CommandRunner:
    """Shell command executor with a single in-flight run.

    :meth:`request` coalesces triggers: whatever arrives while a run is in
    flight results in exactly one follow-up run.
    """

    def __init__(
        self,
        command: str,
        *,
        cwd: Optional[Path] = None,
        on_complete: Optional[CompletionCallback] = None,
    ):
        self.command = command
        self.cwd = cwd
        self._on_complete = on_complete
        self._lock = asyncio.Lock()
        self._pending = False
        self._closing = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def request(self) -> None:
        if self._closing:
            return
        self._pending = True
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._drain())

    async def shutdown(self) -> None:
        """Wait for the current run and drop any rerun queued behind it.

        A request that has not started running yet still gets its one run.
        """

        self._closing = True
        if self._task is not None:
            await self._task

    async def _drain(self) -> None:
        while self._pending:
            self._pending = False
            result = await self.run()
            if self._on_complete is not None:
                try:
                    await self._on_complete(result)
                except Exception:
                    logger.exception("Run completion callback failed")
            if self._closing:
                break

    async def run(self) -> RunResult:
        async with self._lock:
            logger.info("Running: %s", self.command)
            started = time.monotonic()
            try:
                proc = await asyncio.create_subprocess_shell(
                    self.command,
                    cwd=str(self.cwd) if self.cwd is not None else None,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                stdout, stderr = await proc.communicate()
            except OSError as exc:
                result = RunResult(
                    exit_code=-1,
                    stdout=b"",
                    stderr=str(exc).encode(),
                    duration=time.monotonic() - started,
                )
                logger.error("Command failed to start: %s", exc)
                return result

            result = RunResult(
                exit_code=proc.returncode,
                stdout=stdout,
                stderr=stderr,
                duration=time.monotonic() - started,
            )
        _log_result(result)
        return result


def _log_result(result: RunResult) -> None:
    if result.ok:
        logger.info("Command finished in %.2fs", result.duration)
        if result.stdout:
            logger.debug("stdout:\n%s", _tail(result.stdout))
        return

    logger.warning("Command exited with status %s after %.2fs", result.exit_code, result.duration)
    if result.stdout:
        logger.warning("stdout:\n%s", _tail(result.stdout))
    if result.stderr:
        logger.warning("stderr:\n%s", _tail(result.stderr))


def _tail(data: bytes) -> str:
    text = data.decode(errors="replace").rstrip()
    if len(text) > _LOG_TAIL:
        text = "..." + text[-_LOG_TAIL:]
    return text
