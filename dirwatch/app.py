"""Wires the change detector, command runner, reload notifier and file server."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from aiohttp import web

from .config import WatchConfig
from .errors import ServeError
from .events import RunResult
from .notifier import ReloadNotifier
from .runner import CommandRunner
from .server import create_app, start_server
from .watcher import ChangeDetector

logger = logging.getLogger(__name__)


class DevServer:
    """One watch/run/reload cycle per debounced change.

    A reload is broadcast after every completed run, whatever its exit code.
    """

    def __init__(self, config: WatchConfig):
        self.config = config
        self.notifier = ReloadNotifier()
        self.runner = CommandRunner(config.command, cwd=config.cwd, on_complete=self._after_run)
        self.detector = ChangeDetector(
            config.watch_dir,
            debounce=config.debounce,
            ignore=_nested_serve_dir(config),
        )
        self.app = create_app(config.serve_dir, self.notifier)
        self._http: Optional[web.AppRunner] = None
        self._watch_task: Optional[asyncio.Task] = None

    @property
    def port(self) -> int:
        """The bound port, which differs from the configured one for port 0."""

        if self._http is None:
            return self.config.port
        return self._http.addresses[0][1]

    @property
    def url(self) -> str:
        host = self.config.host
        if host in ("", "0.0.0.0", "::"):
            host = "localhost"
        return f"http://{host}:{self.port}"

    async def start(self) -> None:
        self.detector.start()
        try:
            if not self.config.serve_dir.is_dir():
                raise ServeError(f"Serve directory does not exist: {self.config.serve_dir}")
            self._http = await start_server(self.app, self.config.host, self.config.port)
        except Exception:
            await self.detector.stop()
            raise

        self._watch_task = asyncio.ensure_future(self._watch())
        logger.info("Serving %s at %s", self.config.serve_dir, self.url)
        logger.info("Watching %s, running: %s", self.config.watch_dir, self.config.command)
        logger.info("Ctrl-C to exit")

    async def stop(self) -> None:
        logger.info("Shutting down")
        await self.detector.stop()
        if self._watch_task is not None:
            await self._watch_task
            self._watch_task = None
        await self.runner.shutdown()
        if self._http is not None:
            await self._http.cleanup()
            self._http = None

    async def run(self, stop: asyncio.Event) -> None:
        """Start, then serve until ``stop`` is set."""

        await self.start()
        try:
            await stop.wait()
        finally:
            await self.stop()

    async def _watch(self) -> None:
        async for event in self.detector:
            logger.info("%s %s", event.kind.value, event.path)
            self.runner.request()

    async def _after_run(self, result: RunResult) -> None:
        await self.notifier.broadcast()


def _nested_serve_dir(config: WatchConfig) -> List[Path]:
    # only output landing strictly below the watch root is ignored
    if config.watch_dir in config.serve_dir.parents:
        return [config.serve_dir]
    return []
