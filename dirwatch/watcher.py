"""Filesystem change detection on top of watchdog, with per-path debouncing."""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import WatchError
from .events import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.2

_KINDS = {
    "created": ChangeKind.CREATE,
    "modified": ChangeKind.WRITE,
    "deleted": ChangeKind.REMOVE,
    "moved": ChangeKind.RENAME,
}

_STOP = object()


class _Handler(FileSystemEventHandler):
    def __init__(self, detector: "ChangeDetector"):
        self._detector = detector

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        kind = _KINDS.get(event.event_type)
        if kind is None:
            return
        if kind is ChangeKind.RENAME:
            path = event.dest_path
        else:
            path = event.src_path
        self._detector.feed(kind, Path(path))


class ChangeDetector:
    """Watches one directory tree and yields debounced ``ChangeEvent``s.

    Iterate with ``async for`` once :meth:`start` has been called from inside
    the event loop. Iteration ends after :meth:`stop`.
    """

    def __init__(self, root: Path, *, debounce: float = DEFAULT_DEBOUNCE, ignore: Iterable[Path] = ()):
        self.root = Path(root)
        self.debounce = debounce
        self._ignore = tuple(Path(p) for p in ignore)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer: Optional[Observer] = None
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._timers: Dict[Path, Tuple[asyncio.TimerHandle, ChangeKind]] = {}
        self._stopped = False

    @property
    def pending(self) -> int:
        """Number of paths currently waiting out their debounce window."""

        return len(self._timers)

    def start(self) -> None:
        if self._stopped:
            raise WatchError("Change detector cannot be restarted once stopped")
        if not self.root.exists():
            raise WatchError(f"Watch directory does not exist: {self.root}")
        if not self.root.is_dir():
            raise WatchError(f"Watch path is not a directory: {self.root}")

        self._loop = asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_Handler(self), str(self.root), recursive=True)
        try:
            observer.start()
        except OSError as exc:
            raise WatchError(f"Failed to watch {self.root}: {exc}") from exc
        self._observer = observer
        logger.debug("Watching %s (debounce %.0f ms)", self.root, self.debounce * 1000)

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        for handle, _ in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._queue.put_nowait(_STOP)
        if self._observer is not None:
            observer, self._observer = self._observer, None
            observer.stop()
            await asyncio.get_running_loop().run_in_executor(None, observer.join)

    def feed(self, kind: ChangeKind, path: Path) -> None:
        """Report a raw change. Safe to call from any thread."""

        if self._loop is None or self._stopped:
            return
        try:
            self._loop.call_soon_threadsafe(self._bump, kind, path)
        except RuntimeError:
            # loop already closed during shutdown
            pass

    def _bump(self, kind: ChangeKind, path: Path) -> None:
        if self._stopped or self._is_ignored(path):
            return
        previous = self._timers.get(path)
        if previous is not None:
            previous[0].cancel()
        handle = self._loop.call_later(self.debounce, self._fire, path)
        self._timers[path] = (handle, kind)

    def _fire(self, path: Path) -> None:
        entry = self._timers.pop(path, None)
        if entry is None or self._stopped:
            return
        self._queue.put_nowait(ChangeEvent(path=path, kind=entry[1], timestamp=time.time()))

    def _is_ignored(self, path: Path) -> bool:
        for ignored in self._ignore:
            if path == ignored or ignored in path.parents:
                return True
        return False

    def __aiter__(self) -> "ChangeDetector":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._stopped and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _STOP:
            # keep the sentinel for any other consumer
            self._queue.put_nowait(_STOP)
            raise StopAsyncIteration
        return item  # type: ignore[return-value]
