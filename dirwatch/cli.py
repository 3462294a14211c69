"""Command-line entry point."""
from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional, Sequence

from .app import DevServer
from .config import WatchConfig, parse_args
from .errors import DirwatchError

logger = logging.getLogger(__name__)


async def serve(config: WatchConfig) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # no loop signal handlers on this platform, Ctrl-C raises KeyboardInterrupt
            pass
    await DevServer(config).run(stop)


def main(argv: Optional[Sequence[str]] = None) -> None:
    config, log_level = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        asyncio.run(serve(config))
    except DirwatchError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
