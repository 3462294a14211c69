"""Static file server with the reload script injected into HTML pages."""
from __future__ import annotations

import logging
from pathlib import Path

from aiohttp import web

from .errors import BindError
from .notifier import ReloadNotifier

logger = logging.getLogger(__name__)

RELOAD_PATH = "/__reload"

RELOAD_MARKER = "__DIRWATCH_RELOAD__"

RELOAD_JS = """
<script>
(function(){
  if (window.__DIRWATCH_RELOAD__) return;
  window.__DIRWATCH_RELOAD__ = true;
  const scheme = location.protocol === "https:" ? "wss" : "ws";
  const ws = new WebSocket(`${scheme}://${location.host}/__reload`);
  ws.onmessage = () => location.reload();
})();
</script>
"""

HTML_SUFFIXES = {".html", ".htm"}

ACCESS_LOG_FORMAT = '%a "%r" %s %b "%{User-Agent}i"'

NO_CACHE = {"Cache-Control": "no-cache"}


def inject_reload_script(html: str) -> str:
    """Add the reload script to ``html`` unless it is already there."""

    if RELOAD_MARKER in html:
        return html
    idx = html.rfind("</body>")
    if idx != -1:
        return html[:idx] + RELOAD_JS + html[idx:]
    idx = html.find("<head>")
    if idx != -1:
        idx += len("<head>")
        return html[:idx] + RELOAD_JS + html[idx:]
    return html + RELOAD_JS


def _not_found() -> web.Response:
    return web.Response(status=404, text="404 Not Found", headers=NO_CACHE)


class StaticFiles:
    """Maps request paths onto files below ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    async def handle(self, request: web.Request) -> web.StreamResponse:
        rel = request.match_info.get("path", "")
        file_path = (self.root / rel).resolve()

        if file_path != self.root and self.root not in file_path.parents:
            return _not_found()

        if file_path.is_dir():
            if rel and not request.path.endswith("/"):
                raise web.HTTPMovedPermanently(request.path + "/")
            file_path = file_path / "index.html"

        if not file_path.is_file():
            return _not_found()

        if file_path.suffix.lower() in HTML_SUFFIXES:
            html = file_path.read_text(encoding="utf-8", errors="replace")
            return web.Response(
                text=inject_reload_script(html),
                content_type="text/html",
                headers=NO_CACHE,
            )

        return web.FileResponse(file_path, headers=NO_CACHE)


def create_app(serve_dir: Path, notifier: ReloadNotifier) -> web.Application:
    app = web.Application()
    files = StaticFiles(serve_dir)
    app.router.add_get(RELOAD_PATH, notifier.handle)
    app.router.add_get("/{path:.*}", files.handle)
    app.on_shutdown.append(notifier.close)
    return app


async def start_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    """Bind ``app`` to ``host:port``. Raises :class:`BindError` if that fails."""

    runner = web.AppRunner(app, access_log_format=ACCESS_LOG_FORMAT)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError as exc:
        await runner.cleanup()
        raise BindError(f"Cannot listen on {host}:{port}: {exc.strerror or exc}") from exc
    logger.debug("Listening on %s", ", ".join(str(addr) for addr in runner.addresses))
    return runner
