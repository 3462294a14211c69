"""End-to-end tests: file change, command run, reload broadcast."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiohttp
import pytest

from dirwatch import app as app_module
from dirwatch.app import DevServer
from dirwatch.config import WatchConfig
from dirwatch.errors import ServeError, WatchError
from dirwatch.events import ChangeKind
from dirwatch.notifier import RELOAD_MESSAGE
from dirwatch.server import RELOAD_PATH

from .conftest import wait_until


def make_config(tmp_path: Path, command: str) -> WatchConfig:
    src = tmp_path / "src"
    dist = tmp_path / "dist"
    src.mkdir(exist_ok=True)
    dist.mkdir(exist_ok=True)
    return WatchConfig(
        watch_dir=src,
        serve_dir=dist,
        command=command,
        port=0,
        host="127.0.0.1",
        debounce=0.05,
        cwd=tmp_path,
    )


@pytest.mark.asyncio
async def test_change_runs_command_and_reloads(tmp_path: Path) -> None:
    config = make_config(tmp_path, "echo built > dist/index.html")
    server = DevServer(config)
    await server.start()
    try:
        async with aiohttp.ClientSession() as session:
            ws = await session.ws_connect(server.url + RELOAD_PATH)
            await wait_until(lambda: server.notifier.client_count == 1)

            (config.watch_dir / "a.txt").write_text("hello")

            msg = await ws.receive(timeout=5)
            assert msg.data == RELOAD_MESSAGE
            assert (tmp_path / "dist" / "index.html").read_text() == "built\n"
            with pytest.raises(asyncio.TimeoutError):
                await ws.receive(timeout=0.3)

            async with session.get(server.url + "/") as resp:
                assert resp.status == 200
                body = await resp.text()
            assert body.startswith("built\n")
            assert RELOAD_PATH in body

            await ws.close()
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_failed_command_still_reloads(tmp_path: Path) -> None:
    server = DevServer(make_config(tmp_path, "exit 1"))
    await server.start()
    try:
        async with aiohttp.ClientSession() as session:
            ws = await session.ws_connect(server.url + RELOAD_PATH)
            await wait_until(lambda: server.notifier.client_count == 1)

            server.detector.feed(ChangeKind.WRITE, server.config.watch_dir / "a.txt")

            msg = await ws.receive(timeout=5)
            assert msg.data == RELOAD_MESSAGE
            await ws.close()
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_burst_of_writes_runs_command_once(tmp_path: Path) -> None:
    server = DevServer(make_config(tmp_path, "echo run >> runs.log"))
    await server.start()
    try:
        target = server.config.watch_dir / "a.txt"
        for _ in range(10):
            server.detector.feed(ChangeKind.WRITE, target)

        log = tmp_path / "runs.log"
        await wait_until(log.exists, timeout=5)
        await wait_until(lambda: not server.runner.running)
    finally:
        await server.stop()

    assert log.read_text() == "run\n"


@pytest.mark.asyncio
async def test_spaced_changes_on_distinct_paths_each_run(tmp_path: Path) -> None:
    server = DevServer(make_config(tmp_path, "echo run >> runs.log"))
    await server.start()
    log = tmp_path / "runs.log"
    try:
        server.detector.feed(ChangeKind.WRITE, server.config.watch_dir / "a.txt")
        await wait_until(lambda: log.exists() and log.read_text() == "run\n", timeout=5)
        await wait_until(lambda: not server.runner.running)

        await asyncio.sleep(server.config.debounce * 3)
        server.detector.feed(ChangeKind.WRITE, server.config.watch_dir / "b.txt")
        await wait_until(lambda: log.read_text() == "run\nrun\n", timeout=5)
    finally:
        await server.stop()

    assert log.read_text() == "run\nrun\n"


@pytest.mark.parametrize("serve", ["same", "parent"])
@pytest.mark.asyncio
async def test_changes_fire_when_serve_dir_contains_watch_dir(tmp_path: Path, serve: str) -> None:
    src = tmp_path / "src"
    src.mkdir()
    config = WatchConfig(
        watch_dir=src,
        serve_dir=src if serve == "same" else tmp_path,
        command="echo run >> runs.log",
        port=0,
        host="127.0.0.1",
        debounce=0.05,
        cwd=tmp_path,
    )
    server = DevServer(config)
    await server.start()
    log = tmp_path / "runs.log"
    try:
        (src / "a.txt").write_text("hello")
        await wait_until(log.exists, timeout=5)
    finally:
        await server.stop()

    assert log.read_text().startswith("run\n")


@pytest.mark.asyncio
async def test_serve_dir_output_does_not_retrigger(tmp_path: Path) -> None:
    src = tmp_path / "site"
    (src / "_build").mkdir(parents=True)
    config = WatchConfig(
        watch_dir=src,
        serve_dir=src / "_build",
        command="echo run >> ../runs.log; echo x > _build/out.html",
        port=0,
        host="127.0.0.1",
        debounce=0.05,
        cwd=src,
    )
    server = DevServer(config)
    await server.start()
    try:
        server.detector.feed(ChangeKind.WRITE, src / "page.md")
        log = tmp_path / "runs.log"
        await wait_until(log.exists, timeout=5)
        await wait_until(lambda: not server.runner.running)
        # output written into the serve dir must not queue another run
        await asyncio.sleep(0.3)
        assert server.detector.pending == 0
        assert not server.runner.running
    finally:
        await server.stop()

    assert log.read_text() == "run\n"


@pytest.mark.asyncio
async def test_bad_watch_dir_fails_before_binding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    bound = []

    async def fake_start_server(*args, **kwargs):
        bound.append(args)

    monkeypatch.setattr(app_module, "start_server", fake_start_server)
    config = make_config(tmp_path, "true")
    config = WatchConfig(
        watch_dir=tmp_path / "missing",
        serve_dir=config.serve_dir,
        command="true",
        port=0,
    )

    with pytest.raises(WatchError):
        await app_module.DevServer(config).start()
    assert bound == []


@pytest.mark.asyncio
async def test_bad_serve_dir_fails(tmp_path: Path) -> None:
    config = make_config(tmp_path, "true")
    config = WatchConfig(
        watch_dir=config.watch_dir,
        serve_dir=tmp_path / "missing",
        command="true",
        port=0,
    )

    with pytest.raises(ServeError):
        await DevServer(config).start()
