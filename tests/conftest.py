"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

import pytest


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or ``timeout`` runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def serve_dir(tmp_path: Path) -> Path:
    """Serve directory with a page, a stylesheet and a nested index."""
    root = tmp_path / "dist"
    root.mkdir()
    (root / "index.html").write_text("<html><head></head><body><h1>Home</h1></body></html>")
    (root / "style.css").write_text("body { color: red; }")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_text("<p>docs</p>")
    (root / "empty").mkdir()
    return root
