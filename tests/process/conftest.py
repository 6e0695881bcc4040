"""Process test fixtures: executable fake servers and a managed ServerProcessManager."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from fake_servers import FRAMING

from npl_lsm.process import ServerProcessManager

ScriptFactory = Callable[..., Path]


@pytest.fixture
def fake_server(tmp_path: Path) -> ScriptFactory:
    """Write an executable fake server script and return its path."""
    counter = iter(range(1000))

    def make(body: str, mode: int = 0o755) -> Path:
        path = tmp_path / f"fake-server-{next(counter)}"
        path.write_text(f"#!{sys.executable}\n{FRAMING}\n{body}")
        path.chmod(mode)
        return path

    return make


@pytest.fixture
async def process_manager(test_logger: logging.Logger):
    manager = ServerProcessManager(test_logger, start_timeout=10.0, stop_timeout=1.0)
    yield manager
    await manager.stop_server()
