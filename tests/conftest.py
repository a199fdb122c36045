from __future__ import annotations

from pathlib import Path

import pytest

from mcp_playwright.cli import build_dispatcher
from mcp_playwright.config import ServerConfig
from mcp_playwright.registry import Dispatcher
from mcp_playwright.session import BrowserSession
from tests._fakes import FakeLauncher


@pytest.fixture
def config(tmp_path: Path) -> ServerConfig:
	return ServerConfig(output_dir=tmp_path / "out", max_events=50, tool_timeout=5.0, max_wait=0.5)


@pytest.fixture
def launcher() -> FakeLauncher:
	return FakeLauncher()


@pytest.fixture
def session(config: ServerConfig, launcher: FakeLauncher) -> BrowserSession:
	return BrowserSession(config, launcher=launcher)


@pytest.fixture
def dispatcher(session: BrowserSession) -> Dispatcher:
	return build_dispatcher(session)
