from __future__ import annotations

from pathlib import Path

import pytest

from mcp_playwright.cli import build_parser, main
from mcp_playwright.config import ServerConfig


def test_defaults() -> None:
	config = ServerConfig.from_env({})
	assert config.browser == "chromium"
	assert config.headless is True
	assert config.http is False
	assert config.port == 5000
	assert config.viewport is None
	assert config.context_options() == {}


def test_environment_overrides() -> None:
	config = ServerConfig.from_env(
		{
			"PLAYWRIGHT_MCP_BROWSER": "Firefox",
			"PLAYWRIGHT_MCP_HEADLESS": "false",
			"PLAYWRIGHT_MCP_PORT": "8080",
			"PLAYWRIGHT_MCP_VIEWPORT": "1280x720",
			"PLAYWRIGHT_MCP_MAX_EVENTS": "0",
			"PLAYWRIGHT_MCP_TOOL_TIMEOUT": "not-a-number",
			"PLAYWRIGHT_MCP_LOG_LEVEL": "debug",
		}
	)
	assert config.browser == "firefox"
	assert config.headless is False
	assert config.port == 8080
	assert config.context_options() == {"viewport": {"width": 1280, "height": 720}}
	assert config.max_events == 1
	assert config.tool_timeout == 300.0
	assert config.log_level == "DEBUG"


def test_flags_win_over_environment(tmp_path: Path) -> None:
	env_config = ServerConfig.from_env({"PLAYWRIGHT_MCP_BROWSER": "webkit", "PLAYWRIGHT_MCP_PORT": "7000"})
	args = build_parser().parse_args(["--http", "-p", "9000", "--headed", "--output-dir", str(tmp_path)])
	config = env_config.with_args(args)
	assert config.browser == "webkit"
	assert config.port == 9000
	assert config.http is True
	assert config.headless is False
	assert config.output_dir == tmp_path

	config = env_config.with_args(build_parser().parse_args(["-b", "chromium"]))
	assert config.browser == "chromium"
	assert config.port == 7000


def test_unknown_browser_is_rejected() -> None:
	with pytest.raises(ValueError):
		ServerConfig(browser="netscape")


def test_unknown_browser_in_environment_exits_with_usage_error(monkeypatch, capsys) -> None:
	monkeypatch.setenv("PLAYWRIGHT_MCP_BROWSER", "netscape")
	assert main([]) == 2
	assert "Unsupported browser type" in capsys.readouterr().err


def test_version_flag(capsys) -> None:
	with pytest.raises(SystemExit) as info:
		build_parser().parse_args(["--version"])
	assert info.value.code == 0
	assert capsys.readouterr().out.strip() == "PlaywrightMcpServer v1.0.0"


def test_relative_screenshot_paths_land_in_output_dir(tmp_path: Path) -> None:
	config = ServerConfig(output_dir=tmp_path / "out")
	path = config.resolve_output_path("a/b.png")
	assert path == tmp_path / "out" / "a" / "b.png"
	assert path.parent.is_dir()
	assert config.resolve_output_path(str(tmp_path / "abs.png")) == tmp_path / "abs.png"
