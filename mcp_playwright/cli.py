from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from mcp_playwright import __version__
from mcp_playwright.config import BROWSER_TYPES, ServerConfig
from mcp_playwright.registry import Dispatcher, ToolContext
from mcp_playwright.session import BrowserSession

logger = logging.getLogger('playwright-mcp')

_EPILOG = """\
Modes:
  Default (MCP):   JSON-RPC over stdin/stdout, one message per line
  HTTP (--http):   REST API on --host/--port

HTTP API endpoints:
  GET  /tools            List all available browser automation tools
  POST /tools/{name}     Execute a tool with JSON body arguments
  GET  /health           Health check

Example:
  curl -X POST http://localhost:5000/tools/browser_navigate \\
       -H "Content-Type: application/json" -d '{"url": "https://example.com"}'
"""


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog='mcp-playwright',
		description='Playwright MCP Server - a local server for Playwright browser automation.',
		epilog=_EPILOG,
		formatter_class=argparse.RawDescriptionHelpFormatter,
	)
	parser.add_argument('--browser', '-b', choices=BROWSER_TYPES, help='Browser engine (default: chromium).')
	parser.add_argument('--headed', action='store_true', help='Run the browser with a visible window.')
	parser.add_argument('--http', action='store_true', help='Serve the REST API instead of MCP on stdio.')
	parser.add_argument('--host', help='HTTP bind address (default: 127.0.0.1).')
	parser.add_argument('--port', '-p', type=int, help='HTTP port (default: 5000).')
	parser.add_argument('--output-dir', help='Directory for screenshots saved by filename.')
	parser.add_argument('--log-level', help='Logging level written to stderr (default: WARNING).')
	parser.add_argument('--version', '-v', action='version', version=f'PlaywrightMcpServer v{__version__}')
	return parser


def configure_logging(level: str) -> None:
	logging.basicConfig(
		stream=sys.stderr,
		level=getattr(logging, level.upper(), logging.WARNING),
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
		force=True,
	)
	# stdout belongs to the JSON-RPC channel.
	logging.getLogger('mcp').setLevel(logging.ERROR)
	logging.getLogger('mcp').propagate = False


def build_dispatcher(session: BrowserSession) -> Dispatcher:
	from mcp_playwright.tools import registry

	return Dispatcher(registry, ToolContext(session=session, config=session.config))


async def run_stdio(config: ServerConfig) -> None:
	from mcp_playwright.stdio import StdioServer

	session = BrowserSession(config)
	server = StdioServer(build_dispatcher(session))
	try:
		await server.run()
	finally:
		for failure in await session.close():
			logger.warning('shutdown: %s', failure)


def run_http(config: ServerConfig) -> None:
	import uvicorn

	from mcp_playwright.http_api import create_app, print_banner

	session = BrowserSession(config)
	app = create_app(build_dispatcher(session), session)
	print_banner(config.host, config.port)
	uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


def main(argv: list[str] | None = None) -> int:
	os.environ.setdefault('NODE_NO_WARNINGS', '1')
	args = build_parser().parse_args(argv)
	try:
		config = ServerConfig.from_env().with_args(args)
	except ValueError as exc:
		print(f'error: {exc}', file=sys.stderr)
		return 2
	configure_logging(config.log_level)

	if config.http:
		run_http(config)
		return 0
	try:
		asyncio.run(run_stdio(config))
	except KeyboardInterrupt:
		pass
	return 0
