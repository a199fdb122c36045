from __future__ import annotations

import contextlib
import json
import logging
import sys
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from mcp_playwright import __version__
from mcp_playwright.registry import Dispatcher, ToolResult, json_dumps
from mcp_playwright.session import BrowserSession

logger = logging.getLogger('playwright-mcp.http')

_STATUS_BY_KIND = {
	'unknown_tool': 404,
	'invalid_argument': 400,
}


def _json_response(payload: Any, status_code: int = 200) -> Response:
	return Response(content=json_dumps(payload), status_code=status_code, media_type='application/json')


def _error_response(result: ToolResult) -> Response:
	status = _STATUS_BY_KIND.get(result.error_kind or '', 500)
	if status == 500:
		return _json_response({'error': result.error_message, 'success': False}, status)
	return _json_response({'error': result.error_message}, status)


def create_app(dispatcher: Dispatcher, session: BrowserSession | None = None) -> FastAPI:
	"""REST surface over the shared dispatcher: health, tool listing and tool execution."""

	@contextlib.asynccontextmanager
	async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
		yield
		if session is not None:
			failures = await session.close()
			for failure in failures:
				logger.warning('shutdown: %s', failure)

	app = FastAPI(title='playwright-mcp-server', version=__version__, lifespan=lifespan)

	@app.exception_handler(Exception)
	async def _unhandled(_request: Request, exc: Exception) -> JSONResponse:
		logger.error('request failed', exc_info=exc)
		return JSONResponse(status_code=500, content={'error': str(exc) or type(exc).__name__, 'success': False})

	@app.get('/health')
	async def health() -> dict[str, Any]:
		return {'status': 'healthy', 'version': __version__}

	@app.get('/tools')
	async def list_tools() -> dict[str, Any]:
		return {'tools': dispatcher.descriptors()}

	@app.post('/tools/{tool_name}')
	async def execute_tool(tool_name: str, request: Request) -> Response:
		body = await request.body()
		arguments: Any = None
		if body.strip():
			try:
				arguments = json.loads(body)
			except ValueError:
				return _json_response({'error': 'Invalid JSON in request body'}, 400)

		result = await dispatcher.invoke(tool_name, arguments)
		if not result.ok:
			return _error_response(result)
		return _json_response(result.payload)

	return app


def print_banner(host: str, port: int) -> None:
	base = f'http://{host}:{port}'
	print(f'Playwright HTTP Server starting on {base}', file=sys.stderr)
	print('Endpoints:', file=sys.stderr)
	print(f'  GET  {base}/health - Health check', file=sys.stderr)
	print(f'  GET  {base}/tools - List available tools', file=sys.stderr)
	print(f'  POST {base}/tools/{{name}} - Execute a tool', file=sys.stderr)
	print('Press Ctrl+C to stop the server', file=sys.stderr)
