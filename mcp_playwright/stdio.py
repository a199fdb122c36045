from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, TextIO

from mcp_playwright import PROTOCOL_VERSION, SERVER_NAME, __version__
from mcp_playwright.errors import InternalError, InvalidParams, InvalidRequest, MethodNotFound, ParseError, ProtocolError
from mcp_playwright.registry import Dispatcher, json_dumps

logger = logging.getLogger('playwright-mcp.stdio')

# Screenshots travel inline as base64, so lines can be large.
_LINE_LIMIT = 64 * 1024 * 1024


def _make_response(request_id: Any, result: Any) -> dict[str, Any]:
	return {'jsonrpc': '2.0', 'id': request_id, 'result': result}


def _make_error(request_id: Any, code: int, message: str) -> dict[str, Any]:
	return {'jsonrpc': '2.0', 'id': request_id, 'error': {'code': code, 'message': message}}


class StdioServer:
	"""MCP over stdio: one JSON-RPC message per line in, at most one per line out.

	Lines are handled strictly one after another; responses come out in request order.
	"""

	def __init__(self, dispatcher: Dispatcher) -> None:
		self.dispatcher = dispatcher

	async def handle_line(self, line: str) -> dict[str, Any] | None:
		request_id: Any = None
		try:
			try:
				message = json.loads(line)
			except ValueError:
				raise ParseError('Parse error') from None
			if not isinstance(message, dict):
				raise InvalidRequest('Invalid request: expected a JSON object')
			request_id = message.get('id')
			return await self.handle_message(message)
		except ProtocolError as exc:
			return _make_error(request_id, exc.code, exc.message)
		except Exception as exc:
			logger.error('failed to process message', exc_info=True)
			return _make_error(request_id, InternalError.code, f'Internal error: {exc}')

	async def handle_message(self, message: dict[str, Any]) -> dict[str, Any] | None:
		method = message.get('method')
		request_id = message.get('id')
		params = message.get('params')

		if not isinstance(method, str) or not method:
			raise InvalidRequest('Invalid request: missing method')

		if method == 'initialize':
			return _make_response(request_id, self.initialize_result())
		if method == 'ping':
			return _make_response(request_id, {})
		if method == 'tools/list':
			return _make_response(request_id, {'tools': self.dispatcher.descriptors()})
		if method == 'tools/call':
			return _make_response(request_id, await self._call_tool(params))
		if method == 'notifications/initialized':
			return None
		raise MethodNotFound(f'Method not found: {method}')

	@staticmethod
	def initialize_result() -> dict[str, Any]:
		return {
			'protocolVersion': PROTOCOL_VERSION,
			'capabilities': {'tools': {}},
			'serverInfo': {'name': SERVER_NAME, 'version': __version__},
		}

	async def _call_tool(self, params: Any) -> dict[str, Any]:
		params = params if isinstance(params, dict) else {}
		name = params.get('name')
		if not isinstance(name, str) or not name:
			raise InvalidParams('Invalid params: missing tool name')

		result = await self.dispatcher.invoke(name, params.get('arguments'))
		if result.ok:
			return {'content': [{'type': 'text', 'text': json_dumps(result.payload, indent=2)}]}
		return {
			'content': [{'type': 'text', 'text': f'Error: {result.error_message}'}],
			'isError': True,
		}

	async def serve(self, reader: asyncio.StreamReader, writer: TextIO) -> None:
		while True:
			try:
				raw = await reader.readline()
			except ValueError as exc:
				# Oversized line; the reader has already dropped it.
				logger.warning('discarding oversized message: %s', exc)
				writer.write(json_dumps(_make_error(None, InternalError.code, f'Internal error: {exc}')) + '\n')
				writer.flush()
				continue
			if not raw:
				break

			line = raw.decode('utf-8', errors='replace').strip()
			if not line:
				continue

			try:
				response = await self.handle_line(line)
			except Exception as exc:
				logger.error('failed to process message', exc_info=True)
				response = _make_error(None, InternalError.code, f'Internal error: {exc}')

			if response is not None:
				writer.write(json_dumps(response) + '\n')
				writer.flush()

	async def run(self) -> None:
		"""Serve stdin/stdout until stdin closes."""
		logger.info('stdio server starting')
		loop = asyncio.get_running_loop()
		reader = asyncio.StreamReader(limit=_LINE_LIMIT)
		protocol = asyncio.StreamReaderProtocol(reader)
		await loop.connect_read_pipe(lambda: protocol, sys.stdin)
		await self.serve(reader, sys.stdout)
		logger.info('stdio server stopped (end of input)')
