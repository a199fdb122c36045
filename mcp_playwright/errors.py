from __future__ import annotations

import mcp.types as types


class ProtocolError(Exception):
	"""Framing/routing failure on the JSON-RPC channel. Never reaches the dispatcher."""

	code = types.INTERNAL_ERROR

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class ParseError(ProtocolError):
	code = types.PARSE_ERROR


class InvalidRequest(ProtocolError):
	code = types.INVALID_REQUEST


class MethodNotFound(ProtocolError):
	code = types.METHOD_NOT_FOUND


class InvalidParams(ProtocolError):
	code = types.INVALID_PARAMS


class InternalError(ProtocolError):
	code = types.INTERNAL_ERROR


class ToolError(Exception):
	kind = 'operation_failed'

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class UnknownTool(ToolError):
	kind = 'unknown_tool'

	def __init__(self, name: str) -> None:
		super().__init__(f'Unknown tool: {name}')
		self.name = name


class InvalidArgument(ToolError):
	kind = 'invalid_argument'

	def __init__(self, field: str, message: str | None = None) -> None:
		super().__init__(message or f'Invalid parameter: {field}')
		self.field = field


class OperationFailed(ToolError):
	kind = 'operation_failed'


class BrowserLaunchFailed(OperationFailed):
	kind = 'browser_launch_failed'
