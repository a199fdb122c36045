from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable

import mcp.types as types
from pydantic import BaseModel, ConfigDict, ValidationError

from mcp_playwright.config import ServerConfig
from mcp_playwright.errors import InvalidArgument, OperationFailed, ToolError, UnknownTool
from mcp_playwright.session import BrowserSession

logger = logging.getLogger('playwright-mcp.registry')

# JSON-Schema keys kept when publishing a tool's argument model.
_SCHEMA_KEYS = ('type', 'description', 'enum', 'items', 'properties', 'required')


def json_dumps(obj: Any, *, indent: int | None = None) -> str:
	return json.dumps(obj, ensure_ascii=False, indent=indent, default=lambda o: repr(o))


class ToolParams(BaseModel):
	"""Base for per-tool argument records. Unknown keys are ignored."""

	model_config = ConfigDict(extra='ignore', populate_by_name=True)


@dataclass
class ToolContext:
	session: BrowserSession
	config: ServerConfig


Handler = Callable[[ToolContext, Any], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
	name: str
	description: str
	params: type[ToolParams]
	handler: Handler

	def input_schema(self) -> dict[str, Any]:
		return restrict_schema(self.params.model_json_schema(by_alias=True))

	def descriptor(self) -> types.Tool:
		return types.Tool(name=self.name, description=self.description, inputSchema=self.input_schema())

	def parse(self, arguments: Any) -> ToolParams:
		if arguments is None:
			arguments = {}
		if not isinstance(arguments, dict):
			raise InvalidArgument('arguments', 'Invalid parameter arguments: expected a JSON object')
		try:
			return self.params.model_validate(arguments)
		except ValidationError as exc:
			raise _invalid_argument(exc) from None


@dataclass(frozen=True)
class ToolResult:
	ok: bool
	payload: Any = None
	error_kind: str | None = None
	error_message: str | None = None

	@classmethod
	def success(cls, payload: Any) -> ToolResult:
		return cls(ok=True, payload=payload)

	@classmethod
	def failure(cls, error: ToolError) -> ToolResult:
		return cls(ok=False, error_kind=error.kind, error_message=error.message)


class ToolRegistry:
	def __init__(self) -> None:
		self._tools: dict[str, ToolSpec] = {}

	def tool(self, name: str, description: str, params: type[ToolParams]) -> Callable[[Handler], Handler]:
		def decorator(func: Handler) -> Handler:
			if name in self._tools:
				raise ValueError(f'Tool already registered: {name}')
			self._tools[name] = ToolSpec(name=name, description=description, params=params, handler=func)
			return func

		return decorator

	def specs(self) -> list[ToolSpec]:
		return list(self._tools.values())


class Dispatcher:
	"""Validates arguments, runs handlers and folds every outcome into a ToolResult."""

	def __init__(self, registry: ToolRegistry, ctx: ToolContext) -> None:
		specs = registry.specs()
		self.ctx = ctx
		self._specs: MappingProxyType[str, ToolSpec] = MappingProxyType({spec.name: spec for spec in specs})
		self._tools: tuple[types.Tool, ...] = tuple(spec.descriptor() for spec in specs)

	def list_tools(self) -> list[types.Tool]:
		return list(self._tools)

	def descriptors(self) -> list[dict[str, Any]]:
		return [tool.model_dump(mode='json', by_alias=True, exclude_none=True) for tool in self._tools]

	def has_tool(self, name: str) -> bool:
		return name in self._specs

	async def invoke(self, name: str, arguments: Any = None) -> ToolResult:
		spec = self._specs.get(name)
		if spec is None:
			return ToolResult.failure(UnknownTool(name))

		try:
			params = spec.parse(arguments)
		except InvalidArgument as exc:
			return ToolResult.failure(exc)

		timeout = self.ctx.config.tool_timeout
		try:
			payload = await asyncio.wait_for(spec.handler(self.ctx, params), timeout=timeout if timeout > 0 else None)
		except ToolError as exc:
			logger.info('tool %s failed: %s', name, exc.message)
			return ToolResult.failure(exc)
		except asyncio.TimeoutError:
			return ToolResult.failure(OperationFailed(f'Tool {name} timed out after {timeout:g}s'))
		except Exception as exc:
			logger.error('tool failed: %s', name, exc_info=True)
			return ToolResult.failure(OperationFailed(str(exc) or type(exc).__name__))
		return ToolResult.success(payload)


def _invalid_argument(exc: ValidationError) -> InvalidArgument:
	# pydantic reports errors in field declaration order; the first one wins.
	error = exc.errors()[0]
	loc = [str(part) for part in error.get('loc') or ()]
	field = loc[0] if loc else 'arguments'
	path = '.'.join(loc) or field
	if error.get('type') == 'missing':
		return InvalidArgument(field, f'Missing required parameter: {path}')
	return InvalidArgument(field, f'Invalid parameter {path}: {error.get("msg")}')


def restrict_schema(schema: dict[str, Any]) -> dict[str, Any]:
	"""Flatten pydantic's JSON schema to the subset published in tool descriptors.

	Inlines ``$defs`` references, collapses ``Optional[X]`` to ``X`` and drops titles
	and defaults.
	"""
	defs = schema.get('$defs') or {}

	def convert(node: dict[str, Any]) -> dict[str, Any]:
		ref = node.get('$ref')
		if ref:
			resolved = dict(defs[ref.rsplit('/', 1)[-1]])
			if 'description' in node:
				resolved['description'] = node['description']
			node = resolved
		variants = node.get('anyOf')
		if variants:
			non_null = [v for v in variants if v.get('type') != 'null']
			merged = convert(non_null[0]) if len(non_null) == 1 else {}
			if 'description' in node:
				merged['description'] = node['description']
			node = merged
		out: dict[str, Any] = {}
		for key in _SCHEMA_KEYS:
			if key not in node:
				continue
			val = node[key]
			if key == 'items':
				val = convert(val)
			elif key == 'properties':
				val = {name: convert(prop) for name, prop in val.items()}
			out[key] = val
		if 'enum' in out and 'type' not in out:
			out['type'] = 'string'
		# Descriptors only speak number; integer checks stay in validation.
		if out.get('type') == 'integer':
			out['type'] = 'number'
		return out

	out = convert(schema)
	out['type'] = 'object'
	out.setdefault('properties', {})
	out.setdefault('required', [])
	return out
