from __future__ import annotations

import argparse
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

BROWSER_TYPES = ('chromium', 'firefox', 'webkit')

_ENV_PREFIX = 'PLAYWRIGHT_MCP_'


def _env(environ: Mapping[str, str], name: str) -> str:
	return (environ.get(_ENV_PREFIX + name) or '').strip()


def _env_bool(raw: str, default: bool = False) -> bool:
	val = raw.strip().lower()
	if not val:
		return default
	return val in {'1', 'true', 'yes', 'y', 'on'}


def _coerce_int(val: Any, default: int) -> int:
	try:
		return int(val)
	except Exception:
		return default


def _coerce_float(val: Any, default: float) -> float:
	try:
		return float(val)
	except Exception:
		return default


def _parse_viewport(raw: str) -> tuple[int, int] | None:
	# "1280x720" or "1280,720"
	parts = raw.lower().replace(',', 'x').split('x')
	if len(parts) != 2:
		return None
	width = _coerce_int(parts[0], 0)
	height = _coerce_int(parts[1], 0)
	if width <= 0 or height <= 0:
		return None
	return width, height


def default_output_dir() -> Path:
	xdg = (os.getenv('XDG_STATE_HOME') or '').strip()
	if xdg:
		return Path(xdg).expanduser() / 'mcp-playwright'
	return Path('~/.local/state/mcp-playwright').expanduser()


@dataclass(frozen=True)
class ServerConfig:
	browser: str = 'chromium'
	headless: bool = True
	http: bool = False
	host: str = '127.0.0.1'
	port: int = 5000
	viewport: tuple[int, int] | None = None
	output_dir: Path = field(default_factory=default_output_dir)
	max_events: int = 1000
	tool_timeout: float = 300.0
	max_wait: float = 60.0
	log_level: str = 'WARNING'

	def __post_init__(self) -> None:
		if self.browser not in BROWSER_TYPES:
			raise ValueError(f'Unsupported browser type: {self.browser!r} (expected one of {", ".join(BROWSER_TYPES)})')

	@classmethod
	def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
		env = os.environ if environ is None else environ
		defaults = cls()
		output_dir = _env(env, 'OUTPUT_DIR')
		viewport = _parse_viewport(_env(env, 'VIEWPORT')) if _env(env, 'VIEWPORT') else None
		return cls(
			browser=(_env(env, 'BROWSER') or defaults.browser).lower(),
			headless=_env_bool(_env(env, 'HEADLESS'), defaults.headless),
			http=_env_bool(_env(env, 'HTTP'), defaults.http),
			host=_env(env, 'HOST') or defaults.host,
			port=_coerce_int(_env(env, 'PORT'), defaults.port),
			viewport=viewport,
			output_dir=Path(output_dir).expanduser() if output_dir else defaults.output_dir,
			max_events=max(1, _coerce_int(_env(env, 'MAX_EVENTS'), defaults.max_events)),
			tool_timeout=_coerce_float(_env(env, 'TOOL_TIMEOUT'), defaults.tool_timeout),
			max_wait=_coerce_float(_env(env, 'MAX_WAIT'), defaults.max_wait),
			log_level=(_env(env, 'LOG_LEVEL') or defaults.log_level).upper(),
		)

	def with_args(self, args: argparse.Namespace) -> ServerConfig:
		"""Overlay parsed command-line flags; flags left unset keep the env/default value."""
		changes: dict[str, Any] = {}
		if args.browser:
			changes['browser'] = args.browser.lower()
		if args.headed:
			changes['headless'] = False
		if args.http:
			changes['http'] = True
		if args.host:
			changes['host'] = args.host
		if args.port is not None:
			changes['port'] = args.port
		if args.output_dir:
			changes['output_dir'] = Path(args.output_dir).expanduser()
		if args.log_level:
			changes['log_level'] = args.log_level.upper()
		return replace(self, **changes)

	def context_options(self) -> dict[str, Any]:
		if self.viewport is None:
			return {}
		width, height = self.viewport
		return {'viewport': {'width': width, 'height': height}}

	def resolve_output_path(self, filename: str) -> Path:
		path = Path(filename).expanduser()
		if not path.is_absolute():
			path = self.output_dir / path
		path.parent.mkdir(parents=True, exist_ok=True)
		return path
