from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from mcp_playwright.config import ServerConfig
from mcp_playwright.errors import BrowserLaunchFailed, InvalidArgument
from mcp_playwright.recorder import EventRecorder

logger = logging.getLogger('playwright-mcp.session')

Launcher = Callable[[ServerConfig], Awaitable[tuple[Any, Any]]]


async def launch_playwright(config: ServerConfig) -> tuple[Any, Any]:
	from playwright.async_api import async_playwright

	driver = await async_playwright().start()
	try:
		browser_type = getattr(driver, config.browser)
		browser = await browser_type.launch(headless=config.headless)
	except BaseException:
		# Also on cancellation (tool timeout, shutdown): nobody else holds the driver yet.
		await _stop_quietly(driver)
		raise
	return driver, browser


async def _stop_quietly(driver: Any) -> None:
	try:
		await asyncio.shield(driver.stop())
	except asyncio.CancelledError:
		raise
	except Exception:
		logger.warning('stopping playwright driver failed', exc_info=True)


@dataclass(eq=False)
class Tab:
	page: Any
	recorder: EventRecorder


class BrowserSession:
	"""The one browser/context/tab aggregate of the process.

	Nothing is launched until the first caller needs a page. Every read or mutation of
	the tab list and the current index happens under ``self._lock``; page operations
	themselves run outside it.
	"""

	def __init__(
		self,
		config: ServerConfig,
		*,
		launcher: Launcher | None = None,
		lock: asyncio.Lock | None = None,
	) -> None:
		self.config = config
		self._launcher = launcher or launch_playwright
		self._lock = lock or asyncio.Lock()

		self._driver: Any = None
		self._browser: Any = None
		self._context: Any = None
		self._tabs: list[Tab] = []
		self._popups: list[Tab] = []
		self._current = 0

	@property
	def started(self) -> bool:
		return self._browser is not None

	async def ensure(self) -> None:
		async with self._lock:
			await self._ensure_locked()

	async def current_tab(self) -> Tab:
		async with self._lock:
			await self._ensure_locked()
			return self._tabs[self._current]

	async def current_page(self) -> Any:
		tab = await self.current_tab()
		return tab.page

	async def list_tabs(self) -> list[dict[str, Any]]:
		async with self._lock:
			await self._ensure_locked()
			tabs = list(self._tabs)
			current = self._current

		out: list[dict[str, Any]] = []
		for index, tab in enumerate(tabs):
			try:
				title = await tab.page.title()
			except Exception:
				title = ''
			out.append({'index': index, 'url': tab.page.url, 'title': title, 'current': index == current})
		return out

	async def new_tab(self) -> int:
		async with self._lock:
			await self._ensure_locked()
			await self._open_tab_locked()
			return self._current

	async def close_tab(self, index: int | None = None) -> int:
		"""Close the tab at ``index`` (the current tab when absent or out of range).

		Returns the index of the tab that is current afterwards.
		"""
		async with self._lock:
			await self._ensure_locked()
			if index is None or not 0 <= index < len(self._tabs):
				index = self._current
			tab = self._tabs.pop(index)
			if self._tabs:
				self._current = len(self._tabs) - 1
			else:
				await self._open_tab_locked()
			current = self._current

		try:
			await tab.page.close()
		except Exception:
			logger.warning('closing tab %d failed', index, exc_info=True)
		return current

	async def select_tab(self, index: int) -> Tab:
		async with self._lock:
			await self._ensure_locked()
			if not 0 <= index < len(self._tabs):
				raise InvalidArgument('index', f'Tab index out of range: {index} (open tabs: {len(self._tabs)})')
			self._current = index
			tab = self._tabs[index]

		try:
			await tab.page.bring_to_front()
		except Exception:
			logger.debug('bring_to_front failed', exc_info=True)
		return tab

	async def close(self) -> list[str]:
		"""Release page, context, browser and driver. Safe to call repeatedly or before start.

		Returns the failures that were swallowed along the way.
		"""
		async with self._lock:
			return await self._release_locked()

	async def _ensure_locked(self) -> None:
		if self._browser is not None and not self._browser_connected():
			logger.warning('browser connection lost; relaunching')
			await self._release_locked()

		if self._browser is None:
			try:
				self._driver, self._browser = await self._launcher(self.config)
			except Exception as exc:
				raise BrowserLaunchFailed(f'Failed to launch {self.config.browser}: {exc}') from exc
			logger.info('launched %s (headless=%s)', self.config.browser, self.config.headless)

		if self._context is None:
			try:
				context = await self._browser.new_context(**self.config.context_options())
			except BaseException:
				await self._release_locked()
				raise
			self._context = context
			context.on('page', functools.partial(self._on_context_page, context))

		self._adopt_popups_locked()
		self._prune_closed_locked()
		if not self._tabs:
			await self._open_tab_locked()

	def _browser_connected(self) -> bool:
		try:
			return bool(self._browser.is_connected())
		except Exception:
			return False

	def _prune_closed_locked(self) -> None:
		if not self._tabs:
			return
		current = self._tabs[min(self._current, len(self._tabs) - 1)]
		self._tabs = [tab for tab in self._tabs if not tab.page.is_closed()]
		if current in self._tabs:
			self._current = self._tabs.index(current)
		else:
			self._current = max(0, len(self._tabs) - 1)

	def _on_context_page(self, context: Any, page: Any) -> None:
		# Fires for popups and for our own new_page() calls. The recorder is attached
		# right away so early console output is kept; the tab joins the list under the lock.
		if context is not self._context:
			return
		if any(tab.page is page for tab in self._tabs) or any(tab.page is page for tab in self._popups):
			return
		self._popups.append(Tab(page=page, recorder=EventRecorder(page, max_entries=self.config.max_events)))

	def _adopt_popups_locked(self) -> None:
		popups, self._popups = self._popups, []
		for tab in popups:
			logger.info('adopting tab opened by the page: %s', tab.page.url)
			self._tabs.append(tab)

	async def _open_tab_locked(self) -> Tab:
		page = await self._context.new_page()
		tab = next((t for t in self._popups if t.page is page), None)
		if tab is None:
			tab = Tab(page=page, recorder=EventRecorder(page, max_entries=self.config.max_events))
		else:
			self._popups.remove(tab)
		self._tabs.append(tab)
		self._current = len(self._tabs) - 1
		return tab

	async def _release_locked(self) -> list[str]:
		failures: list[str] = []
		page = self._tabs[self._current].page if self._tabs else None
		context, browser, driver = self._context, self._browser, self._driver

		self._tabs = []
		self._popups = []
		self._current = 0
		self._context = None
		self._browser = None
		self._driver = None

		async def step(label: str, action: Callable[[], Awaitable[Any]]) -> None:
			try:
				await action()
			except Exception as exc:
				logger.warning('teardown: %s failed: %s', label, exc)
				failures.append(f'{label}: {type(exc).__name__}: {exc}')

		try:
			if page is not None:
				await step('page', page.close)
			if context is not None:
				await step('context', context.close)
			if browser is not None:
				await step('browser', browser.close)
		finally:
			if driver is not None:
				await step('driver', driver.stop)
		return failures
