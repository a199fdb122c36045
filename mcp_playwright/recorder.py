from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable

from mcp_playwright.errors import OperationFailed

logger = logging.getLogger('playwright-mcp.recorder')


class EventRecorder:
	"""Per-page capture of console output, outbound requests and modal state.

	Attached exactly once, when the tab is created. Buffers are ring buffers capped
	at ``max_entries``; the oldest records fall off first.
	"""

	def __init__(self, page: Any, *, max_entries: int = 1000) -> None:
		self.page = page
		self._console: deque[dict[str, Any]] = deque(maxlen=max(1, max_entries))
		self._requests: deque[dict[str, Any]] = deque(maxlen=max(1, max_entries))
		self.pending_dialog: Any | None = None
		self.pending_file_chooser: Any | None = None
		self._dialog_waiters: list[asyncio.Future[Any]] = []
		# Actions parked behind an open dialog; they finish once it is handled.
		self._blocked: set[asyncio.Future[Any]] = set()

		page.on('console', self._on_console)
		page.on('request', self._on_request)
		page.on('dialog', self._on_dialog)
		page.on('filechooser', self._on_file_chooser)

	def _on_console(self, msg: Any) -> None:
		try:
			location = msg.location
		except Exception:
			location = None
		self._console.append({'type': msg.type, 'text': msg.text, 'location': location})

	def _on_request(self, request: Any) -> None:
		self._requests.append(
			{
				'url': request.url,
				'method': request.method,
				'resourceType': request.resource_type,
			}
		)

	def _on_dialog(self, dialog: Any) -> None:
		logger.debug('dialog opened: %s %r', dialog.type, dialog.message)
		self.pending_dialog = dialog
		waiters, self._dialog_waiters = self._dialog_waiters, []
		for waiter in waiters:
			if not waiter.done():
				waiter.set_result(dialog)

	def _on_file_chooser(self, chooser: Any) -> None:
		self.pending_file_chooser = chooser

	def console_messages(self) -> list[dict[str, Any]]:
		return list(self._console)

	def network_requests(self) -> list[dict[str, Any]]:
		return list(self._requests)

	def take_dialog(self) -> Any | None:
		dialog, self.pending_dialog = self.pending_dialog, None
		return dialog

	def take_file_chooser(self) -> Any | None:
		chooser, self.pending_file_chooser = self.pending_file_chooser, None
		return chooser

	async def run_until_dialog(self, action: Callable[[], Awaitable[Any]]) -> tuple[Any, Any | None]:
		"""Run a page action, returning early if it opens a dialog.

		Playwright holds an action that raised ``alert``/``confirm``/``prompt`` until the
		dialog is handled, so waiting on it alone would block until the tool timeout.
		Returns ``(result, None)`` when the action finished, or ``(None, dialog)`` when a
		dialog opened first; the action then completes in the background.
		"""
		if self.pending_dialog is not None:
			raise OperationFailed(
				f'A {self.pending_dialog.type} dialog is open ({self.pending_dialog.message!r}); '
				'handle it with browser_handle_dialog first'
			)

		task = asyncio.ensure_future(action())
		waiter: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
		self._dialog_waiters.append(waiter)
		try:
			await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
		except asyncio.CancelledError:
			task.cancel()
			raise
		finally:
			if waiter in self._dialog_waiters:
				self._dialog_waiters.remove(waiter)
			waiter.cancel()

		if task.done():
			return task.result(), None

		self._blocked.add(task)
		task.add_done_callback(self._blocked_action_done)
		return None, waiter.result()

	def _blocked_action_done(self, task: asyncio.Future[Any]) -> None:
		self._blocked.discard(task)
		if task.cancelled():
			return
		exc = task.exception()
		if exc is not None:
			logger.info('action interrupted by a dialog failed afterwards: %s', exc)
