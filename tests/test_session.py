from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from mcp_playwright.cli import build_dispatcher
from mcp_playwright.config import ServerConfig
from mcp_playwright.errors import BrowserLaunchFailed, InvalidArgument
from mcp_playwright.session import BrowserSession
from tests._fakes import FakeConsoleMessage, FakeDriver, FakeLauncher
from tests._util import run


def test_nothing_launched_before_first_use(session: BrowserSession, launcher: FakeLauncher) -> None:
	assert not session.started
	assert launcher.launches == 0

	async def scenario() -> None:
		await session.current_page()

	run(scenario())
	assert session.started
	assert launcher.launches == 1


def test_concurrent_ensure_launches_once(config: ServerConfig) -> None:
	launcher = FakeLauncher(delay=0.01)
	session = BrowserSession(config, launcher=launcher)

	async def scenario() -> list[object]:
		return await asyncio.gather(*(session.current_page() for _ in range(20)))

	pages = run(scenario())
	assert launcher.launches == 1
	assert len(launcher.browser.contexts) == 1
	assert len({id(page) for page in pages}) == 1


def test_context_uses_configured_viewport(tmp_path) -> None:
	launcher = FakeLauncher()
	session = BrowserSession(ServerConfig(output_dir=tmp_path, viewport=(800, 600)), launcher=launcher)
	run(session.ensure())
	assert launcher.browser.contexts[0].options == {"viewport": {"width": 800, "height": 600}}


def test_launch_failure_raises_browser_launch_failed(config: ServerConfig) -> None:
	session = BrowserSession(config, launcher=FakeLauncher(fail=True))
	with pytest.raises(BrowserLaunchFailed) as info:
		run(session.ensure())
	assert "chromium" in str(info.value)
	assert not session.started


def test_new_select_close_keep_one_current_open_tab(session: BrowserSession) -> None:
	async def scenario() -> None:
		await session.ensure()
		assert await session.new_tab() == 1
		assert await session.new_tab() == 2

		await session.select_tab(0)
		tabs = await session.list_tabs()
		assert [t["current"] for t in tabs] == [True, False, False]

		# Closing the current tab moves "current" to the last remaining tab.
		assert await session.close_tab() == 1
		tabs = await session.list_tabs()
		assert len(tabs) == 2
		assert [t["current"] for t in tabs] == [False, True]

		page = await session.current_page()
		assert not page.is_closed()

	run(scenario())


def test_closing_last_tab_opens_fresh_blank_tab(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> None:
		first = await session.current_page()
		current = await session.close_tab(5)
		assert current == 0
		assert first.is_closed()

		replacement = await session.current_page()
		assert replacement is not first
		assert not replacement.is_closed()
		assert replacement.url == "about:blank"

	run(scenario())
	assert launcher.launches == 1


def test_close_out_of_range_falls_back_to_current(session: BrowserSession) -> None:
	async def scenario() -> None:
		await session.ensure()
		await session.new_tab()
		await session.select_tab(0)
		keep = (await session.list_tabs())[1]
		await session.close_tab(42)
		tabs = await session.list_tabs()
		assert len(tabs) == 1
		assert tabs[0]["current"] is True
		assert tabs[0]["url"] == keep["url"]

	run(scenario())


def test_select_out_of_range_is_invalid_argument(session: BrowserSession) -> None:
	async def scenario() -> None:
		await session.ensure()
		with pytest.raises(InvalidArgument) as info:
			await session.select_tab(3)
		assert info.value.field == "index"
		with pytest.raises(InvalidArgument):
			await session.select_tab(-1)

	run(scenario())


def test_externally_closed_page_is_replaced(session: BrowserSession) -> None:
	async def scenario() -> None:
		page = await session.current_page()
		await page.close()
		again = await session.current_page()
		assert again is not page
		assert not again.is_closed()
		assert len(await session.list_tabs()) == 1

	run(scenario())


def test_each_tab_gets_its_own_recorder(session: BrowserSession) -> None:
	async def scenario() -> None:
		first = await session.current_tab()
		await session.new_tab()
		second = await session.current_tab()
		assert first.recorder is not second.recorder
		assert second.page.handler_count("console") == 1
		assert first.page.handler_count("console") == 1

	run(scenario())


def test_dropped_connection_relaunches(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> None:
		await session.ensure()
		launcher.browser.connected = False
		page = await session.current_page()
		assert not page.is_closed()

	run(scenario())
	assert launcher.launches == 2
	assert launcher.drivers[0].stopped


def test_close_releases_in_order(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> list[str]:
		await session.ensure()
		return await session.close()

	failures = run(scenario())
	assert failures == []
	assert launcher.log == ["page.close", "context.close", "browser.close", "driver.stop"]
	assert not session.started


def test_close_is_best_effort(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> list[str]:
		page = await session.current_page()
		page.fail_close = True
		launcher.browser.contexts[0].fail_close = True
		launcher.browser.fail_close = True
		return await session.close()

	failures = run(scenario())
	assert [f.split(":")[0] for f in failures] == ["page", "context", "browser"]
	assert launcher.log[-1] == "driver.stop"
	assert launcher.drivers[0].stopped


def test_close_is_idempotent_and_safe_before_start(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> None:
		assert await session.close() == []
		await session.ensure()
		await session.close()
		assert await session.close() == []

	run(scenario())
	assert launcher.log.count("driver.stop") == 1


def test_session_can_restart_after_close(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> None:
		await session.ensure()
		await session.close()
		await session.current_page()

	run(scenario())
	assert launcher.launches == 2
	assert session.started


class _StallingBrowserType:
	async def launch(self, headless: bool = True) -> None:
		await asyncio.sleep(10)


class _Starter:
	def __init__(self, driver: FakeDriver) -> None:
		self._driver = driver

	async def start(self) -> FakeDriver:
		return self._driver


def test_cancelled_launch_stops_the_driver(config: ServerConfig, monkeypatch) -> None:
	import playwright.async_api

	driver = FakeDriver([])
	driver.chromium = _StallingBrowserType()
	monkeypatch.setattr(playwright.async_api, "async_playwright", lambda: _Starter(driver))

	session = BrowserSession(replace(config, tool_timeout=0.2))
	dispatcher = build_dispatcher(session)
	result = run(dispatcher.invoke("browser_snapshot", {}))

	assert result.error_message == "Tool browser_snapshot timed out after 0.2s"
	assert driver.stopped
	assert not session.started


def test_failed_context_creation_releases_browser_and_driver(config: ServerConfig) -> None:
	launcher = FakeLauncher(fail_new_context=True)
	session = BrowserSession(config, launcher=launcher)
	with pytest.raises(RuntimeError):
		run(session.ensure())
	assert launcher.log == ["browser.close", "driver.stop"]
	assert not session.started


def test_popup_becomes_a_tab_with_its_own_recorder(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> None:
		opener = await session.current_tab()
		popup = launcher.browser.contexts[0].open_popup("https://example.com/popup")
		popup.emit("console", FakeConsoleMessage("log", "from popup"))

		tabs = await session.list_tabs()
		assert [t["url"] for t in tabs] == ["about:blank", "https://example.com/popup"]
		# the opener stays current
		assert [t["current"] for t in tabs] == [True, False]
		assert (await session.current_tab()) is opener

		await session.select_tab(1)
		tab = await session.current_tab()
		assert tab.page is popup
		assert [m["text"] for m in tab.recorder.console_messages()] == ["from popup"]
		assert popup.handler_count("console") == 1

	run(scenario())


def test_own_tabs_are_not_adopted_twice(session: BrowserSession, launcher: FakeLauncher) -> None:
	async def scenario() -> None:
		await session.new_tab()
		await session.new_tab()
		tabs = await session.list_tabs()
		assert len(tabs) == 3
		for page in launcher.browser.contexts[0].pages:
			assert page.handler_count("console") == 1

	run(scenario())
