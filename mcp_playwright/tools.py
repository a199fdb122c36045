from __future__ import annotations

import asyncio
import base64
import logging
import sys
from typing import Any, Awaitable, Callable, Literal

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from mcp_playwright.errors import InvalidArgument, OperationFailed
from mcp_playwright.registry import ToolContext, ToolParams, ToolRegistry

logger = logging.getLogger('playwright-mcp.tools')

registry = ToolRegistry()

_REF = 'Exact target element reference (a Playwright selector) from the page snapshot.'
_ELEMENT = 'Human-readable element description, used for logging only.'

Modifier = Literal['Alt', 'Control', 'ControlOrMeta', 'Meta', 'Shift']


class NoParams(ToolParams):
	pass


class NavigateParams(ToolParams):
	url: StrictStr = Field(description='The URL to navigate to.')


class ClickParams(ToolParams):
	ref: StrictStr = Field(description=_REF)
	element: StrictStr | None = Field(None, description=_ELEMENT)
	double_click: StrictBool | None = Field(None, alias='doubleClick', description='Whether to perform a double click instead of a single click.')
	button: Literal['left', 'right', 'middle'] | None = Field(None, description='Button to click, defaults to left.')
	modifiers: list[Modifier] | None = Field(None, description='Modifier keys to press while clicking.')


class TypeParams(ToolParams):
	ref: StrictStr = Field(description=_REF)
	text: StrictStr = Field(description='Text to type into the element.')
	element: StrictStr | None = Field(None, description=_ELEMENT)
	submit: StrictBool | None = Field(None, description='Whether to press Enter after typing.')
	slowly: StrictBool | None = Field(None, description='Type one character at a time, triggering key handlers.')


class FormField(BaseModel):
	name: StrictStr = Field(description='Human-readable field name.')
	type: Literal['textbox', 'checkbox', 'radio', 'combobox', 'slider'] = Field(description='Type of the field.')
	ref: StrictStr = Field(description=_REF)
	value: StrictStr = Field(description='Value to fill. "true"/"false" for checkbox and radio; option text for combobox.')


class FillFormParams(ToolParams):
	fields: list[FormField] = Field(description='Fields to fill in.')


class SelectOptionParams(ToolParams):
	ref: StrictStr = Field(description=_REF)
	values: list[StrictStr] = Field(description='Values (or labels) to select.')
	element: StrictStr | None = Field(None, description=_ELEMENT)


class HoverParams(ToolParams):
	ref: StrictStr = Field(description=_REF)
	element: StrictStr | None = Field(None, description=_ELEMENT)


class DragParams(ToolParams):
	start_ref: StrictStr = Field(alias='startRef', description='Selector of the source element.')
	end_ref: StrictStr = Field(alias='endRef', description='Selector of the target element.')
	start_element: StrictStr | None = Field(None, alias='startElement', description=_ELEMENT)
	end_element: StrictStr | None = Field(None, alias='endElement', description=_ELEMENT)


class PressKeyParams(ToolParams):
	key: StrictStr = Field(description='Name of the key to press or a character, such as ArrowLeft or a.')


class ScreenshotParams(ToolParams):
	type: Literal['png', 'jpeg'] | None = Field(None, description='Image format, defaults to png.')
	filename: StrictStr | None = Field(None, description='File to save the screenshot to; relative paths go to the output directory.')
	ref: StrictStr | None = Field(None, description='Selector of an element to capture instead of the viewport.')
	element: StrictStr | None = Field(None, description=_ELEMENT)
	full_page: StrictBool | None = Field(None, alias='fullPage', description='Capture the full scrollable page. Cannot be combined with ref.')


class EvaluateParams(ToolParams):
	function: StrictStr = Field(description='JavaScript function, e.g. "() => document.title" or "(element) => element.textContent".')
	ref: StrictStr | None = Field(None, description='Selector of an element passed to the function.')
	element: StrictStr | None = Field(None, description=_ELEMENT)


class TabsParams(ToolParams):
	action: Literal['list', 'new', 'close', 'select'] = Field(description='Operation to perform.')
	index: StrictInt | None = Field(None, description='Tab index for close/select. Close falls back to the current tab.')


class WaitForParams(ToolParams):
	time: StrictFloat | None = Field(None, description='Seconds to wait.')
	text: StrictStr | None = Field(None, description='Text to wait for to appear.')
	text_gone: StrictStr | None = Field(None, alias='textGone', description='Text to wait for to disappear.')


class ResizeParams(ToolParams):
	width: StrictFloat = Field(description='Viewport width in pixels.')
	height: StrictFloat = Field(description='Viewport height in pixels.')


class HandleDialogParams(ToolParams):
	accept: StrictBool = Field(description='Whether to accept the dialog.')
	prompt_text: StrictStr | None = Field(None, alias='promptText', description='Text to enter in a prompt dialog.')


class FileUploadParams(ToolParams):
	paths: list[StrictStr] = Field(description='Absolute paths of the files to upload.')


async def _page_info(page: Any) -> dict[str, Any]:
	try:
		title = await page.title()
	except Exception:
		title = ''
	return {'url': page.url, 'title': title}


async def _run_on_page(ctx: ToolContext, action: Callable[[Any], Awaitable[Any]]) -> tuple[Any, Any, dict[str, Any]]:
	"""Run ``action(page)`` on the current tab without getting stuck behind a dialog.

	Returns ``(page, result, extra)``; ``extra`` describes a dialog the action opened.
	"""
	tab = await ctx.session.current_tab()
	result, dialog = await tab.recorder.run_until_dialog(lambda: action(tab.page))
	if dialog is None:
		return tab.page, result, {}
	return tab.page, result, {'dialog': {'type': dialog.type, 'message': dialog.message}}


@registry.tool('browser_navigate', 'Navigate to a URL.', NavigateParams)
async def browser_navigate(ctx: ToolContext, params: NavigateParams) -> dict[str, Any]:
	page, response, extra = await _run_on_page(ctx, lambda p: p.goto(params.url))
	info = await _page_info(page)
	return {'success': True, **info, 'status': response.status if response is not None else None, **extra}


@registry.tool('browser_navigate_back', 'Go back to the previous page.', NoParams)
async def browser_navigate_back(ctx: ToolContext, params: NoParams) -> dict[str, Any]:
	page, _, extra = await _run_on_page(ctx, lambda p: p.go_back())
	return {'success': True, **(await _page_info(page)), **extra}


@registry.tool('browser_snapshot', 'Capture an accessibility snapshot of the current page. Prefer this over screenshots for targeting elements.', NoParams)
async def browser_snapshot(ctx: ToolContext, params: NoParams) -> dict[str, Any]:
	page = await ctx.session.current_page()
	snapshot = await page.locator('body').aria_snapshot()
	return {'success': True, **(await _page_info(page)), 'snapshot': snapshot}


@registry.tool('browser_click', 'Perform a click on a web page element.', ClickParams)
async def browser_click(ctx: ToolContext, params: ClickParams) -> dict[str, Any]:
	options: dict[str, Any] = {}
	if params.button:
		options['button'] = params.button
	if params.modifiers:
		options['modifiers'] = list(params.modifiers)

	async def click(page: Any) -> None:
		locator = page.locator(params.ref)
		if params.double_click:
			await locator.dblclick(**options)
		else:
			await locator.click(**options)

	_, _, extra = await _run_on_page(ctx, click)
	return {'success': True, 'ref': params.ref, 'doubleClick': bool(params.double_click), **extra}


@registry.tool('browser_type', 'Type text into an editable element.', TypeParams)
async def browser_type(ctx: ToolContext, params: TypeParams) -> dict[str, Any]:
	async def type_text(page: Any) -> None:
		locator = page.locator(params.ref)
		if params.slowly:
			await locator.press_sequentially(params.text)
		else:
			await locator.fill(params.text)
		if params.submit:
			await locator.press('Enter')

	_, _, extra = await _run_on_page(ctx, type_text)
	return {'success': True, 'ref': params.ref, 'submitted': bool(params.submit), **extra}


@registry.tool('browser_fill_form', 'Fill multiple form fields at once.', FillFormParams)
async def browser_fill_form(ctx: ToolContext, params: FillFormParams) -> dict[str, Any]:
	async def fill(page: Any) -> None:
		for form_field in params.fields:
			locator = page.locator(form_field.ref)
			if form_field.type in ('checkbox', 'radio'):
				await locator.set_checked(form_field.value.strip().lower() == 'true')
			elif form_field.type == 'combobox':
				await locator.select_option(form_field.value)
			else:
				await locator.fill(form_field.value)

	_, _, extra = await _run_on_page(ctx, fill)
	return {'success': True, 'filled': [form_field.name for form_field in params.fields], **extra}


@registry.tool('browser_select_option', 'Select one or more options in a dropdown.', SelectOptionParams)
async def browser_select_option(ctx: ToolContext, params: SelectOptionParams) -> dict[str, Any]:
	_, selected, extra = await _run_on_page(ctx, lambda p: p.locator(params.ref).select_option(list(params.values)))
	return {'success': True, 'ref': params.ref, 'selected': selected, **extra}


@registry.tool('browser_hover', 'Hover over an element on the page.', HoverParams)
async def browser_hover(ctx: ToolContext, params: HoverParams) -> dict[str, Any]:
	_, _, extra = await _run_on_page(ctx, lambda p: p.locator(params.ref).hover())
	return {'success': True, 'ref': params.ref, **extra}


@registry.tool('browser_drag', 'Drag and drop between two elements.', DragParams)
async def browser_drag(ctx: ToolContext, params: DragParams) -> dict[str, Any]:
	_, _, extra = await _run_on_page(ctx, lambda p: p.locator(params.start_ref).drag_to(p.locator(params.end_ref)))
	return {'success': True, 'startRef': params.start_ref, 'endRef': params.end_ref, **extra}


@registry.tool('browser_press_key', 'Press a key on the keyboard.', PressKeyParams)
async def browser_press_key(ctx: ToolContext, params: PressKeyParams) -> dict[str, Any]:
	_, _, extra = await _run_on_page(ctx, lambda p: p.keyboard.press(params.key))
	return {'success': True, 'key': params.key, **extra}


@registry.tool('browser_take_screenshot', 'Take a screenshot of the current page or of one element.', ScreenshotParams)
async def browser_take_screenshot(ctx: ToolContext, params: ScreenshotParams) -> dict[str, Any]:
	if params.full_page and params.ref:
		raise InvalidArgument('fullPage', 'Invalid parameter fullPage: cannot be combined with ref')
	image_type = params.type or 'png'
	page = await ctx.session.current_page()
	if params.ref:
		data = await page.locator(params.ref).screenshot(type=image_type)
	else:
		data = await page.screenshot(type=image_type, full_page=bool(params.full_page))

	if params.filename:
		path = ctx.config.resolve_output_path(params.filename)
		written = await asyncio.to_thread(path.write_bytes, data)
		return {'success': True, 'path': str(path), 'size': written, 'type': image_type}

	return {
		'success': True,
		'type': image_type,
		'mimeType': f'image/{image_type}',
		'data': base64.b64encode(data).decode('ascii'),
		'size': len(data),
	}


@registry.tool('browser_evaluate', 'Evaluate a JavaScript function on the page or on an element.', EvaluateParams)
async def browser_evaluate(ctx: ToolContext, params: EvaluateParams) -> dict[str, Any]:
	def evaluate(page: Any) -> Awaitable[Any]:
		if params.ref:
			return page.locator(params.ref).evaluate(params.function)
		return page.evaluate(params.function)

	_, result, extra = await _run_on_page(ctx, evaluate)
	return {'success': True, 'result': result, **extra}


@registry.tool('browser_tabs', 'List, create, close or select a browser tab.', TabsParams)
async def browser_tabs(ctx: ToolContext, params: TabsParams) -> dict[str, Any]:
	session = ctx.session
	if params.action == 'new':
		current = await session.new_tab()
	elif params.action == 'close':
		current = await session.close_tab(params.index)
	elif params.action == 'select':
		if params.index is None:
			raise InvalidArgument('index', 'Missing required parameter: index')
		await session.select_tab(params.index)
		current = params.index
	else:
		current = None
	tabs = await session.list_tabs()
	if current is None:
		current = next((tab['index'] for tab in tabs if tab['current']), 0)
	return {'success': True, 'action': params.action, 'current': current, 'tabs': tabs}


@registry.tool('browser_wait_for', 'Wait for text to appear or disappear, or for a number of seconds.', WaitForParams)
async def browser_wait_for(ctx: ToolContext, params: WaitForParams) -> dict[str, Any]:
	if params.time is None and params.text is None and params.text_gone is None:
		raise InvalidArgument('time', 'Missing required parameter: one of time, text or textGone')
	limit = ctx.config.max_wait
	page = await ctx.session.current_page()

	waited: dict[str, Any] = {}
	if params.time is not None:
		seconds = max(0.0, min(params.time, limit))
		await asyncio.sleep(seconds)
		waited['time'] = seconds
	try:
		if params.text_gone is not None:
			await page.get_by_text(params.text_gone).first.wait_for(state='hidden', timeout=limit * 1000)
			waited['textGone'] = params.text_gone
		if params.text is not None:
			await page.get_by_text(params.text).first.wait_for(state='visible', timeout=limit * 1000)
			waited['text'] = params.text
	except PlaywrightTimeoutError as exc:
		raise OperationFailed(f'Timed out after {limit:g}s waiting for text') from exc
	return {'success': True, 'waited': waited}


@registry.tool('browser_resize', 'Resize the browser viewport.', ResizeParams)
async def browser_resize(ctx: ToolContext, params: ResizeParams) -> dict[str, Any]:
	width, height = int(params.width), int(params.height)
	if width <= 0 or height <= 0:
		raise InvalidArgument('width' if width <= 0 else 'height', 'Invalid parameter: viewport size must be positive')
	page = await ctx.session.current_page()
	await page.set_viewport_size({'width': width, 'height': height})
	return {'success': True, 'width': width, 'height': height}


@registry.tool('browser_console_messages', 'Return all console messages recorded for the current tab.', NoParams)
async def browser_console_messages(ctx: ToolContext, params: NoParams) -> dict[str, Any]:
	tab = await ctx.session.current_tab()
	messages = tab.recorder.console_messages()
	return {'success': True, 'count': len(messages), 'messages': messages}


@registry.tool('browser_network_requests', 'Return all network requests recorded for the current tab.', NoParams)
async def browser_network_requests(ctx: ToolContext, params: NoParams) -> dict[str, Any]:
	tab = await ctx.session.current_tab()
	requests = tab.recorder.network_requests()
	return {'success': True, 'count': len(requests), 'requests': requests}


@registry.tool('browser_handle_dialog', 'Accept or dismiss the pending dialog.', HandleDialogParams)
async def browser_handle_dialog(ctx: ToolContext, params: HandleDialogParams) -> dict[str, Any]:
	tab = await ctx.session.current_tab()
	dialog = tab.recorder.take_dialog()
	if dialog is None:
		raise OperationFailed('No dialog visible')
	if params.accept:
		if params.prompt_text is not None:
			await dialog.accept(params.prompt_text)
		else:
			await dialog.accept()
	else:
		await dialog.dismiss()
	return {'success': True, 'type': dialog.type, 'message': dialog.message, 'accepted': params.accept}


@registry.tool('browser_file_upload', 'Upload files through the pending file chooser.', FileUploadParams)
async def browser_file_upload(ctx: ToolContext, params: FileUploadParams) -> dict[str, Any]:
	tab = await ctx.session.current_tab()
	chooser = tab.recorder.take_file_chooser()
	if chooser is None:
		raise OperationFailed('No file chooser visible')
	await chooser.set_files(list(params.paths))
	return {'success': True, 'files': list(params.paths)}


@registry.tool('browser_install', 'Install the configured browser engine.', NoParams)
async def browser_install(ctx: ToolContext, params: NoParams) -> dict[str, Any]:
	browser = ctx.config.browser
	proc = await asyncio.create_subprocess_exec(
		sys.executable,
		'-m',
		'playwright',
		'install',
		browser,
		stdout=asyncio.subprocess.PIPE,
		stderr=asyncio.subprocess.STDOUT,
	)
	try:
		stdout, _ = await proc.communicate()
	except asyncio.CancelledError:
		proc.kill()
		raise
	output = stdout.decode('utf-8', errors='replace')
	if proc.returncode != 0:
		tail = '\n'.join(output.strip().splitlines()[-20:])
		raise OperationFailed(f'playwright install {browser} failed (code {proc.returncode}):\n{tail}')
	return {'success': True, 'browser': browser, 'output': output}


@registry.tool('browser_close', 'Close the browser. The next call that needs a page starts a new one.', NoParams)
async def browser_close(ctx: ToolContext, params: NoParams) -> dict[str, Any]:
	failures = await ctx.session.close()
	return {'success': True, 'warnings': failures}
