from __future__ import annotations

import contextlib
import functools
import http.server
import tempfile
import threading
import time
from collections.abc import Iterator
from pathlib import Path


class QuietHandler(http.server.SimpleHTTPRequestHandler):
	def log_message(self, format: str, *args) -> None:  # noqa: A002
		return


@contextlib.contextmanager
def serve_pages(pages: dict[str, str]) -> Iterator[str]:
	"""Write ``pages`` (relative path -> HTML) to a temp dir and serve it on 127.0.0.1.

	Yields the base URL, ending in a slash.
	"""
	with tempfile.TemporaryDirectory(prefix="mcp-playwright-fixture-") as tmp:
		root = Path(tmp)
		for rel, html in pages.items():
			target = root / rel
			target.parent.mkdir(parents=True, exist_ok=True)
			target.write_text(html, encoding="utf-8")

		handler = functools.partial(QuietHandler, directory=str(root))
		with http.server.ThreadingHTTPServer(("127.0.0.1", 0), handler) as httpd:
			thread = threading.Thread(target=httpd.serve_forever, name="fixture-httpd", daemon=True)
			thread.start()
			time.sleep(0.05)
			try:
				yield f"http://127.0.0.1:{httpd.server_address[1]}/"
			finally:
				httpd.shutdown()
				thread.join(timeout=2)
