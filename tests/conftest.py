import asyncio
import socket
import threading
import time
from pathlib import Path
from typing import Callable, Iterator

import pytest

from staticd.features.compression import CompressionAdapter
from staticd.http.model import (
	HTTPBodyBlob,
	HTTPBodyFile,
	HTTPBodyStream,
	HTTPRequest,
	HTTPResponse,
)
from staticd.http.parser import HTTPParser
from staticd.model import Application, mount
from staticd.routing import awaited
from staticd.server import run
from staticd.services.files import FileService
from staticd.utils.io import asBytes

TEST_DATA: Path = Path(__file__).absolute().parent / "data"
CERT_PATH: Path = TEST_DATA / "ssl" / "default.cert"
KEY_PATH: Path = TEST_DATA / "ssl" / "default.key"

INDEX_HTML: bytes = (
	b"<!DOCTYPE html>\n<html><head><title>Index</title></head><body>\n"
	+ b"<p>Hello, static world!</p>\n" * 40
	+ b"</body></html>\n"
)
STYLE_CSS: bytes = b"body { color: #333; }\n" * 5_000


def freePort() -> int:
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
		s.bind(("127.0.0.1", 0))
		return s.getsockname()[1]


def waitForPort(port: int, timeout: float = 10.0) -> None:
	until = time.monotonic() + timeout
	while True:
		try:
			with socket.create_connection(("127.0.0.1", port), timeout=1.0):
				return
		except OSError:
			if time.monotonic() > until:
				raise
			time.sleep(0.05)


def isListening(port: int) -> bool:
	try:
		with socket.create_connection(("127.0.0.1", port), timeout=1.0):
			return True
	except OSError:
		return False


def makeRequest(
	method: str, path: str, headers: dict[str, str] | None = None
) -> HTTPRequest:
	"""Creates a request by parsing its HTTP/1.1 serialization."""
	lines = [f"{method} {path} HTTP/1.1", "Host: localhost"]
	lines += [f"{k}: {v}" for k, v in (headers or {}).items()]
	payload = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
	requests = [_ for _ in HTTPParser().feed(payload) if isinstance(_, HTTPRequest)]
	assert len(requests) == 1
	return requests[0]


def process(app: Application, request: HTTPRequest) -> HTTPResponse:
	return asyncio.run(awaited(app.process(request)))


def bodyBytes(response: HTTPResponse) -> bytes:
	body = response.body
	if body is None:
		return b""
	elif isinstance(body, HTTPBodyBlob):
		return body.payload
	elif isinstance(body, HTTPBodyFile):
		return body.path.read_bytes()
	elif isinstance(body, HTTPBodyStream):
		return b"".join(asBytes(_) for _ in body.stream)
	else:
		raise ValueError(f"Unsupported body: {body}")


def dechunk(data: bytes) -> bytes:
	"""Decodes a complete body sent with the chunked transfer encoding."""
	res: bytes = b""
	while True:
		size_line, _, data = data.partition(b"\r\n")
		size = int(size_line.split(b";", 1)[0], 16)
		if size == 0:
			return res
		assert data[size : size + 2] == b"\r\n"
		res += data[:size]
		data = data[size + 2 :]


@pytest.fixture
def site(tmp_path: Path) -> Path:
	"""A small website to serve."""
	root = tmp_path / "site"
	root.mkdir()
	(root / "index.html").write_bytes(INDEX_HTML)
	(root / "style.css").write_bytes(STYLE_CSS)
	(root / "tiny.txt").write_bytes(b"tiny\n")
	(root / "photo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4)
	(root / "docs").mkdir()
	(root / "docs" / "index.html").write_bytes(b"<p>Documentation</p>\n")
	(root / "files").mkdir()
	(root / "files" / "a <b>.txt").write_bytes(b"A\n")
	(root / "files" / "nested").mkdir()
	(tmp_path / "secret.txt").write_bytes(b"secret\n")
	return root


@pytest.fixture
def app(site: Path) -> Application:
	return CompressionAdapter.Default()(mount(FileService(site)))


@pytest.fixture
def serve() -> Iterator[Callable[..., int]]:
	"""Runs the server in a background thread, returning a function that
	starts it with the given arguments and returns the port."""
	stop = threading.Event()
	threads: list[threading.Thread] = []

	def start(*components: Application, **options) -> int:
		port = freePort()
		thread = threading.Thread(
			target=run,
			args=components,
			kwargs=dict(
				host="127.0.0.1",
				port=port,
				condition=lambda: not stop.is_set(),
				polling=0.05,
			)
			| options,
			daemon=True,
		)
		thread.start()
		threads.append(thread)
		waitForPort(port)
		return port

	yield start
	stop.set()
	for thread in threads:
		thread.join(timeout=10.0)


# EOF
