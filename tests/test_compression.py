import gzip
import zlib
from pathlib import Path

import pytest

from staticd.features.compression import (
	AcceptedEncoding,
	CompressionAdapter,
	CompressionError,
	CompressionOptions,
	negotiate,
	parseAcceptEncoding,
)
from staticd.http.model import HTTPBodyBlob, HTTPBodyStream, HTTPResponse
import brotli

import staticd.utils.codec

from conftest import INDEX_HTML, STYLE_CSS, bodyBytes, dechunk, makeRequest, process

ENCODINGS: tuple[str, ...] = ("br", "gzip", "deflate")


@pytest.mark.parametrize(
	"header,expected",
	[
		(None, None),
		("", None),
		("identity", None),
		("gzip", "gzip"),
		("deflate", "deflate"),
		("deflate, gzip", "gzip"),
		("gzip;q=0.5, deflate", "deflate"),
		("GZIP;Q=0.8", "gzip"),
		("gzip;q=0, deflate;q=0", None),
		("*", "br"),
		("gzip, br", "br"),
		("br;q=0.5, gzip", "gzip"),
		("*;q=0.5, deflate", "deflate"),
		("*, br;q=0, gzip;q=0", "deflate"),
		("zstd, compress", None),
		("gzip;q=abc, deflate", "deflate"),
	],
)
def test_negotiate(header: str | None, expected: str | None):
	assert negotiate(header, ENCODINGS) == expected


def test_parse_accept_encoding():
	assert parseAcceptEncoding("gzip;q=0.8, , br;q=2") == [
		AcceptedEncoding("gzip", 0.8),
		AcceptedEncoding("br", 1.0),
	]


@pytest.mark.parametrize(
	"options",
	[
		CompressionOptions(encodings=()),
		CompressionOptions(encodings=("gzip", "zstd")),
		CompressionOptions(level=10),
		CompressionOptions(level=-2),
		CompressionOptions(minSize=-1),
	],
)
def test_invalid_options(options: CompressionOptions):
	with pytest.raises(CompressionError):
		CompressionAdapter(options)


def test_default_adapter():
	adapter = CompressionAdapter.Default()
	assert adapter.options.encodings == ("br", "gzip", "deflate")


def test_compress_blob():
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/", {"Accept-Encoding": "gzip"})
	response = adapter.compress(
		request, request.respondHTML(INDEX_HTML.decode("utf8"))
	)
	assert response.header("Content-Encoding") == "gzip"
	assert response.header("Vary") == "Accept-Encoding"
	assert isinstance(response.body, HTTPBodyBlob)
	assert response.header("Content-Length") == str(len(response.body.payload))
	assert gzip.decompress(response.body.payload) == INDEX_HTML


def test_compress_file_is_chunked(site: Path):
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/style.css", {"Accept-Encoding": "deflate"})
	response = adapter.compress(request, request.respondFile(site / "style.css"))
	assert response.header("Content-Encoding") == "deflate"
	assert response.header("Transfer-Encoding") == "chunked"
	assert response.header("Content-Length") is None
	assert response.header("Last-Modified")
	assert not response.shouldClose
	assert isinstance(response.body, HTTPBodyStream)
	assert zlib.decompress(dechunk(bodyBytes(response))) == STYLE_CSS


def test_compress_file_for_http10_closes(site: Path):
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/style.css", {"Accept-Encoding": "gzip"})
	request.protocol = "HTTP/1.0"
	response = adapter.compress(request, request.respondFile(site / "style.css"))
	assert response.header("Transfer-Encoding") is None
	assert response.shouldClose
	assert gzip.decompress(bodyBytes(response)) == STYLE_CSS


def test_vary_is_merged():
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/", {"Accept-Encoding": "gzip"})
	response = request.respond(
		"x" * 1000, contentType="text/plain", headers={"Vary": "Origin"}
	)
	assert adapter.compress(request, response).header("Vary") == "Origin, Accept-Encoding"


@pytest.mark.parametrize(
	"response",
	[
		HTTPResponse.Create("tiny", contentType="text/plain"),
		HTTPResponse.Create(b"\x00" * 1000, contentType="image/png"),
		HTTPResponse.Create(b"\x00" * 1000, contentType="application/zip"),
		HTTPResponse.Create(
			b"x" * 1000, contentType="text/plain", headers={"Content-Encoding": "br"}
		),
		HTTPResponse.Create(None, status=304),
	],
)
def test_not_compressed(response: HTTPResponse):
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/", {"Accept-Encoding": "gzip, deflate"})
	res = adapter.compress(request, response)
	assert res.header("Content-Encoding") in (None, "br")


def test_svg_is_compressed():
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/", {"Accept-Encoding": "gzip"})
	response = HTTPResponse.Create("<svg/>" * 100, contentType="image/svg+xml")
	assert adapter.compress(request, response).header("Content-Encoding") == "gzip"


def test_no_accepted_encoding():
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/")
	response = HTTPResponse.Create("x" * 1000, contentType="text/plain")
	res = adapter.compress(request, response)
	assert res.header("Content-Encoding") is None
	assert res.header("Vary") == "Accept-Encoding"
	assert bodyBytes(res) == b"x" * 1000


def test_compressed_application(app):
	res = process(app, makeRequest("GET", "/", {"Accept-Encoding": "gzip"}))
	assert res.status == 200
	assert res.header("Content-Encoding") == "gzip"
	assert gzip.decompress(dechunk(bodyBytes(res))) == INDEX_HTML


def test_head_is_not_compressed(app):
	res = process(app, makeRequest("HEAD", "/", {"Accept-Encoding": "gzip"}))
	assert res.status == 200
	assert res.header("Content-Encoding") is None
	assert res.header("Content-Length") == str(len(INDEX_HTML))
	assert res.header("Vary") == "Accept-Encoding"


def test_errors_pass_through(app):
	res = process(app, makeRequest("GET", "/missing", {"Accept-Encoding": "gzip"}))
	assert res.status == 404
	assert res.header("Content-Encoding") is None


def test_compress_brotli(site: Path):
	adapter = CompressionAdapter.Default()
	request = makeRequest("GET", "/style.css", {"Accept-Encoding": "gzip, deflate, br"})
	response = adapter.compress(request, request.respondFile(site / "style.css"))
	assert response.header("Content-Encoding") == "br"
	assert brotli.decompress(dechunk(bodyBytes(response))) == STYLE_CSS
	response = adapter.compress(request, request.respondHTML(INDEX_HTML))
	assert response.header("Content-Length") == str(len(response.body.payload))
	assert brotli.decompress(response.body.payload) == INDEX_HTML


def test_brotli_unavailable(monkeypatch):
	monkeypatch.setattr(staticd.utils.codec, "brotli", None)
	with pytest.raises(CompressionError):
		CompressionAdapter.Default()
	assert CompressionAdapter(CompressionOptions(encodings=("gzip",)))


# EOF
