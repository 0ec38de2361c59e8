import os
from pathlib import Path

import pytest

from staticd.model import mount
from staticd.services.files import FileService
from staticd.utils.files import contentType, httpdate, parseHTTPDate

from conftest import INDEX_HTML, bodyBytes, makeRequest, process


@pytest.fixture
def files(site: Path):
	return mount(FileService(site))


def test_root_serves_index(files):
	res = process(files, makeRequest("GET", "/"))
	assert res.status == 200
	assert res.header("Content-Type") == "text/html"
	assert res.header("Content-Length") == str(len(INDEX_HTML))
	assert res.header("Last-Modified")
	assert bodyBytes(res) == INDEX_HTML


def test_serves_files(files, site: Path):
	res = process(files, makeRequest("GET", "/index.html"))
	assert bodyBytes(res) == INDEX_HTML
	res = process(files, makeRequest("GET", "/style.css?v=2"))
	assert res.status == 200
	assert res.header("Content-Type") == "text/css"
	res = process(files, makeRequest("GET", "/files/a%20%3Cb%3E.txt"))
	assert res.status == 200
	assert bodyBytes(res) == b"A\n"


def test_missing_file(files):
	assert process(files, makeRequest("GET", "/missing.html")).status == 404
	assert process(files, makeRequest("GET", "/docs/missing/")).status == 404


@pytest.mark.parametrize(
	"path",
	[
		"/../secret.txt",
		"/docs/../../secret.txt",
		"/%2e%2e/secret.txt",
		"/..%2Fsecret.txt",
		"/a%00b",
	],
)
def test_paths_outside_root_are_forbidden(files, path: str):
	res = process(files, makeRequest("GET", path))
	assert res.status == 403
	assert bodyBytes(res) != b"secret\n"


def test_dot_segments_within_root(files):
	res = process(files, makeRequest("GET", "/docs/../index.html"))
	assert res.status == 200
	assert bodyBytes(res) == INDEX_HTML


def test_directory_redirect(files):
	res = process(files, makeRequest("GET", "/docs"))
	assert res.status == 301
	assert res.header("Location") == "/docs/"
	res = process(files, makeRequest("GET", "/docs?lang=fr"))
	assert res.header("Location") == "/docs/?lang=fr"


def test_directory_index(files):
	res = process(files, makeRequest("GET", "/docs/"))
	assert res.status == 200
	assert bodyBytes(res) == b"<p>Documentation</p>\n"


def test_directory_listing(files):
	res = process(files, makeRequest("GET", "/files/"))
	assert res.status == 200
	assert res.header("Content-Type") == "text/html; charset=utf-8"
	listing = bodyBytes(res).decode("utf8")
	assert listing.startswith("<!DOCTYPE html>")
	assert 'href="nested/"' in listing
	assert 'href="a%20%3Cb%3E.txt"' in listing
	assert "a &lt;b&gt;.txt" in listing
	assert 'href="../"' in listing


def test_not_modified(files, site: Path):
	mtime = (site / "index.html").stat().st_mtime
	res = process(
		files, makeRequest("GET", "/", {"If-Modified-Since": httpdate(mtime)})
	)
	assert res.status == 304
	assert res.body is None
	assert res.header("Last-Modified") == httpdate(mtime)
	res = process(
		files, makeRequest("GET", "/", {"If-Modified-Since": httpdate(mtime - 3600)})
	)
	assert res.status == 200
	res = process(files, makeRequest("GET", "/", {"If-Modified-Since": "yesterday"}))
	assert res.status == 200


def test_head(files):
	res = process(files, makeRequest("HEAD", "/index.html"))
	assert res.status == 200
	assert res.header("Content-Length") == str(len(INDEX_HTML))


def test_method_not_allowed(files):
	res = process(files, makeRequest("POST", "/index.html"))
	assert res.status == 405
	assert res.header("Allow") == "GET, HEAD"


@pytest.mark.skipif(os.geteuid() == 0, reason="root can read any file")
def test_unreadable_file(files, site: Path):
	(site / "tiny.txt").chmod(0)
	assert process(files, makeRequest("GET", "/tiny.txt")).status == 403


def test_content_types(tmp_path: Path):
	assert contentType("app.js") == "text/javascript"
	assert contentType("README.md") == "text/markdown"
	assert contentType("logo.svg") == "image/svg+xml"
	(tmp_path / "NOTES").write_bytes(b"Plain notes\n")
	(tmp_path / "blob").write_bytes(b"\x00\x01\x02")
	assert contentType(tmp_path / "NOTES") == "text/plain"
	assert contentType(tmp_path / "blob") == "application/octet-stream"


def test_http_dates():
	assert httpdate(0) == "Thu, 01 Jan 1970 00:00:00 GMT"
	assert parseHTTPDate("Thu, 01 Jan 1970 00:00:00 GMT") == 0
	assert parseHTTPDate("not a date") is None
	assert parseHTTPDate(None) is None
	# `-0000` gives a date without a time zone, that is still UTC
	assert parseHTTPDate("Thu, 01 Jan 1970 01:00:00 -0000") == 3600


# EOF
