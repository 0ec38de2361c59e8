import os
from pathlib import Path
from typing import Callable
from urllib.parse import quote, unquote

from ..decorators import on
from ..model import Service
from ..http.model import HTTPRequest, HTTPResponse
from ..utils.files import httpdate, parseHTTPDate
from ..utils.htmpl import Node, H, html
from ..utils.logging import debug

FILE_CSS: str = """
:root {
    font-family: sans-serif;
    font-size: 14px;
    line-height: 1.35em;
    padding: 20px;
    background: #F0F0F0;
}
h1 {
    margin-top: 1.75em;
    margin-bottom: 1.75em;
    line-height: 1.25em;
}
h2 {
    margin-top: 1.25em;
}
ul {
    padding: 0px 20px;
    margin: 1.25em 0em;
}
li {
    padding: 0px 10px;
    margin: 0.5em 0em;
}
"""

INDEX_FILE: str = "index.html"


class FileService(Service):
	"""A read-only service to serve files from the local filesystem. Paths are
	resolved against the root directory: directories redirect to their
	slash-terminated form, then serve their `index.html` or a listing."""

	def __init__(self, root: str | Path | None = None):
		super().__init__()
		self.root: Path = Path(
			os.path.normpath(Path(root or ".").absolute())
		)
		self.canRead: Callable[[HTTPRequest, Path], bool] = lambda r, p: True

	@on(GET_HEAD="/")
	def read(self, request: HTTPRequest, path: str = "") -> HTTPResponse:
		name: str = unquote(path)
		local_path = self.resolvePath(name)
		if not (local_path and self.canRead(request, local_path)):
			return request.notAuthorized(f"Not authorized to access path: {path}")
		elif not local_path.exists():
			return request.notFound()
		elif local_path.is_dir():
			if name and not name.endswith("/"):
				# Relative links in the directory's index only work when
				# the directory path ends with a slash.
				location = f"{request.path}/"
				return request.redirect(
					f"{location}?{request.rawQuery}" if request.rawQuery else location,
					permanent=True,
				)
			index_path = local_path / INDEX_FILE
			if index_path.is_file():
				return self.renderFile(request, index_path)
			else:
				return self.renderDir(request, local_path)
		elif local_path.is_file():
			return self.renderFile(request, local_path)
		else:
			return request.notFound()

	def renderFile(self, request: HTTPRequest, localPath: Path) -> HTTPResponse:
		if not os.access(localPath, os.R_OK):
			return request.notAuthorized(f"File is not readable: {request.path}")
		mtime: float = localPath.stat().st_mtime
		since = parseHTTPDate(request.header("If-Modified-Since"))
		# HTTP dates have a one second resolution
		if since is not None and int(mtime) <= since:
			debug("File not modified", Path=request.path)
			return request.notModified({"Last-Modified": httpdate(mtime)})
		return request.respondFile(localPath)

	def renderDir(self, request: HTTPRequest, localPath: Path) -> HTTPResponse:
		path: str = unquote(request.path)
		files: list[Node] = []
		dirs: list[Node] = []
		try:
			entries = sorted(localPath.iterdir())
		except PermissionError:
			return request.notAuthorized(f"Directory is not readable: {request.path}")
		for p in entries:
			if p.is_dir():
				dirs.append(H.li(H.a(f"{p.name}/", href=f"{quote(p.name)}/")))
			else:
				files.append(H.li(H.a(p.name, href=quote(p.name))))
		if path != "/":
			dirs.insert(0, H.li(H.a("..", href="../")))

		nodes: list[Node] = []
		if dirs:
			nodes.append(
				H.section(
					H.h2("Directories"),
					H.ul(*dirs, style='list-style-type: "\\1F4C1";'),
				)
			)
		if files:
			nodes.append(
				H.section(
					H.h2("Files"), H.ul(*files, style='list-style-type: "\\1F4C4";')
				)
			)
		return request.respondHTML(
			"".join(
				html(
					H.html(
						H.head(
							H.meta(charset="utf-8"),
							H.meta(
								name="viewport",
								content="width=device-width, initial-scale=1.0",
							),
							H.title(path),
							H.style(FILE_CSS),
						),
						H.body(H.h1("Listing for ", path), *nodes),
					),
					doctype="html",
				)
			)
		)

	def resolvePath(self, path: str | Path) -> Path | None:
		"""Resolves the given URL path against the root, returning `None`
		when the result is outside of the root."""
		if "\x00" in str(path):
			return None
		local_path = Path(os.path.normpath(self.root.joinpath(str(path).lstrip("/"))))
		if local_path.parts[: len(parts := self.root.parts)] != parts:
			return None
		return local_path


# EOF
