from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Generic, Iterable, Iterator, TypeVar

from ..utils.files import contentType as getContentType, httpdate
from ..utils.htmpl import escape
from .status import HTTP_STATUS

T = TypeVar("T")

# -----------------------------------------------------------------------------
#
# API
#
# -----------------------------------------------------------------------------

# --
# == HTTP Request Response API
#
# Defines the high level API functions (orthogonal to the underlying model)
# to create responses from requests.


class ResponseFactory(ABC, Generic[T]):
	@abstractmethod
	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> T: ...

	def error(
		self,
		status: int,
		content: str | None = None,
		contentType: str = "text/plain",
		headers: dict[str, str] | None = None,
	) -> T:
		message = HTTP_STATUS.get(status, "Server Error")
		return self.respond(
			content=message if content is None else content,
			contentType=contentType,
			status=status,
			message=message,
			headers=headers,
		)

	def notAuthorized(
		self,
		content: str = "Forbidden",
		contentType: str = "text/plain",
		*,
		status: int = 403,
	) -> T:
		return self.error(status, content=content, contentType=contentType)

	def notFound(
		self,
		content: str = "Not Found",
		contentType: str = "text/plain",
		*,
		status: int = 404,
	) -> T:
		return self.error(status, content=content, contentType=contentType)

	def notModified(self, headers: dict[str, str] | None = None) -> T:
		return self.respondEmpty(status=304, headers=headers)

	def methodNotAllowed(self, allowed: Iterable[str]) -> T:
		return self.error(405, headers={"Allow": ", ".join(sorted(allowed))})

	def redirect(self, url: str, permanent: bool = False) -> T:
		# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/Redirections
		status: int = 301 if permanent else 302
		return self.respond(
			content=f'<a href="{escape(url)}">{HTTP_STATUS[status]}</a>.\n',
			contentType="text/html; charset=utf-8",
			status=status,
			headers={"Location": url},
		)

	def respondText(
		self,
		content: str | bytes | Iterator[str | bytes],
		contentType: str = "text/plain",
		status: int = 200,
	) -> T:
		return self.respond(content=content, contentType=contentType, status=status)

	def respondHTML(
		self, html: str | bytes | Iterator[str | bytes], status: int = 200
	) -> T:
		return self.respond(
			content=html, contentType="text/html; charset=utf-8", status=status
		)

	def respondFile(
		self,
		path: Path | str,
		headers: dict[str, str] | None = None,
		status: int = 200,
		contentType: str | None = None,
	) -> T:
		p: Path = path if isinstance(path, Path) else Path(path)
		stat = p.stat()
		base_headers = {
			"Content-Type": contentType or getContentType(p),
			"Content-Length": str(stat.st_size),
			"Last-Modified": httpdate(stat.st_mtime),
		}
		return self.respond(
			content=p,
			status=status,
			headers=base_headers | headers if headers else base_headers,
		)

	def respondEmpty(self, status: int, headers: dict[str, str] | None = None) -> T:
		return self.respond(content=None, status=status, headers=headers)


# EOF
