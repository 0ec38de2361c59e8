import inspect
from functools import lru_cache
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import (
	Any,
	Callable,
	Generator,
	Iterator,
	NamedTuple,
	TypeAlias,
	TypeVar,
	Union,
)

from ..utils.io import DEFAULT_ENCODING, asBytes
from .api import ResponseFactory
from .status import HTTP_NO_BODY, HTTP_STATUS

T = TypeVar("T")

FILE_CHUNK_SIZE: int = 64_000

# Header names come from clients, so only the most recent ones are kept.
HEADER_NAME_CACHE_SIZE: int = 256

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


@lru_cache(maxsize=HEADER_NAME_CACHE_SIZE)
def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`."""
	return "-".join(_.capitalize() for _ in name.lower().split("-"))


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""Represents a request status line"""

	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Wraps HTTP headers, keeping key information for response/request processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	"""Internal parser/processor state management"""

	Processing = 0
	Body = 1
	Complete = 2
	Timeout = 10
	NoData = 11
	BadFormat = 12
	TooLarge = 13
	BodyTooLarge = 14


# Type alias for what the parser produces
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
]

# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class HTTPRequestError(Exception):
	"""To be raised by handlers to generate an error response, a 500 unless
	a status is given."""

	def __init__(
		self,
		message: str,
		status: int | None = None,
		contentType: str | None = None,
	):
		super().__init__(message)
		self.message: str = message
		self.status: int | None = status
		self.contentType: str | None = contentType


# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""Represents a whole body as bytes."""

	payload: bytes = b""
	length: int = 0


class HTTPBodyFile(NamedTuple):
	"""Represents an HTTP body read from a file."""

	path: Path

	@property
	def length(self) -> int:
		return self.path.stat().st_size

	def iter(self, size: int = FILE_CHUNK_SIZE) -> Iterator[bytes]:
		with open(self.path, "rb") as f:
			while chunk := f.read(size):
				yield chunk


class HTTPBodyStream(NamedTuple):
	"""An HTTP body that is generated from a stream."""

	stream: Generator[str | bytes, Any, Any]


# The different types of bodies that are managed
THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile | HTTPBodyStream


# -----------------------------------------------------------------------------
#
# BODY WRITER
#
# -----------------------------------------------------------------------------


class HTTPBodyWriter(ABC):
	"""A generic writer for response heads and bodies, typically to a
	socket."""

	async def write(self, body: THTTPBody | bytes | None) -> bool:
		"""Writes the given type of body."""
		if isinstance(body, bytes):
			return await self._writeBytes(body)
		elif isinstance(body, HTTPBodyBlob):
			return await self._writeBytes(body.payload)
		elif isinstance(body, HTTPBodyFile):
			return await self._writeFile(body)
		elif isinstance(body, HTTPBodyStream):
			for _ in body.stream:
				await self._writeBytes(asBytes(_), True)
			return True
		elif body is None:
			return True
		else:
			raise ValueError(f"Unsupported body format: {body}")

	async def _writeFile(self, body: HTTPBodyFile) -> bool:
		for chunk in body.iter():
			await self._writeBytes(chunk, True)
		return True

	@abstractmethod
	async def _writeBytes(self, chunk: bytes, more: bool = False) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""Represents an HTTP requests, which also acts as a factory for
	responses."""

	__slots__ = [
		"protocol",
		"method",
		"path",
		"query",
		"rawQuery",
		"_headers",
		"_body",
	]

	def __init__(
		self,
		method: str,
		path: str,
		query: dict[str, str] | None,
		headers: HTTPHeaders,
		body: HTTPBodyBlob | None = None,
		protocol: str = "HTTP/1.1",
		rawQuery: str = "",
	):
		super().__init__()
		self.method: str = method
		self.path: str = path
		self.query: dict[str, str] | None = query
		self.rawQuery: str = rawQuery
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers
		self._body: HTTPBodyBlob | None = body

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	def header(self, name: str) -> str | None:
		return self._headers.headers.get(headername(name))

	def param(
		self,
		name: str,
		default: T | None = None,
		processor: Callable[[str | T | None], str | T | None] | None = None,
	) -> str | T | None:
		v = self.query.get(name, default) if self.query else default
		return processor(v) if processor else v

	@property
	def uri(self) -> str:
		"""The path with its query string, as sent by the client."""
		return f"{self.path}?{self.rawQuery}" if self.rawQuery else self.path

	@property
	def contentType(self) -> str | None:
		return self._headers.contentType

	@property
	def contentLength(self) -> int | None:
		return self._headers.contentLength

	@property
	def body(self) -> HTTPBodyBlob:
		return self._body if self._body is not None else HTTPBodyBlob()

	@property
	def keepAlive(self) -> bool:
		"""Tells if the client expects the connection to stay open after
		this request."""
		connection = (self.header("Connection") or "").lower()
		if self.protocol == "HTTP/1.0":
			return connection == "keep-alive"
		else:
			return connection != "close"

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			status=status,
			message=message,
			content=content,
			contentType=contentType,
			contentLength=contentLength,
			headers=headers,
		)

	def __str__(self) -> str:
		return f"Request({self.method} {self.uri} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""An HTTP response."""

	@staticmethod
	def Create(
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Factory method to create HTTP response objects."""
		payload: bytes | None = None
		body: THTTPBody | None = None
		is_stream: bool = False
		if content is None:
			pass
		elif isinstance(content, str):
			payload = content.encode(DEFAULT_ENCODING)
		elif isinstance(content, bytes):
			payload = content
		elif isinstance(content, Path):
			body = HTTPBodyFile(content.absolute())
			if contentLength is None:
				contentLength = body.length
		elif inspect.isgenerator(content):
			body = HTTPBodyStream(content)
			is_stream = True
		else:
			raise ValueError(f"Unsupported content {type(content)}:{content}")
		# If we have a payload then it's a Blob response
		if payload is not None:
			contentLength = len(payload)
			body = HTTPBodyBlob(payload, contentLength)
		res_headers: dict[str, str] = (
			{headername(k): v for k, v in headers.items()} if headers else {}
		)
		# Content Type
		if contentType is not None:
			res_headers["Content-Type"] = contentType
		# Content Length, an empty body is explicitly sized so that the
		# connection can be kept alive.
		if body is None and status >= 200 and status not in HTTP_NO_BODY:
			contentLength = 0
		if contentLength is not None:
			res_headers["Content-Length"] = str(contentLength)
		elif (hcl := res_headers.get("Content-Length")) is not None:
			contentLength = int(hcl)
		# A stream with no length and no chunked encoding is delimited by
		# closing the connection.
		should_close: bool = (
			is_stream
			and contentLength is None
			and res_headers.get("Transfer-Encoding") != "chunked"
		)
		return HTTPResponse(
			status=status,
			message=message or HTTP_STATUS.get(status, "Unknown status"),
			headers=HTTPHeaders(
				res_headers,
				contentType=res_headers.get("Content-Type"),
				contentLength=contentLength,
			),
			body=body,
			protocol=protocol,
			shouldClose=should_close,
		)

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
		"shouldClose",
	]

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: THTTPBody | None = None,
		shouldClose: bool = False,
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: HTTPHeaders = headers
		self.body: THTTPBody | None = body
		self.shouldClose: bool = shouldClose

	@property
	def contentType(self) -> str | None:
		return self.header("Content-Type")

	@property
	def contentLength(self) -> int | None:
		value = self.header("Content-Length")
		return int(value) if value is not None else None

	def header(self, name: str) -> str | None:
		return self.headers.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.headers.pop(headername(name), None)
		else:
			self.headers.headers[headername(name)] = str(value)
		return self

	def head(self) -> bytes:
		"""Serializes the head as a payload."""
		message: str = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		lines: list[str] = [f"{self.protocol} {self.status} {message}"]
		lines += [f"{headername(k)}: {v}" for k, v in self.headers.headers.items()]
		lines.append("")
		lines.append("")
		# Header values are ISO-8859-1 as per RFC9110
		return "\r\n".join(lines).encode("latin-1")

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers} {self.body})"


# EOF
