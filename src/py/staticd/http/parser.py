from typing import Iterator, ClassVar, Literal
from urllib.parse import unquote_plus
from ..config import MAX_BODY_SIZE, MAX_HEADERS, MAX_LINE_SIZE
from ..utils.io import LineParser
from .model import (
	HTTPRequest,
	HTTPRequestLine,
	HTTPHeaders,
	HTTPBodyBlob,
	HTTPAtom,
	HTTPProcessingStatus,
	headername,
)


class MalformedRequest(ValueError):
	STATUS: ClassVar[HTTPProcessingStatus] = HTTPProcessingStatus.BadFormat


class RequestTooLarge(MalformedRequest):
	"""The request line or headers are over the configured limits."""

	STATUS: ClassVar[HTTPProcessingStatus] = HTTPProcessingStatus.TooLarge


class RequestLineParser:
	"""Parses an HTTP request line, like `GET /index.html HTTP/1.1`."""

	__slots__ = ["line", "value", "maxSize"]

	def __init__(self, maxSize: int = MAX_LINE_SIZE) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | None = None
		self.maxSize: int = maxSize

	def flush(self) -> HTTPRequestLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "RequestLineParser":
		self.line.reset()
		self.value = None
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		line, read = self.line.feed(chunk, start)
		if line is None:
			if len(self.line.buffer) > self.maxSize:
				raise RequestTooLarge("Request line is too long")
			return None, read
		elif len(line) > self.maxSize:
			raise RequestTooLarge("Request line is too long")
		elif not line:
			# RFC9112 asks servers to ignore empty lines before the request line
			self.line.flush()
			return None, read
		try:
			ln: str = line.decode("ascii")
		except UnicodeDecodeError as e:
			raise MalformedRequest(f"Request line is not ASCII: {line!r}") from e
		parts = ln.split(" ")
		if len(parts) != 3 or not parts[0] or not parts[2].startswith("HTTP/"):
			raise MalformedRequest(f"Malformed request line: {ln!r}")
		method, uri, protocol = parts
		path, _, query = uri.partition("?")
		self.value = HTTPRequestLine(method, path, query, protocol)
		return True, read

	def __str__(self) -> str:
		return f"RequestLineParser({self.value})"


class HeadersParser:
	__slots__ = [
		"headers",
		"contentType",
		"contentLength",
		"count",
		"line",
		"maxSize",
		"maxCount",
	]

	def __init__(self, maxSize: int = MAX_LINE_SIZE, maxCount: int = MAX_HEADERS) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None
		self.count: int = 0
		self.maxSize: int = maxSize
		self.maxCount: int = maxCount

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		self.count = 0
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the number of bytes read. When the value is `None`, no
		header has been extracted, when the value is `False` it's the empty
		line ending the headers, otherwise it's the name of the parsed
		header."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			if len(self.line.buffer) > self.maxSize:
				raise RequestTooLarge("Header line is too long")
			return None, read
		self.line.flush()
		if not line:
			return False, read
		elif len(line) > self.maxSize:
			raise RequestTooLarge("Header line is too long")
		self.count += 1
		if self.count > self.maxCount:
			raise RequestTooLarge(f"More than {self.maxCount} headers")
		# Headers are expected to be in ISO-8859-1
		ln: str = line.decode("latin-1")
		i = ln.find(":")
		if i <= 0:
			raise MalformedRequest(f"Malformed header line: {ln!r}")
		h = ln[:i].strip().lower()
		v = ln[i + 1 :].strip()
		if h == "content-length":
			try:
				length = int(v)
			except ValueError as e:
				raise MalformedRequest(f"Invalid Content-Length: {v!r}") from e
			if length < 0 or (
				self.contentLength is not None and length != self.contentLength
			):
				raise MalformedRequest(f"Invalid Content-Length: {v!r}")
			self.contentLength = length
		elif h == "transfer-encoding":
			# Only `Content-Length` delimited bodies are read, a transfer
			# encoded body would be read as the next request.
			raise MalformedRequest(f"Unsupported Transfer-Encoding: {v!r}")
		elif h == "content-type":
			self.contentType = v
		n: str = headername(h)
		# Repeated headers are combined, as RFC9110 allows
		self.headers[n] = f"{self.headers[n]}, {v}" if n in self.headers else v
		return n, read

	def __str__(self) -> str:
		return f"HeadersParser({self.headers})"


class BodyLengthParser:
	"""Parses the body of a request with ContentLength set"""

	__slots__ = ["expected", "read", "data"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0
		self.data: list[bytes] = []

	def flush(self) -> HTTPBodyBlob:
		res = HTTPBodyBlob(b"".join(self.data), self.read)
		self.reset()
		return res

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		self.data = []
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		"""Returns `True` once the expected length has been read."""
		to_read: int = min(len(chunk) - start, self.expected - self.read)
		if to_read:
			self.data.append(chunk[start : start + to_read])
			self.read += to_read
		return (True if self.read >= self.expected else None), to_read


class HTTPParser:
	"""A stateful, incremental HTTP request parser. Chunks can be split
	at any point and may contain more than one (pipelined) request. Any
	request with a `Content-Length` has its body read, whatever its
	method."""

	def __init__(
		self,
		*,
		maxLineSize: int = MAX_LINE_SIZE,
		maxHeaders: int = MAX_HEADERS,
		maxBodySize: int = MAX_BODY_SIZE,
	) -> None:
		self.requestLine: RequestLineParser = RequestLineParser(maxLineSize)
		self.headers: HeadersParser = HeadersParser(maxLineSize, maxHeaders)
		self.body: BodyLengthParser = BodyLengthParser()
		self.maxBodySize: int = maxBodySize
		self.parser: RequestLineParser | HeadersParser | BodyLengthParser = (
			self.requestLine
		)
		self.line: HTTPRequestLine | None = None
		self.requestHeaders: HTTPHeaders | None = None

	def reset(self) -> "HTTPParser":
		self.requestLine.reset()
		self.headers.reset()
		self.body.reset()
		self.parser = self.requestLine
		self.line = None
		self.requestHeaders = None
		return self

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		"""Yields the atoms parsed from the chunk. Once a status like
		`BadFormat` or `TooLarge` is yielded, the parser is reset and the
		rest of the chunk is ignored."""
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			# The underlying parsers buffer partial data until they are
			# flushed, so a partially read chunk never needs to be re-fed.
			try:
				value, read = self.parser.feed(chunk, offset)
			except MalformedRequest as e:
				self.reset()
				yield e.STATUS
				return
			offset += read
			if value is None:
				continue
			elif self.parser is self.requestLine:
				self.line = self.requestLine.flush()
				if self.line is not None:
					yield self.line
					self.parser = self.headers
			elif self.parser is self.headers:
				if value is False:
					headers = self.headers.flush()
					self.requestHeaders = headers
					yield headers
					length: int = headers.contentLength or 0
					if length > self.maxBodySize:
						self.reset()
						yield HTTPProcessingStatus.BodyTooLarge
						return
					elif length > 0:
						self.parser = self.body.reset(length)
						yield HTTPProcessingStatus.Body
					else:
						yield self.flushRequest(HTTPBodyBlob())
			elif self.parser is self.body:
				yield self.flushRequest(self.body.flush())
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")

	def flushRequest(self, body: HTTPBodyBlob) -> HTTPRequest:
		line = self.line
		headers = self.requestHeaders
		if line is None or headers is None:
			raise RuntimeError("Request is flushed before its line and headers")
		self.parser = self.requestLine.reset()
		self.line = None
		self.requestHeaders = None
		return HTTPRequest(
			method=line.method,
			path=line.path,
			query=parseQuery(line.query),
			rawQuery=line.query,
			headers=headers,
			protocol=line.protocol,
			body=body,
		)


def parseQuery(text: str) -> dict[str, str]:
	res: dict[str, str] = {}
	if not text:
		return res
	for item in text.split("&"):
		if not item:
			continue
		kv = item.split("=", 1)
		res[unquote_plus(kv[0])] = unquote_plus(kv[1]) if len(kv) > 1 else ""
	return res


# EOF
