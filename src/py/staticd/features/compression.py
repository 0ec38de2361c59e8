from typing import Any, Coroutine, Iterable, Iterator, NamedTuple, Sequence

from ..http.model import (
	HTTPBodyBlob,
	HTTPBodyFile,
	HTTPBodyStream,
	HTTPHeaders,
	HTTPRequest,
	HTTPResponse,
)
from ..http.status import HTTP_NO_BODY
from ..model import Application
from ..routing import awaited
from ..utils.codec import (
	BrotliEncoder,
	BytesTransform,
	ChunkedEncoder,
	DeflateEncoder,
	GZipEncoder,
)
from ..utils.io import asBytes

# --
# The compression adapter wraps an application so that response bodies are
# compressed with an encoding negotiated from the request's
# `Accept-Encoding` header.

ENCODERS: dict[str, type[BytesTransform]] = {
	"br": BrotliEncoder,
	"gzip": GZipEncoder,
	"deflate": DeflateEncoder,
}

# Content types that are already compressed, compressing them again only
# costs CPU time.
PRECOMPRESSED_TYPES: tuple[str, ...] = (
	"image/",
	"audio/",
	"video/",
	"font/woff",
	"application/gzip",
	"application/x-gzip",
	"application/x-bzip",
	"application/x-bzip2",
	"application/x-xz",
	"application/x-7z-compressed",
	"application/x-rar-compressed",
	"application/zip",
	"application/zstd",
	"application/octet-stream",
)

# Images that are text and compress well
COMPRESSIBLE_TYPES: tuple[str, ...] = ("image/svg+xml", "image/x-icon", "image/bmp")


class CompressionError(Exception):
	"""Raised when the compression adapter can't be created."""


class CompressionOptions(NamedTuple):
	# Supported encodings, by order of preference
	encodings: tuple[str, ...] = ("br", "gzip", "deflate")
	level: int = 6
	# Bodies smaller than this are not worth compressing
	minSize: int = 200
	excludedTypes: tuple[str, ...] = PRECOMPRESSED_TYPES


class AcceptedEncoding(NamedTuple):
	name: str
	quality: float


def parseAcceptEncoding(text: str | None) -> list[AcceptedEncoding]:
	"""Parses an `Accept-Encoding` header like `gzip;q=0.8, br`, skipping
	malformed entries."""
	res: list[AcceptedEncoding] = []
	for item in (text or "").split(","):
		name, *params = (_.strip() for _ in item.split(";"))
		if not name:
			continue
		quality: float = 1.0
		for param in params:
			key, _, value = param.partition("=")
			if key.strip().lower() == "q":
				try:
					quality = min(1.0, max(0.0, float(value.strip())))
				except ValueError:
					quality = -1.0
		if quality >= 0:
			res.append(AcceptedEncoding(name.lower(), quality))
	return res


def negotiate(acceptEncoding: str | None, encodings: Sequence[str]) -> str | None:
	"""Returns the supported encoding that the client accepts with the
	highest quality, ties being broken by the order of `encodings`. Returns
	`None` when the response should not be encoded."""
	accepted: dict[str, float] = {}
	for name, quality in parseAcceptEncoding(acceptEncoding):
		accepted[name] = max(quality, accepted.get(name, 0.0))
	wildcard: float | None = accepted.get("*")
	best: str | None = None
	best_quality: float = 0.0
	for encoding in encodings:
		quality = accepted.get(encoding, wildcard)
		if quality is not None and quality > best_quality:
			best, best_quality = encoding, quality
	return best


def iterCompressed(
	chunks: Iterable[str | bytes], encoder: BytesTransform, *, chunked: bool
) -> Iterator[bytes]:
	"""Compresses the stream of chunks, optionally framing the output
	with the HTTP chunked transfer encoding."""
	framing: ChunkedEncoder | None = ChunkedEncoder() if chunked else None
	for chunk in chunks:
		data = encoder.feed(asBytes(chunk))
		if data and (out := framing.feed(data) if framing else data):
			yield out
	tail = encoder.flush()
	if tail and (out := framing.feed(tail) if framing else tail):
		yield out
	if framing and (end := framing.flush()):
		yield end


class CompressionAdapter:
	"""Wraps applications so that their responses are compressed. The
	configuration is validated on creation."""

	@classmethod
	def Default(cls) -> "CompressionAdapter":
		return cls(CompressionOptions())

	def __init__(self, options: CompressionOptions) -> None:
		if not options.encodings:
			raise CompressionError("No compression encoding is configured")
		for name in options.encodings:
			if name not in ENCODERS:
				raise CompressionError(
					f"Unsupported compression encoding '{name}', pick one of: {', '.join(ENCODERS)}"
				)
			if name == "br" and not BrotliEncoder.IsAvailable():
				raise CompressionError(
					"Compression encoding 'br' requires the 'Brotli' package"
				)
		if not -1 <= options.level <= 9:
			raise CompressionError(
				f"Compression level must be between -1 and 9, got: {options.level}"
			)
		if options.minSize < 0:
			raise CompressionError(
				f"Minimum size must be positive, got: {options.minSize}"
			)
		self.options: CompressionOptions = options

	def __call__(self, application: Application) -> "CompressedApplication":
		return CompressedApplication(application, self)

	def isCompressible(self, response: HTTPResponse) -> bool:
		"""Tells if the response's body could be compressed, whatever the
		client accepts."""
		if (
			response.body is None
			or response.status < 200
			or response.status in HTTP_NO_BODY
			or response.header("Content-Encoding")
		):
			return False
		content_type: str = (response.contentType or "").split(";", 1)[0].strip()
		return content_type.startswith(COMPRESSIBLE_TYPES) or not (
			content_type.startswith(self.options.excludedTypes)
		)

	def compress(self, request: HTTPRequest, response: HTTPResponse) -> HTTPResponse:
		"""Returns the response with its body compressed according to the
		request's accepted encodings, or the response as-is."""
		if not self.isCompressible(response):
			return response
		vary: str | None = response.header("Vary")
		if not vary or "accept-encoding" not in vary.lower():
			response.setHeader("Vary", f"{vary}, Accept-Encoding" if vary else "Accept-Encoding")
		if request.method == "HEAD":
			return response
		length: int | None = response.contentLength
		if length is not None and length < self.options.minSize:
			return response
		encoding = negotiate(request.header("Accept-Encoding"), self.options.encodings)
		if encoding is None:
			return response
		encoder: BytesTransform = ENCODERS[encoding](self.options.level)
		headers: dict[str, str] = dict(response.headers.headers)
		headers["Content-Encoding"] = encoding
		body = response.body
		should_close: bool = response.shouldClose
		content_length: int | None = None
		if isinstance(body, HTTPBodyBlob):
			payload: bytes = b"".join(
				asBytes(_) for _ in (encoder.feed(body.payload), encoder.flush()) if _
			)
			body = HTTPBodyBlob(payload, len(payload))
			content_length = len(payload)
			headers["Content-Length"] = str(content_length)
		else:
			chunks: Iterable[str | bytes] = (
				body.iter() if isinstance(body, HTTPBodyFile) else body.stream
			)
			headers.pop("Content-Length", None)
			# HTTP/1.0 clients don't know about chunks, the end of the body
			# is then the end of the connection.
			chunked: bool = request.protocol == "HTTP/1.1"
			if chunked:
				headers["Transfer-Encoding"] = "chunked"
			else:
				should_close = True
			body = HTTPBodyStream(iterCompressed(chunks, encoder, chunked=chunked))
		return HTTPResponse(
			protocol=response.protocol,
			status=response.status,
			message=response.message,
			headers=HTTPHeaders(
				headers,
				contentType=response.contentType,
				contentLength=content_length,
			),
			body=body,
			shouldClose=should_close,
		)


class CompressedApplication(Application):
	"""An application that compresses the responses of the application
	it wraps."""

	def __init__(self, application: Application, adapter: CompressionAdapter):
		super().__init__()
		self.application: Application = application
		self.adapter: CompressionAdapter = adapter
		self.services = application.services

	async def start(self) -> "CompressedApplication":
		await self.application.start()
		return self

	async def stop(self) -> "CompressedApplication":
		await self.application.stop()
		return self

	def process(
		self, request: HTTPRequest
	) -> HTTPResponse | Coroutine[Any, Any, HTTPResponse]:
		return self._process(request)

	async def _process(self, request: HTTPRequest) -> HTTPResponse:
		response: HTTPResponse = await awaited(self.application.process(request))
		return self.adapter.compress(request, response) if response else response


# EOF
