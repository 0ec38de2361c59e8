import zlib
from typing import Literal
from abc import ABC, abstractmethod

try:
	import brotli
except ImportError:  # pragma: no cover
	brotli = None  # type: ignore[assignment]


class BytesTransform(ABC):
	"""An abstract bytes transform."""

	@abstractmethod
	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		"""Feeds bytes to the transform, may return a value."""

	@abstractmethod
	def flush(self) -> bytes | None | Literal[False]:
		"""Ensures that the bytes transform is flushed, for chunked encodings this will produce a new chunk."""


class ZLibEncoder(BytesTransform):
	"""Compresses bytes with zlib, the window bits define the container
	format."""

	__slots__ = ["compressor"]

	WBITS: int = zlib.MAX_WBITS

	def __init__(self, compression_level: int = 6) -> None:
		super().__init__()
		self.compressor = zlib.compressobj(level=compression_level, wbits=self.WBITS)

	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		return self.compressor.compress(chunk)

	def flush(self) -> bytes | None | Literal[False]:
		return self.compressor.flush()


class GZipEncoder(ZLibEncoder):
	"""Encode bytes as Gzip"""

	WBITS = zlib.MAX_WBITS | 16


# NOTE: HTTP's `deflate` is the zlib format (RFC1950), not raw deflate.
class DeflateEncoder(ZLibEncoder):
	"""Encode bytes as HTTP deflate"""


class BrotliEncoder(BytesTransform):
	"""Encode bytes as Brotli, the zlib compression level is used as the
	Brotli quality."""

	__slots__ = ["compressor"]

	@staticmethod
	def IsAvailable() -> bool:
		return brotli is not None

	def __init__(self, compression_level: int = 6) -> None:
		super().__init__()
		if brotli is None:
			raise RuntimeError("Brotli support requires the 'Brotli' package")
		self.compressor = brotli.Compressor(
			quality=compression_level if compression_level >= 0 else 6
		)

	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		return self.compressor.process(chunk)

	def flush(self) -> bytes | None | Literal[False]:
		return self.compressor.finish()


# SEE: https://httpwg.org/specs/rfc9112.html#chunked.encoding
class ChunkedEncoder(BytesTransform):
	"""Encodes each fed chunk as an HTTP chunk, the flush produces the
	last chunk."""

	def feed(self, chunk: bytes, more: bool = False) -> bytes | None | Literal[False]:
		if not chunk:
			return None
		return f"{len(chunk):X}\r\n".encode("ascii") + chunk + b"\r\n"

	def flush(self) -> bytes | None | Literal[False]:
		return b"0\r\n\r\n"


# EOF
