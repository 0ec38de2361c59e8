import mimetypes
from datetime import timezone
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path

mimetypes.init()

# Overrides for extensions that `mimetypes` gets wrong or doesn't know.
MIME_TYPES: dict[str, str] = dict(
	bz2="application/x-bzip",
	gz="application/gzip",
	js="text/javascript",
	mjs="text/javascript",
	md="text/markdown",
	wasm="application/wasm",
	webmanifest="application/manifest+json",
)

TEXT_SNIFF_SIZE: int = 1024


def isText(path: Path | str, size: int = TEXT_SNIFF_SIZE) -> bool:
	"""Check if a file is likely a text file by examining its content."""
	try:
		with open(path, "rb") as f:
			s = f.read(size)
	except OSError:
		return False
	if b"\x00" in s:
		return False
	try:
		s.decode("utf-8")
		return True
	except UnicodeDecodeError as e:
		# The sample may end in the middle of a multi-byte sequence
		return len(s) == size and e.start >= size - 3


def contentType(path: Path | str) -> str:
	"""Guesses the content type from the given path, sniffing the file
	content when the extension is unknown."""
	name = str(path)
	if (res := MIME_TYPES.get(name.rsplit(".", 1)[-1].lower())) or (
		res := mimetypes.guess_type(name)[0]
	):
		return res
	else:
		return "text/plain" if isText(path) else "application/octet-stream"


def httpdate(timestamp: float) -> str:
	"""Formats the timestamp as an HTTP date, like
	`Wed, 21 Oct 2015 07:28:00 GMT`."""
	return formatdate(timestamp, usegmt=True)


def parseHTTPDate(text: str | None) -> float | None:
	"""Parses an HTTP date, returning `None` when it is missing or
	malformed."""
	if not text:
		return None
	try:
		date = parsedate_to_datetime(text)
	except (TypeError, ValueError):
		return None
	# A `-0000` zone gives a naive date, which is still UTC
	if date.tzinfo is None:
		date = date.replace(tzinfo=timezone.utc)
	return date.timestamp()


# EOF
