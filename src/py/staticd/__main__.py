import sys
from pathlib import Path
from typing import Callable, NoReturn

from .config import CERT_PATH, HOST, KEY_PATH, PORT, USE_HTTPS
from .features.compression import CompressionAdapter, CompressionError
from .model import mount
from .server import run
from .services.files import FileService
from .utils.logging import error


def fatal(e: BaseException, code: str) -> NoReturn:
	"""Logs the error and terminates the process."""
	error(str(e) or e.__class__.__name__, code, Type=e.__class__.__name__)
	sys.exit(1)


def start(
	useHTTPS: bool,
	host: str,
	port: int,
	certfile: str | Path,
	keyfile: str | Path,
	*,
	root: str | Path = ".",
	condition: Callable[[], bool] | None = None,
) -> None:
	"""Serves the files in `root`, compressed, over HTTPS or HTTP. This
	blocks until the server stops, and exits the process when the server
	can't start."""
	app = mount(FileService(root))
	try:
		compress = CompressionAdapter.Default()
	except CompressionError as e:
		fatal(e, "COMPRESSION")
	scheme: str = "https" if useHTTPS else "http"
	print(f"Web server listening on {scheme}://{host}:{port}/", flush=True)
	try:
		run(
			compress(app),
			host=host,
			port=port,
			certfile=certfile if useHTTPS else None,
			keyfile=keyfile if useHTTPS else None,
			condition=condition,
		)
	except Exception as e:
		fatal(e, "LISTEN")


def main() -> None:
	start(USE_HTTPS, HOST, PORT, CERT_PATH, KEY_PATH)


if __name__ == "__main__":
	main()

# EOF
