import asyncio
import ssl
from asyncio import StreamReader, StreamWriter
from pathlib import Path
from typing import Any, Callable, NamedTuple

from .config import HOST, LOG_REQUESTS, PORT
from .http.model import (
	HTTPBodyWriter,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPResponse,
)
from .http.parser import HTTPParser
from .model import Application, Service, mount
from .utils.limits import LimitType, unlimit
from .utils.logging import debug, event, exception, info, warning


class ServerOptions(NamedTuple):
	host: str = "localhost"
	port: int = 3000
	backlog: int = 1_000
	# How often the serving loop checks `condition`
	polling: float = 1.0
	readsize: int = 64_000
	# Idle connections are closed after that many seconds
	keepalive: float = 60.0
	logRequests: bool = True
	condition: Callable[[], bool] | None = None
	# TLS is enabled when both are given
	certfile: str | Path | None = None
	keyfile: str | Path | None = None


OPTIONS: ServerOptions = ServerOptions()

SERVER_NOCONTENT: bytes = b"HTTP/1.1 204 No Content\r\nConnection: close\r\n\r\n"
SERVER_BAD_REQUEST: bytes = (
	b"HTTP/1.1 400 Bad Request\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 13\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Bad Request\r\n"
)
SERVER_TOO_LARGE: bytes = (
	b"HTTP/1.1 431 Request Header Fields Too Large\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 33\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Request Header Fields Too Large\r\n"
)
SERVER_BODY_TOO_LARGE: bytes = (
	b"HTTP/1.1 413 Content Too Large\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 19\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Content Too Large\r\n"
)
SERVER_ERROR: bytes = (
	b"HTTP/1.1 500 Internal Server Error\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 23\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Internal Server Error\r\n"
)

# Canned responses for requests the parser rejects
SERVER_REJECTED: dict[HTTPProcessingStatus, bytes] = {
	HTTPProcessingStatus.BadFormat: SERVER_BAD_REQUEST,
	HTTPProcessingStatus.TooLarge: SERVER_TOO_LARGE,
	HTTPProcessingStatus.BodyTooLarge: SERVER_BODY_TOO_LARGE,
}


def tlsContext(certfile: str | Path, keyfile: str | Path) -> ssl.SSLContext:
	"""Creates the server TLS context, raising `FileNotFoundError` or
	`ssl.SSLError` when the certificate or key can't be loaded."""
	context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
	context.load_cert_chain(certfile=str(certfile), keyfile=str(keyfile))
	return context


def onLoopException(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
	e = context.get("exception")
	if e:
		exception(e, context.get("message"))
	else:
		warning("Event loop error", Message=context.get("message"))


class AIOStreamBodyWriter(HTTPBodyWriter):
	"""Specialized body writer to work with asyncio streams."""

	__slots__ = ["writer"]

	def __init__(self, writer: StreamWriter) -> None:
		super().__init__()
		self.writer: StreamWriter = writer

	async def _writeBytes(self, chunk: bytes, more: bool = False) -> bool:
		if chunk:
			self.writer.write(chunk)
			await self.writer.drain()
		return True


class AIOStreamServer:
	"""AsyncIO backend using streams, which gives us TLS support."""

	@classmethod
	async def OnRequest(
		cls,
		app: Application,
		reader: StreamReader,
		writer: StreamWriter,
		*,
		options: ServerOptions,
	) -> None:
		"""Processes the requests sent over a client connection, until the
		client closes it, asks for it to be closed or stays idle for too
		long."""
		client: str = f"{id(writer):x}"
		parser: HTTPParser = HTTPParser()
		body_writer: AIOStreamBodyWriter = AIOStreamBodyWriter(writer)
		keep_alive: bool = True
		status: HTTPProcessingStatus = HTTPProcessingStatus.Processing
		req_count: int = 0
		res_count: int = 0
		try:
			while keep_alive:
				try:
					data = await asyncio.wait_for(
						reader.read(options.readsize), timeout=options.keepalive
					)
				except asyncio.TimeoutError:
					status = HTTPProcessingStatus.Timeout
					break
				if not data:
					# A no-data means a close
					status = HTTPProcessingStatus.NoData
					break
				# NOTE: With HTTP Pipelining, we may receive more than one
				# request in the same payload.
				for atom in parser.feed(data):
					if isinstance(atom, HTTPProcessingStatus) and atom in SERVER_REJECTED:
						warning("Rejected request", Client=client, Status=atom.name)
						await body_writer.write(SERVER_REJECTED[atom])
						status = atom
						keep_alive = False
					elif isinstance(atom, HTTPRequest):
						req_count += 1
						if options.logRequests:
							event(atom.method, atom.uri)
						if not atom.keepAlive:
							keep_alive = False
						res = await cls.SendResponse(atom, app, body_writer)
						if res is None or res.shouldClose:
							keep_alive = False
						if res:
							res_count += 1
					if not keep_alive:
						break
			if status is HTTPProcessingStatus.Timeout and req_count != res_count:
				warning(
					"Client timed out",
					Client=client,
					Requests=req_count,
					Responses=res_count,
				)
			debug(
				"Connection done",
				Client=client,
				Status=status.name,
				Requests=req_count,
				Responses=res_count,
			)
		except ConnectionError as e:
			# The client went away, there's nothing left to answer
			debug("Connection lost", Client=client, Error=str(e))
		except Exception as e:
			exception(e)
		finally:
			writer.close()
			try:
				await writer.wait_closed()
			except OSError as e:
				debug("Connection close failed", Client=client, Error=str(e))

	@staticmethod
	async def SendResponse(
		request: HTTPRequest,
		app: Application,
		writer: HTTPBodyWriter,
	) -> HTTPResponse | None:
		"""Processes the request within the application and sends a response
		using the given writer. Returns `None` when the connection should be
		closed after a canned response was sent."""
		try:
			r = app.process(request)
			res: HTTPResponse | None = r if isinstance(r, HTTPResponse) else await r
		except Exception as e:
			exception(e, f"Application failed on {request.method} {request.path}")
			await writer.write(SERVER_ERROR)
			return None
		if res is None:
			warning(
				"Application did not return a response",
				Method=request.method,
				Path=request.path,
			)
			await writer.write(SERVER_NOCONTENT)
			return None
		await writer.write(res.head())
		# HEAD responses have the headers of a GET, but no body
		if request.method != "HEAD":
			try:
				await writer.write(res.body)
			except ConnectionError:
				raise
			except Exception as e:
				# The head is already sent, so the only way to tell the
				# client is to close the connection.
				exception(e, f"Could not send body for {request.path}")
				res.shouldClose = True
		return res

	@classmethod
	async def Serve(
		cls,
		app: Application,
		options: ServerOptions = OPTIONS,
	) -> None:
		"""Main server coroutine, returns when `options.condition` fails."""
		# The TLS credentials are loaded first, so that no socket is bound
		# when they're not available.
		context: ssl.SSLContext | None = (
			tlsContext(options.certfile, options.keyfile)
			if options.certfile and options.keyfile
			else None
		)
		await app.start()
		loop = asyncio.get_running_loop()
		loop.set_exception_handler(onLoopException)
		tasks: set[asyncio.Task[Any]] = set()

		async def onConnection(reader: StreamReader, writer: StreamWriter) -> None:
			task = asyncio.current_task()
			if task:
				tasks.add(task)
			try:
				await cls.OnRequest(app, reader, writer, options=options)
			finally:
				if task:
					tasks.discard(task)

		# NOTE: There's no fallback on other ports, failing to bind is an
		# error.
		server = await asyncio.start_server(
			onConnection,
			options.host,
			options.port,
			backlog=options.backlog,
			ssl=context,
			reuse_address=True,
		)
		port: int = (
			server.sockets[0].getsockname()[1] if server.sockets else options.port
		)
		info(
			"Server listening",
			icon="🚀",
			Host=options.host,
			Port=port,
			TLS=context is not None,
		)
		try:
			while server.is_serving():
				if options.condition and not options.condition():
					break
				await asyncio.sleep(options.polling)
		finally:
			server.close()
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			await server.wait_closed()
			await app.stop()


def run(
	*components: Application | Service,
	host: str = HOST,
	port: int = PORT,
	certfile: str | Path | None = None,
	keyfile: str | Path | None = None,
	backlog: int = OPTIONS.backlog,
	condition: Callable[[], bool] | None = None,
	polling: float = OPTIONS.polling,
	logRequests: bool = LOG_REQUESTS,
	keepalive: float = OPTIONS.keepalive,
) -> None:
	"""High level function to run the server, blocking until the server
	stops. Errors preventing the server from listening are raised."""
	unlimit(LimitType.Files)
	options = ServerOptions(
		host=host,
		port=port,
		backlog=backlog,
		condition=condition,
		polling=polling,
		logRequests=logRequests,
		keepalive=keepalive,
		certfile=certfile,
		keyfile=keyfile,
	)
	app = mount(*components)
	try:
		asyncio.run(AIOStreamServer.Serve(app, options))
	except KeyboardInterrupt:
		event("ManualShutdown")


# EOF
