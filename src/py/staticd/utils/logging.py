import sys
import time
from enum import Enum
from typing import NamedTuple, Any, TypeAlias
from contextvars import ContextVar
from .term import Term

# --
# Logging writes single-line, colored entries to stderr. Each entry has an
# origin (`[staticd]` by default), a message and a context of `Key=value`
# pairs.

TLogValue: TypeAlias = bool | int | float | str | bytes | None

LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="staticd")


class LogType(Enum):
	Message = 0
	Event = 20


class LogLevel(Enum):
	Debug = 0
	Info = 10
	Warning = 30
	Error = 40  # A managed error
	Exception = 50  # An un-managed error


LOG_LEVEL_COLOR = {
	LogLevel.Debug: 31,
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}

# Entries below this level are not sent
LOG_LEVEL: LogLevel = LogLevel.Info


class LogEntry(NamedTuple):
	origin: str
	time: float
	type: LogType = LogType.Message
	level: LogLevel = LogLevel.Info
	message: str | None = None
	name: str | None = None
	value: Any = None
	context: dict[str, TLogValue] | None = None
	icon: str | None = None


def formatData(value: Any) -> str:
	if value is None or value == () or value == [] or value == {}:
		return "◌"
	elif isinstance(value, dict):
		return " ".join(
			f"{Term.BOLD}{k}{Term.NORMAL}={formatData(v)}" for k, v in value.items()
		)
	elif isinstance(value, list) or isinstance(value, tuple):
		return ",".join(formatData(v) for v in value)
	elif isinstance(value, str):
		return repr(value) if " " in value else value
	elif isinstance(value, bool):
		return "✓" if value else "✗"
	elif isinstance(value, float):
		return f"{value:0.2f}"
	else:
		return str(value)


def send(entry: LogEntry) -> LogEntry:
	# NOTE: We resolve stderr on each call, as it may have been swapped
	# (by a test runner, for instance).
	stream = sys.stderr
	icon: str = f" {entry.icon}" if entry.icon else ""
	clr: str = Term.Color(LOG_LEVEL_COLOR[entry.level])
	if entry.type == LogType.Event:
		stream.write(
			f"{clr}{Term.BOLD}[{entry.origin}] {entry.name}{Term.RESET} {formatData(entry.value)} {formatData(entry.context)}{Term.RESET}\n"
		)
	else:
		code: str = f" [{entry.value}]" if entry.value is not None else ""
		stream.write(
			f"{clr}{Term.BOLD}[{entry.origin}]{Term.RESET}{icon}{code} {entry.message} {formatData(entry.context)}{Term.RESET}\n"
		)
	stream.flush()
	return entry


def entry(
	*,
	origin: str | None = None,
	at: float | None = None,
	type: LogType = LogType.Message,
	level: LogLevel = LogLevel.Info,
	message: str | None = None,
	name: str | None = None,
	value: Any = None,
	context: dict[str, TLogValue],
	icon: str | None = None,
) -> LogEntry:
	return LogEntry(
		origin=origin or LogOrigin.get(),
		time=time.time() if at is None else at,
		type=type,
		level=level,
		message=message,
		name=name,
		value=value,
		context=context,
		icon=icon,
	)


def debug(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TLogValue,
) -> LogEntry | None:
	if not logged(LogLevel.Debug):
		return None
	return send(
		entry(
			message=message,
			level=LogLevel.Debug,
			origin=origin,
			context=context,
			icon=icon,
		)
	)


def info(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TLogValue,
) -> LogEntry | None:
	if not logged(LogLevel.Info):
		return None
	return send(entry(message=message, origin=origin, context=context, icon=icon))


def warning(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TLogValue,
) -> LogEntry | None:
	if not logged(LogLevel.Warning):
		return None
	return send(
		entry(
			message=message,
			level=LogLevel.Warning,
			origin=origin,
			context=context,
			icon=icon,
		)
	)


def error(
	message: str,
	code: int | str | None,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TLogValue,
) -> LogEntry:
	"""Errors are always sent, whatever the log level."""
	return send(
		entry(
			message=message,
			value=code,
			level=LogLevel.Error,
			origin=origin,
			context=context,
			icon=icon,
		)
	)


def event(
	event: str,
	value: Any = None,
	*,
	origin: str | None = None,
	**context: TLogValue,
) -> LogEntry | None:
	if not logged(LogLevel.Info):
		return None
	return send(
		entry(
			name=event,
			value=value,
			type=LogType.Event,
			origin=origin,
			context=context,
		)
	)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	try:
		stream = sys.stderr
		stream.write(
			f"!!! EXCP {f'{message}: [{exception.__class__.__name__}] {exception}' if message else f'[{exception.__class__.__name__}] {exception}'}\n"
		)
		tb = exception.__traceback__
		while tb:
			code = tb.tb_frame.f_code
			stream.write(
				f"... in {code.co_name:15s} at {tb.tb_lineno:4d} in {code.co_filename}\n",
			)
			tb = tb.tb_next
		stream.flush()
	except Exception:  # nosec: B110
		# Swallow all exceptions so that this function can be called from an
		# exception handler safely.
		pass
	# Return the exception so that this function can be called like:
	#   raise exception(e)
	return exception


def logged(level: LogLevel) -> bool:
	"""Tells if entries of the given level are currently sent. This is used to
	guard against building entries when not necessary."""
	return level.value >= LOG_LEVEL.value


# EOF
