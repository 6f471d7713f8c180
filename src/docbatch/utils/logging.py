"""structlog setup shared by the CLI and the library.

Records from both structlog and plain ``logging`` go through one processor
chain and end up on stderr and, optionally, in a rotating log file.
"""

import logging
import sys
import uuid
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from structlog.typing import EventDict, WrappedLogger

import structlog
from rich.console import Console


class SafeStreamHandler(logging.StreamHandler):
    """Stream handler that degrades instead of failing on unencodable text.

    Document names frequently contain characters outside the console
    code page; those are replaced instead of dropping the record.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record) + self.terminator
            try:
                self.stream.write(line)
            except UnicodeEncodeError:
                codec = self.stream.encoding or "utf-8"
                self.stream.write(line.encode(codec, errors="replace").decode(codec))
            self.flush()
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


_console: Console | None = None
_log_output: TextIO = sys.stderr

# Longest string value rendered verbatim
_MAX_VALUE_LENGTH = 500

# Third-party loggers held at WARNING or above
_NOISY_LOGGERS = ("asyncio", "fitz")

# Keys rendered by ConsoleRenderer itself
_RENDERER_KEYS = frozenset({"event", "level", "timestamp", "_record", "_from_structlog"})


def get_console() -> Console:
    """Rich console shared by progress bars, tables and log output."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def set_log_output(output: TextIO) -> None:
    """Redirect console log records, e.g. while a progress bar owns stderr.

    Console handlers already installed by :func:`setup_logging` switch over
    immediately; later setups use ``output`` as well.
    """
    global _log_output
    _log_output = output
    for handler in logging.getLogger().handlers:
        if isinstance(handler, SafeStreamHandler):
            handler.setStream(output)


def _redact_payloads(
    _logger: "WrappedLogger", _method_name: str, event_dict: "EventDict"
) -> "EventDict":
    """Replace document bytes and oversized strings with size placeholders."""
    for key in list(event_dict):
        value = event_dict[key]
        if isinstance(value, (bytes, bytearray, memoryview)):
            event_dict[key] = f"[BINARY DATA: {len(value)} bytes]"
        elif isinstance(value, str) and len(value) > _MAX_VALUE_LENGTH:
            event_dict[key] = value[:_MAX_VALUE_LENGTH] + f"... [{len(value)} chars total]"
    return event_dict


def _add_separator(
    _logger: "WrappedLogger", _method_name: str, event_dict: "EventDict"
) -> "EventDict":
    """Separate the event message from its key/value context."""
    if "event" in event_dict and not _RENDERER_KEYS.issuperset(event_dict):
        event_dict["event"] = f"{event_dict['event']} |"
    return event_dict


_PROCESSORS: list["structlog.types.Processor"] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
    _redact_payloads,
    _add_separator,
]


def _renderer(json_format: bool, colors: bool) -> structlog.types.Processor:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=colors,
        exception_formatter=structlog.dev.plain_traceback,
        pad_event_to=0,
        pad_level=False,
    )


def _attach(
    root: logging.Logger,
    handler: logging.Handler,
    level: int,
    renderer: structlog.types.Processor,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_PROCESSORS,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root.addHandler(handler)


def _level(name: str | None, default: int) -> int:
    if not name:
        return default
    return getattr(logging, name.upper(), default)


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_format: bool = False,
    console_level: str | None = None,
    file_level: str | None = None,
) -> None:
    """Configure structlog and the root logger.

    Safe to call repeatedly; previous handlers are replaced.

    Args:
        level: Root level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path; rotated at midnight, 7 days kept
        json_format: Render JSON lines instead of human-readable output
        console_level: Level for the stderr handler (default: ``level``)
        file_level: Level for the file handler (default: ``level``)
    """
    root_level = _level(level, logging.INFO)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))

    _attach(
        root,
        SafeStreamHandler(_log_output),
        _level(console_level, root_level),
        _renderer(json_format, colors=True),
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        rotating = TimedRotatingFileHandler(
            log_file, when="midnight", interval=1, backupCount=7, encoding="utf-8"
        )
        rotating.suffix = "%Y-%m-%d"
        _attach(root, rotating, _level(file_level, root_level), _renderer(json_format, False))

    structlog.configure(
        processors=[*_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def create_task_log_path(log_dir: str | Path, prefix: str = "task") -> tuple[str, Path]:
    """Reserve a log file name for one CLI run.

    Files are named ``<prefix>_<YYYYmmdd_HHMMSS>_<id>.log``.

    Returns:
        ``(run_id, path)``; the directory is created if needed
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    run_id = uuid.uuid4().hex[:8]
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return run_id, directory / f"{prefix}_{stamp}_{run_id}.log"


def setup_task_logging(
    log_dir: str | Path,
    prefix: str = "task",
    verbose: bool = False,
    file_level: str = "DEBUG",
) -> tuple[str, Path]:
    """Log one CLI run to its own file.

    The console only shows WARNING and above unless ``verbose`` is set, so
    progress bars stay readable.

    Args:
        log_dir: Directory for run logs
        prefix: File name prefix, usually the command name
        verbose: Show DEBUG records on the console
        file_level: Minimum level written to the log file

    Returns:
        ``(run_id, log_path)``
    """
    run_id, log_path = create_task_log_path(log_dir, prefix)
    setup_logging(
        level="DEBUG",
        log_file=str(log_path),
        console_level="DEBUG" if verbose else "WARNING",
        file_level=file_level,
    )
    return run_id, log_path
