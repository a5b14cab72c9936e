import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from loguru import logger

_UNBOUND_THREAD = "-"

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>{extra[thread]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | thread={extra[thread]} | "
    "{name}:{function}:{line} - {message}"
)

DEFAULT_LOG_CONSUMERS: list[dict[str, Any]] = [
    {"type": "console", "level": "WARNING"},
    {"type": "file"},
]


@dataclass(frozen=True)
class LogSink:
    """One registered loguru sink and the settings it was added with."""

    kind: str
    target: str
    level: str
    thread: str | None = None

    def describe(self) -> str:
        scope = f", thread {self.thread}" if self.thread else ""
        return f"{self.kind} ({self.target}, {self.level}{scope})"


def _thread_filter(thread: str | None) -> Callable[[dict], bool] | None:
    if thread is None:
        return None
    return lambda record: record["extra"].get("thread") == thread


def _add_console(level: str, thread: str | None, colorize: bool | None = None) -> LogSink:
    logger.add(sys.stderr, level=level, colorize=colorize, format=_CONSOLE_FORMAT, filter=_thread_filter(thread))
    return LogSink("console", "stderr", level, thread)


def _add_file(
    level: str,
    thread: str | None,
    path: str = "logs/diag-session.log",
    rotation: str = "5 MB",
    retention: int = 5,
) -> LogSink:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        path,
        level=level,
        format=_FILE_FORMAT,
        rotation=rotation,
        retention=retention,
        filter=_thread_filter(thread),
    )
    return LogSink("file", path, level, thread)


_SINK_BUILDERS: dict[str, Callable[..., LogSink]] = {
    "console": _add_console,
    "file": _add_file,
}


def _add_sink(config: dict[str, Any], default_level: str) -> LogSink | None:
    options = dict(config)
    kind = options.pop("type", "")
    builder = _SINK_BUILDERS.get(kind)
    if builder is None:
        logger.warning(f"Unknown log consumer type: {kind!r}")
        return None
    level = options.pop("level", default_level)
    thread = options.pop("thread", None)
    return builder(level, thread, **options)


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace every loguru sink with the configured consumers.

    Each consumer is a mapping with a ``type`` (``console`` or ``file``), an
    optional ``level`` overriding ``level``, an optional ``thread`` that keeps
    only records bound to that chat thread, and sink-specific options
    (``colorize`` for the console; ``path``, ``rotation`` and ``retention``
    for files). Unknown types are logged and skipped.

    Returns a one-line description per registered sink.
    """
    logger.remove()
    logger.configure(extra={"thread": _UNBOUND_THREAD})

    sinks = [_add_sink(config, level) for config in (DEFAULT_LOG_CONSUMERS if consumers is None else consumers)]
    return [sink.describe() for sink in sinks if sink is not None]
