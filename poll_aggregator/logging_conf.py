"""Logging configuration: structlog events rendered as JSON by stdlib handlers."""

from __future__ import annotations

import logging
import logging.config
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator

import structlog
from pythonjsonlogger import jsonlogger

from .config.loader import HOME_ENV_VAR

APP_LOGGER = "poll_aggregator"
JSON_FORMATTER = "pythonjsonlogger.jsonlogger.JsonFormatter"
JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False


def log_dir() -> Path:
    """``$POLL_AGGREGATOR_HOME/logs`` when set, else ``logs/`` beside the package."""

    env_root = os.environ.get(HOME_ENV_VAR)
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def ingest_log_path() -> Path:
    return log_dir() / "ingest.log"


def source_log_path(source_name: str) -> Path:
    return log_dir() / "sources" / f"{source_name}.log"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.FileHandler",
        "level": level,
        "filename": str(path),
        "formatter": "json",
        "encoding": "utf-8",
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers once per process and return the application logger.

    Events go to the console, ``ingest.log`` (INFO and up) and ``error.log``.
    """

    global _configured
    if not _configured:
        directory = log_dir()
        (directory / "sources").mkdir(parents=True, exist_ok=True)
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {"json": {"()": JSON_FORMATTER, "fmt": JSON_FIELDS}},
                "handlers": {
                    "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
                    "ingest": _file_handler(directory / "ingest.log", "INFO"),
                    "errors": _file_handler(directory / "error.log", "ERROR"),
                },
                "loggers": {
                    APP_LOGGER: {
                        "handlers": ["console", "ingest", "errors"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _configured = True
    return structlog.get_logger(APP_LOGGER)


def source_logger(source_name: str) -> structlog.BoundLogger:
    """Logger whose events also land in ``sources/<source_name>.log``."""

    configure_logging()
    path = source_log_path(source_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    py_logger = logging.getLogger(f"{APP_LOGGER}.source.{source_name}")
    if not any(getattr(h, "baseFilename", None) == str(path) for h in py_logger.handlers):
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(logging.INFO)
        handler.setFormatter(jsonlogger.JsonFormatter(JSON_FIELDS))
        py_logger.addHandler(handler)
    return structlog.get_logger(py_logger.name)


@contextmanager
def run_context(source_name: str, run_id: int) -> Iterator[None]:
    """Tag every event emitted in this task with ``source`` and ``run_id``."""

    with structlog.contextvars.bound_contextvars(source=source_name, run_id=run_id):
        yield


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return stream.readlines()[-line_count:]


def available_source_logs() -> Iterable[Path]:
    return sorted((log_dir() / "sources").glob("*.log"))


__all__ = [
    "available_source_logs",
    "configure_logging",
    "ingest_log_path",
    "log_dir",
    "run_context",
    "source_log_path",
    "source_logger",
    "tail_log",
]
