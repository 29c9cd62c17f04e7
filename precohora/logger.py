"""Loguru setup for the service.

Sinks:
- stderr, colorized, for operators watching the process
- a daily JSON-lines file, rotated and compressed, for aggregation

uvicorn and httpx log through the standard library; their records are
forwarded into loguru so every line ends up in the same two sinks.
"""

import inspect
import json
import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from precohora.exceptions import LoggingInitializationError

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

LOG_FILE_PATTERN = "precohora_{time:YYYY-MM-DD}.json"

FORWARDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx")


class InterceptHandler(logging.Handler):
    """Re-emit standard library log records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = inspect.currentframe(), 0
        while frame is not None and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.bind(module=record.name).opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _to_json_line(record: dict[str, Any]) -> str:
    """One log record as a single JSON line.

    Keys: timestamp, level, message, module, function, line, plus
    ``exception`` when one is attached and ``context`` for bound kwargs.
    """
    extra = dict(record["extra"])
    extra.pop("serialized", None)
    module = extra.pop("module", record["name"])

    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": module,
        "function": record["function"],
        "line": record["line"],
    }

    exception = record["exception"]
    if exception is not None:
        entry["exception"] = {
            "type": exception.type.__name__ if exception.type else None,
            "value": str(exception.value) if exception.value else None,
        }

    if extra:
        entry["context"] = extra

    return json.dumps(entry, default=str, ensure_ascii=False)


def _serialize(record: dict[str, Any]) -> bool:
    record["extra"]["serialized"] = _to_json_line(record)
    return True


def _check_writable(log_dir: Path) -> None:
    """Create the log directory and prove it accepts writes.

    Raises:
        LoggingInitializationError: If the directory is unusable.
    """
    probe = log_dir / ".write_test"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        probe.write_text("ok")
        probe.unlink()
    except PermissionError as exc:
        raise LoggingInitializationError(log_dir=str(log_dir), reason=f"Permission denied: {exc}") from exc
    except OSError as exc:
        raise LoggingInitializationError(log_dir=str(log_dir), reason=f"OS error: {exc}") from exc


def _forward_stdlib_logging(level: str) -> None:
    handler = InterceptHandler()
    logging.basicConfig(handlers=[handler], level=0, force=True)
    for name in FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.propagate = False
        std_logger.setLevel(level)


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Install the console and JSON file sinks.

    Call once at bootstrap, before the server or a one-shot lookup starts.
    Calling again replaces the sinks.

    Args:
        config: Optional GlobalConfig. Uses singleton if not provided.

    Raises:
        LoggingInitializationError: If the log directory is not writable.
    """
    config = config or get_config()

    _check_writable(config.log_dir)

    logger.remove()
    logger.configure(extra={"module": "root"})

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )
    logger.add(
        str(config.log_dir / LOG_FILE_PATTERN),
        format=lambda record: "{extra[serialized]}\n",
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        filter=_serialize,
    )

    _forward_stdlib_logging(config.log_level)

    logger.info(
        "Logging initialized",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Logger bound to a module name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Tab opened", user_agent="Mozilla/5.0 ...")
    """
    return logger.bind(module=name)
