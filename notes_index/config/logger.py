"""
Loguru setup for Notes Index.

Records go to stderr and to rotating files under LOGS_DIR. HTTP request
records and timing records are bound to a channel and also land in their
own files.
"""

import sys
from pathlib import Path

from fastapi import Request
from loguru import logger

from notes_index.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
CHANNEL_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"

REQUEST_CHANNEL = "request"
PERFORMANCE_CHANNEL = "performance"

# file name, minimum level, rotation, retention, channel (None: every record)
FILE_SINKS = (
    ("app.log", "DEBUG", "10 MB", "7 days", None),
    ("errors.log", "ERROR", "5 MB", "30 days", None),
    ("requests.log", "INFO", "20 MB", "14 days", REQUEST_CHANNEL),
    ("performance.log", "INFO", "10 MB", "7 days", PERFORMANCE_CHANNEL),
)

request_logger = logger.bind(channel=REQUEST_CHANNEL)
performance_logger = logger.bind(channel=PERFORMANCE_CHANNEL)


def channel_filter(channel: str):
    return lambda record: record["extra"].get("channel") == channel


def setup_logging(log_level: str = "INFO", logs_dir: str = "logs") -> Path:
    """Replace loguru's default handler with the console and file sinks."""
    logs_path = Path(logs_dir)
    logs_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    # stderr keeps stdout free for script output
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True, backtrace=True, diagnose=True)

    for file_name, level, rotation, retention, channel in FILE_SINKS:
        logger.add(
            logs_path / file_name,
            format=CHANNEL_FORMAT if channel else FILE_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            encoding="utf-8",
            filter=channel_filter(channel) if channel else None,
        )
    return logs_path


def _client(request: Request) -> str:
    return request.client.host if request.client else "-"


def log_request_start(request: Request) -> None:
    request_logger.info(f"{request.method} {request.url.path} started from {_client(request)}")


def log_request_end(request: Request, status_code: int, process_time: float) -> None:
    request_logger.info(f"{request.method} {request.url.path} -> {status_code} ({process_time:.4f}s)")


def log_request_error(request: Request, error: Exception, process_time: float) -> None:
    request_logger.error(
        f"{request.method} {request.url.path} failed from {_client(request)}: "
        f"{type(error).__name__}: {error} ({process_time:.4f}s)"
    )


def log_performance(operation: str, duration: float, **details) -> None:
    """Record how long an operation took, with optional key=value details."""
    suffix = "".join(f" {key}={value}" for key, value in details.items())
    performance_logger.info(f"{operation} took {duration:.4f}s{suffix}")


setup_logging(settings.LOG_LEVEL, settings.LOGS_DIR)

app_logger = logger
