"""Logging configuration for the netd daemon and client.

Provides configurable logging with:
- Console output at a configurable level
- File-based logging with rotation
- A separate performance logger fed by timing decorators

Environment Variables:
    NETD_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    NETD_LOG_FILE: Path to log file (default: ~/.netd/netd.log)
    NETD_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    NETD_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from netd.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("configure_interface")
    async def configure_interface(self, config):
        ...

    async with timed_section("commit", entries=3):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("netd.perf")
main_logger = logging.getLogger("netd")


def get_log_level(default: str = "INFO") -> int:
    """Get log level from environment."""
    level_str = os.environ.get("NETD_LOG_LEVEL", default).upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".netd" / "netd.log"
    path_str = os.environ.get("NETD_LOG_FILE", str(default_path))
    return Path(path_str)


def setup_logging(verbose: bool = False, log_to_file: bool = True) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (respects NETD_LOG_LEVEL, DEBUG when verbose)
    - File handler with rotation (DEBUG level - captures everything)
    - Performance logger writing to netd-perf.log next to the main log

    Args:
        verbose: Force DEBUG on the console
        log_to_file: Disable to keep the client from writing log files
    """
    log_level = logging.DEBUG if verbose else get_log_level()

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    main_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    main_logger.addHandler(console_handler)

    # netd.perf propagates to netd, so console output comes for free
    perf_logger.setLevel(logging.DEBUG)

    if not log_to_file:
        main_logger.debug(f"Logging initialized: level={logging.getLevelName(log_level)}")
        return

    log_file = get_log_file()
    max_size_mb = int(os.environ.get("NETD_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("NETD_LOG_BACKUPS", "5"))
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)
    main_logger.addHandler(file_handler)

    perf_log_file = log_file.parent / "netd-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)
    perf_logger.addHandler(perf_handler)

    main_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.info(f"Performance logging to: {perf_log_file}")


def _perf_line(operation: str, subject: Optional[str], elapsed: float, status: str) -> str:
    return f"{operation:20s} | {subject or 'N/A':15s} | {elapsed:8.2f}ms | {status}"


def timed(operation: str, subject: Optional[str] = None):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "add_route", "commit")
        subject: What the operation acts on; inferred from self.name if omitted

    Usage:
        @timed("add_route")
        async def add_route(self, config):
            ...
    """
    def decorator(func: Callable) -> Callable:
        def _subject(args: tuple) -> Optional[str]:
            if subject is None and args and hasattr(args[0], "name"):
                return args[0].name
            return subject

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000  # ms
                perf_logger.info(_perf_line(operation, _subject(args), elapsed, "OK"))
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, _subject(args), elapsed, f"FAIL: {e}"))
                raise

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.info(_perf_line(operation, _subject(args), elapsed, "OK"))
                return result
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, _subject(args), elapsed, f"FAIL: {e}"))
                raise

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, subject: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Args:
        operation: Name of the operation
        subject: What the section acts on
        **extra: Additional context to log

    Usage:
        async with timed_section("commit", entries=4):
            await manager.commit()
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
        elapsed = (time.perf_counter() - start) * 1000
        msg = _perf_line(operation, subject, elapsed, "OK")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.info(msg)
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _perf_line(operation, subject, elapsed, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
