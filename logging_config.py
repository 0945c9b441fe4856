"""
Centralized logging configuration for PrintFulfillment.

Thread-aware logging: every record carries the name of the thread that
emitted it, so request threads, shipment workers and individual purchase
jobs can be told apart in a single log stream.

Features:
    - Thread name in every log message
    - Console output (always enabled)
    - Rotating file logs plus a separate error log (production)
    - Namespaced loggers under "print_fulfillment"

Log Format:
    2026-03-02 10:15:30 [INFO    ] [MainThread] print_fulfillment.app - Starting application
    2026-03-02 10:15:31 [INFO    ] [Shipments-1] print_fulfillment.job.a1b2c3d4 - Order 1042 purchased
    2026-03-02 10:15:32 [WARNING ] [Thread-7] print_fulfillment.services.batch_manager - Batch 3 not ready

Usage:
    setup_logging(log_level=logging.INFO, enable_file_logging=True)

    logger = get_logger(__name__)
    job_logger = get_job_logger(job_id)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_LOGGER_NAME = "print_fulfillment"


# =============================================================================
# THREAD CONTEXT FILTER
# =============================================================================

class ThreadContextFilter(logging.Filter):
    """
    Adds ``thread_name`` and ``thread_id`` to each record.

    Never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        current_thread = threading.current_thread()
        record.thread_name = current_thread.name
        record.thread_id = threading.get_ident()
        return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

def _rotating_handler(path: Path, level: int, formatter: logging.Formatter,
                      thread_filter: logging.Filter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=10 * 1024 * 1024,  # 10 MB per file
        backupCount=5,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(thread_filter)
    return handler


def setup_logging(
    app_name: str = APP_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure application logging with thread context.

    Sets up a console handler, and when ``enable_file_logging`` is set, a
    rotating application log plus a rotating ERROR-only log.

    Args:
        app_name: Name of the application root logger
        log_level: Minimum log level (default: INFO)
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Whether to write log files

    Returns:
        Configured application root logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False

    # Allows re-configuration (tests create several apps)
    logger.handlers.clear()

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    thread_filter = ThreadContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(thread_filter)
    logger.addHandler(console_handler)

    if enable_file_logging:
        if log_dir is None:
            log_dir = Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        app_log_file = log_dir / f"{app_name}.log"
        logger.addHandler(_rotating_handler(app_log_file, log_level, formatter, thread_filter))
        logger.addHandler(
            _rotating_handler(log_dir / f"{app_name}_error.log", logging.ERROR, formatter, thread_filter)
        )
        logger.info(f"File logging enabled: {app_log_file}")

    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


# =============================================================================
# LOGGER FACTORY FUNCTIONS
# =============================================================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger under the application namespace.

    Example:
        get_logger("services.batch_manager")
        # -> "print_fulfillment.services.batch_manager"
    """
    if not name.startswith(APP_LOGGER_NAME):
        name = f"{APP_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def get_job_logger(job_id: str) -> logging.Logger:
    """
    Get a logger for one shipment purchase job.

    Only the first 8 characters of the job id are used in the name, which
    makes it easy to grep a single job out of the log.
    """
    short_id = job_id[:8] if len(job_id) >= 8 else job_id
    return logging.getLogger(f"{APP_LOGGER_NAME}.job.{short_id}")


def set_thread_name(name: str) -> None:
    """Rename the current thread (shown in the [thread_name] log field)."""
    threading.current_thread().name = name
