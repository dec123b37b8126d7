"""
Centralized logging configuration for formgrid.

This module provides:
- Color-coded console output
- Optional file logging
- Progress tracking for batch and multi-page work
- Timing and memory monitoring helpers
"""

import logging
import os
import sys
import time
from functools import wraps
from pathlib import Path
from typing import Optional, Any, Dict, Callable, List

import psutil

LOG_LEVEL_ENV = "FORMGRID_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s | %(name)-28s | %(levelname)-8s | %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        # Work on a copy so other handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        return super().format(record)


class ProgressTracker:
    """Track progress of multi-step operations (pages, batch chunks)."""

    def __init__(self, name: str, total_steps: Optional[int] = None, logger: Optional[logging.Logger] = None):
        self.name = name
        self.total_steps = total_steps
        self.logger = logger or logging.getLogger(__name__)

        self.current_step = 0
        self.start_time = time.time()
        self.step_times: List[float] = []
        self.step_names: List[str] = []
        self.completed_steps: List[Dict[str, Any]] = []

        self.logger.info(f"🚀 Starting {name}")

    def start_step(self, step_name: str) -> None:
        """Start a new step in the process."""
        self.current_step += 1
        self.step_names.append(step_name)
        self.step_times.append(time.time())

        progress_info = ""
        if self.total_steps:
            percentage = (self.current_step / self.total_steps) * 100
            progress_info = f" [{self.current_step}/{self.total_steps}] ({percentage:.1f}%)"

        self.logger.debug(f"⏳ Step {self.current_step}{progress_info}: {step_name}")

    def complete_step(self, result: Any = None, details: Optional[str] = None) -> None:
        """Mark the current step as completed."""
        if not self.step_times:
            self.logger.warning("No active step to complete")
            return

        step_duration = time.time() - self.step_times[-1]
        step_name = self.step_names[-1]

        self.completed_steps.append({
            'name': step_name,
            'duration': step_duration,
            'result': result,
            'details': details,
        })

        message = f"✅ Completed: {step_name} ({step_duration:.3f}s)"
        if details:
            message += f" - {details}"
        self.logger.debug(message)

    def finish(self, success: bool = True) -> Dict[str, Any]:
        """Finish tracking and return a summary."""
        total_duration = time.time() - self.start_time

        summary = {
            'name': self.name,
            'total_duration': total_duration,
            'completed_steps': len(self.completed_steps),
            'total_steps': self.total_steps,
            'success': success,
            'step_details': self.completed_steps,
        }

        if success:
            self.logger.info(f"🎉 Completed {self.name} in {total_duration:.2f}s "
                             f"({len(self.completed_steps)} steps)")
        else:
            self.logger.error(f"❌ Failed {self.name} after {total_duration:.2f}s")

        return summary


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    enable_colors: bool = True,
    log_format: Optional[str] = None
) -> logging.Logger:
    """
    Setup centralized logging configuration.

    Args:
        level: Logging level; overridden by the FORMGRID_LOG_LEVEL variable
        log_file: Optional file path for logging
        enable_colors: Enable colored console output
        log_format: Custom log format string

    Returns:
        Configured root logger
    """
    log_level = os.getenv(LOG_LEVEL_ENV, level).upper()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    log_format = log_format or DEFAULT_FORMAT

    console_handler = logging.StreamHandler(sys.stderr)
    if enable_colors and sys.stderr.isatty():
        console_handler.setFormatter(ColoredFormatter(log_format))
    else:
        console_handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(file_handler)

    return root_logger


def time_it(func: Callable = None, *, logger: Optional[logging.Logger] = None):
    """
    Decorator to time function execution and log the result at DEBUG level.

    Failures are logged with their duration and re-raised.
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            func_logger = logger or logging.getLogger(f.__module__)

            try:
                result = f(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                func_logger.error(f"❌ {f.__name__} failed after {duration:.3f}s: {e}")
                raise

            duration = time.time() - start_time
            func_logger.debug(f"⏱️  {f.__name__} completed in {duration:.3f}s")
            return result

        return wrapper

    if func is None:
        return decorator
    return decorator(func)


def log_memory_usage(logger: logging.Logger, operation: str = "operation") -> Optional[float]:
    """Log current resident memory in MB and return it."""
    try:
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
    except psutil.Error as e:
        logger.debug(f"Failed to read memory usage: {e}")
        return None

    logger.debug(f"💾 Memory usage after {operation}: {memory_mb:.1f}MB")
    return memory_mb
