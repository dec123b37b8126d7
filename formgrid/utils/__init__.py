"""
Utility modules for formgrid.
"""

from .exceptions import (
    FormGridError,
    ValidationError,
    ConfigurationError,
    CoordinateError,
    LearningStoreError,
    BatchProcessingError,
    PageProcessingError,
)
from .logging_config import setup_logging, ProgressTracker, time_it, log_memory_usage

__all__ = [
    "FormGridError",
    "ValidationError",
    "ConfigurationError",
    "CoordinateError",
    "LearningStoreError",
    "BatchProcessingError",
    "PageProcessingError",
    "setup_logging",
    "ProgressTracker",
    "time_it",
    "log_memory_usage",
]
