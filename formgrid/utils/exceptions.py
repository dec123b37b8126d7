"""Custom exceptions for formgrid"""

from typing import Dict, List, Any, Optional


class FormGridError(Exception):
    """Base exception for formgrid errors"""

    pass


class ValidationError(FormGridError):
    """Raised when an argument or primitive violates the caller contract"""

    def __init__(self, message: str, validation_errors: Optional[List[Any]] = None) -> None:
        self.validation_errors = validation_errors or []
        super().__init__(message)


class ConfigurationError(FormGridError):
    """Raised when configuration is invalid (e.g. negative thresholds)"""

    pass


class CoordinateError(FormGridError):
    """Raised when page dimensions or boxes are invalid"""

    pass


class LearningStoreError(FormGridError):
    """Raised when learning data cannot be loaded or saved"""

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        self.source = source
        super().__init__(message)


class BatchProcessingError(FormGridError):
    """Raised when a batch cannot be started"""

    pass


class PageProcessingError(FormGridError):
    """Raised when pages of a document could not be processed

    ``page_errors`` maps page index to message; ``fields`` holds whatever the
    other pages produced.
    """

    def __init__(self, message: str, page_errors: Optional[Dict[int, str]] = None,
                 fields: Optional[List[Any]] = None) -> None:
        self.page_errors = page_errors or {}
        self.fields = fields or []
        super().__init__(message)
