"""
Base recognizer interface for the recognition collaborator.

A recognizer turns one page image plus a RecognitionConfig into one
structured Record, or raises a categorized RecognitionError whose
``retryable`` flag drives the orchestrator's retry policy.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict

from expense_reconciliation.models import ConnectionTestResult, FileType, RecognitionConfig, Record

logger = logging.getLogger(__name__)


@dataclass
class PageImage:
    """One page of an input file, normalized to a JPEG image."""
    file_name: str
    page_number: int
    page_count: int
    data: bytes
    source_type: FileType = FileType.IMAGE
    mime_type: str = "image/jpeg"

    @property
    def display_name(self) -> str:
        """File name, suffixed with the page number for multi-page files."""
        if self.page_count > 1:
            return f"{self.file_name} (page {self.page_number})"
        return self.file_name

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without the image bytes)."""
        return {
            'file_name': self.file_name,
            'page_number': self.page_number,
            'page_count': self.page_count,
            'source_type': self.source_type.value,
            'mime_type': self.mime_type,
            'size': len(self.data)
        }


class BaseRecognizer(ABC):
    """
    Abstract base class for recognition collaborators.

    Provides common timing and logging helpers for concrete recognizers.
    """

    def __init__(self, name: str):
        """
        Initialize base recognizer.

        Args:
            name: Identifier used in log records
        """
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{name}")

    @abstractmethod
    def recognize(self, page: PageImage, config: RecognitionConfig, timeout: float) -> Record:
        """
        Recognize a single page image.

        Args:
            page: Page image to recognize
            config: Endpoint, credential and model to use
            timeout: Per-call timeout in seconds

        Returns:
            The recognized Record

        Raises:
            RecognitionError: If recognition fails
        """
        pass

    @abstractmethod
    def test_connection(self, config: RecognitionConfig, timeout: float) -> ConnectionTestResult:
        """
        Test that the configured endpoint answers.

        Returns:
            ConnectionTestResult with success status and message
        """
        pass

    def _log_operation(self, operation: str, duration: float, success: bool, details: str = None):
        """
        Log recognizer operation with timing and status.

        Args:
            operation: Name of the operation
            duration: Time taken in seconds
            success: Whether operation succeeded
            details: Additional details to log
        """
        status = "SUCCESS" if success else "FAILED"
        message = f"{operation} {status} in {duration:.3f}s"

        if details:
            message += f" - {details}"

        if success:
            self.logger.info(message)
        else:
            self.logger.error(message)

    def _measure_time(self, func, *args, **kwargs):
        """
        Measure execution time of a function.

        Returns:
            Tuple of (result, duration_in_seconds)
        """
        start_time = time.time()
        result = func(*args, **kwargs)
        return result, time.time() - start_time
