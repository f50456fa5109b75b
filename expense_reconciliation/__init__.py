"""
Expense Document Reconciliation

Turns a batch of scanned receipts, invoices and ride-hailing trip sheets
into structured records, pairs invoices with the trip sheets that justify
them, orders everything for submission and flags likely mistakes.

This package provides:
- Core data models for records, pairs, warnings and settings
- Matching, sequencing and anomaly engines
- Recognition collaborators for OpenAI-compatible vision endpoints
- Batch orchestration with bounded concurrency and retries
- Configuration loading and validation
"""

from .models import (
    # Core data models
    Record,
    InvoiceRecord,
    TripSheetRecord,
    InvoiceDetails,
    TripDetails,
    Pair,
    PairingResult,
    AnomalyWarning,
    SortingResult,

    # Configuration models
    RecognitionConfig,
    BatchSettings,
    BatchFile,
    ConnectionTestResult,

    # Enums
    DocumentKind,
    FileType,
    ExpenseCategory,
    ProcessingStatus,
    WarningType,
    Severity,
    MediaKind,
    RecognitionErrorType,
    FileErrorType,

    # Exceptions
    ReconciliationError,
    ConfigurationError,
    ValidationError,
    RecognitionError,
    FileProcessingError,
    BatchError
)
from .matching import PairMatcher, pair_documents
from .sequencing import DocumentSorter, sort_documents
from .anomalies import AnomalyDetector, detect_anomalies
from .batch import BatchOrchestrator, BatchProgress, BatchResult, process_batch

__version__ = "1.0.0"
__author__ = "Expense Processing System"

__all__ = [
    # Core data models
    "Record",
    "InvoiceRecord",
    "TripSheetRecord",
    "InvoiceDetails",
    "TripDetails",
    "Pair",
    "PairingResult",
    "AnomalyWarning",
    "SortingResult",

    # Configuration models
    "RecognitionConfig",
    "BatchSettings",
    "BatchFile",
    "ConnectionTestResult",

    # Enums
    "DocumentKind",
    "FileType",
    "ExpenseCategory",
    "ProcessingStatus",
    "WarningType",
    "Severity",
    "MediaKind",
    "RecognitionErrorType",
    "FileErrorType",

    # Exceptions
    "ReconciliationError",
    "ConfigurationError",
    "ValidationError",
    "RecognitionError",
    "FileProcessingError",
    "BatchError",

    # Engines
    "PairMatcher",
    "pair_documents",
    "DocumentSorter",
    "sort_documents",
    "AnomalyDetector",
    "detect_anomalies",
    "BatchOrchestrator",
    "BatchProgress",
    "BatchResult",
    "process_batch"
]
