"""
Batch orchestration: recognition with bounded concurrency, then reconciliation.

Every input file is expanded into pages and each page is recognized into a
Record. Files run on a thread pool no larger than
``BatchSettings.max_concurrency``; a file that cannot be recognized is
replaced by an editable error placeholder instead of aborting the batch.
Once every file has resolved, matching, sequencing and anomaly detection
run once over the complete Record set.
"""

import functools
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from expense_reconciliation.anomalies import AnomalyDetector
from expense_reconciliation.config.validation import ConfigurationValidator
from expense_reconciliation.error_messages import describe_file_error, get_user_friendly_message
from expense_reconciliation.matching import PairMatcher
from expense_reconciliation.models import (
    AnomalyWarning, BatchError, BatchFile, BatchSettings, FileProcessingError,
    InvoiceRecord, PairingResult, ProcessingStatus, RecognitionConfig, RecognitionError,
    Record, SortingResult, ValidationError
)
from expense_reconciliation.recognition.base_recognizer import BaseRecognizer, PageImage
from expense_reconciliation.recognition.page_loader import PageLoader
from expense_reconciliation.sequencing import DocumentSorter
from .context import BatchContext
from .retry import retry_with_backoff

import logging
logger = logging.getLogger(__name__)


class BatchStage(Enum):
    """Stages reported to progress callbacks."""
    RECOGNIZING = "recognizing"
    PAIRING = "pairing"
    SORTING = "sorting"
    DETECTING = "detecting"
    COMPLETED = "completed"
    ERROR = "error"


class FileState(Enum):
    """Lifecycle of one input file."""
    PENDING = "pending"
    RECOGNIZING = "recognizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class BatchProgress:
    """Progress notification."""
    stage: BatchStage
    current_step: int
    total_steps: int
    current_file: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'stage': self.stage.value,
            'current_step': self.current_step,
            'total_steps': self.total_steps,
            'current_file': self.current_file,
            'message': self.message
        }


@dataclass
class FileFailure:
    """Why one input file was replaced by a placeholder."""
    file_name: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {'file_name': self.file_name, 'error': self.error}


@dataclass
class FileOutcome:
    """Records produced for one input file."""
    index: int
    file_name: str
    state: FileState = FileState.PENDING
    records: List[Record] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Output of a batch: records plus all derived reconciliation results."""
    records: List[Record]
    pairing: PairingResult
    sorting: SortingResult
    warnings: List[AnomalyWarning]
    file_errors: List[FileFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.file_errors)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'records': [record.to_dict() for record in self.records],
            'pairing': self.pairing.to_dict(),
            'sorting': self.sorting.to_dict(),
            'warnings': [warning.to_dict() for warning in self.warnings],
            'file_errors': [failure.to_dict() for failure in self.file_errors]
        }


ProgressCallback = Callable[[BatchProgress], None]


def create_placeholder_record(batch_file: BatchFile, error: Exception) -> InvoiceRecord:
    """
    Build the editable stand-in for a file that could not be recognized.

    The placeholder is an invoice with zero amount and empty date so the
    user can fill in the details manually.
    """
    return InvoiceRecord(
        file_name=batch_file.file_name,
        file_type=batch_file.file_type,
        date="",
        amount=Decimal("0"),
        description="",
        confidence=0,
        status=ProcessingStatus.ERROR,
        error_message=(f"Automatic recognition failed: {get_user_friendly_message(error)}. "
                       f"Please edit the document details manually.")
    )


class BatchOrchestrator:
    """
    Runs a batch of files through recognition and reconciliation.

    Collaborators are injectable; defaults are built from ``settings``.
    """

    def __init__(self, recognizer: BaseRecognizer, settings: Optional[BatchSettings] = None,
                 page_loader: Optional[PageLoader] = None,
                 validator: Optional[ConfigurationValidator] = None,
                 matcher: Optional[PairMatcher] = None,
                 sorter: Optional[DocumentSorter] = None,
                 detector: Optional[AnomalyDetector] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 context_factory: Optional[Callable[[], BatchContext]] = None):
        """
        Initialize the orchestrator.

        Args:
            recognizer: Recognition collaborator
            settings: Concurrency, retry and resource settings
            page_loader: Expands files into page images
            validator: Validates config and settings before a batch
            matcher: Matching engine
            sorter: Sequencing engine
            detector: Anomaly engine
            sleep: Sleep function used between retries
            context_factory: Builds the per-batch resource context
        """
        self.recognizer = recognizer
        self.settings = settings or BatchSettings()
        self.page_loader = page_loader or PageLoader.from_settings(self.settings)
        self.validator = validator or ConfigurationValidator()
        self.matcher = matcher or PairMatcher()
        self.sorter = sorter or DocumentSorter()
        self.detector = detector or AnomalyDetector()
        self.sleep = sleep
        self.context_factory = context_factory or (lambda: BatchContext(self.settings.max_memory_mb))
        self.logger = logging.getLogger(f"{__name__}.BatchOrchestrator")

    def process_batch(self, files: Sequence[BatchFile], recognition_config: RecognitionConfig,
                      progress_callback: Optional[ProgressCallback] = None) -> BatchResult:
        """
        Recognize every file, then pair, sort and check the resulting records.

        Args:
            files: Input files in display order
            recognition_config: Endpoint, credential and model for recognition
            progress_callback: Receives BatchProgress notifications

        Returns:
            BatchResult with records in input file order, then page order

        Raises:
            ValidationError: If the input or configuration is invalid
            BatchError: If every file failed
        """
        files = list(files)
        self._validate(files, recognition_config)

        total = len(files)
        self.logger.info(f"Starting batch of {total} file(s) with concurrency "
                         f"{self.settings.max_concurrency}")
        self._notify(progress_callback, BatchProgress(
            BatchStage.RECOGNIZING, 0, total, message=f"Starting recognition of {total} file(s)"
        ))

        outcomes = self._recognize_all(files, recognition_config, progress_callback)

        file_errors = [FileFailure(outcome.file_name, outcome.error)
                       for outcome in outcomes if outcome.state is FileState.FAILED]

        if len(file_errors) == total:
            message = "All files failed to process, check the file formats and API configuration"
            self.logger.error(f"{message} ({total} file(s))")
            self._notify(progress_callback, BatchProgress(
                BatchStage.ERROR, 0, total, message=f"Processing failed: {message}"
            ))
            raise BatchError(message, file_errors)

        records = [record for outcome in outcomes for record in outcome.records]

        self._notify(progress_callback, BatchProgress(
            BatchStage.PAIRING, total, total, message="Pairing invoices with trip sheets"
        ))
        pairing = self.matcher.pair_documents(records)

        self._notify(progress_callback, BatchProgress(
            BatchStage.SORTING, total, total, message="Sorting documents"
        ))
        sorting = self.sorter.sort_documents(records, pairing)

        self._notify(progress_callback, BatchProgress(
            BatchStage.DETECTING, total, total, message="Detecting anomalies"
        ))
        warnings = self.detector.detect_anomalies(records, pairing)

        succeeded = total - len(file_errors)
        self.logger.info(f"Batch complete: {succeeded}/{total} file(s) recognized, "
                         f"{len(records)} record(s), {len(pairing.pairs)} pair(s), "
                         f"{len(warnings)} warning(s)")
        self._notify(progress_callback, BatchProgress(
            BatchStage.COMPLETED, total, total,
            message=f"Processing complete: {succeeded}/{total} file(s) recognized"
        ))

        return BatchResult(records=records, pairing=pairing, sorting=sorting,
                           warnings=warnings, file_errors=file_errors)

    def _validate(self, files: List[BatchFile], recognition_config: RecognitionConfig):
        if not files:
            raise ValidationError("No files to process")
        for batch_file in files:
            if not isinstance(batch_file, BatchFile):
                raise ValidationError(f"Unsupported batch input: {type(batch_file).__name__}")
        if not isinstance(recognition_config, RecognitionConfig):
            raise ValidationError("Recognition configuration is required")

        self.validator.validate_recognition_config(recognition_config).raise_if_invalid(
            "recognition configuration")
        self.validator.validate_batch_settings(self.settings).raise_if_invalid("batch settings")

    def _recognize_all(self, files: List[BatchFile], recognition_config: RecognitionConfig,
                       progress_callback: Optional[ProgressCallback]) -> List[FileOutcome]:
        total = len(files)
        outcomes: List[Optional[FileOutcome]] = [None] * total

        with self.context_factory() as context:
            with ThreadPoolExecutor(max_workers=self.settings.max_concurrency,
                                    thread_name_prefix="recognize") as executor:
                futures = [
                    executor.submit(self._process_file, index, batch_file, recognition_config, context)
                    for index, batch_file in enumerate(files)
                ]

                done = 0
                for future in as_completed(futures):
                    outcome = future.result()
                    outcomes[outcome.index] = outcome
                    done += 1
                    self._notify(progress_callback, BatchProgress(
                        BatchStage.RECOGNIZING, done, total, current_file=outcome.file_name,
                        message=f"Recognized file {done}/{total}: {outcome.file_name}"
                    ))
                    context.monitor_and_clean()

        return outcomes

    def _process_file(self, index: int, batch_file: BatchFile, recognition_config: RecognitionConfig,
                      context: BatchContext) -> FileOutcome:
        """Recognize one file; failures become a placeholder outcome, never an exception."""
        outcome = FileOutcome(index=index, file_name=batch_file.file_name)
        outcome.state = FileState.RECOGNIZING
        start_time = time.time()

        try:
            page_count = len(self._load_pages(index, batch_file, context))
            outcome.records = [
                self._recognize_page(self._cached_page(index, batch_file, page_number, context),
                                     recognition_config)
                for page_number in range(page_count)
            ]
            outcome.state = FileState.COMPLETED
            self.logger.info(f"Recognized {batch_file.file_name}: {page_count} page(s) in "
                             f"{time.time() - start_time:.2f}s")
        except (FileProcessingError, RecognitionError) as e:
            self._fail(outcome, batch_file, e)
        except Exception as e:
            self.logger.exception(f"Unexpected error while processing {batch_file.file_name}")
            self._fail(outcome, batch_file, e)
        finally:
            context.release_pages(index)

        return outcome

    def _load_pages(self, index: int, batch_file: BatchFile, context: BatchContext) -> List[PageImage]:
        """Render a file into the batch cache; between pages the cache holds the only reference."""
        pages = self.page_loader.load_pages(batch_file)
        context.cache_pages(index, pages)
        return pages

    def _cached_page(self, index: int, batch_file: BatchFile, page_number: int,
                     context: BatchContext) -> PageImage:
        """Fetch one page from the cache, rendering the file again if a cleanup dropped it."""
        pages = context.get_pages(index)
        if pages is None:
            self.logger.info(f"Pages of {batch_file.file_name} were released under memory pressure, "
                             f"reloading")
            pages = self._load_pages(index, batch_file, context)
        return pages[page_number]

    def _recognize_page(self, page: PageImage, recognition_config: RecognitionConfig) -> Record:
        operation = functools.partial(self.recognizer.recognize, page, recognition_config,
                                      self.settings.request_timeout)
        record = retry_with_backoff(
            operation,
            max_retries=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay,
            sleep=self.sleep,
            description=f"Recognize {page.display_name}"
        )
        record.file_name = page.display_name
        record.file_type = page.source_type
        return record

    def _fail(self, outcome: FileOutcome, batch_file: BatchFile, error: Exception):
        outcome.state = FileState.FAILED
        outcome.error = describe_file_error(error)
        outcome.records = [create_placeholder_record(batch_file, error)]
        self.logger.error(f"Failed to process {batch_file.file_name}: {outcome.error}")

    def _notify(self, progress_callback: Optional[ProgressCallback], progress: BatchProgress):
        if progress_callback is None:
            return
        try:
            progress_callback(progress)
        except Exception as e:
            self.logger.warning(f"Progress callback failed at stage {progress.stage.value}: {e}")


def process_batch(files: Sequence[BatchFile], recognition_config: RecognitionConfig,
                  recognizer: BaseRecognizer, settings: Optional[BatchSettings] = None,
                  progress_callback: Optional[ProgressCallback] = None) -> BatchResult:
    """Process a batch with a default-configured orchestrator."""
    orchestrator = BatchOrchestrator(recognizer, settings=settings)
    return orchestrator.process_batch(files, recognition_config, progress_callback)
