"""
Core data models for expense document reconciliation.

This module defines the fundamental data structures used throughout the
reconciliation process: recognized records (invoices and trip sheets),
pairing results, anomaly warnings, sequencing results and the
configuration objects consumed by the batch orchestrator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class DocumentKind(Enum):
    """Kinds of expense documents produced by recognition."""
    INVOICE = "invoice"
    TRIP_SHEET = "trip_sheet"


class FileType(Enum):
    """Source file type a record was recognized from."""
    IMAGE = "image"
    PDF = "pdf"


class ExpenseCategory(Enum):
    """Expense classification used for grouping and sequencing."""
    TAXI = "taxi"
    HOTEL = "hotel"
    TRAIN = "train"
    SHIPPING = "shipping"
    TOLL = "toll"
    CONSUMABLES = "consumables"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> 'ExpenseCategory':
        """Parse a category value, falling back to OTHER for unknown input."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


class ProcessingStatus(Enum):
    """Processing status of a record."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class WarningType(Enum):
    """Types of anomalies reported by the anomaly engine."""
    DUPLICATE = "duplicate"
    AMOUNT_ANOMALY = "amount_anomaly"
    DATE_GAP = "date_gap"
    MISSING_PAIR = "missing_pair"


class Severity(Enum):
    """Severity of an anomaly warning."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MediaKind(Enum):
    """Declared media kind of a batch input file."""
    IMAGE = "image"
    PDF = "pdf"

    @classmethod
    def from_mime_type(cls, mime_type: Optional[str], file_name: str = "") -> 'MediaKind':
        """Derive the media kind from a MIME type, or the file extension if absent."""
        if mime_type == "application/pdf":
            return cls.PDF
        if not mime_type and file_name.lower().endswith(".pdf"):
            return cls.PDF
        return cls.IMAGE


class RecognitionErrorType(Enum):
    """Categories of failures reported by the recognition collaborator."""
    API_KEY_INVALID = "API_KEY_INVALID"
    API_ENDPOINT_INVALID = "API_ENDPOINT_INVALID"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSING_ERROR = "PARSING_ERROR"
    TIMEOUT = "TIMEOUT"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"


class FileErrorType(Enum):
    """Categories of failures while turning an input file into page images."""
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    CORRUPTED_FILE = "CORRUPTED_FILE"
    PROCESSING_FAILED = "PROCESSING_FAILED"


def new_record_id() -> str:
    """Generate an opaque unique record id."""
    return f"doc_{uuid.uuid4().hex}"


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Convert a recognized amount into a Decimal, tolerating currency noise."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        cleaned = str(value).replace("¥", "").replace("$", "").replace(",", "").strip()
        return Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return default


@dataclass
class InvoiceDetails:
    """Invoice-only payload."""
    category: ExpenseCategory = ExpenseCategory.OTHER
    invoice_number: str = ""
    vendor: str = ""
    tax_amount: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'category': self.category.value,
            'invoice_number': self.invoice_number,
            'vendor': self.vendor,
            'tax_amount': str(self.tax_amount) if self.tax_amount is not None else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InvoiceDetails':
        """Create InvoiceDetails from dictionary."""
        tax = data.get('tax_amount')
        return cls(
            category=ExpenseCategory.parse(data.get('category')),
            invoice_number=data.get('invoice_number') or "",
            vendor=data.get('vendor') or "",
            tax_amount=to_decimal(tax) if tax not in (None, "") else None
        )


@dataclass
class TripDetails:
    """Trip-sheet-only payload."""
    platform: str = ""
    departure: str = ""
    destination: str = ""
    time: str = ""
    distance_km: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'platform': self.platform,
            'departure': self.departure,
            'destination': self.destination,
            'time': self.time,
            'distance_km': self.distance_km
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TripDetails':
        """Create TripDetails from dictionary."""
        try:
            distance = float(data.get('distance_km') or 0)
        except (TypeError, ValueError):
            distance = 0.0
        return cls(
            platform=data.get('platform') or "",
            departure=data.get('departure') or "",
            destination=data.get('destination') or "",
            time=data.get('time') or "",
            distance_km=distance
        )


@dataclass
class Record(ABC):
    """
    A recognized expense document.

    Records are a tagged union: use InvoiceRecord or TripSheetRecord.
    The kind-specific payload is only reachable on the matching variant,
    and ``kind`` is the discriminant.
    """
    id: str = field(default_factory=new_record_id)
    file_name: str = ""
    file_type: FileType = FileType.IMAGE
    date: str = ""
    amount: Decimal = Decimal("0")
    description: str = ""
    confidence: int = 0
    status: ProcessingStatus = ProcessingStatus.COMPLETED
    error_message: Optional[str] = None

    @property
    @abstractmethod
    def kind(self) -> DocumentKind:
        """Discriminant of the record variant."""
        pass

    @property
    def is_invoice(self) -> bool:
        return self.kind is DocumentKind.INVOICE

    @property
    def is_trip_sheet(self) -> bool:
        return self.kind is DocumentKind.TRIP_SHEET

    def _common_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'document_type': self.kind.value,
            'file_name': self.file_name,
            'file_type': self.file_type.value,
            'date': self.date,
            'amount': str(self.amount),
            'description': self.description,
            'confidence': self.confidence,
            'status': self.status.value,
            'error_message': self.error_message
        }

    @staticmethod
    def _common_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
        kwargs = {
            'file_name': data.get('file_name') or "",
            'file_type': FileType(data.get('file_type') or FileType.IMAGE.value),
            'date': data.get('date') or "",
            'amount': to_decimal(data.get('amount')),
            'description': data.get('description') or "",
            'confidence': int(data.get('confidence') or 0),
            'status': ProcessingStatus(data.get('status') or ProcessingStatus.COMPLETED.value),
            'error_message': data.get('error_message')
        }
        if data.get('id'):
            kwargs['id'] = data['id']
        return kwargs

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        pass

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Record':
        """Create the right Record variant from a dictionary."""
        if not isinstance(data, dict):
            raise ValidationError("Record data must be an object")
        try:
            kind = DocumentKind(data.get('document_type'))
        except ValueError:
            raise ValidationError(f"Unknown document type: {data.get('document_type')!r}")

        try:
            common = Record._common_kwargs(data)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid record data: {e}")

        if kind is DocumentKind.INVOICE:
            return InvoiceRecord(invoice=InvoiceDetails.from_dict(data.get('invoice') or {}), **common)
        return TripSheetRecord(trip=TripDetails.from_dict(data.get('trip_details') or {}), **common)


@dataclass
class InvoiceRecord(Record):
    """An invoice record with its invoice-only payload."""
    invoice: InvoiceDetails = field(default_factory=InvoiceDetails)

    @property
    def kind(self) -> DocumentKind:
        return DocumentKind.INVOICE

    @property
    def category(self) -> ExpenseCategory:
        return self.invoice.category

    def to_dict(self) -> Dict[str, Any]:
        data = self._common_dict()
        data['invoice'] = self.invoice.to_dict()
        return data


@dataclass
class TripSheetRecord(Record):
    """A trip sheet record with its trip-only payload."""
    trip: TripDetails = field(default_factory=TripDetails)

    @property
    def kind(self) -> DocumentKind:
        return DocumentKind.TRIP_SHEET

    def to_dict(self) -> Dict[str, Any]:
        data = self._common_dict()
        data['trip_details'] = self.trip.to_dict()
        return data


@dataclass
class Pair:
    """Association between one invoice and one trip sheet."""
    invoice_id: str
    trip_sheet_id: str
    confidence: int
    match_reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'invoice_id': self.invoice_id,
            'trip_sheet_id': self.trip_sheet_id,
            'confidence': self.confidence,
            'match_reason': self.match_reason
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Pair':
        """Create Pair from dictionary."""
        return cls(
            invoice_id=data['invoice_id'],
            trip_sheet_id=data['trip_sheet_id'],
            confidence=int(data.get('confidence') or 0),
            match_reason=data.get('match_reason') or ""
        )


@dataclass
class PairingResult:
    """Complete result of a pairing run."""
    pairs: List[Pair] = field(default_factory=list)
    unmatched_invoices: List[str] = field(default_factory=list)
    unmatched_trip_sheets: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'pairs': [p.to_dict() for p in self.pairs],
            'unmatched_invoices': list(self.unmatched_invoices),
            'unmatched_trip_sheets': list(self.unmatched_trip_sheets)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PairingResult':
        """Create PairingResult from dictionary."""
        return cls(
            pairs=[Pair.from_dict(p) for p in data.get('pairs', [])],
            unmatched_invoices=list(data.get('unmatched_invoices', [])),
            unmatched_trip_sheets=list(data.get('unmatched_trip_sheets', []))
        )


@dataclass
class AnomalyWarning:
    """A flagged anomaly with the records it implicates."""
    type: WarningType
    message: str
    document_ids: List[str]
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': self.type.value,
            'message': self.message,
            'document_ids': list(self.document_ids),
            'severity': self.severity.value
        }


@dataclass
class SortingResult:
    """Suggested total order of records plus its category grouping."""
    suggested_order: List[str] = field(default_factory=list)
    grouping: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'suggested_order': list(self.suggested_order),
            'grouping': {k: list(v) for k, v in self.grouping.items()}
        }


@dataclass
class RecognitionConfig:
    """Connection settings for the recognition collaborator."""
    endpoint: str
    api_key: str
    model: str

    def to_dict(self, include_api_key: bool = False) -> Dict[str, Any]:
        """Convert to dictionary, optionally excluding the API key."""
        data = {
            'endpoint': self.endpoint,
            'model': self.model
        }
        if include_api_key:
            data['api_key'] = self.api_key
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecognitionConfig':
        """Create RecognitionConfig from dictionary."""
        if not isinstance(data, dict):
            raise ValidationError("Recognition configuration must be an object")
        return cls(
            endpoint=str(data.get('endpoint') or ""),
            api_key=str(data.get('api_key') or data.get('apiKey') or ""),
            model=str(data.get('model') or "")
        )


@dataclass
class BatchSettings:
    """Resource settings consumed by the batch orchestrator."""
    max_concurrency: int = 2
    request_timeout: float = 30.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    max_memory_mb: int = 500
    max_file_size_mb: int = 10
    image_max_width: int = 2048
    image_quality: int = 85

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'max_concurrency': self.max_concurrency,
            'request_timeout': self.request_timeout,
            'retry_attempts': self.retry_attempts,
            'retry_base_delay': self.retry_base_delay,
            'max_memory_mb': self.max_memory_mb,
            'max_file_size_mb': self.max_file_size_mb,
            'image_max_width': self.image_max_width,
            'image_quality': self.image_quality
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BatchSettings':
        """Create BatchSettings from dictionary."""
        return cls(**data)


@dataclass
class BatchFile:
    """One input file of a batch."""
    file_name: str
    content: bytes
    media_kind: MediaKind = MediaKind.IMAGE

    @property
    def file_type(self) -> FileType:
        return FileType.PDF if self.media_kind is MediaKind.PDF else FileType.IMAGE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without the file content)."""
        return {
            'file_name': self.file_name,
            'media_kind': self.media_kind.value,
            'size': len(self.content)
        }


@dataclass
class ConnectionTestResult:
    """Result of testing the recognition endpoint."""
    success: bool
    message: str
    response_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'success': self.success,
            'message': self.message,
            'response_time': self.response_time
        }


# Custom exceptions for expense reconciliation
class ReconciliationError(Exception):
    """Base exception for reconciliation operations."""
    pass


class ConfigurationError(ReconciliationError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(ReconciliationError):
    """Raised when batch input or request data fails validation."""
    pass


class RecognitionError(ReconciliationError):
    """Raised by a recognizer; ``retryable`` tells the orchestrator whether to try again."""

    def __init__(self, error_type: RecognitionErrorType, retryable: bool, message: str,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.error_type = error_type
        self.retryable = retryable
        self.status_code = status_code


class FileProcessingError(ReconciliationError):
    """Raised when an input file cannot be turned into page images."""

    def __init__(self, error_type: FileErrorType, file_name: str, message: str):
        super().__init__(message)
        self.error_type = error_type
        self.file_name = file_name


class BatchError(ReconciliationError):
    """Raised when every file of a batch failed recognition."""

    def __init__(self, message: str, file_errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.file_errors = file_errors or []
