"""
Parsing of recognition model output into Records.
"""

import json
import re
from typing import Any, Dict

from expense_reconciliation.models import (
    ExpenseCategory, FileType, InvoiceDetails, InvoiceRecord, ProcessingStatus,
    RecognitionError, RecognitionErrorType, Record, TripDetails, TripSheetRecord,
    to_decimal
)

import logging
logger = logging.getLogger(__name__)


RECOGNITION_PROMPT = """You are a professional document recognition assistant. Analyze this image, decide whether it is an invoice or a trip sheet, and extract all relevant information.

Return the result in the following JSON format (JSON only, no other text):

{
  "documentType": "invoice" or "trip_sheet",
  "date": "date, formatted MM/DD or YYYY-MM-DD",
  "amount": amount as a number (no currency symbol),
  "description": "short description",
  "confidence": confidence (integer 0-100),
  "invoiceNumber": "invoice number",
  "vendor": "vendor name",
  "taxAmount": tax amount (if any),
  "invoiceType": "taxi/hotel/train/shipping/toll/consumables/other",
  "tripDetails": {
    "platform": "platform name",
    "departure": "origin",
    "destination": "destination",
    "time": "departure time",
    "distanceKm": distance in kilometers
  }
}

Analyze the image carefully and make sure the extracted information is accurate."""

_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$')


def strip_code_fence(content: str) -> str:
    """Remove a surrounding markdown code fence from model output."""
    return _FENCE.sub('', content.strip()).strip()


def clamp_confidence(value: Any) -> int:
    try:
        confidence = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, confidence))


def _parsing_error(message: str) -> RecognitionError:
    return RecognitionError(RecognitionErrorType.PARSING_ERROR, False,
                            f"Failed to parse recognition response: {message}")


def parse_recognition_response(content: str, file_name: str,
                               file_type: FileType = FileType.IMAGE) -> Record:
    """
    Build a Record from the model's JSON answer.

    Args:
        content: Raw message content returned by the model
        file_name: Display name of the page the answer belongs to
        file_type: Type of the source file the page came from

    Returns:
        InvoiceRecord or TripSheetRecord with status COMPLETED

    Raises:
        RecognitionError: PARSING_ERROR (not retryable) on malformed output
    """
    if not content or not content.strip():
        raise _parsing_error("empty response")

    try:
        parsed = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise _parsing_error(str(e))

    if not isinstance(parsed, dict):
        raise _parsing_error("response is not a JSON object")

    missing = [k for k in ('documentType', 'date', 'amount') if parsed.get(k) in (None, "")]
    if missing:
        raise _parsing_error(f"missing required fields: {', '.join(missing)}")

    common: Dict[str, Any] = {
        'file_name': file_name,
        'file_type': file_type,
        'date': str(parsed['date']).strip(),
        'amount': to_decimal(parsed['amount']),
        'description': parsed.get('description') or "",
        'confidence': clamp_confidence(parsed.get('confidence')),
        'status': ProcessingStatus.COMPLETED,
    }

    document_type = parsed['documentType']
    if document_type == 'invoice':
        tax = parsed.get('taxAmount')
        return InvoiceRecord(
            invoice=InvoiceDetails(
                category=ExpenseCategory.parse(parsed.get('invoiceType')),
                invoice_number=str(parsed.get('invoiceNumber') or ""),
                vendor=str(parsed.get('vendor') or ""),
                tax_amount=to_decimal(tax) if tax not in (None, "") else None
            ),
            **common
        )

    if document_type == 'trip_sheet':
        trip = parsed.get('tripDetails') or {}
        if not isinstance(trip, dict):
            raise _parsing_error("tripDetails is not an object")
        return TripSheetRecord(
            trip=TripDetails.from_dict({
                'platform': trip.get('platform'),
                'departure': trip.get('departure'),
                'destination': trip.get('destination'),
                'time': trip.get('time'),
                'distance_km': trip.get('distanceKm')
            }),
            **common
        )

    raise _parsing_error(f"unknown documentType {document_type!r}")
