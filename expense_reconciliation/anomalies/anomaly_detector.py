"""
Anomaly detection over a batch of recognized records.

Runs four independent detectors (duplicates, amount outliers, date gaps
and missing pairs) and concatenates their warnings in that order. The
detectors are pure and never raise: degenerate input yields fewer
warnings, not errors.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Tuple

from expense_reconciliation.dates import days_between, parse_document_date
from expense_reconciliation.models import (
    AnomalyWarning, ExpenseCategory, InvoiceRecord, PairingResult, ProcessingStatus,
    Record, Severity, TripSheetRecord, WarningType
)
from .statistics import AmountStats, calculate_amount_stats

import logging
logger = logging.getLogger(__name__)


CATEGORY_DISPLAY_NAMES = {
    ExpenseCategory.TAXI: "Taxi",
    ExpenseCategory.HOTEL: "Hotel",
    ExpenseCategory.TRAIN: "Train",
    ExpenseCategory.SHIPPING: "Shipping",
    ExpenseCategory.TOLL: "Toll",
    ExpenseCategory.CONSUMABLES: "Consumables",
    ExpenseCategory.OTHER: "Other",
}

_CENT = Decimal("0.01")


@dataclass
class AnomalySettings:
    """Thresholds for the anomaly detectors."""
    mild_outlier_factor: float = 1.5
    far_outlier_factor: float = 3.0
    min_category_size: int = 2
    low_gap_days: int = 7
    medium_gap_days: int = 14
    high_gap_days: int = 30
    exclude_error_records_from_statistics: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'mild_outlier_factor': self.mild_outlier_factor,
            'far_outlier_factor': self.far_outlier_factor,
            'min_category_size': self.min_category_size,
            'low_gap_days': self.low_gap_days,
            'medium_gap_days': self.medium_gap_days,
            'high_gap_days': self.high_gap_days,
            'exclude_error_records_from_statistics': self.exclude_error_records_from_statistics
        }


class AnomalyDetector:
    """
    Flags duplicates, amount outliers, date gaps and missing pairs.

    Each detector is usable on its own; detect_anomalies runs all of them.
    """

    def __init__(self, settings: Optional[AnomalySettings] = None, today: Optional[date] = None):
        """
        Initialize anomaly detector.

        Args:
            settings: Detector thresholds; defaults to AnomalySettings()
            today: Reference date used to complete ``MM/DD`` dates
        """
        self.settings = settings or AnomalySettings()
        self.today = today
        self.logger = logging.getLogger(f"{__name__}.AnomalyDetector")

    def detect_anomalies(self, records: Sequence[Record],
                         pairing: Optional[PairingResult] = None) -> List[AnomalyWarning]:
        """
        Run every detector.

        Args:
            records: All records of the batch
            pairing: Pairing result; missing-pair detection only runs when given

        Returns:
            Warnings from duplicates, amount anomalies, date gaps and
            missing pairs, in that order
        """
        warnings: List[AnomalyWarning] = []
        warnings.extend(self.detect_duplicates(records))
        warnings.extend(self.detect_amount_anomalies(records))
        warnings.extend(self.detect_date_gaps(records))
        if pairing is not None:
            warnings.extend(self.detect_missing_pairs(records, pairing))

        self.logger.info(f"Detected {len(warnings)} anomalies across {len(records)} records")
        return warnings

    def detect_duplicates(self, records: Sequence[Record]) -> List[AnomalyWarning]:
        """
        Detect duplicate invoices.

        Invoices sharing an invoice number are a high-severity duplicate.
        The remaining invoices are grouped by rounded amount and date; a
        shared amount and date is a medium-severity possible duplicate.
        """
        warnings: List[AnomalyWarning] = []
        invoices = [r for r in records if isinstance(r, InvoiceRecord)]

        by_number: Dict[str, List[InvoiceRecord]] = OrderedDict()
        for invoice in invoices:
            number = invoice.invoice.invoice_number
            if number:
                by_number.setdefault(number, []).append(invoice)

        covered = set()
        for number, group in by_number.items():
            if len(group) > 1:
                warnings.append(AnomalyWarning(
                    type=WarningType.DUPLICATE,
                    message=f"Duplicate invoice number detected: {number}",
                    document_ids=[i.id for i in group],
                    severity=Severity.HIGH
                ))
                covered.update(i.id for i in group)

        by_amount_date: Dict[Tuple[Decimal, str], List[InvoiceRecord]] = OrderedDict()
        for invoice in invoices:
            if invoice.id in covered:
                continue
            key = (invoice.amount.quantize(_CENT, rounding=ROUND_HALF_UP), (invoice.date or "").strip())
            by_amount_date.setdefault(key, []).append(invoice)

        for (amount, invoice_date), group in by_amount_date.items():
            if len(group) > 1:
                warnings.append(AnomalyWarning(
                    type=WarningType.DUPLICATE,
                    message=f"Possible duplicate invoices: same amount ({amount}) and date ({invoice_date})",
                    document_ids=[i.id for i in group],
                    severity=Severity.MEDIUM
                ))

        return warnings

    def detect_amount_anomalies(self, records: Sequence[Record]) -> List[AnomalyWarning]:
        """
        Detect invoice amounts that are outliers within their category.

        Uses Tukey fences on the category's quartiles. Categories with
        fewer than ``min_category_size`` invoices are skipped.
        """
        warnings: List[AnomalyWarning] = []

        by_category: Dict[ExpenseCategory, List[InvoiceRecord]] = OrderedDict()
        for record in records:
            if not isinstance(record, InvoiceRecord):
                continue
            if self.settings.exclude_error_records_from_statistics and \
                    record.status is ProcessingStatus.ERROR:
                continue
            by_category.setdefault(record.category or ExpenseCategory.OTHER, []).append(record)

        for category, invoices in by_category.items():
            if len(invoices) < self.settings.min_category_size:
                continue

            stats = calculate_amount_stats([float(i.amount) for i in invoices])
            for invoice in invoices:
                warning = self._classify_amount(invoice, category, stats)
                if warning is not None:
                    warnings.append(warning)

        return warnings

    def _classify_amount(self, invoice: InvoiceRecord, category: ExpenseCategory,
                         stats: AmountStats) -> Optional[AnomalyWarning]:
        amount = float(invoice.amount)
        far_low, far_high = stats.bounds(self.settings.far_outlier_factor)
        mild_low, mild_high = stats.bounds(self.settings.mild_outlier_factor)

        if amount < far_low or amount > far_high:
            severity = Severity.HIGH
            direction = "unusually low" if amount < far_low else "unusually high"
        elif amount < mild_low or amount > mild_high:
            severity = Severity.MEDIUM
            direction = "somewhat low" if amount < mild_low else "somewhat high"
        else:
            return None

        name = CATEGORY_DISPLAY_NAMES.get(category, category.value)
        return AnomalyWarning(
            type=WarningType.AMOUNT_ANOMALY,
            message=f"{name} amount {direction}: ¥{amount:.2f} (category median: ¥{stats.median:.2f})",
            document_ids=[invoice.id],
            severity=severity
        )

    def detect_date_gaps(self, records: Sequence[Record]) -> List[AnomalyWarning]:
        """
        Detect gaps between consecutive dated records (both kinds).

        Gaps above 30 days are high, above 14 medium, above 7 low.
        """
        warnings: List[AnomalyWarning] = []

        dated = []
        for record in records:
            parsed = parse_document_date(record.date, self.today)
            if parsed is not None:
                dated.append((parsed, record))
        dated.sort(key=lambda item: item[0])

        for (prev_date, prev), (curr_date, curr) in zip(dated, dated[1:]):
            gap = days_between(prev_date, curr_date)
            severity = self._gap_severity(gap)
            if severity is None:
                continue
            warnings.append(AnomalyWarning(
                type=WarningType.DATE_GAP,
                message=f"Date gap detected: {prev_date.isoformat()} to {curr_date.isoformat()} "
                        f"is {gap} days apart",
                document_ids=[prev.id, curr.id],
                severity=severity
            ))

        return warnings

    def _gap_severity(self, gap: int) -> Optional[Severity]:
        if gap > self.settings.high_gap_days:
            return Severity.HIGH
        if gap > self.settings.medium_gap_days:
            return Severity.MEDIUM
        if gap > self.settings.low_gap_days:
            return Severity.LOW
        return None

    def detect_missing_pairs(self, records: Sequence[Record],
                             pairing: PairingResult) -> List[AnomalyWarning]:
        """
        Detect taxi invoices without a trip sheet and trip sheets without an invoice.
        """
        warnings: List[AnomalyWarning] = []
        records_by_id = {r.id: r for r in records}

        for invoice_id in pairing.unmatched_invoices:
            invoice = records_by_id.get(invoice_id)
            if isinstance(invoice, InvoiceRecord) and invoice.category is ExpenseCategory.TAXI:
                warnings.append(AnomalyWarning(
                    type=WarningType.MISSING_PAIR,
                    message=f"Taxi invoice has no matching trip sheet: {invoice.file_name}",
                    document_ids=[invoice_id],
                    severity=Severity.MEDIUM
                ))

        for trip_id in pairing.unmatched_trip_sheets:
            trip = records_by_id.get(trip_id)
            if isinstance(trip, TripSheetRecord):
                warnings.append(AnomalyWarning(
                    type=WarningType.MISSING_PAIR,
                    message=f"Trip sheet has no matching invoice: {trip.file_name}",
                    document_ids=[trip_id],
                    severity=Severity.MEDIUM
                ))

        return warnings


def detect_anomalies(records: Sequence[Record],
                     pairing: Optional[PairingResult] = None) -> List[AnomalyWarning]:
    """Run every detector with default settings."""
    return AnomalyDetector().detect_anomalies(records, pairing)
