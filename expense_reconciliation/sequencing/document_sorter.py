"""
Suggested ordering of records for the reimbursement package.

Records are grouped by expense category, each paired trip sheet travelling
right behind its invoice, ordered by date inside a category, and the
categories are laid out in a fixed business order.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from expense_reconciliation.dates import parse_document_date
from expense_reconciliation.models import (
    ExpenseCategory, InvoiceRecord, PairingResult, Record, SortingResult, TripSheetRecord
)

import logging
logger = logging.getLogger(__name__)


# Reimbursement convention, not alphabetical
CATEGORY_PRIORITY: Tuple[ExpenseCategory, ...] = (
    ExpenseCategory.CONSUMABLES,
    ExpenseCategory.HOTEL,
    ExpenseCategory.TAXI,
    ExpenseCategory.SHIPPING,
    ExpenseCategory.TOLL,
    ExpenseCategory.TRAIN,
    ExpenseCategory.OTHER,
)


@dataclass
class DocumentUnit:
    """A primary record plus the trip sheet paired with it, if any."""
    primary: Record
    paired: Optional[Record] = None

    def ids(self) -> List[str]:
        if self.paired is None:
            return [self.primary.id]
        return [self.primary.id, self.paired.id]


class DocumentSorter:
    """Builds the suggested record order and its category grouping."""

    def __init__(self, today: Optional[date] = None):
        self.today = today
        self.logger = logging.getLogger(f"{__name__}.DocumentSorter")

    def sort_documents(self, records: Sequence[Record],
                       pairing: Optional[PairingResult] = None) -> SortingResult:
        """
        Order records per the reimbursement convention.

        Args:
            records: All records of the batch
            pairing: Pairing result; pairs naming unknown ids are ignored

        Returns:
            SortingResult whose suggested order is a permutation of the
            record ids, with every pair adjacent and the invoice first
        """
        records_by_id = {r.id: r for r in records}
        trip_for_invoice: Dict[str, str] = {}
        if pairing is not None:
            for pair in pairing.pairs:
                if isinstance(records_by_id.get(pair.invoice_id), InvoiceRecord) and \
                        isinstance(records_by_id.get(pair.trip_sheet_id), TripSheetRecord):
                    trip_for_invoice[pair.invoice_id] = pair.trip_sheet_id

        buckets: Dict[ExpenseCategory, List[DocumentUnit]] = {c: [] for c in CATEGORY_PRIORITY}
        placed = set()

        for record in records:
            if not isinstance(record, InvoiceRecord) or record.id in placed:
                continue
            unit = DocumentUnit(primary=record)
            placed.add(record.id)

            trip_id = trip_for_invoice.get(record.id)
            if trip_id is not None and trip_id not in placed:
                unit.paired = records_by_id[trip_id]
                placed.add(trip_id)

            buckets[record.category or ExpenseCategory.OTHER].append(unit)

        for record in records:
            if record.id not in placed:
                buckets[ExpenseCategory.OTHER].append(DocumentUnit(primary=record))
                placed.add(record.id)

        suggested_order: List[str] = []
        grouping: Dict[str, List[str]] = {}

        for category in CATEGORY_PRIORITY:
            units = sorted(buckets[category], key=self._unit_sort_key)
            ids = [record_id for unit in units for record_id in unit.ids()]
            if ids:
                grouping[category.value] = ids
                suggested_order.extend(ids)

        self.logger.info(f"Sorted {len(suggested_order)} records into {len(grouping)} categories")
        return SortingResult(suggested_order=suggested_order, grouping=grouping)

    def _unit_sort_key(self, unit: DocumentUnit) -> Tuple[bool, date]:
        # sorted() is stable, so equal dates keep their input order
        parsed = parse_document_date(unit.primary.date, self.today)
        return (parsed is None, parsed or date.min)


def sort_documents(records: Sequence[Record],
                   pairing: Optional[PairingResult] = None) -> SortingResult:
    """Order records using the default sorter."""
    return DocumentSorter().sort_documents(records, pairing)
