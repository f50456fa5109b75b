"""
Invoice to trip sheet pairing.

Scores every invoice against the unclaimed trip sheets using amount
equality, date proximity and ride-hailing platform evidence, then pairs
them with a deterministic greedy pass over the invoices in input order.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from expense_reconciliation.dates import days_between, format_month_day, parse_document_date
from expense_reconciliation.models import (
    ExpenseCategory, InvoiceRecord, Pair, PairingResult, Record, TripSheetRecord
)

import logging
logger = logging.getLogger(__name__)


# Known ride-hailing platforms and the aliases that may appear on an invoice
PLATFORM_KEYWORDS: Dict[str, List[str]] = {
    '滴滴': ['滴滴', 'didi'],
    '如祺': ['如祺', 'ruqi'],
    '曹操': ['曹操', 'caocao'],
    '高德': ['高德', 'amap'],
    '美团': ['美团', 'meituan'],
    '首汽': ['首汽', 'shouqi'],
}


@dataclass
class MatchingSettings:
    """Scoring thresholds for pairing."""
    min_score: int = 50
    amount_tolerance: Decimal = Decimal("0.01")
    amount_score: int = 50
    platform_score: int = 20

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'min_score': self.min_score,
            'amount_tolerance': str(self.amount_tolerance),
            'amount_score': self.amount_score,
            'platform_score': self.platform_score
        }


@dataclass
class MatchScore:
    """Composite score of one invoice / trip sheet candidate."""
    score: int = 0
    reasons: List[str] = field(default_factory=list)
    matched_criteria: List[str] = field(default_factory=list)

    @property
    def match_reason(self) -> str:
        return ", ".join(self.reasons) if self.reasons else "no distinctive match features"

    def add(self, criterion: str, points: int, reason: str):
        self.score += points
        self.matched_criteria.append(criterion)
        self.reasons.append(reason)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'score': self.score,
            'reasons': list(self.reasons),
            'matched_criteria': list(self.matched_criteria)
        }


def date_proximity_score(days: int) -> int:
    """Points awarded for a day difference between invoice and trip sheet."""
    if days == 0:
        return 30
    if days == 1:
        return 25
    if days <= 3:
        return 20
    if days <= 7:
        return 10
    return 0


def platform_keywords(platform: str) -> List[str]:
    """The platform name plus the aliases of the first known platform it contains."""
    keywords = [platform]
    for key, aliases in PLATFORM_KEYWORDS.items():
        if key in platform:
            keywords.extend(aliases)
            break
    return keywords


class PairMatcher:
    """
    Pairs invoices with trip sheets.

    The algorithm is a greedy heuristic, not a maximum-weight assignment:
    each invoice in turn claims the best unclaimed trip sheet, so results
    depend on input order when scores tie.
    """

    def __init__(self, settings: Optional[MatchingSettings] = None, today: Optional[date] = None):
        """
        Initialize pair matcher.

        Args:
            settings: Scoring thresholds; defaults to MatchingSettings()
            today: Reference date used to complete ``MM/DD`` dates
        """
        self.settings = settings or MatchingSettings()
        self.today = today
        self.logger = logging.getLogger(f"{__name__}.PairMatcher")

    def pair_documents(self, records: Sequence[Record]) -> PairingResult:
        """
        Pair invoices with trip sheets.

        Args:
            records: All records of the batch, in their given order

        Returns:
            PairingResult with pairs and the ids left unmatched per kind
        """
        invoices = [r for r in records if isinstance(r, InvoiceRecord)]
        trip_sheets = [r for r in records if isinstance(r, TripSheetRecord)]

        pairs: List[Pair] = []
        claimed_trip_ids = set()
        matched_invoice_ids = set()

        for invoice in invoices:
            best_trip: Optional[TripSheetRecord] = None
            best_score: Optional[MatchScore] = None

            for trip in trip_sheets:
                if trip.id in claimed_trip_ids:
                    continue

                candidate = self.score_pair(invoice, trip)
                if candidate.score < self.settings.min_score:
                    continue
                # Strictly greater keeps the earliest-scanned trip sheet on ties
                if best_score is None or candidate.score > best_score.score:
                    best_trip, best_score = trip, candidate

            if best_trip is not None:
                pairs.append(Pair(
                    invoice_id=invoice.id,
                    trip_sheet_id=best_trip.id,
                    confidence=min(100, best_score.score),
                    match_reason=best_score.match_reason
                ))
                claimed_trip_ids.add(best_trip.id)
                matched_invoice_ids.add(invoice.id)
                self.logger.debug(f"Paired invoice {invoice.id} with trip sheet {best_trip.id} "
                                  f"(score {best_score.score})")

        result = PairingResult(
            pairs=pairs,
            unmatched_invoices=[i.id for i in invoices if i.id not in matched_invoice_ids],
            unmatched_trip_sheets=[t.id for t in trip_sheets if t.id not in claimed_trip_ids]
        )

        self.logger.info(f"Paired {len(pairs)} of {len(invoices)} invoices with "
                         f"{len(trip_sheets)} trip sheets")
        return result

    def score_pair(self, invoice: InvoiceRecord, trip: TripSheetRecord) -> MatchScore:
        """
        Compute the composite score of an invoice / trip sheet candidate.

        Args:
            invoice: Invoice record
            trip: Trip sheet record

        Returns:
            MatchScore with total points and the matched-criteria phrases
        """
        result = MatchScore()

        if abs(invoice.amount - trip.amount) <= self.settings.amount_tolerance:
            result.add('amount', self.settings.amount_score,
                       f"amount matches exactly ({invoice.amount:.2f})")

        invoice_date = parse_document_date(invoice.date, self.today)
        trip_date = parse_document_date(trip.date, self.today)
        if invoice_date and trip_date:
            days = days_between(invoice_date, trip_date)
            points = date_proximity_score(days)
            if points:
                result.add('date', points, self._date_reason(days, invoice_date))

        if self._platform_matches(invoice, trip):
            result.add('platform', self.settings.platform_score,
                       f"platform matches ({trip.trip.platform})")

        return result

    def _date_reason(self, days: int, invoice_date: date) -> str:
        if days == 0:
            return f"same date ({format_month_day(invoice_date)})"
        if days == 1:
            return "adjacent dates (1 day apart)"
        if days <= 3:
            return f"close dates ({days} days apart)"
        return f"nearby dates ({days} days apart)"

    def _platform_matches(self, invoice: InvoiceRecord, trip: TripSheetRecord) -> bool:
        platform = trip.trip.platform
        if invoice.category is not ExpenseCategory.TAXI or not platform:
            return False

        invoice_text = f"{invoice.invoice.vendor} {invoice.description}".lower()
        return any(keyword.lower() in invoice_text for keyword in platform_keywords(platform))


def pair_documents(records: Sequence[Record]) -> PairingResult:
    """Pair invoices with trip sheets using default settings."""
    return PairMatcher().pair_documents(records)
