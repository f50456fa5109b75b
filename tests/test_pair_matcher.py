"""
Unit tests for invoice / trip sheet pairing.

Tests composite scoring, greedy assignment, tie-breaking and the
disjointness and coverage of the pairing result.
"""

from datetime import date
from decimal import Decimal

from expense_reconciliation.matching import MatchingSettings, PairMatcher, pair_documents
from expense_reconciliation.matching.pair_matcher import date_proximity_score, platform_keywords
from expense_reconciliation.models import (
    ExpenseCategory, InvoiceDetails, InvoiceRecord, TripDetails, TripSheetRecord
)


def make_invoice(record_id, amount, invoice_date, category=ExpenseCategory.TAXI, vendor="",
                 description=""):
    return InvoiceRecord(
        id=record_id,
        file_name=f"{record_id}.jpg",
        date=invoice_date,
        amount=Decimal(amount),
        description=description,
        invoice=InvoiceDetails(category=category, vendor=vendor)
    )


def make_trip(record_id, amount, trip_date, platform=""):
    return TripSheetRecord(
        id=record_id,
        file_name=f"{record_id}.jpg",
        date=trip_date,
        amount=Decimal(amount),
        trip=TripDetails(platform=platform)
    )


class TestScoring:
    """Test cases for score components."""

    def setup_method(self):
        """Setup test environment."""
        self.matcher = PairMatcher(today=date(2024, 6, 1))

    def test_date_proximity_score(self):
        """Test date proximity points."""
        assert date_proximity_score(0) == 30
        assert date_proximity_score(1) == 25
        assert date_proximity_score(2) == 20
        assert date_proximity_score(3) == 20
        assert date_proximity_score(4) == 10
        assert date_proximity_score(7) == 10
        assert date_proximity_score(8) == 0

    def test_platform_keywords(self):
        """Test known platform aliases."""
        assert platform_keywords("滴滴出行") == ["滴滴出行", "滴滴", "didi"]
        assert platform_keywords("Uber") == ["Uber"]

    def test_full_score(self):
        """Test amount, same date and platform together."""
        invoice = make_invoice("i1", "219.67", "11/03", vendor="如祺出行")
        trip = make_trip("t1", "219.67", "11/03", platform="如祺出行")

        score = self.matcher.score_pair(invoice, trip)

        assert score.score == 100
        assert score.matched_criteria == ['amount', 'date', 'platform']
        assert score.match_reason == ("amount matches exactly (219.67), same date (11/3), "
                                      "platform matches (如祺出行)")

    def test_amount_within_tolerance(self):
        """Test amounts differing by one cent still match."""
        score = self.matcher.score_pair(make_invoice("i1", "10.00", ""), make_trip("t1", "10.01", ""))

        assert score.score == 50

    def test_amount_outside_tolerance(self):
        """Test amounts differing by more than one cent do not match."""
        score = self.matcher.score_pair(make_invoice("i1", "10.00", ""), make_trip("t1", "10.02", ""))

        assert score.score == 0
        assert score.match_reason == "no distinctive match features"

    def test_date_reasons(self):
        """Test date reason phrases."""
        invoice = make_invoice("i1", "1", "2024-01-10")

        adjacent = self.matcher.score_pair(invoice, make_trip("t1", "2", "2024-01-11"))
        close = self.matcher.score_pair(invoice, make_trip("t2", "2", "2024-01-13"))
        nearby = self.matcher.score_pair(invoice, make_trip("t3", "2", "2024-01-17"))

        assert adjacent.reasons == ["adjacent dates (1 day apart)"]
        assert close.reasons == ["close dates (3 days apart)"]
        assert nearby.reasons == ["nearby dates (7 days apart)"]

    def test_unparseable_date_scores_zero(self):
        """Test unparseable dates contribute nothing."""
        score = self.matcher.score_pair(make_invoice("i1", "5", "yesterday"),
                                        make_trip("t1", "5", "2024-01-01"))

        assert score.score == 50
        assert score.matched_criteria == ['amount']

    def test_platform_alias_in_description(self):
        """Test a Latin alias in the description matches case-insensitively."""
        invoice = make_invoice("i1", "1", "", description="DiDi ride receipt")
        trip = make_trip("t1", "2", "", platform="滴滴出行")

        assert self.matcher.score_pair(invoice, trip).matched_criteria == ['platform']

    def test_platform_only_for_taxi_invoices(self):
        """Test platform evidence is ignored for non-taxi invoices."""
        invoice = make_invoice("i1", "1", "", category=ExpenseCategory.HOTEL, vendor="滴滴")
        trip = make_trip("t1", "2", "", platform="滴滴")

        assert self.matcher.score_pair(invoice, trip).score == 0


class TestPairDocuments:
    """Test cases for greedy pairing."""

    def setup_method(self):
        """Setup test environment."""
        self.matcher = PairMatcher(today=date(2024, 6, 1))

    def test_exact_pair(self):
        """Test invoice and trip sheet with matching amount, date and platform."""
        invoice = make_invoice("i1", "219.67", "11/03", vendor="如祺出行")
        trip = make_trip("t1", "219.67", "11/03", platform="如祺出行")

        result = self.matcher.pair_documents([invoice, trip])

        assert len(result.pairs) == 1
        assert result.pairs[0].invoice_id == "i1"
        assert result.pairs[0].trip_sheet_id == "t1"
        assert result.pairs[0].confidence == 100
        assert result.unmatched_invoices == []
        assert result.unmatched_trip_sheets == []

    def test_below_threshold_not_paired(self):
        """Test date and platform alone (50 would need amount) do not pair."""
        invoice = make_invoice("i1", "30.00", "2024-01-10", vendor="滴滴")
        trip = make_trip("t1", "45.00", "2024-01-11", platform="滴滴")

        result = self.matcher.pair_documents([invoice, trip])

        # 25 + 20 = 45 < 50
        assert result.pairs == []
        assert result.unmatched_invoices == ["i1"]
        assert result.unmatched_trip_sheets == ["t1"]

    def test_amount_alone_reaches_threshold(self):
        """Test an exact amount with unrelated dates pairs at 50."""
        result = self.matcher.pair_documents([
            make_invoice("i1", "88.00", "2024-01-01"),
            make_trip("t1", "88.00", "2024-03-01")
        ])

        assert len(result.pairs) == 1
        assert result.pairs[0].confidence == 50

    def test_best_candidate_wins(self):
        """Test the highest scoring trip sheet is chosen."""
        invoice = make_invoice("i1", "50.00", "2024-01-10")
        far = make_trip("t_far", "50.00", "2024-02-10")
        near = make_trip("t_near", "50.00", "2024-01-10")

        result = self.matcher.pair_documents([invoice, far, near])

        assert result.pairs[0].trip_sheet_id == "t_near"
        assert result.unmatched_trip_sheets == ["t_far"]

    def test_ties_keep_earliest_trip_sheet(self):
        """Test equal scores keep the first trip sheet in input order."""
        invoice = make_invoice("i1", "20.00", "2024-01-10")
        first = make_trip("t1", "20.00", "2024-01-10")
        second = make_trip("t2", "20.00", "2024-01-10")

        result = self.matcher.pair_documents([second, invoice, first])

        assert result.pairs[0].trip_sheet_id == "t2"

    def test_greedy_order_dependence(self):
        """Test an earlier invoice claims a trip sheet before a later, better match."""
        first = make_invoice("i1", "20.00", "2024-01-01")
        second = make_invoice("i2", "20.00", "2024-01-10")
        trip = make_trip("t1", "20.00", "2024-01-10")

        result = self.matcher.pair_documents([first, second, trip])

        assert [(p.invoice_id, p.trip_sheet_id) for p in result.pairs] == [("i1", "t1")]
        assert result.unmatched_invoices == ["i2"]

    def test_pairs_are_disjoint_and_cover_input(self):
        """Test every id is either paired once or unmatched."""
        records = [
            make_invoice("i1", "10.00", "2024-01-01"),
            make_invoice("i2", "10.00", "2024-01-01"),
            make_invoice("i3", "99.00", "2024-01-05"),
            make_trip("t1", "10.00", "2024-01-01"),
            make_trip("t2", "10.00", "2024-01-02"),
            make_trip("t3", "55.00", "2024-01-09"),
        ]

        result = self.matcher.pair_documents(records)

        paired_invoices = [p.invoice_id for p in result.pairs]
        paired_trips = [p.trip_sheet_id for p in result.pairs]
        assert len(set(paired_invoices)) == len(paired_invoices)
        assert len(set(paired_trips)) == len(paired_trips)
        assert set(paired_invoices) | set(result.unmatched_invoices) == {"i1", "i2", "i3"}
        assert set(paired_invoices).isdisjoint(result.unmatched_invoices)
        assert set(paired_trips) | set(result.unmatched_trip_sheets) == {"t1", "t2", "t3"}
        assert set(paired_trips).isdisjoint(result.unmatched_trip_sheets)
        assert ("i1", "t1") in zip(paired_invoices, paired_trips)
        assert ("i2", "t2") in zip(paired_invoices, paired_trips)

    def test_empty_input(self):
        """Test empty input yields an empty result."""
        result = pair_documents([])

        assert result.pairs == []
        assert result.unmatched_invoices == []
        assert result.unmatched_trip_sheets == []

    def test_only_one_kind(self):
        """Test records of a single kind are all unmatched."""
        result = self.matcher.pair_documents([make_trip("t1", "1", ""), make_trip("t2", "1", "")])

        assert result.pairs == []
        assert result.unmatched_trip_sheets == ["t1", "t2"]

    def test_custom_threshold(self):
        """Test a stricter minimum score."""
        matcher = PairMatcher(MatchingSettings(min_score=80), today=date(2024, 6, 1))

        result = matcher.pair_documents([
            make_invoice("i1", "10.00", "2024-01-01"),
            make_trip("t1", "10.00", "2024-01-02")
        ])

        # 50 + 25 = 75 < 80
        assert result.pairs == []
