"""
Matching engine for pairing invoices with trip sheets.

Provides composite scoring on amount, date proximity and platform, and a
deterministic greedy pairing pass.
"""

from .pair_matcher import MatchingSettings, MatchScore, PairMatcher, pair_documents

__all__ = [
    "MatchingSettings",
    "MatchScore",
    "PairMatcher",
    "pair_documents"
]
