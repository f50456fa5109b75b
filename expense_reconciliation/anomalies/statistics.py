"""
Amount statistics for outlier detection.
"""

from dataclasses import dataclass
from typing import Any, Dict, Sequence

import numpy as np


@dataclass
class AmountStats:
    """Quartile summary of the amounts in one expense category."""
    count: int
    mean: float
    median: float
    q1: float
    q3: float
    minimum: float
    maximum: float

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1

    def bounds(self, factor: float):
        """Lower and upper fences at ``factor`` times the IQR."""
        return self.q1 - factor * self.iqr, self.q3 + factor * self.iqr

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'count': self.count,
            'mean': self.mean,
            'median': self.median,
            'q1': self.q1,
            'q3': self.q3,
            'iqr': self.iqr,
            'min': self.minimum,
            'max': self.maximum
        }


def calculate_amount_stats(amounts: Sequence[float]) -> AmountStats:
    """
    Summarize a non-empty list of amounts.

    Quartiles use the nearest-rank definition (``inverted_cdf``), so Q1 and
    Q3 are always observed amounts.

    Args:
        amounts: Amounts of one category

    Returns:
        AmountStats for the category
    """
    values = np.sort(np.asarray(amounts, dtype=float))
    q1, q3 = np.quantile(values, [0.25, 0.75], method="inverted_cdf")

    return AmountStats(
        count=int(values.size),
        mean=float(values.mean()),
        median=float(np.median(values)),
        q1=float(q1),
        q3=float(q3),
        minimum=float(values[0]),
        maximum=float(values[-1])
    )
