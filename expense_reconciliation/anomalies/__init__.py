"""
Anomaly engine: duplicate, amount outlier, date gap and missing pair detection.
"""

from .anomaly_detector import AnomalyDetector, AnomalySettings, detect_anomalies
from .statistics import AmountStats, calculate_amount_stats

__all__ = [
    "AnomalyDetector",
    "AnomalySettings",
    "AmountStats",
    "calculate_amount_stats",
    "detect_anomalies"
]
