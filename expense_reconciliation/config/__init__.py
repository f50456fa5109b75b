"""
Configuration loading and validation for the reconciliation service.
"""

from .settings import load_batch_settings, load_recognition_config
from .validation import ConfigurationValidator, ValidationResult

__all__ = [
    "load_batch_settings",
    "load_recognition_config",
    "ConfigurationValidator",
    "ValidationResult"
]
