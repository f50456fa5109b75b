"""
Configuration validation utilities.

Validates recognition endpoint configurations and batch settings with
detailed error reporting, and enforces them before a batch starts.
"""

from dataclasses import dataclass
from typing import Any, Dict, List
from urllib.parse import urlparse

from expense_reconciliation.models import BatchSettings, RecognitionConfig, ValidationError

import logging
logger = logging.getLogger(__name__)


MIN_API_KEY_LENGTH = 10


@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    suggestions: List[str]

    def add_error(self, message: str):
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add a warning message."""
        self.warnings.append(message)

    def add_suggestion(self, message: str):
        """Add a suggestion message."""
        self.suggestions.append(message)

    def raise_if_invalid(self, subject: str):
        """
        Raise ValidationError listing every error.

        Args:
            subject: What was validated, used as message prefix
        """
        if not self.is_valid:
            raise ValidationError(f"Invalid {subject}: {'; '.join(self.errors)}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'suggestions': self.suggestions
        }


class ConfigurationValidator:
    """Validates recognition configurations and batch settings."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.ConfigurationValidator")

    def validate_recognition_config(self, config: RecognitionConfig) -> ValidationResult:
        """
        Validate a recognition endpoint configuration.

        Args:
            config: Recognition configuration to validate

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult(is_valid=True, errors=[], warnings=[], suggestions=[])

        # Validate endpoint
        if not config.endpoint:
            result.add_error("API endpoint is required")
        else:
            parsed_url = urlparse(config.endpoint)

            if not parsed_url.scheme:
                result.add_error("API endpoint must include protocol (http:// or https://)")
            elif parsed_url.scheme not in ['http', 'https']:
                result.add_error("API endpoint must use HTTP or HTTPS protocol")
            elif parsed_url.scheme == 'http':
                result.add_warning("HTTP is not secure - consider using HTTPS")

            if not parsed_url.netloc:
                result.add_error("API endpoint must include hostname")

            if parsed_url.path.rstrip('/').endswith('/chat/completions'):
                result.add_suggestion("The endpoint should be the API base URL, without /chat/completions")

        # Validate credentials
        if not config.api_key:
            result.add_error("API key is required")
        elif len(config.api_key.strip()) < MIN_API_KEY_LENGTH:
            result.add_error(f"API key must be at least {MIN_API_KEY_LENGTH} characters")

        # Validate model
        if not config.model or not config.model.strip():
            result.add_error("Model name is required")

        self.logger.debug(f"Recognition config validation completed: {len(result.errors)} errors, "
                          f"{len(result.warnings)} warnings")
        return result

    def validate_batch_settings(self, settings: BatchSettings) -> ValidationResult:
        """
        Validate batch orchestration settings.

        Args:
            settings: Batch settings to validate

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult(is_valid=True, errors=[], warnings=[], suggestions=[])

        # Validate concurrency
        if settings.max_concurrency < 1:
            result.add_error("Max concurrency must be at least 1")
        elif settings.max_concurrency > 10:
            result.add_warning("Max concurrency is very high (>10) - the endpoint may rate limit")

        # Validate timeout
        if settings.request_timeout <= 0:
            result.add_error("Request timeout must be positive")
        elif settings.request_timeout > 300:
            result.add_warning("Request timeout is very high (>5 minutes)")
        elif settings.request_timeout < 5:
            result.add_warning("Request timeout is very low (<5 seconds)")

        # Validate retries
        if settings.retry_attempts < 0:
            result.add_error("Retry attempts cannot be negative")
        elif settings.retry_attempts > 10:
            result.add_warning("Retry attempts is very high (>10)")

        if settings.retry_base_delay < 0:
            result.add_error("Retry base delay cannot be negative")

        # Validate resource limits
        if settings.max_memory_mb <= 0:
            result.add_error("Max memory must be positive")

        if settings.max_file_size_mb <= 0:
            result.add_error("Max file size must be positive")

        if settings.image_max_width <= 0:
            result.add_error("Image max width must be positive")

        if not (1 <= settings.image_quality <= 95):
            result.add_error("Image quality must be between 1 and 95")

        self.logger.debug(f"Batch settings validation completed: {len(result.errors)} errors, "
                          f"{len(result.warnings)} warnings")
        return result
