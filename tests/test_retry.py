"""
Unit tests for exponential backoff retry.
"""

from unittest.mock import Mock

import pytest

from expense_reconciliation.batch import backoff_delay, retry_with_backoff
from expense_reconciliation.models import (
    FileErrorType, FileProcessingError, RecognitionError, RecognitionErrorType
)


def retryable():
    return RecognitionError(RecognitionErrorType.RATE_LIMIT_EXCEEDED, True, "slow down", 429)


def fatal():
    return RecognitionError(RecognitionErrorType.API_KEY_INVALID, False, "bad key", 401)


class TestRetryWithBackoff:
    """Test cases for retry_with_backoff."""

    def setup_method(self):
        """Setup test environment."""
        self.sleep = Mock()

    def test_success_first_try(self):
        """Test no sleep on success."""
        operation = Mock(return_value="ok")

        assert retry_with_backoff(operation, sleep=self.sleep) == "ok"
        assert operation.call_count == 1
        self.sleep.assert_not_called()

    def test_recovers_after_retryable_errors(self):
        """Test retryable failures are retried with doubling delays."""
        operation = Mock(side_effect=[retryable(), retryable(), "ok"])

        result = retry_with_backoff(operation, max_retries=3, base_delay=1.0, sleep=self.sleep)

        assert result == "ok"
        assert operation.call_count == 3
        assert [c.args[0] for c in self.sleep.call_args_list] == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        """Test the last error propagates once retries are exhausted."""
        operation = Mock(side_effect=retryable())

        with pytest.raises(RecognitionError) as exc_info:
            retry_with_backoff(operation, max_retries=3, base_delay=0.5, sleep=self.sleep)

        assert exc_info.value.error_type is RecognitionErrorType.RATE_LIMIT_EXCEEDED
        assert operation.call_count == 4
        assert [c.args[0] for c in self.sleep.call_args_list] == [0.5, 1.0, 2.0]

    def test_non_retryable_propagates_immediately(self):
        """Test non-retryable errors are not retried."""
        operation = Mock(side_effect=fatal())

        with pytest.raises(RecognitionError):
            retry_with_backoff(operation, max_retries=3, sleep=self.sleep)

        assert operation.call_count == 1
        self.sleep.assert_not_called()

    def test_other_exceptions_propagate(self):
        """Test unrelated exceptions are not retried."""
        operation = Mock(side_effect=ValueError("bug"))

        with pytest.raises(ValueError):
            retry_with_backoff(operation, sleep=self.sleep)

        assert operation.call_count == 1

    def test_zero_retries(self):
        """Test a single attempt when retries are disabled."""
        operation = Mock(side_effect=retryable())

        with pytest.raises(RecognitionError):
            retry_with_backoff(operation, max_retries=0, sleep=self.sleep)

        assert operation.call_count == 1

    def test_backoff_delay(self):
        """Test delay growth."""
        assert backoff_delay(1.0, 0) == 1.0
        assert backoff_delay(1.0, 1) == 2.0
        assert backoff_delay(1.0, 2) == 4.0

    def test_transient_file_errors_are_retried(self):
        """Test retry follows the shared retryable classification for file errors."""
        operation = Mock(side_effect=[
            FileProcessingError(FileErrorType.PROCESSING_FAILED, "a.pdf", "render failed"), "ok"
        ])

        assert retry_with_backoff(operation, base_delay=0.5, sleep=self.sleep) == "ok"
        assert operation.call_count == 2
        self.sleep.assert_called_once_with(0.5)

    def test_permanent_file_errors_are_not_retried(self):
        """Test file errors that cannot succeed on retry propagate immediately."""
        operation = Mock(side_effect=FileProcessingError(FileErrorType.UNSUPPORTED_FORMAT, "a.txt",
                                                         "not an image"))

        with pytest.raises(FileProcessingError):
            retry_with_backoff(operation, sleep=self.sleep)

        assert operation.call_count == 1
        self.sleep.assert_not_called()
