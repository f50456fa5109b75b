"""
Recognizer backed by an OpenAI-compatible vision chat completions endpoint.

Sends each page as a base64 data URL together with the recognition prompt
and maps SDK failures onto RecognitionError categories. Retries are left to
the batch orchestrator, so the SDK's own retry loop is disabled.
"""

import base64
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import openai

from expense_reconciliation.models import (
    ConnectionTestResult, RecognitionConfig, RecognitionError, RecognitionErrorType, Record
)
from .base_recognizer import BaseRecognizer, PageImage
from .response_parser import RECOGNITION_PROMPT, parse_recognition_response

import logging
logger = logging.getLogger(__name__)


ClientFactory = Callable[[RecognitionConfig, float], openai.OpenAI]


def create_openai_client(config: RecognitionConfig, timeout: float) -> openai.OpenAI:
    """Create an SDK client for the configured endpoint."""
    return openai.OpenAI(
        api_key=config.api_key,
        base_url=config.endpoint.rstrip('/'),
        timeout=timeout,
        max_retries=0
    )


def map_openai_error(error: Exception) -> RecognitionError:
    """
    Translate an OpenAI SDK exception into a RecognitionError.

    Args:
        error: Exception raised by the SDK

    Returns:
        RecognitionError with category and retryable flag set
    """
    if isinstance(error, RecognitionError):
        return error

    # APITimeoutError subclasses APIConnectionError, so test it first
    if isinstance(error, openai.APITimeoutError):
        return RecognitionError(RecognitionErrorType.TIMEOUT, True,
                                "Recognition request timed out, check the network connection")

    if isinstance(error, openai.APIConnectionError):
        return RecognitionError(RecognitionErrorType.NETWORK_ERROR, True,
                                f"Network connection failed: {error}")

    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status in (401, 403):
            return RecognitionError(RecognitionErrorType.API_KEY_INVALID, False,
                                    "API key is invalid or expired, check the configuration", status)
        if status == 402:
            return RecognitionError(RecognitionErrorType.INSUFFICIENT_CREDITS, False,
                                    "API credits exhausted", status)
        if status == 404:
            return RecognitionError(RecognitionErrorType.API_ENDPOINT_INVALID, False,
                                    "API endpoint or model not found, check the configuration", status)
        if status == 429:
            return RecognitionError(RecognitionErrorType.RATE_LIMIT_EXCEEDED, True,
                                    "API rate limit exceeded, retry later", status)
        return RecognitionError(RecognitionErrorType.NETWORK_ERROR, status >= 500,
                                f"API request failed ({status}): {error.message}", status)

    return RecognitionError(RecognitionErrorType.NETWORK_ERROR, False, f"Unexpected error: {error}")


class OpenAIRecognizer(BaseRecognizer):
    """
    Recognition collaborator using the ``openai`` SDK.

    Works with any endpoint that speaks the chat completions protocol with
    image inputs; the endpoint is the SDK ``base_url``.
    """

    def __init__(self, client_factory: Optional[ClientFactory] = None,
                 max_tokens: int = 1000, temperature: float = 0.1):
        """
        Initialize the recognizer.

        Args:
            client_factory: Builds an SDK client from a config and timeout
            max_tokens: Completion token limit per page
            temperature: Sampling temperature
        """
        super().__init__("OpenAIRecognizer")
        self.client_factory = client_factory or create_openai_client
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._clients: Dict[Tuple[str, str, float], openai.OpenAI] = {}
        self._lock = threading.Lock()

    def _client(self, config: RecognitionConfig, timeout: float) -> openai.OpenAI:
        key = (config.endpoint, config.api_key, timeout)
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self.client_factory(config, timeout)
                self._clients[key] = client
            return client

    def recognize(self, page: PageImage, config: RecognitionConfig, timeout: float) -> Record:
        """
        Recognize a page through the chat completions endpoint.

        Raises:
            RecognitionError: On transport, status or parsing failures
        """
        image_url = f"data:{page.mime_type};base64,{base64.b64encode(page.data).decode('ascii')}"
        start_time = time.time()

        try:
            response = self._client(config, timeout).chat.completions.create(
                model=config.model,
                messages=[{
                    'role': 'user',
                    'content': [
                        {'type': 'text', 'text': RECOGNITION_PROMPT},
                        {'type': 'image_url', 'image_url': {'url': image_url}}
                    ]
                }],
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except openai.OpenAIError as e:
            error = map_openai_error(e)
            self._log_operation(f"Recognize {page.display_name}", time.time() - start_time, False,
                                f"{error.error_type.value}: {error}")
            raise error

        content = response.choices[0].message.content if response.choices else None
        record = parse_recognition_response(content or "", page.display_name, page.source_type)

        self._log_operation(f"Recognize {page.display_name}", time.time() - start_time, True,
                            f"{record.kind.value}, confidence {record.confidence}")
        return record

    def test_connection(self, config: RecognitionConfig, timeout: float = 10.0) -> ConnectionTestResult:
        """
        Send a minimal prompt to verify endpoint, key and model.

        Returns:
            ConnectionTestResult; failures are reported, not raised
        """
        start_time = time.time()
        try:
            _, duration = self._measure_time(
                self._client(config, timeout).chat.completions.create,
                model=config.model,
                messages=[{'role': 'user', 'content': 'Hello'}],
                max_tokens=10
            )
            self._log_operation("Connection test", duration, True, config.endpoint)
            return ConnectionTestResult(success=True, message="API connection successful",
                                        response_time=duration)
        except openai.OpenAIError as e:
            duration = time.time() - start_time
            error = map_openai_error(e)
            self._log_operation("Connection test", duration, False, str(error))
            return ConnectionTestResult(success=False, message=str(error), response_time=duration)
