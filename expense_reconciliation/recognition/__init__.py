"""
Recognition collaborators that turn page images into structured records.

Provides the recognizer interface, an OpenAI-compatible vision client,
response parsing and PDF/image page expansion.
"""

from .base_recognizer import BaseRecognizer, PageImage
from .openai_recognizer import OpenAIRecognizer, create_openai_client, map_openai_error
from .page_loader import PageLoader
from .response_parser import RECOGNITION_PROMPT, parse_recognition_response

__all__ = [
    "BaseRecognizer",
    "PageImage",
    "OpenAIRecognizer",
    "create_openai_client",
    "map_openai_error",
    "PageLoader",
    "RECOGNITION_PROMPT",
    "parse_recognition_response"
]
