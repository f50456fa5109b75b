"""
Expansion of batch input files into normalized page images.

PDF documents are rendered page by page with pdfplumber; every page (and
every single-page image) is then normalized with Pillow into an RGB JPEG
no wider than the configured maximum.
"""

import io
from typing import List

import pdfplumber
from PIL import Image, UnidentifiedImageError

from expense_reconciliation.models import (
    BatchFile, BatchSettings, FileErrorType, FileProcessingError, MediaKind
)
from .base_recognizer import PageImage

import logging
logger = logging.getLogger(__name__)


class PageLoader:
    """Turns a BatchFile into the list of page images to recognize."""

    def __init__(self, max_file_size_mb: int = 10, image_max_width: int = 2048,
                 image_quality: int = 85, pdf_resolution: int = 150):
        """
        Initialize page loader.

        Args:
            max_file_size_mb: Largest accepted input file
            image_max_width: Pages wider than this are downscaled
            image_quality: JPEG quality of normalized pages
            pdf_resolution: DPI used to render PDF pages
        """
        self.max_file_size = max_file_size_mb * 1024 * 1024
        self.max_file_size_mb = max_file_size_mb
        self.image_max_width = image_max_width
        self.image_quality = image_quality
        self.pdf_resolution = pdf_resolution
        self.logger = logging.getLogger(f"{__name__}.PageLoader")

    @classmethod
    def from_settings(cls, settings: BatchSettings) -> 'PageLoader':
        return cls(
            max_file_size_mb=settings.max_file_size_mb,
            image_max_width=settings.image_max_width,
            image_quality=settings.image_quality
        )

    def validate_file(self, batch_file: BatchFile):
        """
        Reject empty or oversized files.

        Raises:
            FileProcessingError: If the file cannot be processed
        """
        if not batch_file.content:
            raise FileProcessingError(FileErrorType.CORRUPTED_FILE, batch_file.file_name,
                                      "File is empty")
        if len(batch_file.content) > self.max_file_size:
            raise FileProcessingError(FileErrorType.FILE_TOO_LARGE, batch_file.file_name,
                                      f"File exceeds the {self.max_file_size_mb}MB limit")

    def load_pages(self, batch_file: BatchFile) -> List[PageImage]:
        """
        Expand a file into normalized page images.

        Args:
            batch_file: Input file

        Returns:
            One PageImage per page (a single entry for images)

        Raises:
            FileProcessingError: If the file is invalid or cannot be rendered
        """
        self.validate_file(batch_file)

        if batch_file.media_kind is MediaKind.PDF:
            images = self._render_pdf(batch_file)
        else:
            images = [self._open_image(batch_file)]

        page_count = len(images)
        pages = [
            PageImage(
                file_name=batch_file.file_name,
                page_number=index + 1,
                page_count=page_count,
                data=self.compress_image(image, batch_file.file_name),
                source_type=batch_file.file_type
            )
            for index, image in enumerate(images)
        ]

        self.logger.debug(f"Loaded {page_count} page(s) from {batch_file.file_name}")
        return pages

    def _open_image(self, batch_file: BatchFile) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(batch_file.content))
            image.load()
            return image
        except (UnidentifiedImageError, OSError) as e:
            raise FileProcessingError(FileErrorType.UNSUPPORTED_FORMAT, batch_file.file_name,
                                      f"Unsupported or corrupted image: {e}")

    def _render_pdf(self, batch_file: BatchFile) -> List[Image.Image]:
        try:
            with pdfplumber.open(io.BytesIO(batch_file.content)) as pdf:
                images = [page.to_image(resolution=self.pdf_resolution).original.copy()
                          for page in pdf.pages]
        except Exception as e:
            raise FileProcessingError(FileErrorType.CORRUPTED_FILE, batch_file.file_name,
                                      f"PDF processing failed: {e}")

        if not images:
            raise FileProcessingError(FileErrorType.PROCESSING_FAILED, batch_file.file_name,
                                      "PDF conversion produced no pages")
        return images

    def compress_image(self, image: Image.Image, file_name: str) -> bytes:
        """
        Normalize a page to an RGB JPEG no wider than ``image_max_width``.

        Raises:
            FileProcessingError: If the image cannot be encoded
        """
        try:
            if image.mode != "RGB":
                image = image.convert("RGB")
            if image.width > self.image_max_width:
                height = max(1, round(image.height * self.image_max_width / image.width))
                image = image.resize((self.image_max_width, height))

            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=self.image_quality)
            return buffer.getvalue()
        except (OSError, ValueError) as e:
            raise FileProcessingError(FileErrorType.PROCESSING_FAILED, file_name,
                                      f"Image compression failed: {e}")
