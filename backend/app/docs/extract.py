"""Text extraction from uploaded files.

Plain text and markdown are decoded in-core. Other formats need an extractor
plugged in by the deployment (``TextExtractor`` protocol).
"""

from pathlib import PurePath
from typing import Protocol

from backend.app.errors import ProcessingError
from backend.app.models.docs import UploadedFile

TEXT_CONTENT_TYPES = frozenset({"text/plain", "text/markdown", "text/x-markdown"})
TEXT_EXTENSIONS = frozenset({".txt", ".md", ".markdown"})


class TextExtractor(Protocol):
    """Turns an uploaded file into raw text."""

    def extract_text(self, file: UploadedFile) -> str:
        """Return the extracted text or raise ProcessingError."""
        ...


def file_type_of(file: UploadedFile) -> str:
    """Lower-cased file extension without the dot ("" when none)."""
    return PurePath(file.file_name).suffix.lower().lstrip(".")


class PlainTextExtractor:
    """Decodes text and markdown files."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def supports(self, file: UploadedFile) -> bool:
        suffix = PurePath(file.file_name).suffix.lower()
        return file.content_type in TEXT_CONTENT_TYPES or suffix in TEXT_EXTENSIONS

    def extract_text(self, file: UploadedFile) -> str:
        if not self.supports(file):
            raise ProcessingError(
                f"Unsupported file type for {file.file_name} ({file.content_type})"
            )
        try:
            text = file.data.decode(self.encoding)
        except UnicodeDecodeError as e:
            raise ProcessingError(f"Could not decode {file.file_name} as {self.encoding}") from e

        # Normalize line endings so break detection sees "\n" only
        return text.replace("\r\n", "\n").replace("\r", "\n")
