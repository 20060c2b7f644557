"""
Base class for exam document extractors.

An extractor returns the plain text of an exam in reading order: the
questions first, then the grading guide ("HƯỚNG DẪN CHẤM" / "ĐÁP ÁN") when
the document carries one. Text is NFC-normalized, so diacritics typed as
combining marks read the same as precomposed Vietnamese letters.
"""

import logging
import unicodedata
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from math_club.models import ExtractedDocument

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when an exam document cannot be read."""

    def __init__(self, message: str, file_path: str | Path, cause: Exception | None = None):
        self.file_path = str(file_path)
        self.cause = cause
        super().__init__(f"Failed to extract '{file_path}': {message}")


class DocumentExtractor(ABC):
    """
    Reads one exam document format.

    Subclasses list their extensions in `SUPPORTED_EXTENSIONS` and yield the
    document's text blocks from `_read_blocks`; checking the file, joining
    the blocks and rejecting documents without text happen here.
    """

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = ()

    # Upload limit of the exam importer
    MAX_FILE_BYTES: ClassVar[int] = 10 * 1024 * 1024

    # Reported when the document holds no text at all
    EMPTY_MESSAGE: ClassVar[str] = "Document contains no extractable text"

    @classmethod
    def supports(cls, file_path: Path) -> bool:
        return file_path.suffix.lower() in cls.SUPPORTED_EXTENSIONS

    def extract(self, file_path: Path) -> ExtractedDocument:
        """
        Extract the text of an exam document.

        Raises:
            ExtractionError: If the file is missing, unsupported, too large,
                unreadable or has no text.
        """
        self._check_file(file_path)

        try:
            blocks = [block.strip() for block in self._read_blocks(file_path)]
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Unexpected error: {e}", file_path, cause=e) from e

        content = unicodedata.normalize("NFC", "\n\n".join(b for b in blocks if b))
        if not content:
            raise ExtractionError(self.EMPTY_MESSAGE, file_path)

        document = ExtractedDocument(
            content=content,
            source_path=str(file_path.resolve()),
            file_extension=file_path.suffix.lower(),
        )
        logger.debug(
            "Extracted %d characters from %s (answer key: %s)",
            document.character_count,
            file_path.name,
            document.has_answer_key,
        )
        return document

    @abstractmethod
    def _read_blocks(self, file_path: Path) -> list[str]:
        """Text blocks of the document in reading order (pages, paragraphs, tables)."""

    def _check_file(self, file_path: Path) -> None:
        if not file_path.exists():
            raise ExtractionError("File does not exist", file_path)
        if not file_path.is_file():
            raise ExtractionError("Path is not a file", file_path)
        if not self.supports(file_path):
            raise ExtractionError(
                f"Unsupported file format. Expected one of: {self.SUPPORTED_EXTENSIONS}",
                file_path,
            )

        size = file_path.stat().st_size
        if size > self.MAX_FILE_BYTES:
            raise ExtractionError(
                f"File is too large ({size} bytes, limit {self.MAX_FILE_BYTES})",
                file_path,
            )
