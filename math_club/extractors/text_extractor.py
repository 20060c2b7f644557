"""
Plain text and Markdown exam extractor.
"""

import codecs
from pathlib import Path
from typing import ClassVar

from math_club.extractors.base import DocumentExtractor, ExtractionError


class TextExtractor(DocumentExtractor):
    """
    Reads .txt and .md exams.

    Vietnamese exams exported from older tools are sometimes UTF-16 or
    Windows-1258 encoded. UTF-16 is recognised by its byte order mark;
    otherwise UTF-8 is tried before Windows-1258.
    """

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".txt", ".md")

    EMPTY_MESSAGE: ClassVar[str] = "File is empty or contains only whitespace"

    ENCODINGS: ClassVar[tuple[str, ...]] = ("utf-8-sig", "cp1258")

    def _read_blocks(self, file_path: Path) -> list[str]:
        try:
            data = file_path.read_bytes()
        except OSError as e:
            raise ExtractionError(f"Could not read file: {e}", file_path, cause=e) from e
        return [self._decode(data, file_path)]

    def _decode(self, data: bytes, file_path: Path) -> str:
        if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
            encodings: tuple[str, ...] = ("utf-16",)
        else:
            encodings = self.ENCODINGS

        last_error: Exception | None = None
        for encoding in encodings:
            try:
                return data.decode(encoding)
            except UnicodeDecodeError as e:
                last_error = e

        raise ExtractionError(
            f"Could not decode file with any supported encoding: {encodings}",
            file_path,
            cause=last_error,
        )
