"""
PDF exam extractor using PyMuPDF.

Only the text layer is read; scanned exams without one are rejected.
Printed exams repeat a "Trang 1/4" footer on every page, which is dropped
so it does not end up inside question text.
"""

import re
from pathlib import Path
from typing import ClassVar

import fitz  # PyMuPDF

from math_club.extractors.base import DocumentExtractor, ExtractionError

_PAGE_FOOTER = re.compile(r"^[ \t]*Trang[ \t]+\d+[ \t]*/[ \t]*\d+[ \t]*$", re.IGNORECASE | re.MULTILINE)


class PDFExtractor(DocumentExtractor):
    """Extracts page text from PDF exams, one block per page."""

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".pdf",)

    EMPTY_MESSAGE: ClassVar[str] = (
        "No text layer found. The exam appears to be a scan; scanned exams are not supported."
    )

    def _read_blocks(self, file_path: Path) -> list[str]:
        try:
            with fitz.open(file_path) as doc:
                if doc.page_count == 0:
                    raise ExtractionError("PDF has no pages", file_path)
                return [self._page_block(number, page) for number, page in enumerate(doc, start=1)]
        except fitz.EmptyFileError as e:
            raise ExtractionError("PDF file is empty", file_path, cause=e) from e
        except fitz.FileDataError as e:
            raise ExtractionError("PDF file is corrupted or invalid", file_path, cause=e) from e

    @staticmethod
    def _page_block(number: int, page: "fitz.Page") -> str:
        text = page.get_text(
            "text",
            flags=fitz.TEXT_PRESERVE_WHITESPACE | fitz.TEXT_PRESERVE_LIGATURES,
            sort=True,
        )
        text = _PAGE_FOOTER.sub("", text).strip()
        # Blank pages produce no block at all
        return f"--- Trang {number} ---\n{text}" if text else ""
