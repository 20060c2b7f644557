"""
Word exam extractor using python-docx.

Answer keys are usually tables (question number | answer) placed under
the "HƯỚNG DẪN CHẤM" heading, so paragraphs and tables are read in body
order and each table row becomes one pipe-separated line.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import ClassVar

from docx import Document
from docx.document import Document as DocumentObject
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.table import Table
from docx.text.paragraph import Paragraph

from math_club.extractors.base import DocumentExtractor, ExtractionError


class DocxExtractor(DocumentExtractor):
    """Extracts paragraphs and tables from .docx exams in document order."""

    SUPPORTED_EXTENSIONS: ClassVar[tuple[str, ...]] = (".docx",)

    def _read_blocks(self, file_path: Path) -> list[str]:
        try:
            doc = Document(str(file_path))
        except PackageNotFoundError as e:
            raise ExtractionError(
                "File is not a valid .docx document or is corrupted", file_path, cause=e
            ) from e
        return list(self._body_blocks(doc))

    @classmethod
    def _body_blocks(cls, doc: DocumentObject) -> Iterator[str]:
        for child in doc.element.body.iterchildren():
            if child.tag == qn("w:p"):
                yield Paragraph(child, doc).text
            elif child.tag == qn("w:tbl"):
                yield cls._table_text(Table(child, doc))

    @staticmethod
    def _table_text(table: Table) -> str:
        rows: list[str] = []
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                rows.append(" | ".join(cells))
        return "\n".join(rows)
