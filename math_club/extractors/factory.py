"""
Extractor lookup by file extension.
"""

from pathlib import Path

from math_club.extractors.base import DocumentExtractor, ExtractionError
from math_club.extractors.docx_extractor import DocxExtractor
from math_club.extractors.pdf_extractor import PDFExtractor
from math_club.extractors.text_extractor import TextExtractor
from math_club.models import ExtractedDocument

_BY_EXTENSION: dict[str, type[DocumentExtractor]] = {
    extension: extractor_cls
    for extractor_cls in (PDFExtractor, DocxExtractor, TextExtractor)
    for extension in extractor_cls.SUPPORTED_EXTENSIONS
}


def get_supported_extensions() -> tuple[str, ...]:
    return tuple(sorted(_BY_EXTENSION))


def create_extractor(file_path: Path | str) -> DocumentExtractor:
    """
    Pick the extractor for an exam document by its extension.

    Raises:
        ExtractionError: If no extractor handles the extension.
    """
    path = Path(file_path)
    extractor_cls = _BY_EXTENSION.get(path.suffix.lower())
    if extractor_cls is None:
        raise ExtractionError(
            f"Unsupported file format '{path.suffix.lower()}'. "
            f"Supported formats: {', '.join(get_supported_extensions())}",
            path,
        )
    return extractor_cls()


def extract_document(file_path: Path | str) -> ExtractedDocument:
    path = Path(file_path)
    return create_extractor(path).extract(path)
