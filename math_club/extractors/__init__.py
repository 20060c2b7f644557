"""
Document Extraction Module.

Reads the text of uploaded exam documents so questions can be extracted:
- PDF (.pdf)
- Word (.docx)
- Plain text and Markdown (.txt, .md)
"""

from math_club.extractors.base import DocumentExtractor, ExtractionError
from math_club.extractors.factory import create_extractor, extract_document

__all__ = [
    "DocumentExtractor",
    "ExtractionError",
    "create_extractor",
    "extract_document",
]
